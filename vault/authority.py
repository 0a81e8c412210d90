"""
vault.authority — keyless custody identities and the delegated signing capability.

At bootstrap the vault asks a `ResourceAccountAuthority` for a custody identity.
The identity has no private key; the only way to act as it is to present the
`SignerCapability` minted alongside it, which `act_as` exchanges for a transient
`Signer`.

Custody address derivation (deterministic):

    sha3_256(admin_bytes || seed || 0xFF)  →  32-byte address

The capability is opaque and exclusively owned: it cannot be copied, pickled
or serialized, and its repr does not reveal the account. A capability is only
honoured by the provider that minted it.

`DelegatedAuthority` is the per-admin record the vault stores: the admin it is
keyed by plus the capability. It is created once and never mutated.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import AlreadyInitialized, InvariantViolation
from .primitives import Signer
from .types import Address, address_bytes, normalize_address

log = logging.getLogger(__name__)

_DERIVE_SCHEME = b"\xff"


def derive_custody_address(admin: Address, seed: bytes) -> Address:
    digest = hashlib.sha3_256(address_bytes(admin) + bytes(seed) + _DERIVE_SCHEME).digest()
    return normalize_address(digest)


class SignerCapability:
    """Opaque credential for acting as a custody identity. Not copyable."""

    __slots__ = ("_account", "_issuer")

    def __init__(self, account: Address, issuer: object) -> None:
        self._account = account
        self._issuer = issuer

    def __repr__(self) -> str:
        return "<SignerCapability>"

    def __copy__(self):
        raise TypeError("SignerCapability cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("SignerCapability cannot be copied")

    def __reduce__(self):
        raise TypeError("SignerCapability cannot be serialized")


@dataclass(frozen=True)
class DelegatedAuthority:
    holder: Address
    custody_address: Address
    capability: SignerCapability

    def __repr__(self) -> str:
        return f"DelegatedAuthority(holder={self.holder}, custody_address={self.custody_address})"


class ResourceAccountAuthority:
    """
    In-process authority provider.

    Tracks which custody identities it created so that a second creation for the
    same (admin, seed) pair fails deterministically.
    """

    def __init__(self) -> None:
        self._created: Dict[Address, Address] = {}  # custody → admin
        self._lock = threading.Lock()

    def create_custody_identity(self, admin: Address, seed: bytes) -> Tuple[Address, SignerCapability]:
        admin = normalize_address(admin)
        custody = derive_custody_address(admin, seed)
        with self._lock:
            if custody in self._created:
                raise AlreadyInitialized(admin=admin, custody_address=custody)
            self._created[custody] = admin
        log.debug("custody identity created", extra={"custody": custody, "admin": admin})
        return custody, SignerCapability(custody, self)

    def restore_custody_identity(self, admin: Address, seed: bytes, expected: Address) -> SignerCapability:
        admin = normalize_address(admin)
        expected = normalize_address(expected)
        custody = derive_custody_address(admin, seed)
        if custody != expected:
            raise InvariantViolation(
                "custody address does not match its derivation",
                details={"admin": admin, "expected": expected, "derived": custody},
            )
        with self._lock:
            owner = self._created.setdefault(custody, admin)
        if owner != admin:
            raise InvariantViolation(
                "custody identity owned by a different admin",
                details={"custody_address": custody, "admin": admin, "owner": owner},
            )
        return SignerCapability(custody, self)

    def discard_custody_identity(self, address: Address, capability: SignerCapability) -> None:
        """Drop the record of an identity whose bootstrap was rolled back."""
        address = normalize_address(address)
        if capability._issuer is not self or capability._account != address:
            raise InvariantViolation("capability does not belong to this identity")
        with self._lock:
            self._created.pop(address, None)
        log.debug("custody identity discarded", extra={"custody": address})

    def act_as(self, capability: SignerCapability) -> Signer:
        if not isinstance(capability, SignerCapability) or capability._issuer is not self:
            raise InvariantViolation("capability was not issued by this authority")
        return Signer(address=capability._account)


__all__ = [
    "derive_custody_address",
    "SignerCapability",
    "DelegatedAuthority",
    "ResourceAccountAuthority",
]
