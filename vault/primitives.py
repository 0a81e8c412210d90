"""
vault.primitives — collaborator contracts consumed by the vault core.

The vault never moves value itself. It relies on:

* a **coin store** that moves value atomically between identities and keeps an
  idempotent registry of identities able to hold value;
* an **authority provider** that creates the keyless custody identity at
  bootstrap and later exchanges the resulting capability for a transient
  signer acting as that identity;
* an **audit sink** (see `vault.events.AuditSink`).

Reference implementations live in `vault.coin` and `vault.authority`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Tuple, runtime_checkable

from .types import Address, Amount

if TYPE_CHECKING:
    from .authority import SignerCapability


@dataclass(frozen=True)
class Signer:
    """Transient signing identity. Only good for authorizing debits of `address`."""
    address: Address


@runtime_checkable
class CoinStore(Protocol):
    def is_registered(self, addr: Address) -> bool: ...

    def register(self, addr: Address) -> None:
        """Idempotent: registering a registered identity is a no-op."""
        ...

    def balance_of(self, addr: Address) -> Amount: ...

    def transfer(self, signer: Signer, recipient: Address, amount: Amount) -> None:
        """Move `amount` from `signer.address` to `recipient`, all or nothing.

        Raises `vault.errors.TransferFailed` on any failure.
        """
        ...


@runtime_checkable
class AuthorityProvider(Protocol):
    def create_custody_identity(self, admin: Address, seed: bytes) -> Tuple[Address, "SignerCapability"]:
        """Create the keyless custody identity; returns (address, capability)."""
        ...

    def restore_custody_identity(self, admin: Address, seed: bytes, expected: Address) -> "SignerCapability":
        """Re-issue the capability for an identity created in an earlier process."""
        ...

    def discard_custody_identity(self, address: Address, capability: "SignerCapability") -> None:
        """Forget an identity whose bootstrap did not complete."""
        ...

    def act_as(self, capability: "SignerCapability") -> Signer: ...


__all__ = ["Signer", "CoinStore", "AuthorityProvider"]
