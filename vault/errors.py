from __future__ import annotations
# vault/errors.py
"""
Error types for the custodial vault. They are lightweight, serializable, and
safe to surface over logs and the CLI.

Every rejection raised by the vault is a *local, synchronous* refusal: the
ledger is left untouched and the caller receives the specific error kind.

Exports:
- VaultError (base)
- NotAdmin
- InsufficientBalance
- NoAllocation
- AlreadyInitialized
- VaultNotFound
- InvalidAmount
- InvalidAddress
- TransferFailed
- InvariantViolation
"""


import json
from typing import Any, Dict, Mapping, Optional


class VaultError(Exception):
    """Base class for vault domain errors."""

    code: str = "VAULT_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.details:
            try:
                packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError):
                packed = str(self.details)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class NotAdmin(VaultError):
    """Caller lacks the administrative identity required by the operation."""
    code = "VAULT_NOT_ADMIN"

    def __init__(
        self,
        *,
        caller: str,
        admin: str,
        message: str = "caller is not the vault admin",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"caller": caller, "admin": admin})
        super().__init__(message, details=d)


class InsufficientBalance(VaultError):
    """
    The operation would promise or move more than custody holds: allocation past
    the balance, withdrawal past the unallocated remainder, or a claim the
    balance cannot cover.
    """
    code = "VAULT_INSUFFICIENT_BALANCE"

    def __init__(
        self,
        *,
        requested: int,
        available: int,
        message: str = "insufficient vault balance",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d.update({"requested": int(requested), "available": int(available)})
        super().__init__(message, details=d)


class NoAllocation(VaultError):
    """Claim attempted by an identity with no positive entitlement."""
    code = "VAULT_NO_ALLOCATION"

    def __init__(
        self,
        *,
        beneficiary: str,
        message: str = "no allocation to claim",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d["beneficiary"] = beneficiary
        super().__init__(message, details=d)


class AlreadyInitialized(VaultError):
    """A vault was already bootstrapped for this admin identity."""
    code = "VAULT_ALREADY_INITIALIZED"

    def __init__(
        self,
        *,
        admin: str,
        custody_address: Optional[str] = None,
        message: str = "vault already initialized",
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        d["admin"] = admin
        if custody_address is not None:
            d["custody_address"] = custody_address
        super().__init__(message, details=d)


class VaultNotFound(VaultError):
    """No ledger exists at the given custody address (or for the given admin)."""
    code = "VAULT_NOT_FOUND"

    def __init__(
        self,
        message: str = "vault not found",
        *,
        custody_address: Optional[str] = None,
        admin: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if custody_address is not None:
            d["custody_address"] = custody_address
        if admin is not None:
            d["admin"] = admin
        super().__init__(message, details=d)


class InvalidAmount(VaultError):
    """Amount is not an unsigned 64-bit integer, or an aggregate would overflow."""
    code = "VAULT_INVALID_AMOUNT"


class InvalidAddress(VaultError):
    """Identity could not be parsed as a 32-byte account address."""
    code = "VAULT_INVALID_ADDRESS"


class TransferFailed(VaultError):
    """
    The external funds-transfer primitive refused or failed the movement of
    value (insufficient external funds, unregistered party, bad signer).
    """
    code = "VAULT_TRANSFER_FAILED"

    def __init__(
        self,
        message: str = "transfer failed",
        *,
        sender: Optional[str] = None,
        recipient: Optional[str] = None,
        amount: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if sender is not None:
            d["sender"] = sender
        if recipient is not None:
            d["recipient"] = recipient
        if amount is not None:
            d["amount"] = int(amount)
        super().__init__(message, details=d)


class InvariantViolation(VaultError):
    """Ledger bookkeeping no longer matches its aggregates. Always a defect."""
    code = "VAULT_INVARIANT"


__all__ = [
    "VaultError",
    "NotAdmin",
    "InsufficientBalance",
    "NoAllocation",
    "AlreadyInitialized",
    "VaultNotFound",
    "InvalidAmount",
    "InvalidAddress",
    "TransferFailed",
    "InvariantViolation",
]
