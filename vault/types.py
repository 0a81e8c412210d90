"""
vault.types — identity and amount primitives shared by every vault module.

Addresses are 32-byte account identifiers rendered canonically as ``0x`` followed
by 64 lowercase hex digits. Short forms are accepted and left-padded, so
``"0xa11ce"`` and ``"a11ce"`` both name the same account.

Amounts are unsigned 64-bit integers in coin base units.
"""

from __future__ import annotations

from typing import Union

from .errors import InvalidAddress, InvalidAmount

Address = str
Amount = int
AddressLike = Union[str, bytes, bytearray]

ADDRESS_LEN = 32
U64_MAX = (1 << 64) - 1


def normalize_address(x: AddressLike) -> Address:
    """Return the canonical ``0x``-prefixed, zero-padded hex form of ``x``."""
    if isinstance(x, (bytes, bytearray)):
        raw = bytes(x)
        if not raw or len(raw) > ADDRESS_LEN:
            raise InvalidAddress(
                "address must be 1..32 bytes", details={"length": len(raw)}
            )
        return "0x" + raw.rjust(ADDRESS_LEN, b"\x00").hex()
    if not isinstance(x, str):
        raise InvalidAddress(
            "address must be str or bytes", details={"type": type(x).__name__}
        )
    s = x.strip().lower()
    if s.startswith("0x"):
        s = s[2:]
    if not s or len(s) > 2 * ADDRESS_LEN:
        raise InvalidAddress("address must be 1..64 hex digits", details={"value": x})
    try:
        int(s, 16)
    except ValueError as e:
        raise InvalidAddress("address is not hex", details={"value": x}) from e
    return "0x" + s.rjust(2 * ADDRESS_LEN, "0")


def address_bytes(addr: Address) -> bytes:
    return bytes.fromhex(normalize_address(addr)[2:])


def check_amount(amount: int, *, name: str = "amount") -> Amount:
    """Reject anything that is not an int in ``[0, 2**64 - 1]``."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(
            f"{name} must be an integer", details={"type": type(amount).__name__}
        )
    if amount < 0:
        raise InvalidAmount(f"{name} must be non-negative", details={name: amount})
    if amount > U64_MAX:
        raise InvalidAmount(f"{name} exceeds u64", details={name: amount})
    return amount


def add_u64(a: Amount, b: Amount, *, what: str) -> Amount:
    c = a + b
    if c > U64_MAX:
        raise InvalidAmount(f"{what} would overflow u64", details={"have": a, "add": b})
    return c


__all__ = [
    "Address",
    "Amount",
    "AddressLike",
    "ADDRESS_LEN",
    "U64_MAX",
    "normalize_address",
    "address_bytes",
    "check_amount",
    "add_u64",
]
