"""
vault.coin — deterministic in-memory coin store.

A small balance book used for local runs, the CLI and tests. It implements the
`vault.primitives.CoinStore` contract:

- register(addr) / is_registered(addr)   # idempotent registration
- balance_of(addr) -> int
- transfer(signer, recipient, amount)     # debit signer, credit recipient
- mint(addr, amount)                      # host/testing helper to fund parties

Rules
-----
* Both parties of a transfer must be registered.
* The debited account is always `signer.address`.
* Balances are unsigned 64-bit; a transfer that would overflow the recipient or
  overdraw the sender fails as a whole (`TransferFailed`) with no partial effect.
* Zero-amount transfers still require registered parties and are otherwise no-ops.
* An account cannot transfer to itself.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Mapping, Set

from .errors import TransferFailed
from .primitives import Signer
from .types import U64_MAX, Address, Amount, check_amount, normalize_address


class InMemoryCoinStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._balances: Dict[Address, Amount] = {}
        self._registered: Set[Address] = set()

    # --- registration ---

    def is_registered(self, addr: Address) -> bool:
        with self._lock:
            return normalize_address(addr) in self._registered

    def register(self, addr: Address) -> None:
        addr = normalize_address(addr)
        with self._lock:
            if addr in self._registered:
                return
            self._registered.add(addr)
            self._balances.setdefault(addr, 0)

    # --- balances ---

    def balance_of(self, addr: Address) -> Amount:
        with self._lock:
            return self._balances.get(normalize_address(addr), 0)

    def mint(self, addr: Address, amount: Amount) -> Amount:
        """Host/testing helper: create `amount` out of thin air for `addr` (auto-registers)."""
        check_amount(amount)
        addr = normalize_address(addr)
        with self._lock:
            self.register(addr)
            cur = self._balances[addr]
            if cur + amount > U64_MAX:
                raise TransferFailed("mint would overflow u64", recipient=addr, amount=amount)
            self._balances[addr] = cur + amount
            return self._balances[addr]

    def transfer(self, signer: Signer, recipient: Address, amount: Amount) -> None:
        check_amount(amount)
        sender = normalize_address(signer.address)
        recipient = normalize_address(recipient)
        with self._lock:
            if sender not in self._registered:
                raise TransferFailed("sender is not registered", sender=sender, recipient=recipient, amount=amount)
            if recipient not in self._registered:
                raise TransferFailed("recipient is not registered", sender=sender, recipient=recipient, amount=amount)
            if sender == recipient:
                raise TransferFailed("sender and recipient are the same account", sender=sender, recipient=recipient, amount=amount)
            if amount == 0:
                return
            have = self._balances[sender]
            if amount > have:
                raise TransferFailed(
                    "insufficient funds",
                    sender=sender,
                    recipient=recipient,
                    amount=amount,
                    details={"balance": have},
                )
            if self._balances[recipient] + amount > U64_MAX:
                raise TransferFailed("recipient balance would overflow u64", sender=sender, recipient=recipient, amount=amount)
            self._balances[sender] = have - amount
            self._balances[recipient] += amount

    # --- load/save ---

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "registered": sorted(self._registered),
                "balances": {k: v for k, v in sorted(self._balances.items()) if v},
            }

    @classmethod
    def load(cls, data: Mapping[str, Any]) -> "InMemoryCoinStore":
        store = cls()
        for addr in data.get("registered", ()):
            store.register(addr)
        for addr, amount in (data.get("balances") or {}).items():
            store.mint(addr, int(amount))
        return store


__all__ = ["InMemoryCoinStore"]
