from __future__ import annotations

"""
Vault ledger — custody totals & per-beneficiary allocations
-----------------------------------------------------------

One `Ledger` exists per custody address. It tracks:
  • `total_balance`   — value held in custody, as seen by the vault
  • `allocations`     — beneficiary → entitled amount (missing key ⇒ 0)
  • `total_allocated` — running sum of `allocations`

Invariants (checked by `assert_consistent`):
  • total_balance >= total_allocated
  • total_allocated == sum(allocations.values())

`total_allocated` is maintained incrementally, in lockstep with every insert and
removal; it is never recomputed from the map outside `assert_consistent`.

The ledger is pure bookkeeping: it never talks to the coin store or the
authority. Mutations come in two flavours:
  • checks (`require_admin`, `check_allocate`, `check_claim`, `check_withdraw`)
    which raise without touching state;
  • commits (`credit`, `allocate`, `settle_claim`, `debit`, `set_admin`) which
    the service applies only after any external transfer has succeeded.

Amounts are unsigned 64-bit integers (no floats).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from .errors import (InsufficientBalance, InvariantViolation, NoAllocation,
                     NotAdmin)
from .types import Address, Amount, add_u64, check_amount, normalize_address


@dataclass
class Ledger:
    admin: Address
    custody_address: Address
    authority_holder: Address
    total_balance: Amount = 0
    total_allocated: Amount = 0
    allocations: Dict[Address, Amount] = field(default_factory=dict)

    @classmethod
    def create(cls, *, admin: Address, custody_address: Address) -> "Ledger":
        """Fresh, empty ledger. The bootstrap admin also holds the delegated authority."""
        admin = normalize_address(admin)
        return cls(
            admin=admin,
            custody_address=normalize_address(custody_address),
            authority_holder=admin,
        )

    # --- queries ---

    @property
    def available(self) -> Amount:
        """Unallocated remainder that the admin may withdraw."""
        return self.total_balance - self.total_allocated

    def allocation_of(self, beneficiary: Address) -> Amount:
        return self.allocations.get(normalize_address(beneficiary), 0)

    def is_admin(self, caller: Address) -> bool:
        return normalize_address(caller) == self.admin

    # --- checks (never mutate) ---

    def require_admin(self, caller: Address) -> None:
        caller = normalize_address(caller)
        if caller != self.admin:
            raise NotAdmin(caller=caller, admin=self.admin)

    def check_allocate(self, amount: Amount) -> None:
        check_amount(amount)
        new_total = add_u64(self.total_allocated, amount, what="total_allocated")
        if new_total > self.total_balance:
            raise InsufficientBalance(
                requested=amount,
                available=self.available,
                message="allocation exceeds unallocated balance",
            )

    def check_claim(self, beneficiary: Address) -> Amount:
        """Return the full entitlement `beneficiary` would receive."""
        beneficiary = normalize_address(beneficiary)
        amount = self.allocations.get(beneficiary, 0)
        if amount <= 0:
            raise NoAllocation(beneficiary=beneficiary)
        if self.total_balance < amount:
            # unreachable while invariants hold; surfaced instead of paying out
            raise InsufficientBalance(
                requested=amount,
                available=self.total_balance,
                message="claim exceeds custody balance",
            )
        return amount

    def check_withdraw(self, amount: Amount) -> None:
        check_amount(amount)
        if amount > self.available:
            raise InsufficientBalance(
                requested=amount,
                available=self.available,
                message="withdrawal exceeds unallocated balance",
            )

    # --- commits ---

    def credit(self, amount: Amount) -> None:
        check_amount(amount)
        self.total_balance = add_u64(self.total_balance, amount, what="total_balance")

    def allocate(self, beneficiary: Address, amount: Amount) -> Amount:
        """Add `amount` to the beneficiary's entry; returns the new entitlement."""
        beneficiary = normalize_address(beneficiary)
        self.check_allocate(amount)
        current = self.allocations.get(beneficiary, 0)
        updated = add_u64(current, amount, what="allocation")
        if updated:
            # zero entries are never stored: absent already means "entitled to 0"
            self.allocations[beneficiary] = updated
        self.total_allocated += amount
        return updated

    def settle_claim(self, beneficiary: Address, amount: Amount) -> None:
        """Remove the paid-out entry and release its custody."""
        beneficiary = normalize_address(beneficiary)
        entry = self.allocations.get(beneficiary, 0)
        if entry != amount:
            raise InvariantViolation(
                "claimed amount no longer matches allocation",
                details={"beneficiary": beneficiary, "entry": entry, "amount": amount},
            )
        del self.allocations[beneficiary]
        self.total_allocated -= amount
        self.total_balance -= amount

    def debit(self, amount: Amount) -> None:
        self.check_withdraw(amount)
        self.total_balance -= amount

    def set_admin(self, new_admin: Address) -> Address:
        """Replace the admin; returns the previous one."""
        previous = self.admin
        self.admin = normalize_address(new_admin)
        return previous

    # --- consistency ---

    def assert_consistent(self) -> None:
        """Full-scan verification of both ledger invariants."""
        actual = sum(self.allocations.values())
        if actual != self.total_allocated:
            raise InvariantViolation(
                "total_allocated does not equal the sum of allocations",
                details={
                    "custody_address": self.custody_address,
                    "total_allocated": self.total_allocated,
                    "sum_allocations": actual,
                },
            )
        if self.total_balance < self.total_allocated:
            raise InvariantViolation(
                "total_allocated exceeds total_balance",
                details={
                    "custody_address": self.custody_address,
                    "total_allocated": self.total_allocated,
                    "total_balance": self.total_balance,
                },
            )
        if self.custody_address in self.allocations or self.admin == self.custody_address:
            raise InvariantViolation(
                "custody address cannot be its own beneficiary or admin",
                details={"custody_address": self.custody_address},
            )
        if any(v <= 0 for v in self.allocations.values()):
            raise InvariantViolation(
                "allocation entries must be positive",
                details={"custody_address": self.custody_address},
            )

    # --- load/save ---

    def snapshot(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "custody_address": self.custody_address,
            "authority_holder": self.authority_holder,
            "total_balance": self.total_balance,
            "total_allocated": self.total_allocated,
            "allocations": dict(sorted(self.allocations.items())),
        }

    @staticmethod
    def restore(d: Mapping[str, Any]) -> "Ledger":
        ledger = Ledger(
            admin=normalize_address(d["admin"]),
            custody_address=normalize_address(d["custody_address"]),
            authority_holder=normalize_address(d.get("authority_holder", d["admin"])),
            total_balance=check_amount(int(d["total_balance"]), name="total_balance"),
            total_allocated=check_amount(int(d["total_allocated"]), name="total_allocated"),
            allocations={
                normalize_address(k): check_amount(int(v), name="allocation")
                for k, v in (d.get("allocations") or {}).items()
            },
        )
        ledger.assert_consistent()
        return ledger


__all__ = ["Ledger"]
