from __future__ import annotations

import pytest

from vault.errors import (InsufficientBalance, InvalidAmount, InvariantViolation,
                          NoAllocation, NotAdmin)
from vault.ledger import Ledger
from vault.types import U64_MAX, normalize_address

ADMIN = normalize_address("0xa11ce")
CUSTODY = normalize_address("0xc0ffee")
X = normalize_address("0x01")
Y = normalize_address("0x02")


@pytest.fixture()
def ledger() -> Ledger:
    lg = Ledger.create(admin=ADMIN, custody_address=CUSTODY)
    lg.credit(100)
    return lg


def test_create_is_empty_and_holder_is_admin():
    lg = Ledger.create(admin="0xa11ce", custody_address="c0ffee")
    assert lg.admin == ADMIN
    assert lg.custody_address == CUSTODY
    assert lg.authority_holder == ADMIN
    assert (lg.total_balance, lg.total_allocated, lg.allocations) == (0, 0, {})
    lg.assert_consistent()


def test_allocation_is_additive(ledger: Ledger):
    assert ledger.allocate(X, 30) == 30
    assert ledger.allocate(X, 20) == 50
    ledger.allocate(Y, 10)
    assert ledger.allocation_of(X) == 50
    assert ledger.total_allocated == 60
    assert ledger.available == 40
    ledger.assert_consistent()


def test_allocate_beyond_balance_leaves_state_untouched(ledger: Ledger):
    ledger.allocate(X, 60)
    before = ledger.snapshot()
    with pytest.raises(InsufficientBalance) as ei:
        ledger.allocate(Y, 50)
    assert ei.value.details == {"requested": 50, "available": 40}
    assert ledger.snapshot() == before


def test_zero_allocation_does_not_create_entry(ledger: Ledger):
    assert ledger.allocate(X, 0) == 0
    assert X not in ledger.allocations
    assert ledger.total_allocated == 0
    ledger.assert_consistent()


def test_check_claim_and_settle(ledger: Ledger):
    ledger.allocate(X, 60)
    amount = ledger.check_claim(X)
    assert amount == 60
    ledger.settle_claim(X, amount)
    assert X not in ledger.allocations
    assert (ledger.total_balance, ledger.total_allocated) == (40, 0)
    with pytest.raises(NoAllocation):
        ledger.check_claim(X)


def test_settle_claim_rejects_mismatched_amount(ledger: Ledger):
    ledger.allocate(X, 60)
    with pytest.raises(InvariantViolation):
        ledger.settle_claim(X, 59)
    assert ledger.allocation_of(X) == 60


def test_withdraw_limited_to_available(ledger: Ledger):
    ledger.allocate(X, 70)
    with pytest.raises(InsufficientBalance):
        ledger.check_withdraw(31)
    ledger.debit(30)
    assert ledger.total_balance == 70
    assert ledger.available == 0


def test_require_admin_and_set_admin(ledger: Ledger):
    with pytest.raises(NotAdmin) as ei:
        ledger.require_admin(X)
    assert ei.value.details["caller"] == X
    prev = ledger.set_admin(X)
    assert prev == ADMIN
    ledger.require_admin(X)
    # holder is pinned to the bootstrap admin
    assert ledger.authority_holder == ADMIN


def test_credit_rejects_overflow():
    lg = Ledger.create(admin=ADMIN, custody_address=CUSTODY)
    lg.credit(U64_MAX)
    with pytest.raises(InvalidAmount):
        lg.credit(1)
    assert lg.total_balance == U64_MAX


@pytest.mark.parametrize("bad", [-1, 1.5, True, "10", U64_MAX + 1])
def test_amounts_must_be_u64(ledger: Ledger, bad):
    with pytest.raises(InvalidAmount):
        ledger.allocate(X, bad)


def test_assert_consistent_detects_drift(ledger: Ledger):
    ledger.allocate(X, 10)
    ledger.total_allocated = 11
    with pytest.raises(InvariantViolation):
        ledger.assert_consistent()


def test_snapshot_restore(ledger: Ledger):
    ledger.allocate(X, 25)
    ledger.allocate(Y, 5)
    ledger.set_admin(Y)
    again = Ledger.restore(ledger.snapshot())
    assert again == ledger


def test_restore_rejects_inconsistent_snapshot(ledger: Ledger):
    snap = ledger.snapshot()
    snap["allocations"] = {X: 500}
    snap["total_allocated"] = 500
    with pytest.raises(InvariantViolation):
        Ledger.restore(snap)


def test_restore_rejects_custody_as_counterparty(ledger: Ledger):
    snap = ledger.snapshot()
    snap["allocations"] = {CUSTODY: 10}
    snap["total_allocated"] = 10
    with pytest.raises(InvariantViolation):
        Ledger.restore(snap)

    snap = ledger.snapshot()
    snap["admin"] = CUSTODY
    with pytest.raises(InvariantViolation):
        Ledger.restore(snap)
