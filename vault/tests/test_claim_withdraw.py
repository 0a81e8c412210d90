from __future__ import annotations

import pytest

from vault.config import VaultConfig
from vault.errors import (InsufficientBalance, InvalidAddress, InvalidAmount,
                          NoAllocation, TransferFailed, VaultNotFound)
from vault.service import VaultService
from vault.types import normalize_address

from .conftest import ADMIN, BOB, DAVE, STARTING_FUNDS

# --------------------------- claim ---------------------------


def test_claim_pays_whole_entitlement(svc: VaultService, funded: str, coins):
    svc.allocate(ADMIN, funded, BOB, 30)
    svc.allocate(ADMIN, funded, BOB, 15)
    env = svc.claim(BOB, funded)
    assert env.event.amount == 45
    assert coins.balance_of(BOB) == STARTING_FUNDS + 45
    assert svc.balance(funded) == 55


def test_claim_without_allocation(svc: VaultService, funded: str):
    with pytest.raises(NoAllocation) as ei:
        svc.claim(BOB, funded)
    assert ei.value.code == "VAULT_NO_ALLOCATION"
    assert ei.value.details["beneficiary"] == BOB


def test_zero_allocation_is_not_claimable(svc: VaultService, funded: str):
    env = svc.allocate(ADMIN, funded, BOB, 0)
    assert env.event.amount == 0
    with pytest.raises(NoAllocation):
        svc.claim(BOB, funded)


def test_claim_registers_new_beneficiary(svc: VaultService, funded: str, coins):
    assert not coins.is_registered(DAVE)
    svc.allocate(ADMIN, funded, DAVE, 20)
    svc.claim(DAVE, funded)
    assert coins.is_registered(DAVE)
    assert coins.balance_of(DAVE) == 20


def test_claim_without_auto_register_fails_cleanly(coins, authority):
    svc = VaultService(coins, authority, config=VaultConfig(auto_register=False))
    vault = svc.bootstrap(ADMIN)
    svc.deposit(ADMIN, vault, 50)
    svc.allocate(ADMIN, vault, DAVE, 20)
    with pytest.raises(TransferFailed):
        svc.claim(DAVE, vault)
    assert svc.allocation_of(vault, DAVE) == 20
    assert svc.balance(vault) == 50
    assert len(svc.events(vault, "claim")) == 0


def test_failed_payout_keeps_allocation_claimable(svc: VaultService, funded: str, coins, monkeypatch):
    svc.allocate(ADMIN, funded, BOB, 40)
    real_transfer = coins.transfer

    def broken(signer, recipient, amount):
        raise TransferFailed("coin store offline", sender=signer.address, recipient=recipient, amount=amount)

    monkeypatch.setattr(coins, "transfer", broken)
    with pytest.raises(TransferFailed):
        svc.claim(BOB, funded)
    assert svc.allocation_of(funded, BOB) == 40
    assert (svc.balance(funded), svc.total_allocated(funded)) == (100, 40)
    assert svc.events(funded, "claim") == ()

    monkeypatch.setattr(coins, "transfer", real_transfer)
    svc.claim(BOB, funded)
    assert svc.allocation_of(funded, BOB) == 0
    assert coins.balance_of(BOB) == STARTING_FUNDS + 40


def test_claim_on_unknown_vault(svc: VaultService):
    with pytest.raises(VaultNotFound):
        svc.claim(BOB, "0xdeadbeef")


# --------------------------- deposit ---------------------------


def test_deposit_beyond_external_funds_leaves_ledger_untouched(svc: VaultService, vault: str, coins):
    with pytest.raises(TransferFailed):
        svc.deposit(BOB, vault, STARTING_FUNDS + 1)
    assert svc.balance(vault) == 0
    assert coins.balance_of(BOB) == STARTING_FUNDS
    assert svc.events(vault) == ()


def test_zero_deposit_is_recorded(svc: VaultService, vault: str):
    env = svc.deposit(BOB, vault, 0)
    assert env.event.amount == 0
    assert svc.balance(vault) == 0
    assert len(svc.events(vault, "deposit")) == 1


@pytest.mark.parametrize("bad", [-5, 2.0, None])
def test_deposit_rejects_non_u64(svc: VaultService, vault: str, bad):
    with pytest.raises(InvalidAmount):
        svc.deposit(BOB, vault, bad)


# --------------------------- withdraw ---------------------------


def test_withdraw_pays_current_admin(svc: VaultService, funded: str, coins):
    svc.withdraw(ADMIN, funded, 25)
    assert coins.balance_of(ADMIN) == STARTING_FUNDS - 100 + 25
    assert svc.balance(funded) == 75
    assert svc.events(funded, "withdraw")[0].event.amount == 25


def test_withdraw_never_touches_allocated_funds(svc: VaultService, funded: str):
    svc.allocate(ADMIN, funded, BOB, 90)
    with pytest.raises(InsufficientBalance):
        svc.withdraw(ADMIN, funded, 11)
    svc.withdraw(ADMIN, funded, 10)
    assert svc.available(funded) == 0
    # beneficiary is still fully covered
    svc.claim(BOB, funded)
    assert svc.balance(funded) == 0


def test_failed_withdraw_transfer_leaves_ledger(svc: VaultService, funded: str, coins, monkeypatch):
    def broken(signer, recipient, amount):
        raise TransferFailed("refused", recipient=recipient, amount=amount)

    monkeypatch.setattr(coins, "transfer", broken)
    with pytest.raises(TransferFailed):
        svc.withdraw(ADMIN, funded, 10)
    assert svc.balance(funded) == 100
    assert svc.events(funded, "withdraw") == ()


def test_addresses_are_normalized(svc: VaultService, funded: str):
    svc.allocate("0XA11CE", funded, "b0b", 5)
    assert svc.allocation_of(funded, BOB) == 5
    assert svc.allocation_of(funded.upper(), "0x0b0b") == 5
    assert normalize_address(b"\x0b\x0b") == BOB


# --------------------------- custody address as counterparty ---------------------------


def _in_sync(svc: VaultService, vault: str, coins) -> bool:
    return svc.balance(vault) == coins.balance_of(vault)


def test_custody_cannot_deposit_into_itself(svc: VaultService, funded: str, coins):
    with pytest.raises(InvalidAddress) as ei:
        svc.deposit(funded, funded, 100)
    assert ei.value.details["role"] == "depositor"
    assert svc.balance(funded) == 100
    assert _in_sync(svc, funded, coins)
    assert len(svc.events(funded, "deposit")) == 1


def test_custody_cannot_be_beneficiary(svc: VaultService, funded: str, coins):
    with pytest.raises(InvalidAddress):
        svc.allocate(ADMIN, funded, funded, 60)
    assert svc.allocation_of(funded, funded) == 0
    with pytest.raises(InvalidAddress):
        svc.claim(funded, funded)
    assert (svc.balance(funded), svc.total_allocated(funded)) == (100, 0)
    assert _in_sync(svc, funded, coins)


def test_custody_cannot_become_admin(svc: VaultService, funded: str, coins):
    with pytest.raises(InvalidAddress):
        svc.transfer_ownership(ADMIN, funded, funded)
    assert svc.admin_of(funded) == ADMIN
    svc.withdraw(ADMIN, funded, 30)
    assert svc.balance(funded) == 70
    assert _in_sync(svc, funded, coins)
