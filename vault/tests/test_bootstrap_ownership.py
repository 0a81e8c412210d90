from __future__ import annotations

import copy
import pickle

import pytest

from vault.authority import (ResourceAccountAuthority, SignerCapability,
                             derive_custody_address)
from vault.errors import (AlreadyInitialized, InvariantViolation, NotAdmin,
                          TransferFailed, VaultNotFound)
from vault.service import VaultService

from .conftest import ADMIN, BOB, CAROL, STARTING_FUNDS

# --------------------------- bootstrap ---------------------------


def test_bootstrap_derives_and_registers_custody(svc: VaultService, coins):
    vault = svc.bootstrap(ADMIN)
    assert vault == derive_custody_address(ADMIN, b"vault")
    assert coins.is_registered(vault)
    assert svc.custody_address_of(ADMIN) == vault
    assert svc.admin_of(vault) == ADMIN
    assert svc.vaults() == (vault,)
    # bootstrap itself is not an audited operation
    assert svc.events(vault) == ()


def test_second_bootstrap_for_same_admin_fails(svc: VaultService, vault: str):
    with pytest.raises(AlreadyInitialized) as ei:
        svc.bootstrap(ADMIN)
    assert ei.value.details["custody_address"] == vault
    assert svc.vaults() == (vault,)


def test_vaults_for_different_admins_are_independent(svc: VaultService, vault: str):
    other = svc.bootstrap(BOB)
    assert other != vault
    svc.deposit(BOB, other, 9)
    assert svc.balance(other) == 9
    assert svc.balance(vault) == 0
    with pytest.raises(NotAdmin):
        svc.withdraw(ADMIN, other, 1)


def test_failed_registration_rolls_back_bootstrap(svc: VaultService, coins, monkeypatch):
    def registry_down(addr):
        raise TransferFailed("coin registry unavailable", recipient=addr)

    real_register = coins.register
    monkeypatch.setattr(coins, "register", registry_down)
    with pytest.raises(TransferFailed):
        svc.bootstrap(ADMIN)
    assert svc.vaults() == ()
    with pytest.raises(VaultNotFound):
        svc.custody_address_of(ADMIN)

    monkeypatch.setattr(coins, "register", real_register)
    vault = svc.bootstrap(ADMIN)
    assert vault == derive_custody_address(ADMIN, b"vault")
    assert coins.is_registered(vault)


def test_discard_requires_matching_capability():
    auth = ResourceAccountAuthority()
    custody, cap = auth.create_custody_identity(ADMIN, b"vault")
    other, _ = auth.create_custody_identity(BOB, b"vault")
    with pytest.raises(InvariantViolation):
        auth.discard_custody_identity(other, cap)
    auth.discard_custody_identity(custody, cap)
    again, _ = auth.create_custody_identity(ADMIN, b"vault")
    assert again == custody


def test_seed_changes_custody_address():
    assert derive_custody_address(ADMIN, b"vault") != derive_custody_address(ADMIN, b"other")


def test_registration_is_idempotent(coins):
    coins.register(CAROL)
    coins.register(CAROL)
    assert coins.is_registered(CAROL)
    assert coins.balance_of(CAROL) == STARTING_FUNDS


def test_provider_refuses_duplicate_identity():
    auth = ResourceAccountAuthority()
    auth.create_custody_identity(ADMIN, b"vault")
    with pytest.raises(AlreadyInitialized):
        auth.create_custody_identity(ADMIN, b"vault")


def test_capability_is_opaque_and_not_copyable():
    auth = ResourceAccountAuthority()
    custody, cap = auth.create_custody_identity(ADMIN, b"vault")
    assert isinstance(cap, SignerCapability)
    assert custody not in repr(cap)
    with pytest.raises(TypeError):
        copy.copy(cap)
    with pytest.raises(TypeError):
        copy.deepcopy(cap)
    with pytest.raises(TypeError):
        pickle.dumps(cap)
    assert auth.act_as(cap).address == custody


def test_capability_only_honoured_by_its_issuer():
    a, b = ResourceAccountAuthority(), ResourceAccountAuthority()
    _, cap = a.create_custody_identity(ADMIN, b"vault")
    with pytest.raises(InvariantViolation):
        b.act_as(cap)


# --------------------------- ownership transfer ---------------------------


def test_transfer_ownership_moves_admin_rights(svc: VaultService, funded: str):
    env = svc.transfer_ownership(ADMIN, funded, BOB)
    assert env.kind == "ownership_transfer"
    assert env.to_dict()["from"] == ADMIN
    assert env.to_dict()["to"] == BOB
    assert svc.admin_of(funded) == BOB

    with pytest.raises(NotAdmin):
        svc.allocate(ADMIN, funded, CAROL, 1)
    with pytest.raises(NotAdmin):
        svc.transfer_ownership(ADMIN, funded, ADMIN)


def test_new_admin_controls_funds_through_original_authority(svc: VaultService, funded: str, coins):
    svc.transfer_ownership(ADMIN, funded, BOB)

    svc.allocate(BOB, funded, CAROL, 30)
    svc.withdraw(BOB, funded, 70)
    assert coins.balance_of(BOB) == STARTING_FUNDS + 70
    svc.claim(CAROL, funded)
    assert svc.balance(funded) == 0


def test_authority_stays_keyed_by_bootstrap_admin(svc: VaultService, funded: str):
    svc.transfer_ownership(ADMIN, funded, BOB)

    # lookup by the bootstrap admin keeps working; the new admin has no authority record
    assert svc.custody_address_of(ADMIN) == funded
    with pytest.raises(VaultNotFound):
        svc.custody_address_of(BOB)
    assert svc.describe(funded)["authority_holder"] == ADMIN


def test_former_admin_cannot_bootstrap_again(svc: VaultService, funded: str):
    svc.transfer_ownership(ADMIN, funded, BOB)
    with pytest.raises(AlreadyInitialized):
        svc.bootstrap(ADMIN)


def test_new_admin_may_bootstrap_own_vault(svc: VaultService, funded: str):
    svc.transfer_ownership(ADMIN, funded, BOB)
    own = svc.bootstrap(BOB)
    assert own != funded
    assert svc.custody_address_of(BOB) == own
    assert svc.admin_of(funded) == BOB
