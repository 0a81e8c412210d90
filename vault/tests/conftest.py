from __future__ import annotations

import os

import pytest

from vault.authority import ResourceAccountAuthority
from vault.coin import InMemoryCoinStore
from vault.config import VaultConfig
from vault.service import VaultService
from vault.types import normalize_address

# --------------------------- Well-known identities ---------------------------

ADMIN = normalize_address("0xa11ce")
BOB = normalize_address("0xb0b")
CAROL = normalize_address("0xca401")
DAVE = normalize_address("0xda5e")
MALLORY = normalize_address("0x6a11")

STARTING_FUNDS = 10_000


@pytest.fixture(autouse=True)
def _no_vault_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host VAULT_* variables out of every test."""
    for k in list(os.environ):
        if k.startswith("VAULT_"):
            monkeypatch.delenv(k, raising=False)


@pytest.fixture()
def coins() -> InMemoryCoinStore:
    store = InMemoryCoinStore()
    for who in (ADMIN, BOB, CAROL, MALLORY):
        store.mint(who, STARTING_FUNDS)
    return store


@pytest.fixture()
def authority() -> ResourceAccountAuthority:
    return ResourceAccountAuthority()


@pytest.fixture()
def config() -> VaultConfig:
    return VaultConfig(check_invariants=True)


@pytest.fixture()
def svc(coins: InMemoryCoinStore, authority: ResourceAccountAuthority, config: VaultConfig) -> VaultService:
    return VaultService(coins, authority, config=config)


@pytest.fixture()
def vault(svc: VaultService) -> str:
    """A freshly bootstrapped, empty vault administered by ADMIN."""
    return svc.bootstrap(ADMIN)


@pytest.fixture()
def funded(svc: VaultService, vault: str) -> str:
    """ADMIN's vault holding 100 units, nothing allocated."""
    svc.deposit(ADMIN, vault, 100)
    return vault
