from __future__ import annotations
"""
vault - custodial token vault.

A single administered pool of fungible value: deposited by anyone, earmarked
("allocated") to beneficiaries by the admin, claimed in full by those
beneficiaries, and withdrawn by the admin for the unallocated remainder.

Public surface:
- VaultService (vault.service) — bootstrap/deposit/allocate/claim/withdraw/
  transfer_ownership and read-only queries
- Ledger (vault.ledger) — per-custody-address bookkeeping and invariants
- InMemoryCoinStore (vault.coin), ResourceAccountAuthority (vault.authority)
- config, errors, events, metrics, cli (lazily importable)
"""


import importlib
from typing import List

from .version import __version__

__all__: List[str] = [
    "__version__",
    "VaultService",
    "Ledger",
    "InMemoryCoinStore",
    "ResourceAccountAuthority",
    # lazily importable modules
    "authority",
    "cli",
    "coin",
    "config",
    "errors",
    "events",
    "ledger",
    "metrics",
    "primitives",
    "service",
    "types",
]

_lazy_attrs = {
    "VaultService": "service",
    "Ledger": "ledger",
    "InMemoryCoinStore": "coin",
    "ResourceAccountAuthority": "authority",
}
_lazy_modules = set(__all__) - {"__version__"} - set(_lazy_attrs)


def __getattr__(name: str):
    if name in _lazy_attrs:
        mod = importlib.import_module(f".{_lazy_attrs[name]}", __name__)
        return getattr(mod, name)
    if name in _lazy_modules:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals().keys()) | _lazy_modules | set(_lazy_attrs))
