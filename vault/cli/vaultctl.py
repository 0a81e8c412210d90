from __future__ import annotations

"""
vault.cli.vaultctl
------------------

Drive a local custodial vault from the shell. State (coin store + vaults +
audit logs) is persisted in a JSON file between invocations; delegated signing
capabilities are never written out and are re-derived on every start.

Examples
--------
# Create a vault for admin 0xa11ce and fund a depositor
python -m vault.cli.vaultctl init --admin 0xa11ce
python -m vault.cli.vaultctl mint --to 0xa11ce --amount 1000

# Deposit, earmark 60 for 0xb0b, let 0xb0b claim
python -m vault.cli.vaultctl deposit --caller 0xa11ce --vault <custody> --amount 100
python -m vault.cli.vaultctl allocate --caller 0xa11ce --vault <custody> --beneficiary 0xb0b --amount 60
python -m vault.cli.vaultctl claim --caller 0xb0b --vault <custody>

# Inspect
python -m vault.cli.vaultctl show --vault <custody>
python -m vault.cli.vaultctl events --vault <custody> --kind claim
"""

import contextlib
import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple

import typer

from vault import config as vconfig
from vault import logging as vlog
from vault.authority import ResourceAccountAuthority
from vault.coin import InMemoryCoinStore
from vault.errors import VaultError
from vault.events import EVENT_KINDS, JsonlAuditSink
from vault.service import VaultService
from vault.types import normalize_address

STATE_FORMAT = 1

app = typer.Typer(
    name="vaultctl",
    add_completion=False,
    no_args_is_help=True,
    help="Operate a local custodial token vault (bootstrap, deposit, allocate, claim, withdraw).",
)


@dataclass
class _Ctx:
    cfg: vconfig.VaultConfig
    state_path: Path


# -------------------- state file --------------------

def _load_state(ctx: _Ctx) -> Tuple[VaultService, InMemoryCoinStore]:
    sinks = [JsonlAuditSink(ctx.cfg.audit_path)] if ctx.cfg.audit_path else []
    authority = ResourceAccountAuthority()
    if not ctx.state_path.exists():
        coins = InMemoryCoinStore()
        return VaultService(coins, authority, config=ctx.cfg, sinks=sinks), coins
    data = json.loads(ctx.state_path.read_text(encoding="utf-8") or "{}")
    fmt = data.get("format", STATE_FORMAT)
    if fmt != STATE_FORMAT:
        raise typer.BadParameter(f"unsupported state format {fmt!r} in {ctx.state_path}")
    coins = InMemoryCoinStore.load(data.get("coins") or {})
    svc = VaultService.load(data.get("service") or {}, coins, authority, config=ctx.cfg, sinks=sinks)
    return svc, coins


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix="." + path.name, suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, sort_keys=True)
        os.replace(tmp, path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp)  # only left over if the write or replace failed


def _save_state(ctx: _Ctx, svc: VaultService, coins: InMemoryCoinStore) -> None:
    payload = {"format": STATE_FORMAT, "coins": coins.dump(), "service": svc.dump()}
    _write_json_atomic(ctx.state_path, payload)


def _emit(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, sort_keys=True))


def _fail(err: VaultError) -> None:
    typer.echo(json.dumps(err.to_dict(), sort_keys=True), err=True)
    raise typer.Exit(code=1)


def _mutate(ctx: typer.Context, fn) -> Any:
    c: _Ctx = ctx.obj
    try:
        svc, coins = _load_state(c)
        out = fn(svc, coins)
    except VaultError as e:
        _fail(e)
    _save_state(c, svc, coins)
    return out


def _query(ctx: typer.Context, fn) -> Any:
    c: _Ctx = ctx.obj
    try:
        svc, coins = _load_state(c)
        return fn(svc, coins)
    except VaultError as e:
        _fail(e)


# -------------------- callback --------------------

@app.callback()
def main_callback(
    ctx: typer.Context,
    state: Optional[Path] = typer.Option(None, "--state", help="Path to the JSON state file (default: config state_path)."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override the configured log level."),
) -> None:
    try:
        cfg = vconfig.load()
    except (ValueError, FileNotFoundError) as e:
        raise typer.BadParameter(str(e)) from e
    if log_level:
        cfg.log_level = log_level.upper()
        cfg.validate()
    vlog.configure_from_config(cfg)
    ctx.obj = _Ctx(cfg=cfg, state_path=Path(state or cfg.state_path).expanduser())


# -------------------- mutating commands --------------------

@app.command("init")
def init_cmd(ctx: typer.Context, admin: str = typer.Option(..., "--admin", help="Bootstrap admin address.")) -> None:
    """Bootstrap a vault for ADMIN and print its custody address."""
    custody = _mutate(ctx, lambda svc, _c: svc.bootstrap(admin))
    _emit({"admin": _canon(admin), "custody_address": custody})


@app.command("mint")
def mint_cmd(
    ctx: typer.Context,
    to: str = typer.Option(..., "--to", help="Account to fund."),
    amount: int = typer.Option(..., "--amount", min=0),
) -> None:
    """Fund an external account in the local coin store."""
    balance = _mutate(ctx, lambda _s, coins: coins.mint(to, amount))
    _emit({"account": _canon(to), "balance": balance})


@app.command("deposit")
def deposit_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller"),
    vault: str = typer.Option(..., "--vault"),
    amount: int = typer.Option(..., "--amount", min=0),
) -> None:
    """Move AMOUNT from CALLER into custody."""
    env = _mutate(ctx, lambda svc, _c: svc.deposit(caller, vault, amount))
    _emit(env.to_dict())


@app.command("allocate")
def allocate_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller", help="Must be the vault admin."),
    vault: str = typer.Option(..., "--vault"),
    beneficiary: str = typer.Option(..., "--beneficiary"),
    amount: int = typer.Option(..., "--amount", min=0),
) -> None:
    """Earmark AMOUNT of custody for BENEFICIARY."""
    env = _mutate(ctx, lambda svc, _c: svc.allocate(caller, vault, beneficiary, amount))
    _emit(env.to_dict())


@app.command("claim")
def claim_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller", help="Beneficiary claiming their allocation."),
    vault: str = typer.Option(..., "--vault"),
) -> None:
    """Pay CALLER their whole allocation."""
    env = _mutate(ctx, lambda svc, _c: svc.claim(caller, vault))
    _emit(env.to_dict())


@app.command("withdraw")
def withdraw_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller", help="Must be the vault admin."),
    vault: str = typer.Option(..., "--vault"),
    amount: int = typer.Option(..., "--amount", min=0),
) -> None:
    """Withdraw AMOUNT of the unallocated remainder to the admin."""
    env = _mutate(ctx, lambda svc, _c: svc.withdraw(caller, vault, amount))
    _emit(env.to_dict())


@app.command("transfer-ownership")
def transfer_ownership_cmd(
    ctx: typer.Context,
    caller: str = typer.Option(..., "--caller", help="Current admin."),
    vault: str = typer.Option(..., "--vault"),
    new_admin: str = typer.Option(..., "--new-admin"),
) -> None:
    """Hand admin rights over to NEW_ADMIN."""
    env = _mutate(ctx, lambda svc, _c: svc.transfer_ownership(caller, vault, new_admin))
    _emit(env.to_dict())


# -------------------- queries --------------------

@app.command("show")
def show_cmd(ctx: typer.Context, vault: str = typer.Option(..., "--vault")) -> None:
    """Print ledger totals, allocations and event counts."""
    _emit(_query(ctx, lambda svc, _c: svc.describe(vault)))


@app.command("allocation")
def allocation_cmd(
    ctx: typer.Context,
    vault: str = typer.Option(..., "--vault"),
    beneficiary: str = typer.Option(..., "--beneficiary"),
) -> None:
    """Print BENEFICIARY's current allocation (0 if none)."""
    amount = _query(ctx, lambda svc, _c: svc.allocation_of(vault, beneficiary))
    _emit({"beneficiary": _canon(beneficiary), "allocation": amount})


@app.command("address")
def address_cmd(ctx: typer.Context, admin: str = typer.Option(..., "--admin")) -> None:
    """Resolve the custody address from the bootstrap admin."""
    custody = _query(ctx, lambda svc, _c: svc.custody_address_of(admin))
    _emit({"admin": _canon(admin), "custody_address": custody})


@app.command("balance-of")
def balance_of_cmd(ctx: typer.Context, account: str = typer.Option(..., "--account")) -> None:
    """Print an account's coin balance in the local coin store."""
    balance = _query(ctx, lambda _s, coins: coins.balance_of(account))
    _emit({"account": _canon(account), "balance": balance})


@app.command("events")
def events_cmd(
    ctx: typer.Context,
    vault: str = typer.Option(..., "--vault"),
    kind: Optional[str] = typer.Option(None, "--kind", help=f"One of: {', '.join(EVENT_KINDS)}"),
) -> None:
    """Print the vault's audit log (optionally one kind only)."""
    if kind is not None and kind not in EVENT_KINDS:
        raise typer.BadParameter(f"kind must be one of {EVENT_KINDS}")
    entries = _query(ctx, lambda svc, _c: svc.events(vault, kind))
    _emit([e.to_dict() for e in entries])


@app.command("config")
def config_cmd(ctx: typer.Context) -> None:
    """Print the effective configuration."""
    c: _Ctx = ctx.obj
    typer.echo(vconfig.pretty(c.cfg))


def _canon(addr: str) -> str:
    try:
        return normalize_address(addr)
    except VaultError:
        return addr


def main() -> None:  # pragma: no cover - console entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["app", "main"]
