from __future__ import annotations

"""
Vault service — the surface operations of the custodial vault
--------------------------------------------------------------

`VaultService` owns every `Ledger` (one per custody address), the matching
audit logs, and the `DelegatedAuthority` records (one per bootstrap admin).
It is the only place where ledger bookkeeping meets the external coin store.

Surface operations
~~~~~~~~~~~~~~~~~~
  bootstrap(admin)                                   → custody address
  deposit(caller, custody, amount)                   anyone
  allocate(caller, custody, beneficiary, amount)     admin only
  claim(caller, custody)                             beneficiary claims all
  withdraw(caller, custody, amount)                  admin only, unallocated part
  transfer_ownership(caller, custody, new_admin)     admin only

plus read-only queries (balance, total_allocated, allocation_of, available,
custody_address_of, events, describe).

Ordering discipline
~~~~~~~~~~~~~~~~~~~
Every operation runs validate → external transfer → commit → emit, holding the
ledger's lock throughout. The ledger is only mutated after the coin store
reported success, so a failed transfer leaves no trace: a claim whose payout
fails keeps its allocation and can be claimed again.

Delegated authority
~~~~~~~~~~~~~~~~~~~
The authority stays keyed by the *bootstrap* admin (`Ledger.authority_holder`)
even after ownership moves. The new admin controls the vault because outbound
transfers look the authority up through the ledger, but
`custody_address_of(new_admin)` does not resolve; only the original admin does.

Concurrency: each ledger has its own re-entrant lock; independent vaults never
contend. Bootstrap and lookups take a short service-wide lock.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from . import logging as vlog
from . import metrics
from .authority import DelegatedAuthority
from .config import VaultConfig
from .errors import (AlreadyInitialized, InvalidAddress, InvariantViolation,
                     VaultError, VaultNotFound)
from .events import (AllocationEvent, AuditLog, AuditSink, ClaimEvent,
                     DepositEvent, EventEnvelope, OwnershipTransferEvent,
                     VaultEvent, WithdrawalEvent)
from .ledger import Ledger
from .primitives import AuthorityProvider, CoinStore, Signer
from .types import (Address, AddressLike, Amount, add_u64, check_amount,
                    normalize_address)

log = logging.getLogger(__name__)


@dataclass
class _VaultSlot:
    ledger: Ledger
    audit: AuditLog
    lock: threading.RLock = field(default_factory=threading.RLock)


class VaultService:
    """
    Custodial vault state machine over a coin store and an authority provider.

    Storage-agnostic: call `dump()` to serialize to a JSON-friendly dict and
    `load()` to restore. Capabilities are never serialized; `load()` asks the
    authority provider to re-issue them from the recorded derivation.
    """

    def __init__(
        self,
        coins: CoinStore,
        authority: AuthorityProvider,
        *,
        config: Optional[VaultConfig] = None,
        sinks: Optional[Iterable[AuditSink]] = None,
    ) -> None:
        self.coins = coins
        self.authority = authority
        self.config = config or VaultConfig()
        self.config.validate()
        self._sinks: List[AuditSink] = list(sinks or ())
        self._vaults: Dict[Address, _VaultSlot] = {}
        self._authorities: Dict[Address, DelegatedAuthority] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Surface operations
    # ------------------------------------------------------------------

    def bootstrap(self, admin: AddressLike) -> Address:
        """Create the custody identity, an empty ledger and the delegated authority."""
        with self._operation("bootstrap"):
            admin = normalize_address(admin)
            vlog.bind(caller=admin)
            with self._lock:
                existing = self._authorities.get(admin)
                if existing is not None:
                    raise AlreadyInitialized(admin=admin, custody_address=existing.custody_address)
                custody, capability = self.authority.create_custody_identity(admin, self.config.seed_bytes)
                try:
                    if custody in self._vaults:
                        raise AlreadyInitialized(admin=admin, custody_address=custody)
                    self.coins.register(custody)
                except Exception:
                    self.authority.discard_custody_identity(custody, capability)
                    raise
                self._vaults[custody] = _VaultSlot(
                    ledger=Ledger.create(admin=admin, custody_address=custody),
                    audit=AuditLog(sinks=self._sinks),
                )
                self._authorities[admin] = DelegatedAuthority(
                    holder=admin, custody_address=custody, capability=capability
                )
            metrics.record_ok("bootstrap")
            log.info("vault bootstrapped", extra={"custody": custody})
            return custody

    def deposit(self, caller: AddressLike, custody_address: AddressLike, amount: Amount) -> EventEnvelope:
        """Move `amount` from the caller into custody. Anyone may deposit."""
        with self._operation("deposit"):
            caller, slot = self._enter(caller, custody_address)
            ledger = slot.ledger
            with slot.lock:
                self._reject_custody(ledger, caller, "depositor")
                check_amount(amount)
                add_u64(ledger.total_balance, amount, what="total_balance")
                self.coins.transfer(Signer(caller), ledger.custody_address, amount)
                ledger.credit(amount)
                env = self._commit(slot, DepositEvent(ledger.custody_address, amount))
                metrics.record_ok("deposit", amount)
                log.info("deposit accepted", extra={"amount": amount, "balance": ledger.total_balance})
                return env

    def allocate(
        self,
        caller: AddressLike,
        custody_address: AddressLike,
        beneficiary: AddressLike,
        amount: Amount,
    ) -> EventEnvelope:
        """Earmark `amount` of custody for `beneficiary`. Bookkeeping only."""
        with self._operation("allocate"):
            caller, slot = self._enter(caller, custody_address)
            beneficiary = normalize_address(beneficiary)
            ledger = slot.ledger
            with slot.lock:
                ledger.require_admin(caller)
                self._reject_custody(ledger, beneficiary, "beneficiary")
                entitlement = ledger.allocate(beneficiary, amount)
                env = self._commit(slot, AllocationEvent(ledger.custody_address, beneficiary, amount))
                metrics.record_ok("allocate", amount)
                log.info(
                    "allocation recorded",
                    extra={
                        "beneficiary": beneficiary,
                        "amount": amount,
                        "entitlement": entitlement,
                        "total_allocated": ledger.total_allocated,
                    },
                )
                return env

    def claim(self, caller: AddressLike, custody_address: AddressLike) -> EventEnvelope:
        """Pay the caller their whole allocation out of custody."""
        with self._operation("claim"):
            caller, slot = self._enter(caller, custody_address)
            ledger = slot.ledger
            with slot.lock:
                self._reject_custody(ledger, caller, "beneficiary")
                amount = ledger.check_claim(caller)
                signer = self._custody_signer(ledger)
                if self.config.auto_register and not self.coins.is_registered(caller):
                    self.coins.register(caller)
                self.coins.transfer(signer, caller, amount)
                ledger.settle_claim(caller, amount)
                env = self._commit(slot, ClaimEvent(ledger.custody_address, caller, amount))
                metrics.record_ok("claim", amount)
                log.info("claim paid", extra={"amount": amount, "balance": ledger.total_balance})
                return env

    def withdraw(self, caller: AddressLike, custody_address: AddressLike, amount: Amount) -> EventEnvelope:
        """Admin takes `amount` of the unallocated remainder out of custody."""
        with self._operation("withdraw"):
            caller, slot = self._enter(caller, custody_address)
            ledger = slot.ledger
            with slot.lock:
                ledger.require_admin(caller)
                ledger.check_withdraw(amount)
                self._reject_custody(ledger, ledger.admin, "admin")
                signer = self._custody_signer(ledger)
                self.coins.transfer(signer, ledger.admin, amount)
                ledger.debit(amount)
                env = self._commit(slot, WithdrawalEvent(ledger.custody_address, amount))
                metrics.record_ok("withdraw", amount)
                log.info("withdrawal paid", extra={"amount": amount, "balance": ledger.total_balance})
                return env

    def transfer_ownership(
        self,
        caller: AddressLike,
        custody_address: AddressLike,
        new_admin: AddressLike,
    ) -> EventEnvelope:
        """Hand admin rights to `new_admin`. Balances and the authority binding are untouched."""
        with self._operation("transfer_ownership"):
            caller, slot = self._enter(caller, custody_address)
            new_admin = normalize_address(new_admin)
            ledger = slot.ledger
            with slot.lock:
                ledger.require_admin(caller)
                self._reject_custody(ledger, new_admin, "admin")
                previous = ledger.set_admin(new_admin)
                env = self._commit(
                    slot, OwnershipTransferEvent(ledger.custody_address, previous, new_admin)
                )
                metrics.record_ok("transfer_ownership")
                log.info("ownership transferred", extra={"previous": previous, "new_admin": new_admin})
                return env

    # ------------------------------------------------------------------
    # Queries (never mutate)
    # ------------------------------------------------------------------

    def balance(self, custody_address: AddressLike) -> Amount:
        slot = self._slot(custody_address)
        with slot.lock:
            return slot.ledger.total_balance

    def total_allocated(self, custody_address: AddressLike) -> Amount:
        slot = self._slot(custody_address)
        with slot.lock:
            return slot.ledger.total_allocated

    def available(self, custody_address: AddressLike) -> Amount:
        slot = self._slot(custody_address)
        with slot.lock:
            return slot.ledger.available

    def allocation_of(self, custody_address: AddressLike, beneficiary: AddressLike) -> Amount:
        slot = self._slot(custody_address)
        with slot.lock:
            return slot.ledger.allocation_of(beneficiary)

    def admin_of(self, custody_address: AddressLike) -> Address:
        slot = self._slot(custody_address)
        with slot.lock:
            return slot.ledger.admin

    def custody_address_of(self, admin: AddressLike) -> Address:
        """Resolve the custody address from the admin holding its delegated authority."""
        admin = normalize_address(admin)
        with self._lock:
            auth = self._authorities.get(admin)
        if auth is None:
            raise VaultNotFound("no delegated authority for admin", admin=admin)
        return auth.custody_address

    def events(self, custody_address: AddressLike, kind: Optional[str] = None) -> Tuple[EventEnvelope, ...]:
        slot = self._slot(custody_address)
        with slot.lock:
            return slot.audit.entries(kind)

    def describe(self, custody_address: AddressLike) -> Dict[str, Any]:
        slot = self._slot(custody_address)
        with slot.lock:
            d = slot.ledger.snapshot()
            d["available"] = slot.ledger.available
            d["events"] = slot.audit.counts()
            return d

    def vaults(self) -> Tuple[Address, ...]:
        with self._lock:
            return tuple(sorted(self._vaults))

    def assert_consistent(self) -> None:
        """Verify invariants across all ledgers."""
        with self._lock:
            slots = list(self._vaults.values())
        for slot in slots:
            with slot.lock:
                slot.ledger.assert_consistent()

    # ------------------------------------------------------------------
    # load/save
    # ------------------------------------------------------------------

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            authorities = {
                admin: auth.custody_address for admin, auth in sorted(self._authorities.items())
            }
            slots = sorted(self._vaults.items())
        vaults: Dict[Address, Any] = {}
        for custody, slot in slots:
            with slot.lock:
                vaults[custody] = {"ledger": slot.ledger.snapshot(), "events": slot.audit.dump()}
        return {"authorities": authorities, "vaults": vaults}

    @classmethod
    def load(
        cls,
        data: Mapping[str, Any],
        coins: CoinStore,
        authority: AuthorityProvider,
        *,
        config: Optional[VaultConfig] = None,
        sinks: Optional[Iterable[AuditSink]] = None,
    ) -> "VaultService":
        svc = cls(coins, authority, config=config, sinks=sinks)
        for admin, custody in (data.get("authorities") or {}).items():
            admin = normalize_address(admin)
            custody = normalize_address(custody)
            capability = authority.restore_custody_identity(admin, svc.config.seed_bytes, custody)
            svc._authorities[admin] = DelegatedAuthority(
                holder=admin, custody_address=custody, capability=capability
            )
        for custody, v in (data.get("vaults") or {}).items():
            ledger = Ledger.restore(v["ledger"])
            if ledger.custody_address != normalize_address(custody):
                raise InvariantViolation(
                    "ledger stored under a foreign custody address",
                    details={"key": custody, "custody_address": ledger.custody_address},
                )
            auth = svc._authorities.get(ledger.authority_holder)
            if auth is None or auth.custody_address != ledger.custody_address:
                raise InvariantViolation(
                    "ledger has no matching delegated authority",
                    details={"custody_address": ledger.custody_address, "holder": ledger.authority_holder},
                )
            svc._vaults[ledger.custody_address] = _VaultSlot(
                ledger=ledger, audit=AuditLog.load(v.get("events") or (), sinks=svc._sinks)
            )
        return svc

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _enter(self, caller: AddressLike, custody_address: AddressLike) -> Tuple[Address, _VaultSlot]:
        """Resolve caller and vault and bind them to the active log scope."""
        caller = normalize_address(caller)
        vlog.bind(caller=caller)
        slot = self._slot(custody_address)
        vlog.bind(vault=slot.ledger.custody_address)
        return caller, slot

    def _slot(self, custody_address: AddressLike) -> _VaultSlot:
        custody = normalize_address(custody_address)
        with self._lock:
            slot = self._vaults.get(custody)
        if slot is None:
            raise VaultNotFound(custody_address=custody)
        return slot

    @staticmethod
    def _reject_custody(ledger: Ledger, addr: Address, role: str) -> None:
        """The custody identity never acts as a counterparty of its own vault."""
        if addr == ledger.custody_address:
            raise InvalidAddress(
                f"custody address cannot act as {role}",
                details={"role": role, "address": addr},
            )

    def _custody_signer(self, ledger: Ledger) -> Signer:
        with self._lock:
            auth = self._authorities.get(ledger.authority_holder)
        if auth is None:
            raise InvariantViolation(
                "delegated authority missing for vault",
                details={"custody_address": ledger.custody_address, "holder": ledger.authority_holder},
            )
        signer = self.authority.act_as(auth.capability)
        if signer.address != ledger.custody_address:
            raise InvariantViolation(
                "delegated signer does not act as the custody address",
                details={"custody_address": ledger.custody_address, "signer": signer.address},
            )
        return signer

    def _commit(self, slot: _VaultSlot, event: VaultEvent) -> EventEnvelope:
        if self.config.check_invariants:
            slot.ledger.assert_consistent()
        return slot.audit.append(event)

    @contextmanager
    def _operation(self, op: str) -> Iterator[None]:
        with vlog.scope(op=op), metrics.observe_op(op):
            try:
                yield
            except VaultError as e:
                metrics.record_error(op, e.code)
                log.warning("%s rejected: %s", op, e.message, extra={"code": e.code, "details": e.details})
                raise


__all__ = ["VaultService"]
