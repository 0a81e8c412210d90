"""
vault.events — append-only audit log of vault operations.

Every successful surface operation appends exactly one record. Records are a
single tagged variant (``kind`` is the tag) rather than five unrelated streams,
so a log preserves the global order of operations while still offering a
per-kind view:

    kind                 payload
    -------------------  -----------------------------------------
    deposit              amount
    allocate             beneficiary, amount
    claim                beneficiary, amount
    withdraw             amount
    ownership_transfer   custody_address, from, to

Each appended record is wrapped in an `EventEnvelope` carrying a global sequence
number (position in the log) and a per-kind sequence number (position in that
kind's stream). Both start at 0.

Sinks
-----
An `AuditLog` can forward envelopes to any number of `AuditSink` objects after
they are recorded in memory. A failing sink is logged at ERROR and counted in
`vault_audit_sink_errors_total`; it never fails the operation that produced the
record. `JsonlAuditSink` mirrors them into a JSON-lines
file for offline inspection. There is no replay or compaction; the log is
write-only from the ledger's point of view.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import (Any, ClassVar, Dict, Iterable, List, Mapping, Optional,
                    Protocol, Tuple, Type, Union)

from . import metrics
from .types import Address, Amount

log = logging.getLogger(__name__)

EVENT_KINDS: Tuple[str, ...] = (
    "deposit",
    "allocate",
    "claim",
    "withdraw",
    "ownership_transfer",
)


@dataclass(frozen=True)
class DepositEvent:
    kind: ClassVar[str] = "deposit"
    custody_address: Address
    amount: Amount

    def payload(self) -> Dict[str, Any]:
        return {"amount": self.amount}


@dataclass(frozen=True)
class AllocationEvent:
    kind: ClassVar[str] = "allocate"
    custody_address: Address
    beneficiary: Address
    amount: Amount

    def payload(self) -> Dict[str, Any]:
        return {"beneficiary": self.beneficiary, "amount": self.amount}


@dataclass(frozen=True)
class ClaimEvent:
    kind: ClassVar[str] = "claim"
    custody_address: Address
    beneficiary: Address
    amount: Amount

    def payload(self) -> Dict[str, Any]:
        return {"beneficiary": self.beneficiary, "amount": self.amount}


@dataclass(frozen=True)
class WithdrawalEvent:
    kind: ClassVar[str] = "withdraw"
    custody_address: Address
    amount: Amount

    def payload(self) -> Dict[str, Any]:
        return {"amount": self.amount}


@dataclass(frozen=True)
class OwnershipTransferEvent:
    kind: ClassVar[str] = "ownership_transfer"
    custody_address: Address
    previous_admin: Address
    new_admin: Address

    def payload(self) -> Dict[str, Any]:
        # custody_address is part of this record's own payload
        return {
            "custody_address": self.custody_address,
            "from": self.previous_admin,
            "to": self.new_admin,
        }


VaultEvent = Union[
    DepositEvent,
    AllocationEvent,
    ClaimEvent,
    WithdrawalEvent,
    OwnershipTransferEvent,
]

_BY_KIND: Dict[str, Type[Any]] = {
    cls.kind: cls
    for cls in (
        DepositEvent,
        AllocationEvent,
        ClaimEvent,
        WithdrawalEvent,
        OwnershipTransferEvent,
    )
}


@dataclass(frozen=True)
class EventEnvelope:
    seq: int
    kind_seq: int
    event: VaultEvent

    @property
    def kind(self) -> str:
        return self.event.kind

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "seq": self.seq,
            "kind_seq": self.kind_seq,
            "kind": self.event.kind,
            "custody_address": self.event.custody_address,
        }
        d.update(self.event.payload())
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "EventEnvelope":
        return EventEnvelope(
            seq=int(d["seq"]),
            kind_seq=int(d["kind_seq"]),
            event=event_from_dict(d),
        )


def event_from_dict(d: Mapping[str, Any]) -> VaultEvent:
    kind = d.get("kind")
    if kind not in _BY_KIND:
        raise ValueError(f"unknown event kind: {kind!r}")
    custody = str(d["custody_address"])
    if kind == "ownership_transfer":
        return OwnershipTransferEvent(
            custody_address=custody,
            previous_admin=str(d["from"]),
            new_admin=str(d["to"]),
        )
    if kind in ("allocate", "claim"):
        return _BY_KIND[kind](
            custody_address=custody,
            beneficiary=str(d["beneficiary"]),
            amount=int(d["amount"]),
        )
    return _BY_KIND[kind](custody_address=custody, amount=int(d["amount"]))


class AuditSink(Protocol):
    def append(self, envelope: EventEnvelope) -> None: ...


class JsonlAuditSink:
    """Append each envelope as one JSON object per line."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def append(self, envelope: EventEnvelope) -> None:
        line = json.dumps(envelope.to_dict(), sort_keys=True, separators=(",", ":"))
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def read(self) -> List[EventEnvelope]:
        if not self.path.exists():
            return []
        out: List[EventEnvelope] = []
        with self.path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line:
                    out.append(EventEnvelope.from_dict(json.loads(line)))
        return out


class AuditLog:
    """
    In-memory, append-only audit log for one vault.

    The log holds no lock of its own; the owning vault serializes appends under
    its per-ledger lock.
    """

    def __init__(self, sinks: Optional[Iterable[AuditSink]] = None) -> None:
        self._entries: List[EventEnvelope] = []
        self._kind_counts: Dict[str, int] = {k: 0 for k in EVENT_KINDS}
        self._sinks: List[AuditSink] = list(sinks or ())

    def add_sink(self, sink: AuditSink) -> None:
        self._sinks.append(sink)

    def append(self, event: VaultEvent) -> EventEnvelope:
        env = EventEnvelope(
            seq=len(self._entries),
            kind_seq=self._kind_counts[event.kind],
            event=event,
        )
        self._entries.append(env)
        self._kind_counts[event.kind] += 1
        for sink in self._sinks:
            try:
                sink.append(env)
            except Exception:
                # the record stands; sinks only mirror it
                log.exception("audit sink %s failed at seq=%d", type(sink).__name__, env.seq)
                metrics.record_sink_error(type(sink).__name__)
        return env

    # --- views ---

    def entries(self, kind: Optional[str] = None) -> Tuple[EventEnvelope, ...]:
        if kind is None:
            return tuple(self._entries)
        if kind not in self._kind_counts:
            raise ValueError(f"unknown event kind: {kind!r}")
        return tuple(e for e in self._entries if e.kind == kind)

    def stream(self, kind: str) -> Tuple[VaultEvent, ...]:
        """Per-kind stream of bare records, in emission order."""
        return tuple(e.event for e in self.entries(kind))

    def counts(self) -> Dict[str, int]:
        return dict(self._kind_counts)

    def last(self) -> Optional[EventEnvelope]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    # --- persistence ---

    def dump(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    @classmethod
    def load(cls, data: Iterable[Mapping[str, Any]], sinks: Optional[Iterable[AuditSink]] = None) -> "AuditLog":
        audit = cls(sinks=sinks)
        for d in data:
            env = EventEnvelope.from_dict(d)
            if env.seq != len(audit._entries) or env.kind_seq != audit._kind_counts[env.kind]:
                raise ValueError(f"audit log out of order at seq={env.seq}")
            audit._entries.append(env)
            audit._kind_counts[env.kind] += 1
        return audit


__all__ = [
    "EVENT_KINDS",
    "DepositEvent",
    "AllocationEvent",
    "ClaimEvent",
    "WithdrawalEvent",
    "OwnershipTransferEvent",
    "VaultEvent",
    "EventEnvelope",
    "event_from_dict",
    "AuditSink",
    "JsonlAuditSink",
    "AuditLog",
]
