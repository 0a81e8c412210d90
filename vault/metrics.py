from __future__ import annotations

"""
Prometheus metrics for the custodial vault.

We expose:
- ops: surface operations by name and result ("ok" or an error code)
- amounts: distribution of amounts moved/reserved by operation
- latency: wall time per operation (includes the external transfer call)
- sink errors: audit records a mirror sink failed to write

A dedicated registry is used so embedding apps can choose to merge or expose it.
"""


import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import (CollectorRegistry, Counter, Histogram,
                               generate_latest)

REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   op: "bootstrap" | "deposit" | "allocate" | "claim" | "withdraw" | "transfer_ownership"
#   result: "ok" | VaultError.code (e.g. "VAULT_NOT_ADMIN")
# ────────────────────────────────────────────────────────────────────────────────

OPS = Counter(
    "vault_ops_total",
    "Total vault surface operations by name and result.",
    labelnames=("op", "result"),
    registry=REGISTRY,
)

AMOUNTS = Histogram(
    "vault_op_amount",
    "Amounts carried by successful vault operations, by op.",
    labelnames=("op",),
    buckets=(0, 1, 10, 100, 1_000, 10_000, 100_000, 1_000_000, 10**9, 10**12, 10**15),
    registry=REGISTRY,
)

OP_SECONDS = Histogram(
    "vault_op_seconds",
    "Wall time spent in a vault operation, by op.",
    labelnames=("op",),
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
    registry=REGISTRY,
)

SINK_ERRORS = Counter(
    "vault_audit_sink_errors_total",
    "Audit records a sink failed to mirror, by sink type.",
    labelnames=("sink",),
    registry=REGISTRY,
)


def record_ok(op: str, amount: int | None = None) -> None:
    OPS.labels(op=op, result="ok").inc()
    if amount is not None:
        AMOUNTS.labels(op=op).observe(amount)


def record_error(op: str, code: str) -> None:
    OPS.labels(op=op, result=code).inc()


def record_sink_error(sink: str) -> None:
    SINK_ERRORS.labels(sink=sink).inc()


@contextmanager
def observe_op(op: str) -> Iterator[None]:
    t0 = time.perf_counter()
    try:
        yield
    finally:
        OP_SECONDS.labels(op=op).observe(time.perf_counter() - t0)


def ops_count(op: str, result: str = "ok") -> float:
    """Current counter value; handy for tests and the CLI."""
    value = REGISTRY.get_sample_value("vault_ops_total", {"op": op, "result": result})
    return value or 0.0


def sink_errors(sink: str) -> float:
    value = REGISTRY.get_sample_value("vault_audit_sink_errors_total", {"sink": sink})
    return value or 0.0


def render() -> bytes:
    """Prometheus text exposition of the vault registry."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "OPS",
    "AMOUNTS",
    "OP_SECONDS",
    "SINK_ERRORS",
    "record_ok",
    "record_error",
    "record_sink_error",
    "observe_op",
    "ops_count",
    "sink_errors",
    "render",
]
