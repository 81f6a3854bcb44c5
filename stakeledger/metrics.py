from __future__ import annotations

"""
Prometheus metrics for the staking ledger engine.

We expose counters, gauges and a histogram covering:
- operations: every public mutating call by op and result (ok / error code)
- accrual: whole emission units committed to accounts
- payouts: units pushed out by withdrawal path and component
- state: total staked, emission rate, paused flag, per engine asset
- latency: wall time spent inside an operation

This module is dependency-light and can be mounted into any FastAPI app via
the helper at the bottom.
"""


import time
from contextlib import contextmanager
from typing import Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, generate_latest)

# Dedicated registry so embedding apps can choose to merge or expose it directly.
REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   op: "deposit_principal" | "deposit_generic" | "stake" | "unstake" |
#       "withdraw_principal" | "withdraw_annual" | "set_reward_rate" | ...
#   result: "ok" | error code (e.g. "INSUFFICIENT_IDLE")
#   path: "principal" | "annual"
#   component: "principal" | "rewards"
#   asset: principal asset of the engine (state gauges only)
# ────────────────────────────────────────────────────────────────────────────────

OPERATIONS = Counter(
    "stakeledger_operations_total",
    "Total engine operations by op and result.",
    labelnames=("op", "result"),
    registry=REGISTRY,
)

ACCRUED_UNITS = Counter(
    "stakeledger_accrued_units_total",
    "Whole emission units committed to accounts.",
    registry=REGISTRY,
)

PAYOUT_UNITS = Counter(
    "stakeledger_payout_units_total",
    "Units pushed out of custody by withdrawal path and component.",
    labelnames=("path", "component"),
    registry=REGISTRY,
)

TOTAL_STAKED = Gauge(
    "stakeledger_total_staked_units",
    "Sum of staked principal across all accounts.",
    labelnames=("asset",),
    registry=REGISTRY,
)

REWARD_RATE = Gauge(
    "stakeledger_reward_rate_scaled",
    "Emission rate per second per staked unit, scaled by 1e18.",
    labelnames=("asset",),
    registry=REGISTRY,
)

PAUSED = Gauge(
    "stakeledger_paused",
    "1 while inflow/stake operations are suspended.",
    labelnames=("asset",),
    registry=REGISTRY,
)

_LATENCY_BUCKETS = (0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0)

OPERATION_SECONDS = Histogram(
    "stakeledger_operation_seconds",
    "Time spent inside an engine operation, by op.",
    labelnames=("op",),
    buckets=_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def record_operation(op: str, result: str = "ok") -> None:
    OPERATIONS.labels(op=op, result=result).inc()


def record_accrual(amount: int) -> None:
    if amount > 0:
        ACCRUED_UNITS.inc(amount)


def record_payout(path: str, principal: int, rewards: int) -> None:
    """Record units paid out on a withdrawal path."""
    if principal > 0:
        PAYOUT_UNITS.labels(path=path, component="principal").inc(principal)
    if rewards > 0:
        PAYOUT_UNITS.labels(path=path, component="rewards").inc(rewards)


def set_state(*, asset: str, total_staked: int, reward_rate: int, paused: bool) -> None:
    # Gauges are floats; very large amounts lose precision here, never in the ledger.
    TOTAL_STAKED.labels(asset=asset).set(float(total_staked))
    REWARD_RATE.labels(asset=asset).set(float(reward_rate))
    PAUSED.labels(asset=asset).set(1 if paused else 0)


@contextmanager
def time_operation(op: str):
    """Context manager to observe the latency of a single operation."""
    start = time.perf_counter()
    try:
        yield
    finally:
        OPERATION_SECONDS.labels(op=op).observe(time.perf_counter() - start)


# ────────────────────────────────────────────────────────────────────────────────
# FastAPI mounting helper
# ────────────────────────────────────────────────────────────────────────────────


def mount_fastapi(
    app, path: str = "/metrics", registry: Optional[CollectorRegistry] = None
) -> None:
    """
    Mount a GET {path} endpoint on a FastAPI app to serve metrics.

    Usage:
        from fastapi import FastAPI
        from stakeledger.metrics import mount_fastapi
        app = FastAPI()
        mount_fastapi(app)
    """
    from fastapi import Response

    reg = registry or REGISTRY

    @app.get(path)
    def _metrics():
        return Response(generate_latest(reg), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "OPERATIONS",
    "ACCRUED_UNITS",
    "PAYOUT_UNITS",
    "TOTAL_STAKED",
    "REWARD_RATE",
    "PAUSED",
    "OPERATION_SECONDS",
    "record_operation",
    "record_accrual",
    "record_payout",
    "set_state",
    "time_operation",
    "mount_fastapi",
]
