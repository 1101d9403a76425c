from __future__ import annotations

"""
Prometheus metrics for the EchoForge protocol engine.

We expose counters, gauges and a histogram covering:
- issuance: curve purchases and tokens issued
- staking: stakes, unstake requests / executions (by result), referral credits
- rebases: ticks applied, current APY, current epoch
- health: backing ratio and circulating supply snapshots
- errors: domain errors surfaced to callers, by error code
- latencies: wall time per engine operation

Token-denominated gauges are exported in *tokens* (float) so dashboards do
not have to divide by 1e18; the engine itself never uses floats.
"""


import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, generate_latest)

from .fixedpoint import WAD

# Use a dedicated registry so embedding apps can choose to merge or expose it directly.
REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   result: "executed" | "cooldown" | "capacity" | "cancelled"
#   code:   EchoForgeError.code, e.g. "ECHO_INVALID_AMOUNT"
#   op:     engine method name, e.g. "buy_with_payment"
# ────────────────────────────────────────────────────────────────────────────────

BUYS = Counter(
    "echoforge_buys_total",
    "Total bonding-curve purchases committed.",
    registry=REGISTRY,
)

TOKENS_ISSUED = Counter(
    "echoforge_tokens_issued_total",
    "Total tokens issued by the bonding curve (in tokens).",
    registry=REGISTRY,
)

STAKES = Counter(
    "echoforge_stakes_total",
    "Total stake operations committed.",
    registry=REGISTRY,
)

UNSTAKE_REQUESTS = Counter(
    "echoforge_unstake_requests_total",
    "Total unstake requests opened (superseding requests included).",
    registry=REGISTRY,
)

UNSTAKES = Counter(
    "echoforge_unstakes_total",
    "Unstake execution / cancellation outcomes by result.",
    labelnames=("result",),
    registry=REGISTRY,
)

REFERRAL_CREDITS = Counter(
    "echoforge_referral_credits_total",
    "Total referral reward credits booked to ancestors.",
    registry=REGISTRY,
)

REBASES = Counter(
    "echoforge_rebases_total",
    "Total rebase ticks applied.",
    registry=REGISTRY,
)

ERRORS = Counter(
    "echoforge_errors_total",
    "Domain errors raised by engine commands, by error code.",
    labelnames=("code",),
    registry=REGISTRY,
)

BACKING_RATIO_BPS = Gauge(
    "echoforge_backing_ratio_bps",
    "Backing ratio after the last committed command (bps; capped for the unbounded case).",
    registry=REGISTRY,
)

APY_BPS = Gauge(
    "echoforge_apy_bps",
    "APY applied by the last rebase tick (bps).",
    registry=REGISTRY,
)

EPOCH = Gauge(
    "echoforge_epoch",
    "Current engine epoch.",
    registry=REGISTRY,
)

CIRCULATING_SUPPLY_TOKENS = Gauge(
    "echoforge_circulating_supply_tokens",
    "Circulating supply after the last committed command (in tokens).",
    registry=REGISTRY,
)

_LATENCY_BUCKETS = (
    0.0005,
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
)

OPERATION_SECONDS = Histogram(
    "echoforge_operation_seconds",
    "Wall time spent inside engine operations, by operation.",
    labelnames=("op",),
    buckets=_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# Gauges cannot represent uint256; an unbounded ratio is reported as this value.
_RATIO_GAUGE_CAP = 10**12

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def tokens(amount_wad: int) -> float:
    """WAD integer → float tokens (display only)."""
    return amount_wad / WAD


def record_buy(tokens_issued_wad: int) -> None:
    BUYS.inc()
    if tokens_issued_wad > 0:
        TOKENS_ISSUED.inc(tokens(tokens_issued_wad))


def record_stake(referral_credits: int = 0) -> None:
    STAKES.inc()
    if referral_credits > 0:
        REFERRAL_CREDITS.inc(referral_credits)


def record_unstake_request() -> None:
    UNSTAKE_REQUESTS.inc()


def record_unstake(result: str) -> None:
    """
    Record an unstake outcome: 'executed' | 'cooldown' | 'capacity' | 'oversized' | 'cancelled'.
    """
    UNSTAKES.labels(result=result).inc()


def record_rebase(epoch: int, apy_bps: int) -> None:
    REBASES.inc()
    EPOCH.set(epoch)
    APY_BPS.set(apy_bps)


def record_error(code: str) -> None:
    ERRORS.labels(code=code).inc()


def observe_state(*, backing_ratio_bps: int, circulating_wad: int, epoch: int) -> None:
    """Refresh snapshot gauges after a committed command."""
    BACKING_RATIO_BPS.set(min(backing_ratio_bps, _RATIO_GAUGE_CAP))
    CIRCULATING_SUPPLY_TOKENS.set(tokens(circulating_wad))
    EPOCH.set(epoch)


@contextmanager
def timed(op: str) -> Iterator[None]:
    """Context manager observing the wall time of one engine operation."""
    start = time.perf_counter()
    try:
        yield
    finally:
        OPERATION_SECONDS.labels(op=op).observe(time.perf_counter() - start)


# ────────────────────────────────────────────────────────────────────────────────
# Exposition helpers
# ────────────────────────────────────────────────────────────────────────────────


def render_latest(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Prometheus text exposition of the EchoForge registry."""
    return generate_latest(registry or REGISTRY)


def mount_fastapi(app, path: str = "/metrics", registry: Optional[CollectorRegistry] = None) -> None:
    """
    Mount a GET {path} endpoint on a FastAPI app to serve metrics.

    Usage:
        from fastapi import FastAPI
        from echoforge.metrics import mount_fastapi
        app = FastAPI()
        mount_fastapi(app)
    """
    from fastapi import Response

    reg = registry or REGISTRY

    @app.get(path)
    def _metrics() -> Response:
        return Response(generate_latest(reg), media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "BUYS",
    "TOKENS_ISSUED",
    "STAKES",
    "UNSTAKE_REQUESTS",
    "UNSTAKES",
    "REFERRAL_CREDITS",
    "REBASES",
    "ERRORS",
    "BACKING_RATIO_BPS",
    "APY_BPS",
    "EPOCH",
    "CIRCULATING_SUPPLY_TOKENS",
    "OPERATION_SECONDS",
    "tokens",
    "record_buy",
    "record_stake",
    "record_unstake_request",
    "record_unstake",
    "record_rebase",
    "record_error",
    "observe_state",
    "timed",
    "render_latest",
    "mount_fastapi",
]
