from __future__ import annotations

import os
from typing import Callable

import pytest
from hypothesis import HealthCheck, settings

from echoforge.config import EchoForgeConfig
from echoforge.engine import ProtocolEngine
from echoforge.fixedpoint import BPS_DEN, WAD, div_up
from echoforge.types import AssetKind

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
DAVE = "0x" + "d4" * 20

# the autouse _clean_env fixture is function-scoped and spans every example
settings.register_profile(
    "dev",
    settings(deadline=None, suppress_health_check=(HealthCheck.too_slow, HealthCheck.function_scoped_fixture)),
)
settings.register_profile(
    "ci",
    settings(
        max_examples=200,
        deadline=None,
        derandomize=True,
        suppress_health_check=(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
    ),
)
settings.load_profile(os.environ.get("ECHOFORGE_HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ECHOFORGE_* from the developer's shell out of config loading."""
    for k in list(os.environ):
        if k.startswith("ECHOFORGE_"):
            monkeypatch.delenv(k, raising=False)


@pytest.fixture
def config() -> EchoForgeConfig:
    return EchoForgeConfig()


@pytest.fixture
def engine(config: EchoForgeConfig) -> ProtocolEngine:
    return ProtocolEngine(config=config)


@pytest.fixture
def fund(engine: ProtocolEngine) -> Callable[[str, int], int]:
    """Buy from the curve for `account`; returns tokens received."""

    def _fund(account: str, payment_tokens: int = 10) -> int:
        return engine.buy_with_payment(account, payment_tokens * WAD).tokens

    return _fund


@pytest.fixture
def set_backing(engine: ProtocolEngine) -> Callable[[int], int]:
    """
    Pin the reference price to 1.0 and top up / draw down the treasury so the
    backing ratio is exactly `ratio_bps` at the current circulating supply.
    """

    def _set(ratio_bps: int) -> int:
        engine.set_reference_price(WAD)
        circulating = engine.total_supply()
        need = div_up(circulating * ratio_bps, BPS_DEN)
        diff = need - engine.get_total_value()
        if diff > 0:
            engine.record_treasury_inflow(AssetKind.STABLE, diff, reason="test")
        elif diff < 0:
            engine.treasury_spend(AssetKind.NATIVE, -diff, reason="test")
        return engine.get_backing_ratio()

    return _set
