from __future__ import annotations

import json

import pytest

from echoforge import config as ef_config
from echoforge.config import (CurveParams, EchoForgeConfig, ReferralParams,
                              UnstakeParams)


def test_defaults_validate():
    cfg = EchoForgeConfig()
    cfg.validate()
    assert cfg.rebase.ticks_per_year == 365
    assert cfg.unstake.floor_bps == 5_000
    assert cfg.referral.max_depth == 10


@pytest.mark.parametrize(
    "bad",
    [
        CurveParams(cap_price_wad=1, launch_price_wad=2),
        UnstakeParams(range_bps=0),
        UnstakeParams(min_cooldown_days=5, max_cooldown_days=2),
        UnstakeParams(daily_redemption_bps=0),
        ReferralParams(rates_bps=(500, 500, 500)),
        ReferralParams(rates_bps=(1,) * 11),
    ],
)
def test_invalid_sections_rejected(bad):
    with pytest.raises(ValueError):
        bad.validate()


def test_from_env_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ECHOFORGE_REBASE_EPOCHS_PER_DAY", "3")
    monkeypatch.setenv("ECHOFORGE_REFERRAL_RATES_BPS", "500, 300,100")
    monkeypatch.setenv("ECHOFORGE_TREASURY_REFERENCE_PRICE_WAD", "1_000_000")
    monkeypatch.setenv("ECHOFORGE_TAX_MAX_BPS", "2000")
    cfg = ef_config.from_env()
    assert cfg.rebase.epochs_per_day == 3
    assert cfg.referral.rates_bps == (500, 300, 100)
    assert cfg.treasury.reference_price_wad == 1_000_000
    assert cfg.tax.max_bps == 2000


def test_empty_reference_price_env_clears_it(monkeypatch: pytest.MonkeyPatch):
    base = EchoForgeConfig()
    base.treasury.reference_price_wad = 42
    monkeypatch.setenv("ECHOFORGE_TREASURY_REFERENCE_PRICE_WAD", "")
    assert ef_config.from_env(base).treasury.reference_price_wad is None


def test_bad_env_value(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ECHOFORGE_UNSTAKE_MAX_PENALTY_BPS", "lots")
    with pytest.raises(ValueError):
        ef_config.from_env()
    monkeypatch.setenv("ECHOFORGE_UNSTAKE_MAX_PENALTY_BPS", "20000")
    with pytest.raises(ValueError):
        ef_config.from_env()


def test_yaml_file_then_env(tmp_path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "echoforge.yaml"
    path.write_text(
        "curve:\n"
        "  cap_supply_wad: 2000000000000000000000000\n"
        "unstake:\n"
        "  max_cooldown_days: 10\n"
        "referral:\n"
        "  rates_bps: [700, 700]\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ECHOFORGE_CONFIG_FILE", str(path))
    monkeypatch.setenv("ECHOFORGE_UNSTAKE_MAX_COOLDOWN_DAYS", "9")
    cfg = ef_config.load()
    assert cfg.curve.cap_supply_wad == 2_000_000 * 10**18
    assert cfg.referral.rates_bps == (700, 700)
    # environment wins over the file
    assert cfg.unstake.max_cooldown_days == 9


def test_json_file(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"tax": {"base_bps": 100, "max_bps": 200}, "token_decimals": 18}), encoding="utf-8")
    cfg = ef_config.from_file(path)
    assert (cfg.tax.base_bps, cfg.tax.max_bps) == (100, 200)
    assert cfg.curve == CurveParams()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ef_config.from_file(tmp_path / "nope.json")


def test_pretty_round_trips_through_from_dict():
    cfg = EchoForgeConfig()
    data = json.loads(ef_config.pretty(cfg))
    assert data["referral"]["rates_bps"] == list(cfg.referral.rates_bps)
    assert ef_config.from_dict(data) == cfg
