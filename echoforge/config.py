from __future__ import annotations
"""
echoforge.config - configuration for the EchoForge protocol engine

Covers:
- Bonding curve calibration (launch price, cap price, hard cap)
- Rebase schedule (base / max APY, APY floor, epoch cadence)
- Unstake penalty & cooldown curve, daily redemption capacity
- Referral reward schedule (basis points per depth)
- Adaptive transfer tax bounds
- Treasury runway burn rate, oracle reference price, buyback trigger

Amounts and prices are WAD integers (1 token = 10**18 units); percentages are
basis points (10_000 = 100%).

Environment overrides (all optional; sensible defaults provided):

  # Bonding curve
  ECHOFORGE_CURVE_LAUNCH_PRICE_WAD=300000000000000
  ECHOFORGE_CURVE_CAP_PRICE_WAD=40000000000000000
  ECHOFORGE_CURVE_CAP_SUPPLY_WAD=1000000000000000000000000
  ECHOFORGE_CURVE_MAX_ITERATIONS=64

  # Rebase
  ECHOFORGE_REBASE_BASE_APY_BPS=500000
  ECHOFORGE_REBASE_MAX_APY_BPS=3000000
  ECHOFORGE_REBASE_MIN_BACKING_BPS=8000
  ECHOFORGE_REBASE_EPOCHS_PER_DAY=1

  # Unstake
  ECHOFORGE_UNSTAKE_THRESHOLD_BPS=12000
  ECHOFORGE_UNSTAKE_RANGE_BPS=7000
  ECHOFORGE_UNSTAKE_MAX_PENALTY_BPS=7500
  ECHOFORGE_UNSTAKE_MIN_COOLDOWN_DAYS=1
  ECHOFORGE_UNSTAKE_MAX_COOLDOWN_DAYS=7
  ECHOFORGE_UNSTAKE_DAILY_REDEMPTION_BPS=500

  # Referral (comma-separated bps per depth, nearest first)
  ECHOFORGE_REFERRAL_RATES_BPS=400,200,100,100,100,100,100,100,100,100

  # Transfer tax
  ECHOFORGE_TAX_BASE_BPS=400
  ECHOFORGE_TAX_MAX_BPS=1500

  # Treasury
  ECHOFORGE_TREASURY_BURN_RATE_PER_DAY_WAD=0
  ECHOFORGE_TREASURY_REFERENCE_PRICE_WAD=        (empty = use curve spot price)
  ECHOFORGE_TREASURY_BUYBACK_TRIGGER_BPS=10000

You can also load from a JSON or YAML file via
`ECHOFORGE_CONFIG_FILE=/path/to/config.(json|yaml|yml)`. File values override
defaults; environment overrides the file.
"""


from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple
import json
import os
from pathlib import Path

import yaml

from .fixedpoint import BPS_DEN, WAD

MAX_REFERRAL_DEPTH = 10
MAX_REFERRAL_TOTAL_BPS = 1_400


# -------------------------- Data classes --------------------------


@dataclass
class CurveParams:
    """Bonding curve p(s) = p0 + k*s², calibrated so p(0)=launch and p(cap)=cap price."""
    launch_price_wad: int = 3 * 10**14            # 0.0003
    cap_price_wad: int = 4 * 10**16               # 0.04
    cap_supply_wad: int = 1_000_000 * WAD         # 1M tokens
    max_iterations: int = 64

    def validate(self) -> None:
        if self.launch_price_wad <= 0:
            raise ValueError("launch_price_wad must be positive.")
        if self.cap_price_wad <= self.launch_price_wad:
            raise ValueError("cap_price_wad must exceed launch_price_wad (curve must be increasing).")
        if self.cap_supply_wad <= 0:
            raise ValueError("cap_supply_wad must be positive.")
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive.")


@dataclass
class RebaseParams:
    """APY = min(max, base * (ratio/100%)²), zero below min_backing_bps."""
    base_apy_bps: int = 500_000                   # 5,000%
    max_apy_bps: int = 3_000_000                  # 30,000%
    min_backing_bps: int = 8_000                  # no rebase below 80% backing
    epochs_per_day: int = 1
    days_per_year: int = 365

    @property
    def ticks_per_year(self) -> int:
        return self.days_per_year * self.epochs_per_day

    def validate(self) -> None:
        if self.base_apy_bps < 0 or self.max_apy_bps < 0:
            raise ValueError("APY bps must be non-negative.")
        if self.base_apy_bps > self.max_apy_bps:
            raise ValueError("base_apy_bps must not exceed max_apy_bps.")
        if self.min_backing_bps < 0:
            raise ValueError("min_backing_bps must be non-negative.")
        if self.epochs_per_day <= 0 or self.days_per_year <= 0:
            raise ValueError("epochs_per_day and days_per_year must be positive.")


@dataclass
class UnstakeParams:
    """Penalty / cooldown curves over the backing ratio and redemption capacity."""
    threshold_bps: int = 12_000                   # zero penalty at or above 120%
    range_bps: int = 7_000                        # crisis floor = threshold - range (50%)
    max_penalty_bps: int = 7_500                  # 75% at the floor
    min_cooldown_days: int = 1
    max_cooldown_days: int = 7
    daily_redemption_bps: int = 500               # 5% of circulating per day

    @property
    def floor_bps(self) -> int:
        return self.threshold_bps - self.range_bps

    def validate(self) -> None:
        if self.range_bps <= 0:
            raise ValueError("range_bps must be positive.")
        if self.threshold_bps < self.range_bps:
            raise ValueError("threshold_bps must be >= range_bps (floor cannot be negative).")
        if not (0 <= self.max_penalty_bps <= BPS_DEN):
            raise ValueError(f"max_penalty_bps must be between 0 and 10000 (got {self.max_penalty_bps}).")
        if self.min_cooldown_days < 0 or self.max_cooldown_days < self.min_cooldown_days:
            raise ValueError("cooldown days must satisfy 0 <= min <= max.")
        if not (0 < self.daily_redemption_bps <= BPS_DEN):
            raise ValueError("daily_redemption_bps must be in (0, 10000].")


@dataclass
class ReferralParams:
    """Reward rate per sponsor depth (index 0 = direct sponsor)."""
    rates_bps: Tuple[int, ...] = (400, 200, 100, 100, 100, 100, 100, 100, 100, 100)

    @property
    def max_depth(self) -> int:
        return len(self.rates_bps)

    def validate(self) -> None:
        if len(self.rates_bps) > MAX_REFERRAL_DEPTH:
            raise ValueError(f"at most {MAX_REFERRAL_DEPTH} referral levels (got {len(self.rates_bps)}).")
        if any(r < 0 for r in self.rates_bps):
            raise ValueError("referral rates must be non-negative.")
        if sum(self.rates_bps) > MAX_REFERRAL_TOTAL_BPS:
            raise ValueError(
                f"referral rates must sum to <= {MAX_REFERRAL_TOTAL_BPS} bps (got {sum(self.rates_bps)})."
            )


@dataclass
class TaxParams:
    """Transfer tax rises linearly from base (fully staked) to max (nothing staked)."""
    base_bps: int = 400
    max_bps: int = 1_500

    def validate(self) -> None:
        if not (0 <= self.base_bps <= self.max_bps <= BPS_DEN):
            raise ValueError("tax bps must satisfy 0 <= base <= max <= 10000.")


@dataclass
class TreasuryParams:
    burn_rate_per_day_wad: int = 0                # 0 => infinite runway
    reference_price_wad: Optional[int] = None     # None => curve spot price
    buyback_trigger_bps: int = 10_000

    def validate(self) -> None:
        if self.burn_rate_per_day_wad < 0:
            raise ValueError("burn_rate_per_day_wad must be non-negative.")
        if self.reference_price_wad is not None and self.reference_price_wad <= 0:
            raise ValueError("reference_price_wad must be positive when set.")
        if self.buyback_trigger_bps < 0:
            raise ValueError("buyback_trigger_bps must be non-negative.")


@dataclass
class EchoForgeConfig:
    """Top-level configuration container."""
    curve: CurveParams = field(default_factory=CurveParams)
    rebase: RebaseParams = field(default_factory=RebaseParams)
    unstake: UnstakeParams = field(default_factory=UnstakeParams)
    referral: ReferralParams = field(default_factory=ReferralParams)
    tax: TaxParams = field(default_factory=TaxParams)
    treasury: TreasuryParams = field(default_factory=TreasuryParams)

    token_decimals: int = 18  # informational (WAD base)

    def validate(self) -> None:
        self.curve.validate()
        self.rebase.validate()
        self.unstake.validate()
        self.referral.validate()
        self.tax.validate()
        self.treasury.validate()
        if self.token_decimals <= 0:
            raise ValueError("token_decimals must be positive.")

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["referral"]["rates_bps"] = list(self.referral.rates_bps)
        return d


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_opt_int(name: str, default: Optional[int]) -> Optional[int]:
    v = os.getenv(name)
    if v is None:
        return default
    if v.strip() == "":
        return None
    return _getenv_int(name, 0)


def _getenv_bps(name: str, default: int) -> int:
    bps = _getenv_int(name, default)
    if bps < 0:
        raise ValueError(f"{name} must be non-negative bps (got {bps}).")
    return bps


def _getenv_rates(name: str, default: Tuple[int, ...]) -> Tuple[int, ...]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        return tuple(int(p.strip().replace("_", "")) for p in v.split(",") if p.strip())
    except ValueError as e:
        raise ValueError(f"Invalid rate list for {name}: {v!r}") from e


def from_env(base: Optional[EchoForgeConfig] = None, prefix: str = "ECHOFORGE_") -> EchoForgeConfig:
    """
    Build an EchoForgeConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or EchoForgeConfig()

    curve = CurveParams(
        launch_price_wad=_getenv_int(f"{prefix}CURVE_LAUNCH_PRICE_WAD", cfg.curve.launch_price_wad),
        cap_price_wad=_getenv_int(f"{prefix}CURVE_CAP_PRICE_WAD", cfg.curve.cap_price_wad),
        cap_supply_wad=_getenv_int(f"{prefix}CURVE_CAP_SUPPLY_WAD", cfg.curve.cap_supply_wad),
        max_iterations=_getenv_int(f"{prefix}CURVE_MAX_ITERATIONS", cfg.curve.max_iterations),
    )
    rebase = RebaseParams(
        base_apy_bps=_getenv_bps(f"{prefix}REBASE_BASE_APY_BPS", cfg.rebase.base_apy_bps),
        max_apy_bps=_getenv_bps(f"{prefix}REBASE_MAX_APY_BPS", cfg.rebase.max_apy_bps),
        min_backing_bps=_getenv_bps(f"{prefix}REBASE_MIN_BACKING_BPS", cfg.rebase.min_backing_bps),
        epochs_per_day=_getenv_int(f"{prefix}REBASE_EPOCHS_PER_DAY", cfg.rebase.epochs_per_day),
        days_per_year=cfg.rebase.days_per_year,
    )
    unstake = UnstakeParams(
        threshold_bps=_getenv_bps(f"{prefix}UNSTAKE_THRESHOLD_BPS", cfg.unstake.threshold_bps),
        range_bps=_getenv_bps(f"{prefix}UNSTAKE_RANGE_BPS", cfg.unstake.range_bps),
        max_penalty_bps=_getenv_bps(f"{prefix}UNSTAKE_MAX_PENALTY_BPS", cfg.unstake.max_penalty_bps),
        min_cooldown_days=_getenv_int(f"{prefix}UNSTAKE_MIN_COOLDOWN_DAYS", cfg.unstake.min_cooldown_days),
        max_cooldown_days=_getenv_int(f"{prefix}UNSTAKE_MAX_COOLDOWN_DAYS", cfg.unstake.max_cooldown_days),
        daily_redemption_bps=_getenv_bps(
            f"{prefix}UNSTAKE_DAILY_REDEMPTION_BPS", cfg.unstake.daily_redemption_bps
        ),
    )
    referral = ReferralParams(
        rates_bps=_getenv_rates(f"{prefix}REFERRAL_RATES_BPS", cfg.referral.rates_bps),
    )
    tax = TaxParams(
        base_bps=_getenv_bps(f"{prefix}TAX_BASE_BPS", cfg.tax.base_bps),
        max_bps=_getenv_bps(f"{prefix}TAX_MAX_BPS", cfg.tax.max_bps),
    )
    treasury = TreasuryParams(
        burn_rate_per_day_wad=_getenv_int(
            f"{prefix}TREASURY_BURN_RATE_PER_DAY_WAD", cfg.treasury.burn_rate_per_day_wad
        ),
        reference_price_wad=_getenv_opt_int(
            f"{prefix}TREASURY_REFERENCE_PRICE_WAD", cfg.treasury.reference_price_wad
        ),
        buyback_trigger_bps=_getenv_bps(
            f"{prefix}TREASURY_BUYBACK_TRIGGER_BPS", cfg.treasury.buyback_trigger_bps
        ),
    )

    new_cfg = EchoForgeConfig(
        curve=curve,
        rebase=rebase,
        unstake=unstake,
        referral=referral,
        tax=tax,
        treasury=treasury,
        token_decimals=cfg.token_decimals,
    )
    new_cfg.validate()
    return new_cfg


def from_dict(data: Dict[str, Any]) -> EchoForgeConfig:
    """Build a config from a nested mapping (missing keys keep defaults)."""

    def pick(dct: Dict[str, Any], key: str, default: Any) -> Any:
        return dct.get(key, default)

    curve = data.get("curve", {})
    rebase = data.get("rebase", {})
    unstake = data.get("unstake", {})
    referral = data.get("referral", {})
    tax = data.get("tax", {})
    treasury = data.get("treasury", {})

    cfg = EchoForgeConfig(
        curve=CurveParams(
            launch_price_wad=int(pick(curve, "launch_price_wad", CurveParams().launch_price_wad)),
            cap_price_wad=int(pick(curve, "cap_price_wad", CurveParams().cap_price_wad)),
            cap_supply_wad=int(pick(curve, "cap_supply_wad", CurveParams().cap_supply_wad)),
            max_iterations=int(pick(curve, "max_iterations", CurveParams().max_iterations)),
        ),
        rebase=RebaseParams(
            base_apy_bps=int(pick(rebase, "base_apy_bps", RebaseParams().base_apy_bps)),
            max_apy_bps=int(pick(rebase, "max_apy_bps", RebaseParams().max_apy_bps)),
            min_backing_bps=int(pick(rebase, "min_backing_bps", RebaseParams().min_backing_bps)),
            epochs_per_day=int(pick(rebase, "epochs_per_day", RebaseParams().epochs_per_day)),
            days_per_year=int(pick(rebase, "days_per_year", RebaseParams().days_per_year)),
        ),
        unstake=UnstakeParams(
            threshold_bps=int(pick(unstake, "threshold_bps", UnstakeParams().threshold_bps)),
            range_bps=int(pick(unstake, "range_bps", UnstakeParams().range_bps)),
            max_penalty_bps=int(pick(unstake, "max_penalty_bps", UnstakeParams().max_penalty_bps)),
            min_cooldown_days=int(pick(unstake, "min_cooldown_days", UnstakeParams().min_cooldown_days)),
            max_cooldown_days=int(pick(unstake, "max_cooldown_days", UnstakeParams().max_cooldown_days)),
            daily_redemption_bps=int(
                pick(unstake, "daily_redemption_bps", UnstakeParams().daily_redemption_bps)
            ),
        ),
        referral=ReferralParams(
            rates_bps=tuple(int(r) for r in pick(referral, "rates_bps", ReferralParams().rates_bps)),
        ),
        tax=TaxParams(
            base_bps=int(pick(tax, "base_bps", TaxParams().base_bps)),
            max_bps=int(pick(tax, "max_bps", TaxParams().max_bps)),
        ),
        treasury=TreasuryParams(
            burn_rate_per_day_wad=int(
                pick(treasury, "burn_rate_per_day_wad", TreasuryParams().burn_rate_per_day_wad)
            ),
            reference_price_wad=(
                None
                if pick(treasury, "reference_price_wad", None) is None
                else int(treasury["reference_price_wad"])
            ),
            buyback_trigger_bps=int(
                pick(treasury, "buyback_trigger_bps", TreasuryParams().buyback_trigger_bps)
            ),
        ),
        token_decimals=int(pick(data, "token_decimals", EchoForgeConfig().token_decimals)),
    )
    cfg.validate()
    return cfg


def from_file(path: str | os.PathLike[str]) -> EchoForgeConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    return from_dict(data)


def load() -> EchoForgeConfig:
    """
    Load configuration using the following precedence:
      1) File at $ECHOFORGE_CONFIG_FILE (JSON/YAML)
      2) Environment variables (ECHOFORGE_*), applied on top of defaults or file values
    """
    file_path = os.getenv("ECHOFORGE_CONFIG_FILE")
    base = from_file(file_path) if file_path else EchoForgeConfig()
    return from_env(base=base)


# -------------------------- Utilities --------------------------


def pretty(cfg: Optional[EchoForgeConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


__all__ = [
    "CurveParams",
    "RebaseParams",
    "UnstakeParams",
    "ReferralParams",
    "TaxParams",
    "TreasuryParams",
    "EchoForgeConfig",
    "MAX_REFERRAL_DEPTH",
    "MAX_REFERRAL_TOTAL_BPS",
    "from_env",
    "from_dict",
    "from_file",
    "load",
    "pretty",
]
