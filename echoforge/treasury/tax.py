"""
Adaptive transfer tax.

The rate tracks the staking ratio: a fully staked supply pays the base rate,
a fully liquid supply pays the maximum, linear in between.

    rate = base + (max - base) * (10000 - staking_ratio) / 10000

The withheld tax is treasury revenue (deposited as protocol_token by the
engine).
"""

from __future__ import annotations

from dataclasses import dataclass

from echoforge.config import TaxParams
from echoforge.fixedpoint import BPS_DEN, bps_split, clamp, mul_div


@dataclass(frozen=True)
class TransferQuote:
    amount: int
    rate_bps: int
    tax: int
    net: int


def tax_rate_bps(staking_ratio_bps: int, params: TaxParams) -> int:
    r = clamp(staking_ratio_bps, 0, BPS_DEN)
    return params.base_bps + mul_div(params.max_bps - params.base_bps, BPS_DEN - r, BPS_DEN)


def quote_transfer(amount: int, staking_ratio_bps: int, params: TaxParams) -> TransferQuote:
    rate = tax_rate_bps(staking_ratio_bps, params)
    tax, net = bps_split(amount, rate)
    return TransferQuote(amount=amount, rate_bps=rate, tax=tax, net=net)


__all__ = ["TransferQuote", "tax_rate_bps", "quote_transfer"]
