"""
echoforge.staking
=================

Rebasing stake book, unstake penalty / cooldown requests and the daily
redemption window. The engine composes the three under one lock.
"""

from .rebase import (RebaseResult, StakePosition, StakingBook,
                     calculate_apy_bps, tick_rate_wad)
from .redemption import RedemptionWindow, day_for_epoch
from .unstake import (UnstakeBook, UnstakeRequest, UnstakeState,
                      cooldown_days, penalty_bps, quote_penalty)

__all__ = [
    "RebaseResult",
    "StakePosition",
    "StakingBook",
    "calculate_apy_bps",
    "tick_rate_wad",
    "RedemptionWindow",
    "day_for_epoch",
    "UnstakeBook",
    "UnstakeRequest",
    "UnstakeState",
    "cooldown_days",
    "penalty_bps",
    "quote_penalty",
]
