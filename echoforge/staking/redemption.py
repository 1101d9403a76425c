from __future__ import annotations

"""
Daily redemption window.

Executed unstakes draw from a per-day capacity of

    capacity = floor(circulating * daily_redemption_bps / 10_000)

Days are derived from the engine epoch:

    day = epoch // epochs_per_day

The window is reset lazily: the first reservation attempted in a new day
re-sizes capacity from the circulating supply at that moment and zeroes the
spent counter. Nothing happens on the day boundary itself, so an idle
protocol carries no window bookkeeping.

`try_reserve` is functional (returns a new window) in the same way budget
reservation works for epoch accounting; the staking engine stores the
returned window only when the whole unstake commits.
"""

from dataclasses import asdict, dataclass, replace
from typing import Dict, Tuple

from echoforge.fixedpoint import apply_bps


@dataclass(frozen=True)
class RedemptionWindow:
    """
    One day's redemption capacity.

    Attributes:
        day: day index the window belongs to (-1 before first use).
        capacity: total amount that may be redeemed during `day`.
        spent: amount already consumed by executed unstakes.
        executions: number of unstakes that consumed capacity.
    """

    day: int = -1
    capacity: int = 0
    spent: int = 0
    executions: int = 0

    @property
    def remaining(self) -> int:
        r = self.capacity - self.spent
        return 0 if r < 0 else r

    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {k: v for k, v in asdict(self).items()}
        d["capacity"] = str(self.capacity)
        d["spent"] = str(self.spent)
        d["remaining"] = str(self.remaining)
        return d

    @staticmethod
    def from_dict(d: Dict[str, object]) -> "RedemptionWindow":
        return RedemptionWindow(
            day=int(d.get("day", -1)),  # type: ignore[arg-type]
            capacity=int(d.get("capacity", 0)),  # type: ignore[arg-type]
            spent=int(d.get("spent", 0)),  # type: ignore[arg-type]
            executions=int(d.get("executions", 0)),  # type: ignore[arg-type]
        )


def day_for_epoch(epoch: int, epochs_per_day: int) -> int:
    if epochs_per_day <= 0:
        raise ValueError("epochs_per_day must be > 0")
    if epoch < 0:
        raise ValueError("epoch must be >= 0")
    return epoch // epochs_per_day


def roll(window: RedemptionWindow, *, day: int, circulating: int, daily_bps: int) -> RedemptionWindow:
    """Return the window for `day`, opening a fresh one if `window` belongs to an earlier day."""
    if window.day == day:
        return window
    return RedemptionWindow(day=day, capacity=apply_bps(circulating, daily_bps), spent=0, executions=0)


def try_reserve(window: RedemptionWindow, amount: int) -> Tuple[bool, RedemptionWindow]:
    """
    Attempt to consume `amount` from the window.
    Returns (ok, new_window); the input is never mutated.
    """
    if amount < 0:
        raise ValueError("amount must be >= 0")
    if amount <= window.remaining:
        return True, replace(window, spent=window.spent + amount, executions=window.executions + 1)
    return False, window


__all__ = ["RedemptionWindow", "day_for_epoch", "roll", "try_reserve"]
