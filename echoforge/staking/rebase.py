from __future__ import annotations

"""
Index-based rebasing stake book.

A single global index (RAY-scaled, starts at 1.0) grows multiplicatively on
each rebase tick:

    index' = index * (1 + tickRate)

Each position remembers the index at its last touch. Its live balance is

    principal * index / index_at_touch + pending_rewards

"Settling" a position folds the unsettled growth into `pending_rewards` and
moves `index_at_touch` up to the current index. Settled rewards and amounts
locked by an unstake request do not rebase; they re-enter the rebasing
principal through compound / cancel.

Supply expansion per tick is the exact sum of per-position growth (each
position floor-rounded), so the staked supply counter always equals the sum
of live position balances.

APY schedule (basis points, 10_000 = 100%):

    apy = 0                                   if ratio < min_backing
    apy = min(max_apy, base_apy * ratio² / 10_000²)   otherwise

and the per-tick rate is the ticks-per-year root of (1 + apy), computed with
the integer bisection root in `echoforge.fixedpoint`.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Iterator, Mapping, Optional, Tuple

from echoforge.config import RebaseParams
from echoforge.errors import InsufficientBalance, InvalidAmount, NoPosition
from echoforge.fixedpoint import BPS_DEN, RAY, WAD, mul_div, nth_root_wad, sub
from echoforge.types import Address


@dataclass
class StakePosition:
    principal: int = 0
    index_at_touch: int = RAY
    pending_rewards: int = 0
    locked: int = 0

    @property
    def empty(self) -> bool:
        return self.principal == 0 and self.pending_rewards == 0 and self.locked == 0

    def to_dict(self) -> Dict[str, str]:
        return {k: str(v) for k, v in asdict(self).items()}

    @staticmethod
    def from_dict(d: Mapping[str, str]) -> "StakePosition":
        return StakePosition(
            principal=int(d.get("principal", 0)),
            index_at_touch=int(d.get("index_at_touch", RAY)),
            pending_rewards=int(d.get("pending_rewards", 0)),
            locked=int(d.get("locked", 0)),
        )


@dataclass(frozen=True)
class RebaseResult:
    epoch: int
    backing_ratio_bps: int
    apy_bps: int
    tick_rate_wad: int
    index_before: int
    index_after: int
    minted: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "epoch": self.epoch,
            "backing_ratio_bps": str(self.backing_ratio_bps),
            "apy_bps": self.apy_bps,
            "tick_rate_wad": str(self.tick_rate_wad),
            "index_before": str(self.index_before),
            "index_after": str(self.index_after),
            "minted": str(self.minted),
        }


# ------------------------------- Schedule ---------------------------------- #


def calculate_apy_bps(backing_ratio_bps: int, params: RebaseParams) -> int:
    if backing_ratio_bps < params.min_backing_bps:
        return 0
    apy = mul_div(params.base_apy_bps, backing_ratio_bps * backing_ratio_bps, BPS_DEN * BPS_DEN)
    return min(params.max_apy_bps, apy)


def tick_rate_wad(apy_bps: int, params: RebaseParams) -> int:
    """(1 + apy)^(1/ticksPerYear) - 1 in WAD."""
    if apy_bps <= 0:
        return 0
    growth = WAD + mul_div(apy_bps, WAD, BPS_DEN)
    return nth_root_wad(growth, params.ticks_per_year) - WAD


# -------------------------------- Book ------------------------------------- #


class StakingBook:
    """Per-account stake positions under one global rebasing index."""

    def __init__(self) -> None:
        self.index: int = RAY
        self._positions: Dict[Address, StakePosition] = {}

    # --- load/save ---

    def dump(self) -> Dict:
        return {
            "index": str(self.index),
            "positions": {a: p.to_dict() for a, p in sorted(self._positions.items())},
        }

    @classmethod
    def load(cls, data: Mapping) -> "StakingBook":
        book = cls()
        book.index = int(data.get("index", RAY))
        for a, p in data.get("positions", {}).items():
            book._positions[Address(a)] = StakePosition.from_dict(p)
        return book

    # --- introspection ---

    def __contains__(self, account: object) -> bool:
        return account in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def accounts(self) -> Iterator[Address]:
        return iter(sorted(self._positions))

    def get(self, account: Address) -> Optional[StakePosition]:
        return self._positions.get(account)

    def require(self, account: Address) -> StakePosition:
        pos = self._positions.get(account)
        if pos is None:
            raise NoPosition(account)
        return pos

    def _grown(self, pos: StakePosition) -> int:
        return mul_div(pos.principal, self.index, pos.index_at_touch)

    def unsettled(self, pos: StakePosition) -> int:
        return self._grown(pos) - pos.principal

    def pending_rewards(self, account: Address) -> int:
        pos = self.get(account)
        if pos is None:
            return 0
        return pos.pending_rewards + self.unsettled(pos)

    def rebased_balance(self, account: Address) -> int:
        pos = self.get(account)
        if pos is None:
            return 0
        return self._grown(pos) + pos.pending_rewards

    def total_balance(self) -> int:
        """Sum of every live position balance, locked amounts included."""
        return sum(self._grown(p) + p.pending_rewards + p.locked for p in self._positions.values())

    def total_locked(self) -> int:
        return sum(p.locked for p in self._positions.values())

    # --- mutations ---

    def settle(self, account: Address) -> StakePosition:
        pos = self.require(account)
        growth = self.unsettled(pos)
        if growth:
            pos.pending_rewards += growth
        pos.index_at_touch = self.index
        return pos

    def add_principal(self, account: Address, amount: int) -> StakePosition:
        """Create or top up a position; existing growth is settled first."""
        if amount <= 0:
            raise InvalidAmount("stake amount must be positive", amount=amount)
        if account in self._positions:
            pos = self.settle(account)
        else:
            pos = StakePosition(index_at_touch=self.index)
            self._positions[account] = pos
        pos.principal += amount
        return pos

    def compound(self, account: Address) -> int:
        pos = self.settle(account)
        moved = pos.pending_rewards
        pos.principal += moved
        pos.pending_rewards = 0
        return moved

    def take_pending(self, account: Address) -> int:
        """Settle and zero pending rewards, returning the amount removed."""
        pos = self.settle(account)
        taken = pos.pending_rewards
        pos.pending_rewards = 0
        self.prune(account)
        return taken

    def lock(self, account: Address, amount: int) -> StakePosition:
        """Move `amount` of active principal into the locked (non-rebasing) bucket."""
        pos = self.settle(account)
        if amount <= 0:
            raise InvalidAmount("unstake amount must be positive", amount=amount)
        if amount > pos.principal:
            raise InsufficientBalance(
                account=account, required=amount, available=pos.principal, bucket="staked"
            )
        pos.principal -= amount
        pos.locked += amount
        return pos

    def unlock(self, account: Address, amount: int) -> StakePosition:
        pos = self.settle(account)
        pos.locked = sub(pos.locked, amount)
        pos.principal += amount
        return pos

    def release_locked(self, account: Address, amount: int) -> StakePosition:
        """Remove locked tokens from the book (unstake execution)."""
        pos = self.require(account)
        pos.locked = sub(pos.locked, amount)
        self.prune(account)
        return pos

    def prune(self, account: Address) -> bool:
        pos = self._positions.get(account)
        if pos is not None and pos.empty:
            del self._positions[account]
            return True
        return False

    def apply_tick(self, rate_wad: int) -> Tuple[int, int]:
        """
        Grow the index by (1 + rate). Returns (new_index, minted) where minted is
        the exact increase of the summed live balances.
        """
        if rate_wad < 0:
            raise InvalidAmount("tick rate must be non-negative", amount=rate_wad)
        before = sum(self._grown(p) for p in self._positions.values())
        self.index = mul_div(self.index, WAD + rate_wad, WAD)
        after = sum(self._grown(p) for p in self._positions.values())
        return self.index, after - before


__all__ = [
    "StakePosition",
    "RebaseResult",
    "StakingBook",
    "calculate_apy_bps",
    "tick_rate_wad",
]
