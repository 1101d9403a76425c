from __future__ import annotations

"""
Unstake penalty & cooldown state machine.

    NONE ──request──▶ REQUESTED ──(epoch >= cooldown_end)──▶ COOLDOWN_ELAPSED
                          │                                        │
                          └───────────cancel──▶ CANCELLED ◀──cancel┘
                                                                   │
                                                      execute ─▶ EXECUTED

At most one outstanding request exists per account. Penalty and cooldown are
computed from the backing ratio once, at request time, and stored on the
request; execution never re-reads the ratio.

Penalty (bps), quadratic in the shortfall below the threshold:

    d       = clamp(threshold - ratio, 0, range)
    penalty = max_penalty * d² / range²                  (floor)

Cooldown (days), linear in the same shortfall:

    days = min_days + ceil((max_days - min_days) * d / range)

So penalty is 0 at or above the threshold and equals max_penalty at (and
below) the crisis floor `threshold - range`; cooldown runs min_days → max_days
across the same band.

This module only owns the request table. Moving balances, burning the penalty
and drawing redemption capacity are orchestrated by the engine under its
transaction lock.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Tuple

from echoforge.config import UnstakeParams
from echoforge.errors import CooldownNotElapsed, NoUnstakeRequest
from echoforge.fixedpoint import apply_bps, clamp, div_up, mul_div
from echoforge.types import Address


class UnstakeState(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    COOLDOWN_ELAPSED = "cooldown_elapsed"
    CANCELLED = "cancelled"
    EXECUTED = "executed"


@dataclass(frozen=True)
class UnstakeRequest:
    account: Address
    amount: int
    request_epoch: int
    cooldown_end_epoch: int
    penalty_bps: int
    cooldown_days: int
    backing_ratio_bps: int

    @property
    def penalty(self) -> int:
        return apply_bps(self.amount, self.penalty_bps)

    @property
    def net(self) -> int:
        return self.amount - self.penalty

    def state_at(self, epoch: int) -> UnstakeState:
        return UnstakeState.COOLDOWN_ELAPSED if epoch >= self.cooldown_end_epoch else UnstakeState.REQUESTED

    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = dict(asdict(self))
        d["amount"] = str(self.amount)
        d["backing_ratio_bps"] = str(self.backing_ratio_bps)
        d["penalty"] = str(self.penalty)
        d["net"] = str(self.net)
        return d

    @staticmethod
    def from_dict(d: Mapping[str, object]) -> "UnstakeRequest":
        return UnstakeRequest(
            account=Address(str(d["account"])),
            amount=int(d["amount"]),  # type: ignore[arg-type]
            request_epoch=int(d["request_epoch"]),  # type: ignore[arg-type]
            cooldown_end_epoch=int(d["cooldown_end_epoch"]),  # type: ignore[arg-type]
            penalty_bps=int(d["penalty_bps"]),  # type: ignore[arg-type]
            cooldown_days=int(d["cooldown_days"]),  # type: ignore[arg-type]
            backing_ratio_bps=int(d["backing_ratio_bps"]),  # type: ignore[arg-type]
        )


# ------------------------------ Curves ------------------------------------- #


def _shortfall(backing_ratio_bps: int, params: UnstakeParams) -> int:
    return clamp(params.threshold_bps - backing_ratio_bps, 0, params.range_bps)


def penalty_bps(backing_ratio_bps: int, params: UnstakeParams) -> int:
    d = _shortfall(backing_ratio_bps, params)
    return mul_div(params.max_penalty_bps, d * d, params.range_bps * params.range_bps)


def cooldown_days(backing_ratio_bps: int, params: UnstakeParams) -> int:
    d = _shortfall(backing_ratio_bps, params)
    span = params.max_cooldown_days - params.min_cooldown_days
    return params.min_cooldown_days + div_up(span * d, params.range_bps)


def quote_penalty(amount: int, backing_ratio_bps: int, params: UnstakeParams) -> Tuple[int, int, int]:
    """(penalty_bps, penalty, net) for unstaking `amount` at the given ratio."""
    bps = penalty_bps(backing_ratio_bps, params)
    penalty = apply_bps(amount, bps)
    return bps, penalty, amount - penalty


# ------------------------------ Request table ------------------------------ #


class UnstakeBook:
    """Outstanding requests keyed by account; terminal requests are discarded."""

    def __init__(self) -> None:
        self._requests: Dict[Address, UnstakeRequest] = {}

    def dump(self) -> Dict:
        return {a: r.to_dict() for a, r in sorted(self._requests.items())}

    @classmethod
    def load(cls, data: Mapping) -> "UnstakeBook":
        book = cls()
        for a, r in data.items():
            book._requests[Address(a)] = UnstakeRequest.from_dict(r)
        return book

    def __len__(self) -> int:
        return len(self._requests)

    def __iter__(self) -> Iterator[UnstakeRequest]:
        return iter([self._requests[a] for a in sorted(self._requests)])

    def get(self, account: Address) -> Optional[UnstakeRequest]:
        return self._requests.get(account)

    def state(self, account: Address, epoch: int) -> UnstakeState:
        req = self._requests.get(account)
        return UnstakeState.NONE if req is None else req.state_at(epoch)

    def locked_total(self) -> int:
        return sum(r.amount for r in self._requests.values())

    def open(
        self,
        account: Address,
        amount: int,
        *,
        epoch: int,
        backing_ratio_bps: int,
        params: UnstakeParams,
        epochs_per_day: int,
    ) -> UnstakeRequest:
        """Snapshot penalty and cooldown and store the request (caller removes any prior one)."""
        days = cooldown_days(backing_ratio_bps, params)
        req = UnstakeRequest(
            account=account,
            amount=amount,
            request_epoch=epoch,
            cooldown_end_epoch=epoch + days * epochs_per_day,
            penalty_bps=penalty_bps(backing_ratio_bps, params),
            cooldown_days=days,
            backing_ratio_bps=backing_ratio_bps,
        )
        self._requests[account] = req
        return req

    def cancel(self, account: Address) -> UnstakeRequest:
        req = self._requests.pop(account, None)
        if req is None:
            raise NoUnstakeRequest(account)
        return req

    def ready(self, account: Address, epoch: int) -> UnstakeRequest:
        """Return the request if its cooldown has elapsed at `epoch`."""
        req = self._requests.get(account)
        if req is None:
            raise NoUnstakeRequest(account)
        if req.state_at(epoch) is not UnstakeState.COOLDOWN_ELAPSED:
            raise CooldownNotElapsed(account=account, current_epoch=epoch, cooldown_end_epoch=req.cooldown_end_epoch)
        return req

    def close(self, account: Address) -> UnstakeRequest:
        return self.cancel(account)


__all__ = [
    "UnstakeState",
    "UnstakeRequest",
    "UnstakeBook",
    "penalty_bps",
    "cooldown_days",
    "quote_penalty",
]
