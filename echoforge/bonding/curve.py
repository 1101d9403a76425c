from __future__ import annotations

"""
Bonding curve issuance.

Price over cumulative units sold ``s`` (both WAD-scaled):

    p(s) = p0 + k * s²,   k = (p_cap - p0) / S²

so p(0) = launch price and p(S) = cap price. Buying with payment ``A`` issues
Δ = s2 - s1 tokens where the area under the curve equals A:

    A = p0*Δ + (k/3) * (s2³ - s1³)          (divided by WAD for units)

Everything is carried in one exact integer numerator over a fixed
denominator, so no precision is lost before the final rounding:

    N(s1, s2) = 3*S²*p0*(s2 - s1) + (p_cap - p0)*(s2³ - s1³)
    D         = 3*S²*WAD
    cost      = ceil(N / D)

`solve` finds the largest integer s2 with N(s1, s2) <= A*D using Newton's
method seeded from the linear estimate Δ0 = A / p(s1). Because N is convex
and increasing in s2 and the seed lies above the root, iterates descend
monotonically onto it. The charged amount is ceil(N/D) <= A; the difference
is refunded, so payment is conserved exactly.

If the payment would carry s past the cap S, only the cap-reaching portion
is charged and the rest refunded.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Tuple

from echoforge.config import CurveParams
from echoforge.errors import ConvergenceError, CurveSoldOut, InvalidAmount, InvariantViolation
from echoforge.fixedpoint import WAD, div_up, mul_div, mul_div_up

log = logging.getLogger(__name__)


@dataclass
class CurveState:
    sold: int = 0
    proceeds: int = 0

    def to_dict(self) -> Dict[str, str]:
        return {k: str(v) for k, v in asdict(self).items()}

    @staticmethod
    def from_dict(d: Dict[str, str]) -> "CurveState":
        return CurveState(sold=int(d.get("sold", 0)), proceeds=int(d.get("proceeds", 0)))


@dataclass(frozen=True)
class BuyQuote:
    payment: int
    tokens: int
    payment_used: int
    refund: int
    sold_before: int
    sold_after: int
    capped: bool
    iterations: int

    def to_dict(self) -> Dict[str, object]:
        d = {k: str(v) for k, v in asdict(self).items()}
        d["capped"] = self.capped
        d["iterations"] = self.iterations
        return d


class BondingCurve:
    """Pure pricing / solving over CurveParams; holds no mutable state."""

    def __init__(self, params: CurveParams) -> None:
        params.validate()
        self.params = params
        self.p0 = params.launch_price_wad
        self.cap = params.cap_supply_wad
        self.k_num = params.cap_price_wad - params.launch_price_wad
        self.k_den = self.cap * self.cap
        self._den = 3 * self.k_den * WAD

    # --- pricing ---

    def price_at(self, s: int) -> int:
        """Spot price p(s) in WAD, floor-rounded."""
        if s < 0 or s > self.cap:
            raise InvalidAmount("supply point outside [0, cap]", amount=s)
        return self.p0 + mul_div(self.k_num, s * s, self.k_den)

    def _numer(self, s1: int, s2: int) -> int:
        return 3 * self.k_den * self.p0 * (s2 - s1) + self.k_num * (s2 * s2 * s2 - s1 * s1 * s1)

    def _d_numer(self, s: int) -> int:
        # dN/ds2
        return 3 * self.k_den * self.p0 + 3 * self.k_num * s * s

    def cost(self, s1: int, s2: int) -> int:
        """Payment required to move from s1 to s2 (ceil; protocol never under-charges)."""
        if not (0 <= s1 <= s2 <= self.cap):
            raise InvalidAmount("cost interval must satisfy 0 <= s1 <= s2 <= cap")
        return div_up(self._numer(s1, s2), self._den)

    # --- solving ---

    def solve(self, s1: int, payment: int) -> Tuple[int, int]:
        """
        Return (s2, iterations): the largest s2 <= cap with cost(s1, s2) <= payment.
        """
        if payment <= 0:
            raise InvalidAmount("payment must be positive", amount=payment)
        if s1 >= self.cap:
            raise CurveSoldOut(cap=self.cap)
        target = payment * self._den

        if self._numer(s1, self.cap) <= target:
            return self.cap, 0

        seed_delta = mul_div_up(payment, WAD, self.price_at(s1))
        s = min(s1 + seed_delta, self.cap)
        budget = self.params.max_iterations

        iterations = 0
        while True:
            f = self._numer(s1, s) - target
            if f <= 0:
                break
            iterations += 1
            if iterations > budget:
                log.error(
                    "bonding curve solve did not converge",
                    extra={"s1": str(s1), "payment": str(payment), "s": str(s), "budget": budget},
                )
                raise ConvergenceError(
                    "bonding curve root finder exhausted its iteration budget",
                    details={"s1": str(s1), "payment": str(payment), "budget": budget},
                )
            step = f // self._d_numer(s)
            s -= step if step > 0 else 1

        # s is now at or below the root; the largest feasible point is at most a few units up.
        for _ in range(budget):
            if s + 1 > self.cap or self._numer(s1, s + 1) > target:
                break
            s += 1
        else:
            raise ConvergenceError(
                "bonding curve upward correction exhausted its budget",
                details={"s1": str(s1), "payment": str(payment)},
            )
        return max(s, s1), iterations

    def quote(self, sold: int, payment: int) -> BuyQuote:
        """Preview a purchase from curve position `sold`; no state is touched."""
        s2, iterations = self.solve(sold, payment)
        tokens = s2 - sold
        if tokens <= 0:
            raise InvalidAmount("payment below the price of one token unit", amount=payment)
        used = self.cost(sold, s2)
        if used > payment:
            raise InvariantViolation(
                "curve charge exceeds payment",
                details={"used": str(used), "payment": str(payment)},
            )
        return BuyQuote(
            payment=payment,
            tokens=tokens,
            payment_used=used,
            refund=payment - used,
            sold_before=sold,
            sold_after=s2,
            capped=s2 == self.cap,
            iterations=iterations,
        )

    def buy(self, state: CurveState, payment: int) -> BuyQuote:
        """Quote and advance `state`. Treasury deposit / mint are the caller's job."""
        q = self.quote(state.sold, payment)
        state.sold = q.sold_after
        state.proceeds += q.payment_used
        return q


__all__ = ["BondingCurve", "CurveState", "BuyQuote"]
