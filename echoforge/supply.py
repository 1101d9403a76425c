from __future__ import annotations

"""
Token supply counters.

    circulating = total_minted - burned
    staked     <= circulating

Every mutation goes through a method that re-establishes both relations, so a
SupplyState can never be observed in a state that violates them.
"""

from dataclasses import asdict, dataclass
from typing import Dict

from .errors import InvalidAmount, InvariantViolation
from .fixedpoint import sub


@dataclass
class SupplyState:
    total_minted: int = 0
    burned: int = 0
    staked: int = 0

    @property
    def circulating(self) -> int:
        return self.total_minted - self.burned

    @property
    def unstaked(self) -> int:
        return self.circulating - self.staked

    # --- mutations ---

    def mint(self, amount: int, *, staked: bool = False) -> None:
        """Issue new tokens; optionally straight into the staked bucket."""
        _positive(amount)
        self.total_minted += amount
        if staked:
            self.staked += amount

    def burn(self, amount: int, *, from_staked: bool = False) -> None:
        _positive(amount, allow_zero=True)
        if from_staked:
            self.staked = sub(self.staked, amount)
        self.burned += amount
        self.check()

    def stake(self, amount: int) -> None:
        """Move circulating-unstaked tokens into the staked bucket."""
        _positive(amount, allow_zero=True)
        self.staked += amount
        self.check()

    def unstake(self, amount: int) -> None:
        _positive(amount, allow_zero=True)
        self.staked = sub(self.staked, amount)

    # --- checks & serialization ---

    def check(self) -> None:
        if self.burned > self.total_minted:
            raise InvariantViolation(
                "burned exceeds minted",
                details={"burned": str(self.burned), "total_minted": str(self.total_minted)},
            )
        if self.staked < 0 or self.staked > self.circulating:
            raise InvariantViolation(
                "staked outside [0, circulating]",
                details={"staked": str(self.staked), "circulating": str(self.circulating)},
            )

    def to_dict(self) -> Dict[str, str]:
        return {k: str(v) for k, v in asdict(self).items()}

    @staticmethod
    def from_dict(d: Dict[str, str]) -> "SupplyState":
        st = SupplyState(
            total_minted=int(d.get("total_minted", 0)),
            burned=int(d.get("burned", 0)),
            staked=int(d.get("staked", 0)),
        )
        st.check()
        return st


def _positive(amount: int, *, allow_zero: bool = False) -> None:
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(amount=amount)


__all__ = ["SupplyState"]
