from __future__ import annotations

"""
EchoForge Treasury - asset table, backing ratio & runway
---------------------------------------------------------

This module maintains the *internal*, deterministic ledger of treasury assets:
  • Holdings per AssetKind (native, stable, yield_bearing, protocol_token)
  • Mark prices per kind (oracle-injected; reference-asset WAD per unit)
  • An append-only journal of every movement for reconciliation

It is deliberately storage-agnostic and uses pure-Python data structures with
explicit serialization helpers. Persistence is delegated to higher layers,
which can snapshot `TreasuryLedger.dump()` and restore via `TreasuryLedger.load()`.

Amounts are expressed as integer WAD units (no floats). All operations check:
  • Positive amounts on deposit / withdraw
  • Sufficient holdings before debits

Derived values (total value, liquid value, backing ratio, runway) are pure
functions of the current holdings plus the arguments passed in; nothing is
cached between calls.

Concurrency: the ledger holds no lock of its own. It is one part of the
compound ledger that `echoforge.engine.ProtocolEngine` guards with a single
exclusive lock.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from echoforge.errors import InsufficientReserves, InvalidAmount
from echoforge.fixedpoint import BPS_DEN, WAD, mul_div
from echoforge.types import AssetKind

Amount = int
OpName = Literal["deposit", "withdraw", "burn_contribution", "mark"]

# Mirrors uint256 max: "unbounded" for ratio/runway queries.
INFINITE: int = (1 << 256) - 1
RUNWAY_INFINITE: int = INFINITE
BACKING_RATIO_INFINITE: int = INFINITE

_DEFAULT_MARKS: Dict[AssetKind, int] = {
    AssetKind.NATIVE: WAD,
    AssetKind.STABLE: WAD,
    AssetKind.YIELD_BEARING: WAD,
}


@dataclass(frozen=True)
class JournalEntry:
    seq: int
    op: OpName
    asset: AssetKind
    amount: Amount
    epoch: int
    meta: Dict[str, str] = field(default_factory=dict)
    holding_after: Amount = 0

    def to_dict(self) -> Dict:
        return {
            "seq": self.seq,
            "op": self.op,
            "asset": self.asset.value,
            "amount": str(self.amount),
            "epoch": self.epoch,
            "meta": dict(self.meta),
            "holding_after": str(self.holding_after),
        }

    @staticmethod
    def from_dict(d: Mapping) -> "JournalEntry":
        return JournalEntry(
            seq=int(d["seq"]),
            op=d["op"],
            asset=AssetKind(d["asset"]),
            amount=int(d["amount"]),
            epoch=int(d["epoch"]),
            meta=dict(d.get("meta", {})),
            holding_after=int(d.get("holding_after", 0)),
        )


class TreasuryLedger:
    """
    In-memory treasury asset table.

    `deposit` is the single entry point for value (curve proceeds, transfer-tax
    revenue, yield accrual); `withdraw` the single exit (redemption payouts,
    insurance / governance draws).
    """

    def __init__(self) -> None:
        self._holdings: Dict[AssetKind, Amount] = {k: 0 for k in AssetKind}
        self._marks: Dict[AssetKind, int] = dict(_DEFAULT_MARKS)
        self._journal: List[JournalEntry] = []
        self._seq = 0
        self._burn_contributions: Amount = 0

    # --- load/save ---

    def dump(self) -> Dict:
        return {
            "holdings": {k.value: str(v) for k, v in self._holdings.items()},
            "marks": {k.value: str(v) for k, v in self._marks.items()},
            "journal": [je.to_dict() for je in self._journal],
            "seq": self._seq,
            "burn_contributions": str(self._burn_contributions),
        }

    @classmethod
    def load(cls, data: Mapping) -> "TreasuryLedger":
        led = cls()
        for k, v in data.get("holdings", {}).items():
            amt = int(v)
            if amt < 0:
                raise InvalidAmount("negative holding in snapshot", amount=amt)
            led._holdings[AssetKind(k)] = amt
        for k, v in data.get("marks", {}).items():
            led._marks[AssetKind(k)] = int(v)
        led._journal = [JournalEntry.from_dict(d) for d in data.get("journal", [])]
        led._seq = int(data.get("seq", len(led._journal)))
        led._burn_contributions = int(data.get("burn_contributions", 0))
        return led

    # --- introspection ---

    def holding(self, kind: AssetKind) -> Amount:
        return self._holdings[AssetKind.parse(kind)]

    def holdings(self) -> Dict[AssetKind, Amount]:
        return dict(self._holdings)

    def mark(self, kind: AssetKind) -> Optional[int]:
        return self._marks.get(AssetKind.parse(kind))

    def journal(self, limit: Optional[int] = None) -> Iterable[JournalEntry]:
        """Journal entries, oldest first; with `limit`, only the most recent ones."""
        if limit is None:
            return tuple(self._journal)
        if limit <= 0:
            return ()
        return tuple(self._journal[-limit:])

    def journal_length(self) -> int:
        return len(self._journal)

    def rewind_journal(self, length: int) -> None:
        """Drop entries appended after the journal had `length` entries."""
        if length < 0 or length > len(self._journal):
            raise ValueError(f"cannot rewind journal of {len(self._journal)} entries to {length}")
        del self._journal[length:]

    def __deepcopy__(self, memo: Dict[int, object]) -> "TreasuryLedger":
        # Entries are frozen and the journal is append-only, so a copy shares
        # the list; rolling back to the copy must be paired with rewind_journal.
        dup = TreasuryLedger.__new__(TreasuryLedger)
        memo[id(self)] = dup
        dup._holdings = dict(self._holdings)
        dup._marks = dict(self._marks)
        dup._journal = self._journal
        dup._seq = self._seq
        dup._burn_contributions = self._burn_contributions
        return dup

    @property
    def burn_contributions(self) -> Amount:
        """Cumulative supply burned as unstake penalties (value accrued to backing)."""
        return self._burn_contributions

    # --- mutations ---

    def deposit(self, kind: AssetKind, amount: Amount, *, epoch: int, reason: str = "deposit") -> JournalEntry:
        kind = AssetKind.parse(kind)
        if amount <= 0:
            raise InvalidAmount("deposit amount must be positive", amount=amount)
        self._holdings[kind] += amount
        return self._record("deposit", kind, amount, epoch, {"reason": reason})

    def withdraw(self, kind: AssetKind, amount: Amount, *, epoch: int, reason: str = "withdraw") -> JournalEntry:
        kind = AssetKind.parse(kind)
        if amount <= 0:
            raise InvalidAmount("withdraw amount must be positive", amount=amount)
        held = self._holdings[kind]
        if amount > held:
            raise InsufficientReserves(asset=kind.value, required=amount, available=held)
        self._holdings[kind] = held - amount
        return self._record("withdraw", kind, amount, epoch, {"reason": reason})

    def record_burn_contribution(self, amount: Amount, *, epoch: int, reason: str = "unstake_penalty") -> Optional[JournalEntry]:
        """Note supply burned on the treasury's behalf; holdings are untouched."""
        if amount <= 0:
            return None
        self._burn_contributions += amount
        return self._record("burn_contribution", AssetKind.PROTOCOL_TOKEN, amount, epoch, {"reason": reason})

    def set_mark(self, kind: AssetKind, price_wad: int, *, epoch: int) -> JournalEntry:
        kind = AssetKind.parse(kind)
        if kind is AssetKind.PROTOCOL_TOKEN:
            raise ValueError("protocol_token is always valued at the reference price")
        if price_wad < 0:
            raise InvalidAmount("mark price must be non-negative", amount=price_wad)
        self._marks[kind] = price_wad
        return self._record("mark", kind, price_wad, epoch, {})

    # --- valuation ---

    def _value_of(self, kind: AssetKind, reference_price_wad: int) -> int:
        price = reference_price_wad if kind is AssetKind.PROTOCOL_TOKEN else self._marks[kind]
        return mul_div(self._holdings[kind], price, WAD)

    def total_value(self, reference_price_wad: int) -> int:
        return sum(self._value_of(k, reference_price_wad) for k in AssetKind)

    def liquid_value(self, reference_price_wad: int) -> int:
        return sum(self._value_of(k, reference_price_wad) for k in AssetKind if k.liquid)

    def backing_ratio_bps(self, circulating: Amount, reference_price_wad: int) -> int:
        """
        treasury value / (circulating * reference price), in bps.

        With nothing in circulation the ratio is unbounded (INFINITE) when the
        treasury holds value and 0 when it is empty.
        """
        value = self.total_value(reference_price_wad)
        denom = circulating * reference_price_wad
        if denom <= 0:
            return BACKING_RATIO_INFINITE if value > 0 else 0
        return max(0, mul_div(value * BPS_DEN, WAD, denom))

    def runway_days(self, burn_rate_per_day: Amount, reference_price_wad: int) -> int:
        """Whole days of liquid value at `burn_rate_per_day`; RUNWAY_INFINITE when the rate is 0."""
        if burn_rate_per_day < 0:
            raise InvalidAmount("burn rate must be non-negative", amount=burn_rate_per_day)
        if burn_rate_per_day == 0:
            return RUNWAY_INFINITE
        return self.liquid_value(reference_price_wad) // burn_rate_per_day

    # --- internal ---

    def _record(self, op: OpName, kind: AssetKind, amount: Amount, epoch: int, meta: Dict[str, str]) -> JournalEntry:
        self._seq += 1
        je = JournalEntry(
            seq=self._seq,
            op=op,
            asset=kind,
            amount=amount,
            epoch=epoch,
            meta=meta,
            holding_after=self._holdings[kind],
        )
        self._journal.append(je)
        return je


__all__ = [
    "TreasuryLedger",
    "JournalEntry",
    "INFINITE",
    "RUNWAY_INFINITE",
    "BACKING_RATIO_INFINITE",
]
