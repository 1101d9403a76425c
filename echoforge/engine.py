from __future__ import annotations

"""
EchoForge protocol engine.

`LedgerState` is the whole compound ledger: treasury, supply counters, curve
position, stake book, referral forest, unstake requests, redemption window,
account balances and the epoch. Nothing lives in module globals; an engine is
constructed around an injected state (or a fresh one) and a config.

`ProtocolEngine` is the single writer. Every command runs inside
`_transaction()`:

    acquire lock → deep-copy snapshot → mutate → check invariants → commit

and on any exception the snapshot is put back before the exception leaves the
engine, so a failed command is never observable. Queries take the same lock
and therefore always see a committed state.

Ledger invariants (checked after every command and on load):
  • supply.burned <= supply.total_minted and 0 <= supply.staked <= circulating
  • staked supply == Σ live stake balances (principal growth + pending + locked)
  • unstaked supply == Σ account balances + treasury-held protocol tokens
  • curve sold <= cap, and every outstanding request's amount == its locked amount

Token amounts are WAD integers throughout; the RPC and CLI layers do the
string conversion at the edge.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from . import metrics
from .bonding.curve import BondingCurve, BuyQuote, CurveState
from .config import EchoForgeConfig
from .errors import (CooldownNotElapsed, EchoForgeError, InsufficientBalance,
                     InvalidAmount, InvariantViolation, QueueCapacityExceeded,
                     UnstakeExceedsDailyCapacity)
from .fixedpoint import ratio_bps
from .referral.distributor import ReferralCredit, ReferralForest
from .staking.rebase import (RebaseResult, StakePosition, StakingBook,
                             calculate_apy_bps, tick_rate_wad)
from .staking.redemption import (RedemptionWindow, day_for_epoch, roll,
                                 try_reserve)
from .staking.unstake import (UnstakeBook, UnstakeRequest, UnstakeState,
                              cooldown_days, quote_penalty)
from .supply import SupplyState
from .treasury.ledger import JournalEntry, TreasuryLedger
from .treasury.tax import TransferQuote, quote_transfer
from .types import Address, AssetKind, normalize_address, optional_sponsor

log = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


# ------------------------------------------------------------------------------
# Ledger state
# ------------------------------------------------------------------------------


@dataclass
class LedgerState:
    treasury: TreasuryLedger = field(default_factory=TreasuryLedger)
    supply: SupplyState = field(default_factory=SupplyState)
    curve: CurveState = field(default_factory=CurveState)
    staking: StakingBook = field(default_factory=StakingBook)
    referrals: ReferralForest = field(default_factory=ReferralForest)
    unstakes: UnstakeBook = field(default_factory=UnstakeBook)
    window: RedemptionWindow = field(default_factory=RedemptionWindow)
    balances: Dict[Address, int] = field(default_factory=dict)
    epoch: int = 0
    reference_price_wad: Optional[int] = None

    def balance(self, account: Address) -> int:
        return self.balances.get(account, 0)

    def credit(self, account: Address, amount: int) -> None:
        if amount:
            self.balances[account] = self.balances.get(account, 0) + amount

    def debit(self, account: Address, amount: int) -> None:
        held = self.balances.get(account, 0)
        if amount > held:
            raise InsufficientBalance(account=account, required=amount, available=held)
        if held == amount:
            self.balances.pop(account, None)
        else:
            self.balances[account] = held - amount

    def dump(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "epoch": self.epoch,
            "reference_price_wad": None if self.reference_price_wad is None else str(self.reference_price_wad),
            "treasury": self.treasury.dump(),
            "supply": self.supply.to_dict(),
            "curve": self.curve.to_dict(),
            "staking": self.staking.dump(),
            "referrals": self.referrals.dump(),
            "unstakes": self.unstakes.dump(),
            "window": self.window.to_dict(),
            "balances": {a: str(v) for a, v in sorted(self.balances.items())},
        }

    @classmethod
    def load(cls, data: Mapping[str, Any]) -> "LedgerState":
        version = int(data.get("version", SNAPSHOT_VERSION))
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {version}")
        ref = data.get("reference_price_wad")
        return cls(
            treasury=TreasuryLedger.load(data.get("treasury", {})),
            supply=SupplyState.from_dict(data.get("supply", {})),
            curve=CurveState.from_dict(data.get("curve", {})),
            staking=StakingBook.load(data.get("staking", {})),
            referrals=ReferralForest.load(data.get("referrals", [])),
            unstakes=UnstakeBook.load(data.get("unstakes", {})),
            window=RedemptionWindow.from_dict(data.get("window", {})),
            balances={Address(a): int(v) for a, v in data.get("balances", {}).items() if int(v) != 0},
            epoch=int(data.get("epoch", 0)),
            reference_price_wad=None if ref is None else int(ref),
        )


def check_invariants(st: LedgerState, cap: int) -> None:
    """Raise InvariantViolation if the compound ledger is inconsistent."""
    st.supply.check()

    staked_books = st.staking.total_balance()
    if staked_books != st.supply.staked:
        raise InvariantViolation(
            "stake book does not match staked supply",
            details={"book": str(staked_books), "staked": str(st.supply.staked)},
        )

    if any(v < 0 for v in st.balances.values()):
        raise InvariantViolation("negative account balance")
    held = sum(st.balances.values()) + st.treasury.holding(AssetKind.PROTOCOL_TOKEN)
    if held != st.supply.unstaked:
        raise InvariantViolation(
            "account balances do not match unstaked supply",
            details={"held": str(held), "unstaked": str(st.supply.unstaked)},
        )

    if not (0 <= st.curve.sold <= cap):
        raise InvariantViolation("curve sold outside [0, cap]", details={"sold": str(st.curve.sold)})

    for req in st.unstakes:
        pos = st.staking.get(req.account)
        if pos is None or pos.locked != req.amount:
            raise InvariantViolation(
                "unstake request does not match locked stake",
                details={"account": req.account, "amount": str(req.amount)},
            )
    locked = st.staking.total_locked()
    if locked != st.unstakes.locked_total():
        raise InvariantViolation("locked stake without an unstake request", details={"locked": str(locked)})


# ------------------------------------------------------------------------------
# Receipts
# ------------------------------------------------------------------------------


@dataclass(frozen=True)
class StakeReceipt:
    account: Address
    amount: int
    principal: int
    sponsor: Optional[Address]
    linked: bool
    credits: Tuple[ReferralCredit, ...] = ()

    @property
    def referral_total(self) -> int:
        return sum(c.amount for c in self.credits)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "amount": str(self.amount),
            "principal": str(self.principal),
            "sponsor": self.sponsor,
            "linked": self.linked,
            "credits": [c.to_dict() for c in self.credits],
            "referral_total": str(self.referral_total),
        }


@dataclass(frozen=True)
class UnstakeReceipt:
    account: Address
    amount: int
    penalty_bps: int
    penalty: int
    net: int
    epoch: int
    window_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "amount": str(self.amount),
            "penalty_bps": self.penalty_bps,
            "penalty": str(self.penalty),
            "net": str(self.net),
            "epoch": self.epoch,
            "window_remaining": str(self.window_remaining),
        }


@dataclass(frozen=True)
class PenaltyQuote:
    amount: int
    backing_ratio_bps: int
    penalty_bps: int
    penalty: int
    net: int
    cooldown_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "backing_ratio_bps": str(self.backing_ratio_bps),
            "penalty_bps": self.penalty_bps,
            "penalty": str(self.penalty),
            "net": str(self.net),
            "cooldown_days": self.cooldown_days,
        }


@dataclass(frozen=True)
class ReferralData:
    account: Address
    sponsor: Optional[Address]
    direct_referrals: Tuple[Address, ...]
    total_referral_volume: int
    total_earned: int

    @property
    def direct_referral_count(self) -> int:
        return len(self.direct_referrals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "sponsor": self.sponsor,
            "direct_referrals": list(self.direct_referrals),
            "direct_referral_count": self.direct_referral_count,
            "total_referral_volume": str(self.total_referral_volume),
            "total_earned": str(self.total_earned),
        }


# ------------------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------------------


class ProtocolEngine:
    """
    Command / query surface over one LedgerState.

    Accounts are passed as 0x-prefixed hex strings and normalised on entry.
    """

    def __init__(self, config: Optional[EchoForgeConfig] = None, state: Optional[LedgerState] = None) -> None:
        self.config = config or EchoForgeConfig()
        self.config.validate()
        self.curve = BondingCurve(self.config.curve)
        self._state = state if state is not None else LedgerState()
        self._lock = threading.RLock()
        self._commit_listeners: List[Callable[[str], None]] = []
        if state is not None:
            check_invariants(self._state, self.curve.cap)

    # --- persistence ---

    def dump(self) -> Dict[str, Any]:
        with self._lock:
            return self._state.dump()

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any], config: Optional[EchoForgeConfig] = None) -> "ProtocolEngine":
        return cls(config=config, state=LedgerState.load(data))

    def add_commit_listener(self, fn: Callable[[str], None]) -> None:
        """
        Call `fn(op)` after every committed command, still under the engine lock,
        so the state it observes is exactly the one just committed. Errors raised
        by `fn` propagate to the command's caller; the commit itself stands.
        """
        self._commit_listeners.append(fn)

    # --- transaction plumbing ---

    @contextmanager
    def _transaction(self, op: str) -> Iterator[LedgerState]:
        with self._lock, metrics.timed(op):
            journal_mark = self._state.treasury.journal_length()
            snapshot = copy.deepcopy(self._state)
            try:
                yield self._state
                check_invariants(self._state, self.curve.cap)
            except EchoForgeError as e:
                self._rollback(snapshot, journal_mark)
                metrics.record_error(e.code)
                if e.fatal:
                    log.error("%s aborted: %s", op, e, extra={"op": op, "code": e.code})
                elif e.retryable:
                    log.warning("%s refused: %s", op, e, extra={"op": op, "code": e.code})
                else:
                    log.info("%s rejected: %s", op, e, extra={"op": op, "code": e.code})
                raise
            except Exception:
                self._rollback(snapshot, journal_mark)
                log.exception("%s aborted by unexpected error", op, extra={"op": op})
                raise
            self._observe(self._state)
            for fn in self._commit_listeners:
                fn(op)

    def _rollback(self, snapshot: LedgerState, journal_mark: int) -> None:
        # the snapshot shares the append-only treasury journal with the live state
        snapshot.treasury.rewind_journal(journal_mark)
        self._state = snapshot

    def _observe(self, st: LedgerState) -> None:
        metrics.observe_state(
            backing_ratio_bps=self._backing_ratio(st),
            circulating_wad=st.supply.circulating,
            epoch=st.epoch,
        )

    @contextmanager
    def _read(self) -> Iterator[LedgerState]:
        with self._lock:
            yield self._state

    # --- derived values (caller holds the lock) ---

    def _reference_price(self, st: LedgerState) -> int:
        if st.reference_price_wad is not None:
            return st.reference_price_wad
        if self.config.treasury.reference_price_wad is not None:
            return self.config.treasury.reference_price_wad
        return self.curve.price_at(st.curve.sold)

    def _backing_ratio(self, st: LedgerState) -> int:
        return st.treasury.backing_ratio_bps(st.supply.circulating, self._reference_price(st))

    def _staking_ratio(self, st: LedgerState) -> int:
        if st.supply.circulating == 0:
            return 0
        return ratio_bps(st.supply.staked, st.supply.circulating)

    # ==========================================================================
    # Commands
    # ==========================================================================

    def buy_with_payment(self, account: str, payment: int) -> BuyQuote:
        """Spend `payment` (native reference asset) on the curve; tokens go to `account`."""
        buyer = normalize_address(account)
        with self._transaction("buy_with_payment") as st:
            q = self.curve.buy(st.curve, payment)
            st.treasury.deposit(AssetKind.NATIVE, q.payment_used, epoch=st.epoch, reason="curve")
            st.supply.mint(q.tokens)
            st.credit(buyer, q.tokens)
        metrics.record_buy(q.tokens)
        log.info(
            "buy committed",
            extra={"account": buyer, "payment": str(payment), "tokens": str(q.tokens), "refund": str(q.refund)},
        )
        return q

    def stake(self, account: str, amount: int, sponsor: Optional[str] = None) -> StakeReceipt:
        staker = normalize_address(account)
        sponsor_addr = optional_sponsor(sponsor)
        if amount <= 0:
            raise InvalidAmount("stake amount must be positive", amount=amount)
        with self._transaction("stake") as st:
            st.debit(staker, amount)
            st.supply.stake(amount)
            _, linked = st.referrals.ensure_node(staker, sponsor_addr)
            pos = st.staking.add_principal(staker, amount)
            credits = st.referrals.distribute(staker, amount, self.config.referral.rates_bps)
            for c in credits:
                if c.amount > 0:
                    st.supply.mint(c.amount, staked=True)
                    st.staking.add_principal(c.account, c.amount)
            receipt = StakeReceipt(
                account=staker,
                amount=amount,
                principal=pos.principal,
                sponsor=st.referrals.sponsor_of(staker),
                linked=linked,
                credits=tuple(credits),
            )
        metrics.record_stake(sum(1 for c in credits if c.amount > 0))
        log.info(
            "stake committed",
            extra={"account": staker, "amount": str(amount), "referral_total": str(receipt.referral_total)},
        )
        return receipt

    def request_unstake(self, account: str, amount: int) -> UnstakeRequest:
        """
        Open (or replace) the account's unstake request, snapshotting penalty and
        cooldown at the current backing ratio.
        """
        who = normalize_address(account)
        if amount <= 0:
            raise InvalidAmount("unstake amount must be positive", amount=amount)
        with self._transaction("request_unstake") as st:
            st.staking.require(who)
            prior = st.unstakes.get(who)
            if prior is not None:
                st.unstakes.cancel(who)
                st.staking.unlock(who, prior.amount)
            st.staking.lock(who, amount)
            req = st.unstakes.open(
                who,
                amount,
                epoch=st.epoch,
                backing_ratio_bps=self._backing_ratio(st),
                params=self.config.unstake,
                epochs_per_day=self.config.rebase.epochs_per_day,
            )
        metrics.record_unstake_request()
        log.info(
            "unstake requested",
            extra={
                "account": who,
                "amount": str(amount),
                "penalty_bps": req.penalty_bps,
                "cooldown_end_epoch": req.cooldown_end_epoch,
                "superseded": prior is not None,
            },
        )
        return req

    def execute_unstake(self, account: str) -> UnstakeReceipt:
        who = normalize_address(account)
        try:
            with self._transaction("execute_unstake") as st:
                req = st.unstakes.ready(who, st.epoch)
                day = day_for_epoch(st.epoch, self.config.rebase.epochs_per_day)
                window = roll(
                    st.window,
                    day=day,
                    circulating=st.supply.circulating,
                    daily_bps=self.config.unstake.daily_redemption_bps,
                )
                if req.amount > window.capacity:
                    raise UnstakeExceedsDailyCapacity(requested=req.amount, capacity=window.capacity, window_day=day)
                ok, window = try_reserve(window, req.amount)
                if not ok:
                    raise QueueCapacityExceeded(requested=req.amount, remaining=window.remaining, window_day=day)
                st.window = window
                st.unstakes.close(who)
                st.staking.release_locked(who, req.amount)
                penalty, net = req.penalty, req.net
                if penalty:
                    st.supply.burn(penalty, from_staked=True)
                    st.treasury.record_burn_contribution(penalty, epoch=st.epoch)
                st.supply.unstake(net)
                st.credit(who, net)
                receipt = UnstakeReceipt(
                    account=who,
                    amount=req.amount,
                    penalty_bps=req.penalty_bps,
                    penalty=penalty,
                    net=net,
                    epoch=st.epoch,
                    window_remaining=window.remaining,
                )
        except CooldownNotElapsed:
            metrics.record_unstake("cooldown")
            raise
        except UnstakeExceedsDailyCapacity:
            metrics.record_unstake("oversized")
            raise
        except QueueCapacityExceeded:
            metrics.record_unstake("capacity")
            raise
        metrics.record_unstake("executed")
        log.info(
            "unstake executed",
            extra={"account": who, "amount": str(receipt.amount), "penalty": str(receipt.penalty), "net": str(receipt.net)},
        )
        return receipt

    def cancel_unstake(self, account: str) -> UnstakeRequest:
        who = normalize_address(account)
        with self._transaction("cancel_unstake") as st:
            req = st.unstakes.cancel(who)
            st.staking.unlock(who, req.amount)
        metrics.record_unstake("cancelled")
        log.info("unstake cancelled", extra={"account": who, "amount": str(req.amount)})
        return req

    def claim_rewards(self, account: str) -> int:
        """Realise pending rewards into the account's transferable balance."""
        who = normalize_address(account)
        with self._transaction("claim_rewards") as st:
            st.staking.require(who)
            taken = st.staking.take_pending(who)
            if taken:
                st.supply.unstake(taken)
                st.credit(who, taken)
        log.info("rewards claimed", extra={"account": who, "amount": str(taken)})
        return taken

    def compound(self, account: str) -> int:
        who = normalize_address(account)
        with self._transaction("compound") as st:
            moved = st.staking.compound(who)
        log.info("rewards compounded", extra={"account": who, "amount": str(moved)})
        return moved

    def rebase_tick(self) -> RebaseResult:
        """Advance the epoch by one and grow every stake by the ratio-driven tick rate."""
        with self._transaction("rebase_tick") as st:
            ratio = self._backing_ratio(st)
            apy = calculate_apy_bps(ratio, self.config.rebase)
            rate = tick_rate_wad(apy, self.config.rebase)
            before = st.staking.index
            after, minted = st.staking.apply_tick(rate)
            if minted:
                st.supply.mint(minted, staked=True)
            st.epoch += 1
            result = RebaseResult(
                epoch=st.epoch,
                backing_ratio_bps=ratio,
                apy_bps=apy,
                tick_rate_wad=rate,
                index_before=before,
                index_after=after,
                minted=minted,
            )
        metrics.record_rebase(result.epoch, apy)
        log.info(
            "rebase applied",
            extra={"epoch": result.epoch, "apy_bps": apy, "minted": str(minted)},
        )
        return result

    def transfer(self, sender: str, recipient: str, amount: int) -> TransferQuote:
        """Move unstaked tokens, withholding the adaptive transfer tax for the treasury."""
        src = normalize_address(sender)
        dst = normalize_address(recipient)
        if src == dst:
            raise InvalidAmount("self-transfer is not allowed", amount=amount)
        if amount <= 0:
            raise InvalidAmount("transfer amount must be positive", amount=amount)
        with self._transaction("transfer") as st:
            q = quote_transfer(amount, self._staking_ratio(st), self.config.tax)
            st.debit(src, amount)
            st.credit(dst, q.net)
            if q.tax:
                st.treasury.deposit(AssetKind.PROTOCOL_TOKEN, q.tax, epoch=st.epoch, reason="transfer_tax")
        log.info(
            "transfer committed",
            extra={"account": src, "recipient": dst, "amount": str(amount), "tax": str(q.tax)},
        )
        return q

    def record_treasury_inflow(self, kind: AssetKind | str, amount: int, *, reason: str = "inflow") -> JournalEntry:
        """External value injection (yield accrual, donations)."""
        k = AssetKind.parse(kind)
        if k is AssetKind.PROTOCOL_TOKEN:
            raise InvalidAmount("protocol_token enters the treasury only through transfer tax")
        with self._transaction("record_treasury_inflow") as st:
            entry = st.treasury.deposit(k, amount, epoch=st.epoch, reason=reason)
        log.info("treasury inflow", extra={"asset": k.value, "amount": str(amount), "reason": reason})
        return entry

    def treasury_spend(
        self,
        kind: AssetKind | str,
        amount: int,
        *,
        recipient: Optional[str] = None,
        reason: str = "spend",
    ) -> JournalEntry:
        """
        Draw from the treasury (insurance / governance). Protocol tokens must go
        to a recipient account; other assets leave the engine entirely.
        """
        k = AssetKind.parse(kind)
        to = normalize_address(recipient) if recipient is not None else None
        if k is AssetKind.PROTOCOL_TOKEN and to is None:
            raise InvalidAmount("protocol_token spends need a recipient account", amount=amount)
        with self._transaction("treasury_spend") as st:
            entry = st.treasury.withdraw(k, amount, epoch=st.epoch, reason=reason)
            if k is AssetKind.PROTOCOL_TOKEN and to is not None:
                st.credit(to, amount)
        log.info("treasury spend", extra={"asset": k.value, "amount": str(amount), "reason": reason})
        return entry

    def set_mark(self, kind: AssetKind | str, price_wad: int) -> JournalEntry:
        k = AssetKind.parse(kind)
        if k is AssetKind.PROTOCOL_TOKEN:
            raise InvalidAmount("protocol_token is valued at the reference price; use set_reference_price")
        with self._transaction("set_mark") as st:
            return st.treasury.set_mark(k, price_wad, epoch=st.epoch)

    def set_reference_price(self, price_wad: Optional[int]) -> None:
        """Install an oracle reference price, or clear it (None) to fall back to curve pricing."""
        if price_wad is not None and price_wad <= 0:
            raise InvalidAmount("reference price must be positive", amount=price_wad)
        with self._transaction("set_reference_price") as st:
            st.reference_price_wad = price_wad

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_echo_amount(self, payment: int) -> BuyQuote:
        """Pure purchase preview."""
        with self._read() as st:
            return self.curve.quote(st.curve.sold, payment)

    def get_current_price(self) -> int:
        with self._read() as st:
            return self.curve.price_at(st.curve.sold)

    def get_reference_price(self) -> int:
        with self._read() as st:
            return self._reference_price(st)

    def total_echo_sold(self) -> int:
        with self._read() as st:
            return st.curve.sold

    def get_backing_ratio(self) -> int:
        with self._read() as st:
            return self._backing_ratio(st)

    def get_runway(self) -> int:
        with self._read() as st:
            return st.treasury.runway_days(self.config.treasury.burn_rate_per_day_wad, self._reference_price(st))

    def get_total_value(self) -> int:
        with self._read() as st:
            return st.treasury.total_value(self._reference_price(st))

    def get_liquid_value(self) -> int:
        with self._read() as st:
            return st.treasury.liquid_value(self._reference_price(st))

    def should_execute_buyback(self) -> bool:
        with self._read() as st:
            ref = self._reference_price(st)
            return (
                self._backing_ratio(st) < self.config.treasury.buyback_trigger_bps
                and st.treasury.liquid_value(ref) > 0
            )

    def treasury_holdings(self) -> Dict[AssetKind, int]:
        with self._read() as st:
            return st.treasury.holdings()

    def journal(self, limit: Optional[int] = None) -> List[JournalEntry]:
        with self._read() as st:
            return list(st.treasury.journal(limit))

    def total_burned(self) -> int:
        with self._read() as st:
            return st.supply.burned

    def total_supply(self) -> int:
        """Circulating supply (minted minus burned)."""
        with self._read() as st:
            return st.supply.circulating

    def total_staked(self) -> int:
        with self._read() as st:
            return st.supply.staked

    def get_staking_ratio(self) -> int:
        with self._read() as st:
            return self._staking_ratio(st)

    def get_current_tax_rate(self) -> int:
        with self._read() as st:
            return quote_transfer(0, self._staking_ratio(st), self.config.tax).rate_bps

    def calculate_dynamic_apy(self, backing_ratio_bps: Optional[int] = None) -> int:
        """APY (bps) at the given backing ratio, or at the current one."""
        if backing_ratio_bps is None:
            backing_ratio_bps = self.get_backing_ratio()
        return calculate_apy_bps(backing_ratio_bps, self.config.rebase)

    def current_epoch(self) -> int:
        with self._read() as st:
            return st.epoch

    def next_rebase_epoch(self) -> int:
        with self._read() as st:
            return st.epoch + 1

    def balance_of(self, account: str) -> int:
        who = normalize_address(account)
        with self._read() as st:
            return st.balance(who)

    def get_position(self, account: str) -> Optional[StakePosition]:
        who = normalize_address(account)
        with self._read() as st:
            pos = st.staking.get(who)
            return None if pos is None else copy.copy(pos)

    def get_staked_balance(self, account: str) -> int:
        """Active (rebasing) principal; amounts locked by an unstake request are excluded."""
        who = normalize_address(account)
        with self._read() as st:
            pos = st.staking.get(who)
            return 0 if pos is None else pos.principal

    def get_pending_rewards(self, account: str) -> int:
        who = normalize_address(account)
        with self._read() as st:
            return st.staking.pending_rewards(who)

    def get_rebased_balance(self, account: str) -> int:
        who = normalize_address(account)
        with self._read() as st:
            return st.staking.rebased_balance(who)

    def calculate_unstake_penalty(self, amount: int) -> PenaltyQuote:
        """Penalty and cooldown an unstake of `amount` would snapshot right now."""
        if amount < 0:
            raise InvalidAmount("amount must be non-negative", amount=amount)
        with self._read() as st:
            ratio = self._backing_ratio(st)
        bps, penalty, net = quote_penalty(amount, ratio, self.config.unstake)
        return PenaltyQuote(
            amount=amount,
            backing_ratio_bps=ratio,
            penalty_bps=bps,
            penalty=penalty,
            net=net,
            cooldown_days=cooldown_days(ratio, self.config.unstake),
        )

    def get_unstake_request(self, account: str) -> Optional[UnstakeRequest]:
        who = normalize_address(account)
        with self._read() as st:
            return st.unstakes.get(who)

    def get_unstake_state(self, account: str) -> UnstakeState:
        who = normalize_address(account)
        with self._read() as st:
            return st.unstakes.state(who, st.epoch)

    def get_redemption_window(self) -> RedemptionWindow:
        """The window an execution would draw from right now (rolled, not stored)."""
        with self._read() as st:
            day = day_for_epoch(st.epoch, self.config.rebase.epochs_per_day)
            return roll(
                st.window,
                day=day,
                circulating=st.supply.circulating,
                daily_bps=self.config.unstake.daily_redemption_bps,
            )

    def get_referral_data(self, account: str) -> ReferralData:
        who = normalize_address(account)
        with self._read() as st:
            node = st.referrals.node(who)
            if node is None:
                return ReferralData(who, None, (), 0, 0)
            return ReferralData(
                account=who,
                sponsor=st.referrals.sponsor_of(who),
                direct_referrals=tuple(node.direct_referrals),
                total_referral_volume=node.total_referral_volume,
                total_earned=node.total_earned,
            )

    def get_direct_referrals(self, account: str) -> List[Address]:
        return list(self.get_referral_data(account).direct_referrals)

    def has_sponsor(self, account: str) -> bool:
        return self.get_referral_data(account).sponsor is not None

    def get_referral_chain(self, account: str) -> List[Address]:
        who = normalize_address(account)
        with self._read() as st:
            return [n.account for n in st.referrals.chain(who, self.config.referral.max_depth)]

    def status(self) -> Dict[str, Any]:
        """One consistent snapshot of the headline numbers (JSON-safe)."""
        with self._read() as st:
            ref = self._reference_price(st)
            ratio = self._backing_ratio(st)
            return {
                "epoch": st.epoch,
                "current_price_wad": str(self.curve.price_at(st.curve.sold)),
                "reference_price_wad": str(ref),
                "total_echo_sold": str(st.curve.sold),
                "cap_supply": str(self.curve.cap),
                "circulating": str(st.supply.circulating),
                "staked": str(st.supply.staked),
                "burned": str(st.supply.burned),
                "staking_ratio_bps": self._staking_ratio(st),
                "backing_ratio_bps": str(ratio),
                "apy_bps": calculate_apy_bps(ratio, self.config.rebase),
                "total_value": str(st.treasury.total_value(ref)),
                "liquid_value": str(st.treasury.liquid_value(ref)),
                "runway_days": str(st.treasury.runway_days(self.config.treasury.burn_rate_per_day_wad, ref)),
                "tax_rate_bps": quote_transfer(0, self._staking_ratio(st), self.config.tax).rate_bps,
                "holdings": {k.value: str(v) for k, v in st.treasury.holdings().items()},
                "index": str(st.staking.index),
                "stakers": len(st.staking),
                "pending_unstakes": len(st.unstakes),
            }


__all__ = [
    "SNAPSHOT_VERSION",
    "LedgerState",
    "check_invariants",
    "StakeReceipt",
    "UnstakeReceipt",
    "PenaltyQuote",
    "ReferralData",
    "ProtocolEngine",
]
