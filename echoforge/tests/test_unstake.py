from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from echoforge.config import UnstakeParams
from echoforge.errors import (CooldownNotElapsed, InsufficientBalance,
                              NoPosition, NoUnstakeRequest)
from echoforge.fixedpoint import apply_bps
from echoforge.staking import (UnstakeBook, UnstakeState, cooldown_days,
                               penalty_bps, quote_penalty)

from .conftest import ALICE, BOB

P = UnstakeParams()

# ------------------------------- curves ----------------------------------------


def test_penalty_at_full_backing_example():
    # d = 2000 of 7000 → 7500 * (2/7)² = 612.24… → 612
    assert penalty_bps(10_000, P) == 612
    assert cooldown_days(10_000, P) == 3


@pytest.mark.parametrize("ratio", [12_000, 15_000, 10**9])
def test_no_penalty_at_or_above_threshold(ratio: int):
    assert penalty_bps(ratio, P) == 0
    assert cooldown_days(ratio, P) == P.min_cooldown_days


@pytest.mark.parametrize("ratio", [5_000, 4_000, 0])
def test_max_penalty_at_or_below_floor(ratio: int):
    assert penalty_bps(ratio, P) == P.max_penalty_bps
    assert cooldown_days(ratio, P) == P.max_cooldown_days


@given(a=st.integers(min_value=0, max_value=20_000), b=st.integers(min_value=0, max_value=20_000))
def test_penalty_and_cooldown_never_rise_with_backing(a: int, b: int):
    lo, hi = min(a, b), max(a, b)
    assert penalty_bps(hi, P) <= penalty_bps(lo, P)
    assert cooldown_days(hi, P) <= cooldown_days(lo, P)
    assert 0 <= penalty_bps(lo, P) <= P.max_penalty_bps
    assert P.min_cooldown_days <= cooldown_days(lo, P) <= P.max_cooldown_days


def test_quote_penalty_conserves_amount():
    bps, penalty, net = quote_penalty(1_000_000, 10_000, P)
    assert bps == 612
    assert penalty == 61_200
    assert penalty + net == 1_000_000


# ------------------------------- request table ---------------------------------


def test_book_lifecycle():
    book = UnstakeBook()
    assert book.state(ALICE, 0) is UnstakeState.NONE
    req = book.open(ALICE, 1000, epoch=5, backing_ratio_bps=10_000, params=P, epochs_per_day=4)
    assert req.cooldown_end_epoch == 5 + 3 * 4
    assert book.state(ALICE, 16) is UnstakeState.REQUESTED
    assert book.state(ALICE, 17) is UnstakeState.COOLDOWN_ELAPSED
    with pytest.raises(CooldownNotElapsed) as ei:
        book.ready(ALICE, 16)
    assert ei.value.retryable
    assert book.ready(ALICE, 17) == req
    assert book.close(ALICE) == req
    assert len(book) == 0


def test_cancel_without_request():
    with pytest.raises(NoUnstakeRequest):
        UnstakeBook().cancel(BOB)


def test_request_serialization():
    book = UnstakeBook()
    book.open(ALICE, 77, epoch=1, backing_ratio_bps=9_000, params=P, epochs_per_day=1)
    again = UnstakeBook.load(book.dump())
    assert again.get(ALICE) == book.get(ALICE)


# ------------------------------- engine flow -----------------------------------


@pytest.fixture
def staked(engine, fund, set_backing):
    tokens = fund(ALICE, 10)
    engine.stake(ALICE, tokens)
    set_backing(10_000)
    return tokens


def test_request_snapshots_terms(engine, staked, set_backing):
    amount = staked // 100
    req = engine.request_unstake(ALICE, amount)

    assert req.penalty_bps == 612
    assert req.cooldown_days == 3
    assert req.cooldown_end_epoch == 3
    assert req.backing_ratio_bps == 10_000
    assert engine.get_staked_balance(ALICE) == staked - amount
    assert engine.get_unstake_state(ALICE) is UnstakeState.REQUESTED

    # a later change in backing does not alter the stored request
    set_backing(13_000)
    assert engine.get_unstake_request(ALICE).penalty_bps == 612
    assert engine.calculate_unstake_penalty(amount).penalty_bps == 0


def test_execute_before_cooldown_is_retryable(engine, staked):
    engine.request_unstake(ALICE, staked // 100)
    engine.rebase_tick()
    with pytest.raises(CooldownNotElapsed) as ei:
        engine.execute_unstake(ALICE)
    assert ei.value.retryable
    assert ei.value.details["cooldown_end_epoch"] == 3
    assert engine.get_unstake_request(ALICE) is not None


def test_execute_burns_penalty_and_pays_net(engine, staked):
    amount = staked // 100
    engine.request_unstake(ALICE, amount)
    for _ in range(3):
        engine.rebase_tick()
    assert engine.get_unstake_state(ALICE) is UnstakeState.COOLDOWN_ELAPSED
    staked_before = engine.total_staked()
    circulating_before = engine.total_supply()

    receipt = engine.execute_unstake(ALICE)

    penalty = apply_bps(amount, 612)
    assert receipt.penalty == penalty
    assert receipt.net == amount - penalty
    assert engine.balance_of(ALICE) == receipt.net
    assert engine.total_staked() == staked_before - amount
    assert engine.total_supply() == circulating_before - penalty
    assert engine.total_burned() == penalty
    assert engine.get_unstake_state(ALICE) is UnstakeState.NONE
    assert engine.journal(1)[0].op == "burn_contribution"


def test_supersede_replaces_request(engine, staked):
    engine.request_unstake(ALICE, 100)
    engine.request_unstake(ALICE, 40)
    pos = engine.get_position(ALICE)
    assert pos.locked == 40
    assert pos.principal == staked - 40
    assert engine.get_unstake_request(ALICE).amount == 40


def test_cancel_restores_principal_and_rerequest_is_identical(engine, staked):
    first = engine.request_unstake(ALICE, 500)
    cancelled = engine.cancel_unstake(ALICE)
    assert cancelled == first
    assert engine.get_staked_balance(ALICE) == staked
    assert engine.get_unstake_state(ALICE) is UnstakeState.NONE
    assert engine.request_unstake(ALICE, 500) == first


def test_missing_request_or_position(engine, staked):
    with pytest.raises(NoUnstakeRequest):
        engine.execute_unstake(ALICE)
    with pytest.raises(NoUnstakeRequest):
        engine.cancel_unstake(ALICE)
    with pytest.raises(NoPosition):
        engine.request_unstake(BOB, 1)


def test_request_more_than_staked(engine, staked):
    with pytest.raises(InsufficientBalance):
        engine.request_unstake(ALICE, staked + 1)
