from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from echoforge.config import RebaseParams
from echoforge.errors import InsufficientBalance, NoPosition
from echoforge.fixedpoint import RAY, WAD, pow_wad
from echoforge.staking import StakingBook, calculate_apy_bps, tick_rate_wad

from .conftest import ALICE, BOB

A = ALICE
B = BOB

# ------------------------------- APY schedule ----------------------------------


@pytest.mark.parametrize(
    "ratio,expected",
    [
        (0, 0),
        (7_999, 0),
        (8_000, 320_000),        # 5000% * 0.64
        (10_000, 500_000),
        (20_000, 2_000_000),
        (30_000, 3_000_000),     # capped
        (100_000, 3_000_000),
    ],
)
def test_apy_schedule(ratio: int, expected: int):
    assert calculate_apy_bps(ratio, RebaseParams()) == expected


def test_tick_rate_compounds_to_apy():
    p = RebaseParams()
    rate = tick_rate_wad(500_000, p)
    assert rate > 0
    # (1 + rate)^365 <= 1 + 50 < (1 + rate + 1)^365
    assert pow_wad(WAD + rate, p.ticks_per_year) <= 51 * WAD < pow_wad(WAD + rate + 1, p.ticks_per_year)
    assert tick_rate_wad(0, p) == 0


def test_tick_rate_shrinks_with_more_epochs_per_day():
    daily = tick_rate_wad(500_000, RebaseParams(epochs_per_day=1))
    hourly = tick_rate_wad(500_000, RebaseParams(epochs_per_day=24))
    assert 0 < hourly < daily


# ------------------------------- stake book ------------------------------------


def test_tick_grows_balances_and_reports_exact_mint():
    book = StakingBook()
    book.add_principal(A, 1000 * WAD)
    book.add_principal(B, 333 * WAD + 7)
    before = book.total_balance()

    index, minted = book.apply_tick(WAD // 100)

    assert index == RAY + RAY // 100
    assert book.total_balance() == before + minted
    assert book.rebased_balance(A) == 1010 * WAD
    assert book.pending_rewards(A) == 10 * WAD


def test_settle_preserves_balance():
    book = StakingBook()
    book.add_principal(A, 500 * WAD)
    book.apply_tick(WAD // 50)
    bal = book.rebased_balance(A)
    book.settle(A)
    assert book.rebased_balance(A) == bal
    assert book.get(A).index_at_touch == book.index
    assert book.get(A).pending_rewards == 10 * WAD


def test_compound_moves_pending_into_principal():
    book = StakingBook()
    book.add_principal(A, 100 * WAD)
    book.apply_tick(WAD // 10)
    moved = book.compound(A)
    pos = book.get(A)
    assert moved == 10 * WAD
    assert pos.principal == 110 * WAD and pos.pending_rewards == 0
    book.apply_tick(WAD // 10)
    assert book.rebased_balance(A) == 121 * WAD


def test_release_locked_prunes_empty_position():
    book = StakingBook()
    book.add_principal(A, 10 * WAD)
    book.lock(A, 10 * WAD)
    book.release_locked(A, 10 * WAD)
    assert A not in book
    with pytest.raises(NoPosition):
        book.require(A)


def test_locked_amount_does_not_rebase():
    book = StakingBook()
    book.add_principal(A, 100 * WAD)
    book.lock(A, 40 * WAD)
    _, minted = book.apply_tick(WAD // 10)
    assert minted == 6 * WAD
    assert book.total_balance() == 106 * WAD
    assert book.total_locked() == 40 * WAD


def test_lock_more_than_principal_refused():
    book = StakingBook()
    book.add_principal(A, WAD)
    with pytest.raises(InsufficientBalance) as ei:
        book.lock(A, 2 * WAD)
    assert ei.value.details["bucket"] == "staked"


def test_book_dump_load():
    book = StakingBook()
    book.add_principal(A, 3 * WAD)
    book.apply_tick(WAD // 3)
    again = StakingBook.load(book.dump())
    assert again.dump() == book.dump()
    assert again.rebased_balance(A) == book.rebased_balance(A)


@settings(max_examples=40, deadline=None)
@given(
    principals=st.lists(st.integers(min_value=1, max_value=10**24), min_size=1, max_size=6),
    rates=st.lists(st.integers(min_value=0, max_value=WAD // 20), min_size=1, max_size=5),
)
def test_mint_matches_balance_growth(principals, rates):
    book = StakingBook()
    total = 0
    for i, p in enumerate(principals):
        book.add_principal("0x%040x" % (i + 1), p)
        total += p
    for r in rates:
        _, minted = book.apply_tick(r)
        total += minted
        assert minted >= 0
    assert book.total_balance() == total


# ------------------------------- engine ----------------------------------------


def test_engine_rebase_mints_into_staked_supply(engine, fund, set_backing):
    tokens = fund(ALICE, 10)
    engine.stake(ALICE, tokens)
    assert set_backing(10_000) == 10_000

    res = engine.rebase_tick()

    assert res.epoch == 1 == engine.current_epoch()
    assert res.apy_bps == 500_000
    assert res.minted > 0
    assert engine.total_staked() == tokens + res.minted
    assert engine.get_pending_rewards(ALICE) == res.minted
    assert engine.get_rebased_balance(ALICE) == tokens + res.minted


def test_engine_rebase_pauses_below_min_backing(engine, fund, set_backing):
    tokens = fund(ALICE, 10)
    engine.stake(ALICE, tokens)
    set_backing(7_000)
    res = engine.rebase_tick()
    assert res.apy_bps == 0 and res.minted == 0
    assert engine.total_staked() == tokens
    assert engine.current_epoch() == 1


def test_claim_and_compound(engine, fund, set_backing):
    tokens = fund(ALICE, 10)
    engine.stake(ALICE, tokens)
    set_backing(10_000)
    first = engine.rebase_tick().minted

    assert engine.compound(ALICE) == first
    assert engine.get_staked_balance(ALICE) == tokens + first
    second = engine.rebase_tick().minted
    assert engine.claim_rewards(ALICE) == second
    assert engine.balance_of(ALICE) == second
    assert engine.get_pending_rewards(ALICE) == 0
