from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from echoforge.config import MAX_REFERRAL_TOTAL_BPS, ReferralParams
from echoforge.fixedpoint import BPS_DEN, WAD
from echoforge.referral import ReferralForest

from .conftest import ALICE, BOB, CAROL, DAVE

RATES = ReferralParams().rates_bps


def _addr(i: int) -> str:
    return "0x%040x" % (i + 1)


def _linear_chain(n: int) -> ReferralForest:
    """addr(0) <- addr(1) <- ... <- addr(n-1), each sponsored by the previous."""
    forest = ReferralForest()
    forest.ensure_node(_addr(0), None)
    for i in range(1, n):
        forest.ensure_node(_addr(i), _addr(i - 1))
    return forest


# ------------------------------- forest ----------------------------------------


def test_default_schedule_totals_fourteen_percent():
    assert sum(RATES) == MAX_REFERRAL_TOTAL_BPS == 1_400
    assert len(RATES) == 10


def test_distribution_walks_ten_levels_at_most():
    forest = _linear_chain(12)
    leaf = _addr(11)
    credits = forest.distribute(leaf, 10_000 * WAD, RATES)

    assert [c.depth for c in credits] == list(range(1, 11))
    assert [c.account for c in credits] == [_addr(10 - i) for i in range(10)]
    assert credits[0].amount == 400 * WAD
    assert credits[1].amount == 200 * WAD
    assert sum(c.amount for c in credits) == 1_400 * WAD
    # the root is eleven levels up and gets nothing
    assert forest.node(_addr(0)).total_earned == 0
    assert forest.node(_addr(1)).total_referral_volume == 10_000 * WAD


@settings(max_examples=50, deadline=None)
@given(amount=st.integers(min_value=0, max_value=10**30), depth=st.integers(min_value=1, max_value=13))
def test_credits_never_exceed_fourteen_percent(amount: int, depth: int):
    forest = _linear_chain(depth)
    credits = forest.distribute(_addr(depth - 1), amount, RATES)
    assert len(credits) == min(depth - 1, len(RATES))
    assert sum(c.amount for c in credits) * BPS_DEN <= amount * MAX_REFERRAL_TOTAL_BPS


def test_short_chain_stops_at_root():
    forest = _linear_chain(3)
    credits = forest.distribute(_addr(2), 1000, RATES)
    assert [c.amount for c in credits] == [40, 20]


def test_sponsor_binds_once():
    forest = ReferralForest()
    forest.ensure_node(ALICE, None)
    forest.ensure_node(BOB, None)
    _, linked = forest.ensure_node(CAROL, ALICE)
    assert linked
    _, linked_again = forest.ensure_node(CAROL, BOB)
    assert not linked_again
    assert forest.sponsor_of(CAROL) == ALICE
    assert forest.node(ALICE).direct_referrals == [CAROL]
    assert forest.node(BOB).direct_referrals == []


def test_unknown_or_self_sponsor_is_ignored():
    forest = ReferralForest()
    _, linked = forest.ensure_node(ALICE, ALICE)
    assert not linked
    _, linked = forest.ensure_node(BOB, DAVE)  # DAVE has no node
    assert not linked
    assert forest.sponsor_of(BOB) is None


def test_load_rejects_forward_parent():
    forest = _linear_chain(3)
    data = forest.dump()
    assert ReferralForest.load(data).dump() == data
    data[0]["parent"] = 2
    with pytest.raises(ValueError):
        ReferralForest.load(data)


# ------------------------------- engine ----------------------------------------


def test_referral_rewards_are_minted_into_sponsor_stakes(engine, fund):
    a = fund(ALICE, 5)
    b = fund(BOB, 5)
    c = fund(CAROL, 5)
    engine.stake(ALICE, a)
    engine.stake(BOB, b, sponsor=ALICE)
    staked_before = engine.total_staked()

    receipt = engine.stake(CAROL, c, sponsor=BOB)

    assert receipt.linked and receipt.sponsor == BOB
    assert [(cr.account, cr.rate_bps) for cr in receipt.credits] == [(BOB, 400), (ALICE, 200)]
    bob_cut = c * 400 // 10_000
    alice_cut = c * 200 // 10_000
    assert engine.get_staked_balance(BOB) == b + bob_cut
    assert engine.get_staked_balance(ALICE) == a + b * 400 // 10_000 + alice_cut
    assert engine.total_staked() == staked_before + c + bob_cut + alice_cut

    data = engine.get_referral_data(BOB)
    assert data.sponsor == ALICE
    assert data.direct_referrals == (CAROL,)
    assert data.total_referral_volume == c
    assert data.total_earned == bob_cut
    assert engine.get_referral_chain(CAROL) == [BOB, ALICE]
    assert engine.has_sponsor(CAROL) and not engine.has_sponsor(ALICE)


def test_self_sponsor_through_engine(engine, fund):
    a = fund(ALICE, 5)
    receipt = engine.stake(ALICE, a, sponsor=ALICE)
    assert not receipt.linked
    assert receipt.credits == ()
    assert engine.get_direct_referrals(ALICE) == []


def test_zero_address_sponsor_means_none(engine, fund):
    a = fund(ALICE, 5)
    receipt = engine.stake(ALICE, a, sponsor="0x" + "0" * 40)
    assert receipt.sponsor is None
