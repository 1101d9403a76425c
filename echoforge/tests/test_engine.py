from __future__ import annotations

import json
import threading

import pytest

import echoforge.engine as engine_mod
from echoforge.engine import LedgerState, ProtocolEngine, check_invariants
from echoforge.errors import (InsufficientBalance, InsufficientReserves,
                              InvalidAddress, InvalidAmount,
                              InvariantViolation, NoUnstakeRequest)
from echoforge.fixedpoint import WAD
from echoforge.supply import SupplyState
from echoforge.treasury import RUNWAY_INFINITE
from echoforge.types import AssetKind

from .conftest import ALICE, BOB, CAROL

# ------------------------------- atomicity -------------------------------------


def test_failed_supersede_restores_prior_request(engine, fund):
    tokens = fund(ALICE, 10)
    engine.stake(ALICE, tokens)
    engine.request_unstake(ALICE, 100)
    before = engine.dump()

    # prior request is cancelled and unlocked before the new lock fails
    with pytest.raises(InsufficientBalance):
        engine.request_unstake(ALICE, tokens + 1)

    assert engine.dump() == before
    assert engine.get_unstake_request(ALICE).amount == 100


def test_failed_stake_leaves_no_trace(engine, fund):
    tokens = fund(ALICE, 1)
    before = engine.dump()
    with pytest.raises(InsufficientBalance):
        engine.stake(ALICE, tokens + 1, sponsor=BOB)
    assert engine.dump() == before
    assert engine.get_referral_data(ALICE).sponsor is None


def test_invariant_breach_rolls_back(engine, fund, monkeypatch):
    fund(ALICE, 1)
    before = engine.dump()

    def broken_mint(self, amount, *, staked=False):
        raise InvariantViolation("forced")

    monkeypatch.setattr(SupplyState, "mint", broken_mint)
    with pytest.raises(InvariantViolation) as ei:
        engine.buy_with_payment(BOB, WAD)
    assert ei.value.fatal
    monkeypatch.undo()
    assert engine.dump() == before


def test_commit_listeners_see_only_committed_commands(engine):
    ops = []
    engine.add_commit_listener(lambda op: ops.append((op, engine.total_echo_sold())))

    q = engine.buy_with_payment(ALICE, WAD)
    with pytest.raises(NoUnstakeRequest):
        engine.cancel_unstake(ALICE)
    engine.rebase_tick()

    assert ops == [("buy_with_payment", q.sold_after), ("rebase_tick", q.sold_after)]


def test_rollback_rewinds_treasury_journal(engine, monkeypatch):
    engine.record_treasury_inflow("stable", WAD, reason="kept")
    before = engine.dump()

    def failing_check(st, cap):
        raise InvariantViolation("forced")

    monkeypatch.setattr(engine_mod, "check_invariants", failing_check)
    with pytest.raises(InvariantViolation):
        engine.record_treasury_inflow("stable", WAD, reason="dropped")
    monkeypatch.undo()

    assert engine.dump() == before
    assert [e.meta["reason"] for e in engine.journal()] == ["kept"]
    assert engine.record_treasury_inflow("stable", WAD).seq == 2


def test_addresses_are_validated_and_normalised(engine, fund):
    with pytest.raises(InvalidAddress):
        engine.buy_with_payment("alice", WAD)
    fund(ALICE.upper().replace("0X", "0x"), 1)
    assert engine.balance_of(ALICE) > 0


@pytest.mark.parametrize("amount", [0, -5])
def test_non_positive_amounts(engine, amount):
    with pytest.raises(InvalidAmount):
        engine.stake(ALICE, amount)
    with pytest.raises(InvalidAmount):
        engine.request_unstake(ALICE, amount)


# ------------------------------- persistence -----------------------------------


def test_snapshot_round_trip_through_json(engine, fund, set_backing):
    a = fund(ALICE, 10)
    fund(BOB, 2)
    engine.stake(ALICE, a // 2)
    engine.stake(BOB, engine.balance_of(BOB), sponsor=ALICE)
    set_backing(10_000)
    engine.rebase_tick()
    engine.request_unstake(ALICE, a // 100)
    engine.transfer(ALICE, CAROL, WAD)

    data = json.loads(json.dumps(engine.dump()))
    clone = ProtocolEngine.from_snapshot(data, config=engine.config)

    assert clone.dump() == engine.dump()
    assert clone.status() == engine.status()
    # both continue identically
    assert clone.rebase_tick() == engine.rebase_tick()


def test_inconsistent_snapshot_is_rejected(engine, fund):
    fund(ALICE, 1)
    data = engine.dump()
    data["supply"]["total_minted"] = str(int(data["supply"]["total_minted"]) + 1)
    with pytest.raises(InvariantViolation):
        ProtocolEngine.from_snapshot(data)


def test_unknown_snapshot_version(engine):
    data = engine.dump()
    data["version"] = 99
    with pytest.raises(ValueError):
        LedgerState.load(data)


def test_fresh_state_satisfies_invariants():
    check_invariants(LedgerState(), cap=1)


# ------------------------------- transfers & treasury --------------------------


def test_transfer_tax_goes_to_treasury(engine, fund):
    tokens = fund(ALICE, 10)
    assert engine.get_current_tax_rate() == 1500  # nothing staked
    q = engine.transfer(ALICE, BOB, 1000 * WAD)
    assert q.tax == 150 * WAD
    assert engine.balance_of(BOB) == 850 * WAD
    assert engine.balance_of(ALICE) == tokens - 1000 * WAD
    assert engine.treasury_holdings()[AssetKind.PROTOCOL_TOKEN] == 150 * WAD
    assert engine.journal(1)[0].meta == {"reason": "transfer_tax"}


def test_tax_falls_as_staking_rises(engine, fund):
    tokens = fund(ALICE, 10)
    engine.stake(ALICE, tokens - tokens // 2)
    assert engine.get_staking_ratio() == 5_000
    assert engine.get_current_tax_rate() == 950


def test_self_transfer_refused(engine, fund):
    fund(ALICE, 1)
    with pytest.raises(InvalidAmount):
        engine.transfer(ALICE, ALICE, 1)


def test_protocol_token_treasury_rules(engine, fund):
    fund(ALICE, 10)
    engine.transfer(ALICE, BOB, 1000 * WAD)
    with pytest.raises(InvalidAmount):
        engine.record_treasury_inflow(AssetKind.PROTOCOL_TOKEN, WAD)
    with pytest.raises(InvalidAmount):
        engine.treasury_spend(AssetKind.PROTOCOL_TOKEN, WAD)
    with pytest.raises(InvalidAmount):
        engine.set_mark(AssetKind.PROTOCOL_TOKEN, WAD)

    engine.treasury_spend(AssetKind.PROTOCOL_TOKEN, 100 * WAD, recipient=CAROL, reason="grant")
    assert engine.balance_of(CAROL) == 100 * WAD
    assert engine.treasury_holdings()[AssetKind.PROTOCOL_TOKEN] == 50 * WAD


def test_treasury_spend_beyond_reserves(engine):
    engine.record_treasury_inflow("stable", 5 * WAD)
    with pytest.raises(InsufficientReserves):
        engine.treasury_spend("stable", 6 * WAD)


def test_runway_and_buyback(engine, fund, set_backing):
    assert engine.get_runway() == RUNWAY_INFINITE
    fund(ALICE, 10)
    set_backing(9_000)
    assert engine.should_execute_buyback()
    set_backing(12_000)
    assert not engine.should_execute_buyback()


def test_runway_with_burn_rate(config):
    config.treasury.burn_rate_per_day_wad = 2 * WAD
    eng = ProtocolEngine(config=config)
    eng.record_treasury_inflow("stable", 9 * WAD)
    assert eng.get_runway() == 4


def test_reference_price_priority(engine, config):
    assert engine.get_reference_price() == engine.get_current_price()
    engine.set_reference_price(5 * WAD)
    assert engine.get_reference_price() == 5 * WAD
    engine.set_reference_price(None)
    config.treasury.reference_price_wad = 7 * WAD
    assert engine.get_reference_price() == 7 * WAD


def test_marks_move_backing(engine, fund):
    fund(ALICE, 10)
    engine.set_reference_price(WAD // 1000)
    before = engine.get_backing_ratio()
    engine.set_mark(AssetKind.NATIVE, 2 * WAD)
    assert engine.get_backing_ratio() == pytest.approx(2 * before, abs=1)


# ------------------------------- views -----------------------------------------


def test_status_is_json_safe(engine, fund):
    fund(ALICE, 1)
    s = engine.status()
    json.dumps(s)
    assert s["epoch"] == 0
    assert int(s["circulating"]) == engine.total_supply()
    assert engine.next_rebase_epoch() == 1


def test_journal_limit(engine):
    for i in range(3):
        engine.record_treasury_inflow("stable", WAD, reason=f"r{i}")
    assert [e.meta["reason"] for e in engine.journal(2)] == ["r1", "r2"]
    assert engine.journal(0) == []
    assert len(engine.journal()) == 3


def test_calculate_dynamic_apy(engine):
    assert engine.calculate_dynamic_apy(10_000) == 500_000
    assert engine.calculate_dynamic_apy(5_000) == 0


# ------------------------------- concurrency -----------------------------------


def test_concurrent_buys_are_serialised(engine):
    accounts = ["0x%040x" % (i + 100) for i in range(8)]
    errors = []

    def worker(acct: str) -> None:
        try:
            for _ in range(3):
                engine.buy_with_payment(acct, WAD)
        except Exception as e:  # pragma: no cover - surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(a,)) for a in accounts]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sum(engine.balance_of(a) for a in accounts) == engine.total_supply()
    assert engine.treasury_holdings()[AssetKind.NATIVE] == int(engine.dump()["curve"]["proceeds"])
