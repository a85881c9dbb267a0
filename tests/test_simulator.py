from datetime import datetime

import pytest

import data.db as db
from adapters import UnknownPlatformError
from engine.simulator import DuplicateBetError, SimulationError, get_simulation_stats, simulate_bet


def _bet(conn, **overrides):
    kwargs = dict(platform="manifold", follower="0xFollower", market_id="m1",
                  outcome="Yes", amount=100, entry_price=0.25)
    kwargs.update(overrides)
    return simulate_bet(conn, **kwargs)


# --- simulate_bet ---

def test_simulate_bet_stores_pending_trade(mem_conn):
    trade = _bet(mem_conn, leader="0xLEADER", market_question="Will it rain?")
    assert trade.id is not None
    assert trade.follower == "0xfollower"
    assert trade.leader == "0xleader"
    assert trade.potential_payout == 400.0     # 100 / 0.25
    assert trade.result == "pending"
    (stored,) = db.get_pending_trades(mem_conn, "manifold")
    assert stored.market_question == "Will it rain?"

def test_default_leader_and_price(mem_conn):
    trade = _bet(mem_conn, entry_price=None)
    assert trade.leader == "manual"
    assert trade.entry_price == 0.5
    assert trade.potential_payout == 200.0

def test_entry_price_floor(mem_conn):
    trade = _bet(mem_conn, entry_price=0)
    assert trade.entry_price == 0.01
    assert trade.potential_payout == 10_000.0

def test_fixed_payout_platform(mem_conn):
    trade = _bet(mem_conn, platform="speedmarkets", market_id="BTC-300-1000", outcome="UP",
                 amount=10, entry_price=None)
    assert trade.potential_payout == 19.0      # 10 * 1.9

def test_amount_string_accepted(mem_conn):
    assert _bet(mem_conn, amount="50").amount == 50.0

def test_missing_fields_named(mem_conn):
    with pytest.raises(SimulationError, match="Missing required fields: follower, outcomeSelected"):
        _bet(mem_conn, follower="", outcome=None)

def test_invalid_amount(mem_conn):
    with pytest.raises(SimulationError, match="Invalid amount"):
        _bet(mem_conn, amount="lots")

def test_invalid_entry_price(mem_conn):
    with pytest.raises(SimulationError, match="Invalid entry price"):
        _bet(mem_conn, entry_price="abc")

def test_decimal_odds_payout(mem_conn):
    trade = _bet(mem_conn, platform="azuro", market_id="c1", outcome="29", amount=10,
                 entry_price=None, odds="1.5")
    assert trade.potential_payout == 15.0      # 10 * 1.5
    assert trade.entry_price == pytest.approx(0.6667)
    assert trade.metadata["odds"] == 1.5

def test_odds_win_over_entry_price(mem_conn):
    trade = _bet(mem_conn, platform="sxbet", outcome=1, amount=20, entry_price=0.9, odds=2.5)
    assert trade.potential_payout == 50.0
    assert trade.outcome == "1"

@pytest.mark.parametrize("odds,message", [("evens", "Invalid odds"), (0.5, "at least 1.0")])
def test_invalid_odds(mem_conn, odds, message):
    with pytest.raises(SimulationError, match=message):
        _bet(mem_conn, platform="azuro", amount=10, odds=odds)

@pytest.mark.parametrize("amount", [5, 10_001])
def test_amount_out_of_range(mem_conn, amount):
    with pytest.raises(SimulationError, match="Amount must be between 10 and 10000 Mana"):
        _bet(mem_conn, amount=amount)

def test_unknown_platform(mem_conn):
    with pytest.raises(UnknownPlatformError):
        _bet(mem_conn, platform="nowhere")

def test_duplicate_position(mem_conn):
    _bet(mem_conn)
    with pytest.raises(DuplicateBetError, match="Already have a position"):
        _bet(mem_conn, follower="0xfollower", outcome="No")
    assert issubclass(DuplicateBetError, SimulationError)


# --- stats ---

def _settle(conn, trade, result, pnl):
    db.settle_trade(conn, trade.id, result, pnl, datetime(2025, 1, 2))
    conn.commit()

def test_stats_per_follower_and_overall(mem_conn):
    a1 = _bet(mem_conn, follower="0xa", market_id="m1")          # win  +300
    a2 = _bet(mem_conn, follower="0xa", market_id="m2")          # loss -100
    _bet(mem_conn, follower="0xa", market_id="m3")               # pending
    b1 = _bet(mem_conn, follower="0xb", market_id="m1")          # refund
    _settle(mem_conn, a1, "win", 300.0)
    _settle(mem_conn, a2, "loss", -100.0)
    _settle(mem_conn, b1, "refund", 0.0)

    stats = get_simulation_stats(mem_conn, "manifold")
    assert stats["platform"] == "manifold"
    a, b = stats["followers"]
    assert a["follower"] == "0xa"
    assert (a["wins"], a["losses"], a["pending"], a["refunds"]) == (1, 1, 1, 0)
    assert a["win_rate"] == 50.0
    assert a["total_pnl"] == 200.0
    assert a["total_volume"] == 300.0
    assert b["refunds"] == 1 and b["win_rate"] == 0.0

    overall = stats["overall"]
    assert overall["totalTrades"] == 4
    assert overall["refunds"] == 1
    assert overall["pending"] == 1
    assert overall["totalPnl"] == 200.0
    assert overall["overallWinRate"] == "50.0%"
    assert len(stats["recentTrades"]) == 4

def test_stats_follower_filter(mem_conn):
    _bet(mem_conn, follower="0xa", market_id="m1")
    _bet(mem_conn, follower="0xb", market_id="m1")
    stats = get_simulation_stats(mem_conn, "manifold", follower="0xB")
    assert [f["follower"] for f in stats["followers"]] == ["0xb"]

def test_stats_empty(mem_conn):
    stats = get_simulation_stats(mem_conn, "kalshi")
    assert stats["followers"] == []
    assert stats["overall"]["totalTrades"] == 0
    assert stats["overall"]["overallWinRate"] == "N/A"
    assert stats["recentTrades"] == []
