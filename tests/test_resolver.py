import sqlite3

import pytest
import requests

import adapters
import data.db as db
from data.scraper import NotConfiguredError
from engine.resolver import get_pending_summary, resolve_platform, settle
from tests.conftest import FakeAdapter, make_trade, resolved


@pytest.fixture
def fake(monkeypatch):
    adapter = FakeAdapter()
    monkeypatch.setitem(adapters.ADAPTERS, "fake", adapter)
    return adapter


def _insert(conn, market_id, outcome="Yes", follower="0xf1"):
    return db.insert_simulated_trade(
        conn, make_trade(platform="fake", market_id=market_id, outcome=outcome, follower=follower),
    )


def _results(conn):
    return {t.market_id: (t.result, t.pnl) for t in db.get_simulated_trades(conn, "fake")}


# --- settle ---

def test_settle_outcomes():
    trade = make_trade(outcome="Yes", amount=100, entry_price=0.5)   # payout 200
    assert settle(trade, resolved("m1", winner="yes")) == ("win", 100.0)
    assert settle(trade, resolved("m1", winner="No")) == ("loss", -100.0)
    assert settle(trade, resolved("m1", voided=True)) == ("refund", 0.0)

def test_settle_multi_winner():
    trade = make_trade(outcome="Lakers", amount=10, payout=19.0)
    assert settle(trade, resolved("m1", winner="home", also_won=["Lakers", "0"])) == ("win", 9.0)


# --- resolve_platform ---

def test_resolve_mixed_markets(mem_conn, fake):
    for mid in ("m1", "m2", "m3", "m4", "m5"):
        _insert(mem_conn, mid)
    fake.resolutions = {
        "m1": resolved("m1", winner="Yes"),
        "m2": resolved("m2", winner="No"),
        "m3": resolved("m3", voided=True),
        "m4": resolved("m4"),                       # still open
        "m5": requests.ConnectionError("boom"),
    }

    summary = resolve_platform(mem_conn, "fake")

    assert summary.resolved == 3
    assert summary.skipped == 2
    assert summary.markets_checked == 5
    assert summary.errors == 1
    assert (summary.wins, summary.losses, summary.refunds, summary.pending) == (1, 1, 1, 2)
    assert summary.win_rate == "50.0%"
    assert _results(mem_conn) == {
        "m1": ("win", 100.0),
        "m2": ("loss", -100.0),
        "m3": ("refund", 0.0),
        "m4": ("pending", None),
        "m5": ("pending", None),
    }

def test_one_lookup_per_market(mem_conn, fake):
    _insert(mem_conn, "m1", follower="0xf1")
    _insert(mem_conn, "m1", outcome="No", follower="0xf2")
    calls = []
    fake.fetch_resolution = lambda market_id, trades: calls.append(len(trades)) or resolved(market_id, winner="No")
    summary = resolve_platform(mem_conn, "fake")
    assert calls == [2]
    assert (summary.wins, summary.losses) == (1, 1)

def test_trade_settled_by_another_run_is_not_counted(mem_conn, fake, monkeypatch):
    trade_id = _insert(mem_conn, "m1")
    stale = db.get_pending_trades(mem_conn, "fake")
    db.settle_trade(mem_conn, trade_id, "loss", -100.0, stale[0].created_at)
    monkeypatch.setattr(db, "get_pending_trades", lambda conn, platform: stale)
    fake.resolutions = {"m1": resolved("m1", winner="Yes")}

    summary = resolve_platform(mem_conn, "fake")

    assert summary.resolved == 0
    assert summary.skipped == 1
    assert _results(mem_conn) == {"m1": ("loss", -100.0)}

def test_counts_cover_whole_table(mem_conn, fake):
    _insert(mem_conn, "m1")
    fake.resolutions = {"m1": resolved("m1", winner="Yes")}
    resolve_platform(mem_conn, "fake")
    _insert(mem_conn, "m2")
    summary = resolve_platform(mem_conn, "fake")
    assert summary.resolved == 0
    assert summary.wins == 1
    assert summary.pending == 1

def test_not_configured_is_soft(mem_conn, fake):
    _insert(mem_conn, "m1")
    fake.resolutions = {"m1": NotConfiguredError("ODDS_API_KEY is not set")}
    summary = resolve_platform(mem_conn, "fake")
    assert summary.message == "ODDS_API_KEY is not set"
    assert summary.errors == 0
    assert summary.pending == 1

def test_unsupported_platform_keeps_trades_pending(mem_conn, fake):
    fake.supports_resolution = False
    _insert(mem_conn, "m1")
    summary = resolve_platform(mem_conn, "fake")
    assert summary.skipped == 1
    assert "not available" in summary.message
    assert summary.pending == 1

def test_no_pending_trades(mem_conn, fake):
    summary = resolve_platform(mem_conn, "fake")
    assert summary.message == "No pending trades"
    assert summary.resolved == 0

def test_time_budget_stops_early(mem_conn, fake):
    _insert(mem_conn, "m1")
    fake.resolutions = {"m1": resolved("m1", winner="Yes")}
    summary = resolve_platform(mem_conn, "fake", time_budget=-1)
    assert summary.markets_checked == 0
    assert summary.skipped == 1

def test_missing_table(fake):
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    try:
        summary = resolve_platform(conn, "fake")
    finally:
        conn.close()
    assert "table not found" in summary.message

def test_unknown_platform(mem_conn):
    with pytest.raises(adapters.UnknownPlatformError):
        resolve_platform(mem_conn, "nowhere")


# --- status ---

def test_pending_summary(mem_conn, fake):
    _insert(mem_conn, "m1")
    _insert(mem_conn, "m2")
    fake.resolutions = {"m1": resolved("m1", winner="No")}
    resolve_platform(mem_conn, "fake")
    status = get_pending_summary(mem_conn, "fake")
    assert status["pending"] == 1
    assert status["resolved"] == 1
    assert status["losses"] == 1
    assert status["winRate"] == "0.0%"
    assert status["supportsResolution"] is True
