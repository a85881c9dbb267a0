import sqlite3

import pytest
import requests

import adapters
import api
from data.scraper import NotConfiguredError
from engine.leaderboard import LeaderboardCache
from tests.conftest import FakeAdapter, make_entry, resolved


@pytest.fixture
def fake(monkeypatch):
    adapter = FakeAdapter(entries=[make_entry("0x1", 300, "Fake Market"),
                                   make_entry("0x2", 900, "Fake Market")])
    monkeypatch.setitem(adapters.ADAPTERS, "fake", adapter)
    return adapter


def _body(**overrides):
    body = {"follower": "0xF", "marketId": "m1", "outcomeSelected": "Yes", "amountUsd": 100}
    body.update(overrides)
    return body


# --- leaderboards ---

def test_unified_leaderboard(fake):
    status, payload = api.unified_leaderboard(limit=1, cache=LeaderboardCache(adapters=[fake]))
    assert status == 200
    assert payload["success"] is True
    assert payload["total"] == 2
    assert payload["data"][0]["address"] == "0x2"
    assert payload["cached"] is False

def test_platform_leaderboard_ranked(fake):
    status, payload = api.platform_leaderboard("fake", limit=10)
    assert status == 200
    assert payload["count"] == 2
    assert [r["rank"] for r in payload["data"]] == [1, 2]
    assert payload["platform"] == "Fake Market"
    assert payload["chain"] == "Off-chain"

def test_platform_leaderboard_unknown():
    status, payload = api.platform_leaderboard("nowhere")
    assert status == 404
    assert payload == {"success": False, "error": "Unknown platform: nowhere"}

@pytest.mark.parametrize("error,code", [
    (NotConfiguredError("GRAPH_API_KEY is not set"), 503),
    (requests.ConnectionError("down"), 503),
    (ZeroDivisionError("bug"), 500),
])
def test_platform_leaderboard_failures(fake, error, code):
    fake.error = error
    status, payload = api.platform_leaderboard("fake")
    assert status == code
    assert payload["success"] is False
    assert payload["data"] == []

def test_platform_leaderboard_empty(fake):
    fake.entries = []
    status, payload = api.platform_leaderboard("fake")
    assert status == 503
    assert payload["error"] == "No Fake Market leaderboard data available"

def test_platform_markets(monkeypatch, fake):
    monkeypatch.setattr(fake, "fetch_markets", lambda limit: [fake.market("x1", "Q?")])
    status, payload = api.platform_markets("fake")
    assert status == 200
    assert payload["data"][0]["id"] == "fake-x1"
    assert payload["currency"] == "USD"


# --- simulation ---

def test_simulate_ok(mem_conn):
    status, payload = api.simulate(mem_conn, "manifold", _body(entryPrice=0.5))
    assert status == 200
    assert payload["trade"]["potentialPayout"] == 200.0
    assert payload["trade"]["status"] == "pending"
    assert payload["trade"]["follower"] == "0xf"

def test_simulate_accepts_alternate_keys(mem_conn):
    body = {"userAddress": "0xF", "marketId": "m1", "outcome": "No", "amount": 50, "price": 0.25}
    status, payload = api.simulate(mem_conn, "manifold", body)
    assert status == 200
    assert payload["trade"]["outcome"] == "No"
    assert payload["trade"]["potentialPayout"] == 200.0

@pytest.mark.parametrize("platform,body,price,payout", [
    ("polymarket", {"follower": "0xF", "marketId": "0xc1", "outcomeSelected": "Yes",
                    "amountUsd": 100, "priceAtEntry": 0.2}, 0.2, 500.0),
    ("drift", {"walletAddress": "0xF", "marketId": "BTC-PERP-100k", "position": "No",
               "amount": 50, "priceAtEntry": 0.25}, 0.25, 200.0),
    # Kalshi quotes the YES price: a No bet at 0.8 YES costs 0.2
    ("kalshi", {"walletAddress": "0xF", "marketId": "K1", "ticker": "KX-1", "position": "No",
                "amount": 20, "priceAtEntry": 0.8}, 0.2, 100.0),
    ("manifold", {"walletAddress": "0xF", "marketId": "m9", "position": "No",
                  "amount": 100, "probability": 0.75}, 0.25, 400.0),
    ("azuro", {"walletAddress": "0xF", "gameId": "g1", "conditionId": "c1", "outcomeId": "29",
               "amount": 10, "odds": 1.5}, 0.6667, 15.0),
    ("sxbet", {"walletAddress": "0xF", "marketHash": "0xhash", "outcome": 2,
               "amount": 40, "odds": "2.5"}, 0.4, 100.0),
    ("overtime", {"walletAddress": "0xF", "gameId": "ev1", "position": 0,
                  "amount": 25, "odds": 2}, 0.5, 50.0),
])
def test_simulate_platform_bodies(mem_conn, platform, body, price, payout):
    status, payload = api.simulate(mem_conn, platform, body)
    assert status == 200, payload
    assert payload["trade"]["follower"] == "0xf"
    assert payload["trade"]["entryPrice"] == pytest.approx(price)
    assert payload["trade"]["potentialPayout"] == payout

def test_simulate_market_key_precedence(mem_conn):
    body = {"walletAddress": "0xF", "gameId": "g1", "conditionId": "c1", "outcomeId": "29",
            "amount": 10, "odds": 1.5}
    assert api.simulate(mem_conn, "azuro", body)[1]["trade"]["marketId"] == "c1"
    body = {"walletAddress": "0xF", "gameId": "ev1", "position": 0, "amount": 10, "odds": 2}
    assert api.simulate(mem_conn, "overtime", body)[1]["trade"]["outcome"] == "0"

def test_simulate_bad_price_is_400(mem_conn):
    status, payload = api.simulate(mem_conn, "manifold", _body(entryPrice="abc"))
    assert status == 400
    assert payload["error"] == "Invalid entry price: 'abc'"
    assert api.simulate(mem_conn, "kalshi", _body(priceAtEntry="abc", outcomeSelected="No"))[0] == 400
    assert api.simulate(mem_conn, "azuro", _body(odds="evens"))[0] == 400

def test_simulate_errors(mem_conn):
    assert api.simulate(mem_conn, "nowhere", _body())[0] == 404
    assert api.simulate(mem_conn, "manifold", _body(amountUsd=1))[0] == 400
    assert api.simulate(mem_conn, "manifold", _body(marketId=""))[0] == 400
    assert api.simulate(mem_conn, "manifold", _body())[0] == 200
    status, payload = api.simulate(mem_conn, "manifold", _body())
    assert status == 409
    assert payload["error"] == "Already have a position in this market"

def test_simulate_without_schema():
    conn = sqlite3.connect(":memory:")
    try:
        status, payload = api.simulate(conn, "manifold", _body())
    finally:
        conn.close()
    assert status == 500
    assert "run init" in payload["error"]

def test_simulation_stats(mem_conn):
    api.simulate(mem_conn, "manifold", _body())
    status, payload = api.simulation_stats(mem_conn, "manifold")
    assert status == 200
    assert payload["overall"]["pending"] == 1
    assert api.simulation_stats(mem_conn, "nowhere")[0] == 404

def test_simulation_stats_without_schema():
    conn = sqlite3.connect(":memory:")
    try:
        status, payload = api.simulation_stats(conn, "manifold")
    finally:
        conn.close()
    assert status == 200
    assert payload["overall"] is None


# --- resolution ---

def test_resolve_and_status(mem_conn, fake):
    api.simulate(mem_conn, "fake", _body())
    fake.resolutions = {"m1": resolved("m1", winner="Yes")}
    status, payload = api.resolve(mem_conn, "fake")
    assert status == 200
    assert payload["resolved"] == 1
    assert payload["winRate"] == "100.0%"

    status, payload = api.resolve_status(mem_conn, "fake")
    assert payload["wins"] == 1
    assert payload["pending"] == 0

def test_resolve_unknown(mem_conn):
    assert api.resolve(mem_conn, "nowhere")[0] == 404
    assert api.resolve_status(mem_conn, "nowhere")[0] == 404


# --- follows ---

def test_follow_flow(mem_conn):
    body = {"follower": "0xF", "leader": "0xL"}
    assert api.follow(mem_conn, body) == (200, {"success": True,
                                                "message": "Now following 0xl on polymarket"})
    assert api.follow(mem_conn, body)[1]["success"] is False
    status, payload = api.follows(mem_conn, "0xf")
    assert payload["count"] == 1
    assert api.unfollow(mem_conn, body)[1]["success"] is True
    assert api.follows(mem_conn, "0xf")[1]["count"] == 0

def test_follow_validation(mem_conn):
    assert api.follow(mem_conn, {"follower": "0xF"})[0] == 400
    assert api.follow(mem_conn, {"follower": "0xF", "leader": "0xL", "platform": "nowhere"})[0] == 404
    assert api.follows(mem_conn, "")[0] == 400
