import sqlite3
import time
from datetime import datetime, timedelta

import pytest

import data.db as db
from adapters.base import PlatformAdapter
from data.models import Bet, LeaderboardEntry, MarketResolution, SimulatedTrade
from data.scraper import clear_scraper_cache


@pytest.fixture
def mem_conn():
    conn = sqlite3.connect(":memory:", timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    db.init_db(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _fresh_scraper_cache():
    clear_scraper_cache()
    yield
    clear_scraper_cache()


def make_entry(address="0xaaa", score=500, platform="Manifold Markets", win_rate=55.0,
               total_bets=40, pnl=100.0, volume=1000.0):
    return LeaderboardEntry(
        address=address,
        truth_score=score,
        win_rate=win_rate,
        total_bets=total_bets,
        pnl=pnl,
        volume=volume,
        platforms=[platform],
    )


def make_trade(platform="manifold", follower="0xf1", market_id="m1", outcome="Yes",
               amount=100.0, entry_price=0.5, payout=None, offset_minutes=0, metadata=None):
    return SimulatedTrade(
        platform=platform,
        follower=follower,
        market_id=market_id,
        outcome=outcome,
        amount=amount,
        entry_price=entry_price,
        potential_payout=payout if payout is not None else round(amount / entry_price, 2),
        metadata=metadata or {},
        created_at=datetime(2025, 1, 1) + timedelta(minutes=offset_minutes),
    )


def make_bet(bet_id="b1", user="0xuser", platform_id="polymarket", market_id="c1",
             position="yes", amount=10.0, won=None, offset_hours=0):
    return Bet(
        id=bet_id,
        user_id=user,
        platform_id=platform_id,
        market_id=market_id,
        position=position,
        amount=amount,
        won=won,
        timestamp=datetime(2025, 1, 1) + timedelta(hours=offset_hours),
    )


class FakeAdapter(PlatformAdapter):
    """In-memory platform: canned leaderboard and per-market resolutions."""

    def __init__(self, platform_id="fake", name="Fake Market", entries=None, error=None,
                 resolutions=None, supports_resolution=True, delay=0.0):
        self.platform_id = platform_id
        self.name = name
        self.entries = entries or []
        self.error = error
        self.resolutions = resolutions or {}
        self.supports_resolution = supports_resolution
        self.delay = delay
        self.calls = 0

    def fetch_leaderboard(self, limit=100):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.entries)[:limit]

    def fetch_resolution(self, market_id, trades):
        result = self.resolutions.get(market_id)
        if isinstance(result, Exception):
            raise result
        return result


def resolved(market_id, winner=None, voided=False, also_won=()):
    return MarketResolution(market_id, winner=winner, voided=voided, also_won=list(also_won))
