import sqlite3
from datetime import datetime

import pytest

from data.scraper import NotConfiguredError
from engine.leaderboard import LeaderboardCache, filter_by_platform, rank_entries, sqlite_snapshot
from tests.conftest import FakeAdapter, make_entry


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def _cache(adapters, clock, **kwargs):
    return LeaderboardCache(adapters=adapters, ttl=600, refresh_wait=5,
                            platform_timeout=5, clock=clock, **kwargs)


# --- ranking ---

def test_rank_entries_orders_and_tiers():
    entries = [make_entry("0xa", 150), make_entry("0xb", 1200), make_entry("0xc", 700)]
    ranked = rank_entries(entries)
    assert [(e.address, e.rank, e.tier) for e in ranked] == [
        ("0xb", 1, "Legendary"), ("0xc", 2, "Platinum"), ("0xa", 3, "Bronze"),
    ]
    assert entries[0].rank == 0

def test_filter_by_platform_reranks():
    ranked = rank_entries([
        make_entry("0xa", 900, platform="Polymarket"),
        make_entry("0xb", 800, platform="Manifold Markets"),
        make_entry("0xc", 700, platform="Manifold Markets"),
    ])
    manifold = filter_by_platform(ranked, "manifold")
    assert [(e.address, e.rank) for e in manifold] == [("0xb", 1), ("0xc", 2)]
    assert filter_by_platform(ranked, "SPEED") == []


# --- cache ---

def test_cold_get_refreshes_synchronously(clock):
    a = FakeAdapter("a", "Alpha", entries=[make_entry("0x1", 300, "Alpha")])
    b = FakeAdapter("b", "Beta", entries=[make_entry("0x2", 600, "Beta")])
    cache = _cache([a, b], clock)

    page = cache.get(limit=10)

    assert page.cached is False
    assert page.total == 2
    assert [e.address for e in page.data] == ["0x2", "0x1"]
    assert page.cache_age == 0
    assert cache.platform_status == {"a": "ok (1)", "b": "ok (1)"}

def test_failing_platforms_are_tolerated(clock):
    good = FakeAdapter("good", entries=[make_entry("0x1", 300)])
    broken = FakeAdapter("broken", error=ValueError("bad json"))
    keyless = FakeAdapter("keyless", error=NotConfiguredError("GRAPH_API_KEY is not set"))
    cache = _cache([good, broken, keyless], clock)

    page = cache.get()

    assert page.total == 1
    assert cache.platform_status["broken"] == "error"
    assert cache.platform_status["keyless"] == "not configured"

def test_slow_platform_times_out():
    fast = FakeAdapter("fast", entries=[make_entry("0x1", 300)])
    slow = FakeAdapter("slow", entries=[make_entry("0x2", 900)], delay=1.0)
    cache = LeaderboardCache(adapters=[fast, slow], platform_timeout=0.1)

    page = cache.get()

    assert [e.address for e in page.data] == ["0x1"]
    assert cache.platform_status["slow"] == "timeout"

def test_warm_get_serves_cache(clock):
    a = FakeAdapter("a", entries=[make_entry("0x1", 300)])
    cache = _cache([a], clock)
    cache.get()
    clock.now += 60
    page = cache.get()
    assert page.cached is True
    assert page.cache_age == 60
    assert a.calls == 1

def test_stale_get_serves_old_data_while_refreshing(clock):
    a = FakeAdapter("a", entries=[make_entry("0xold", 300)])
    cache = _cache([a], clock)
    cache.get()

    a.entries = [make_entry("0xnew", 300)]
    a.delay = 0.3
    clock.now += 601
    page = cache.get()
    assert [e.address for e in page.data] == ["0xold"]
    assert page.is_refreshing is True

    assert cache.wait_until_idle(5)
    assert [e.address for e in cache.get().data] == ["0xnew"]

def test_force_refresh_runs_in_background(clock):
    a = FakeAdapter("a", entries=[make_entry("0x1", 300)])
    cache = _cache([a], clock)
    cache.get()
    cache.get(force_refresh=True)
    assert cache.wait_until_idle(5)
    assert a.calls == 2

def test_single_refresh_in_flight(clock):
    cache = _cache([FakeAdapter("a")], clock)
    assert cache._claim()
    assert cache.refresh() is False
    assert cache.refresh_in_background() is None
    assert cache.is_refreshing is True

def test_paging_and_platform_filter(clock):
    entries = [make_entry(f"0x{i}", 100 * i, "Manifold Markets") for i in range(1, 6)]
    entries.append(make_entry("0xpoly", 50, "Polymarket"))
    cache = _cache([FakeAdapter("m", entries=entries)], clock)

    page = cache.get(limit=2, offset=1)
    assert page.total == 6
    assert [e.rank for e in page.data] == [2, 3]

    poly = cache.get(platform="polymarket")
    assert poly.total == 1
    assert poly.data[0].rank == 1

    assert cache.get(platform="all").total == 6
    assert cache.get(platform="ALL").total == 6

def test_page_to_dict(clock):
    cache = _cache([FakeAdapter("a", entries=[make_entry("0xAbc", 300)])], clock)
    payload = cache.get().to_dict()
    assert payload["success"] is True
    row = payload["data"][0]
    assert row["id"] == "manifold markets:0xabc"
    assert row["truthScore"] == 300
    assert row["tier"] == "Silver"
    assert row["totalVolume"] == "1000.00"


# --- snapshot callback ---

def test_on_refresh_receives_ranked_entries(clock):
    seen = []
    cache = _cache([FakeAdapter("a", entries=[make_entry("0x1", 300)])], clock,
                   on_refresh=lambda entries, at: seen.append((entries, at)))
    cache.refresh()
    ((entries, at),) = seen
    assert entries[0].rank == 1
    assert isinstance(at, datetime)

def test_failing_callback_does_not_break_refresh(clock):
    def boom(entries, at):
        raise RuntimeError("disk full")
    cache = _cache([FakeAdapter("a", entries=[make_entry("0x1", 300)])], clock, on_refresh=boom)
    assert cache.refresh() is True
    assert cache.get().total == 1

def test_sqlite_snapshot_writes_traders(tmp_path):
    path = str(tmp_path / "snap.db")
    save = sqlite_snapshot(path)
    save(rank_entries([make_entry("0x1", 300), make_entry("0x2", 700)]), datetime(2025, 1, 1))
    conn = sqlite3.connect(path)
    try:
        rows = conn.execute("SELECT address, rank FROM traders ORDER BY rank").fetchall()
    finally:
        conn.close()
    assert rows == [("0x2", 1), ("0x1", 2)]
