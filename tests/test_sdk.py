from datetime import datetime, timedelta

import pytest
import requests

import sdk.polymarket
from data.models import TruthScore, UserStats
from sdk import (
    BaseAdapter,
    MemoryStorage,
    PolymarketAdapter,
    RecentStats,
    ReputationSDK,
    ScoringEngine,
    SDKNotInitializedError,
    SqliteStorage,
)
from sdk.adapter import consistency_bonus
from sdk.polymarket import parse_trade
from tests.conftest import make_bet


class StaticAdapter(BaseAdapter):
    """SDK adapter over a fixed bet list."""

    def __init__(self, platform_id="static", bets=None, error=None):
        super().__init__()
        self.platform_id = platform_id
        self.platform_name = platform_id.title()
        self.bets = bets or []
        self.error = error

    def get_bets_for_user(self, address):
        if self.error is not None:
            raise self.error
        return [b for b in self.bets if b.user_id == address.lower()]

    def backfill(self, start, end, on_bet):
        if self.error is not None:
            raise self.error
        count = 0
        for b in self.bets:
            if start <= b.timestamp <= end:
                on_bet(b)
                count += 1
        return count


def _bets(wins, losses, pending=0, amount=10.0, platform_id="static"):
    outcomes = [True] * wins + [False] * losses + [None] * pending
    return [make_bet(f"b{i}", user="0xuser", platform_id=platform_id, won=won,
                     amount=amount, offset_hours=i)
            for i, won in enumerate(outcomes)]


# --- adapter stats ---

def test_user_stats_aggregation():
    adapter = StaticAdapter(bets=_bets(wins=6, losses=3, pending=1))
    stats = adapter.get_user_stats("0xUSER")
    assert stats.user_id == "0xuser"
    assert (stats.total_bets, stats.wins, stats.losses, stats.pending_bets) == (10, 6, 3, 1)
    assert stats.win_rate == 66.67
    assert stats.volume == 100.0
    assert stats.first_bet_at == datetime(2025, 1, 1)
    assert stats.last_bet_at == datetime(2025, 1, 1, 9)

def test_default_score_formula():
    # 6 wins -> 600, (66.67 - 55) * 10 = 116.7, volume 100 * 10 capped at 500
    stats = StaticAdapter(bets=_bets(wins=6, losses=3, pending=1)).get_user_stats("0xuser")
    assert stats.score == 1216

def test_no_bets():
    stats = StaticAdapter().get_user_stats("0xnobody")
    assert stats.total_bets == 0
    assert stats.win_rate == 0.0
    assert stats.first_bet_at is None
    assert stats.score == 0

@pytest.mark.parametrize("bets,bonus", [(19, 0), (20, 100), (50, 200), (100, 300)])
def test_consistency_bonus(bets, bonus):
    assert consistency_bonus(bets) == bonus

def test_base_adapter_is_abstract():
    with pytest.raises(TypeError):
        BaseAdapter()


# --- scoring engine ---

def _stats(platform_id, score):
    return UserStats(user_id="0xuser", platform_id=platform_id, score=score)

def test_weighted_total_and_tier():
    engine = ScoringEngine(platform_weights={"b": 0.5})
    ts = engine.calculate_truth_score("0xUSER", [_stats("a", 300), _stats("b", 301)])
    assert ts.user_id == "0xuser"
    assert ts.total_score == 450        # 300 + floor(150.5)
    assert ts.tier == "gold"
    assert [b.weight for b in ts.breakdown] == [1.0, 0.5]

def test_recency_bonus():
    engine = ScoringEngine()
    # 5 wins * 100 * (60 / 50) * 0.5
    assert engine.recency_bonus(RecentStats(wins=5, total_bets=10, win_rate=60.0)) == 300
    assert engine.recency_bonus(RecentStats(wins=2, total_bets=10, win_rate=20.0)) == 50
    assert engine.recency_bonus(RecentStats(wins=0, total_bets=0, win_rate=0.0)) == 0
    assert ScoringEngine(recency_enabled=False).recency_bonus(RecentStats(5, 10, 60.0)) == 0

def test_tier_boundaries():
    engine = ScoringEngine()
    assert engine.tier_for(899) == "platinum"
    assert engine.tier_for(900) == "diamond"
    assert engine.tier_for(0) == "bronze"
    engine.update_tier_thresholds({"diamond": 2000})
    assert engine.tier_for(1500) == "platinum"

def test_tier_info():
    info = ScoringEngine().get_tier_info("gold")
    assert info == {"name": "Gold", "color": "#ffd700", "minScore": 400}

def test_invalid_updates_rejected():
    engine = ScoringEngine()
    with pytest.raises(ValueError):
        engine.update_platform_weight("a", 1.5)
    with pytest.raises(ValueError):
        engine.update_tier_thresholds({"mythic": 5000})
    engine.update_platform_weight("a", 0.25)
    assert engine.platform_weight("a") == 0.25

def test_compare_scores():
    high = TruthScore("0xa", 500, "gold")
    low = TruthScore("0xb", 300, "silver")
    assert ScoringEngine.compare_scores(high, low) < 0
    assert ScoringEngine.compare_scores(low, high) > 0


# --- storage ---

@pytest.fixture(params=["memory", "sqlite"])
def storage(request, mem_conn):
    return MemoryStorage() if request.param == "memory" else SqliteStorage(mem_conn)

def test_storage_bets(storage):
    storage.save_bet(make_bet("b1", offset_hours=1))
    storage.save_bet(make_bet("b2", offset_hours=2))
    assert storage.get_bet("polymarket", "b1").id == "b1"
    assert storage.get_bet("polymarket", "zzz") is None
    assert [b.id for b in storage.get_bets_for_user("0xUSER")] == ["b2", "b1"]

def test_storage_leaderboard(storage):
    for user, total in [("0xa", 100), ("0xb", 700), ("0xc", 400)]:
        storage.save_truth_score(TruthScore(user, total, "bronze", last_updated=datetime(2025, 1, 1)))
    assert [s.user_id for s in storage.get_leaderboard(limit=2)] == ["0xb", "0xc"]
    assert storage.get_truth_score("0xA").total_score == 100

def test_storage_user_stats(storage):
    storage.save_user_stats(UserStats(user_id="0xu", platform_id="p2", score=5))
    storage.save_user_stats(UserStats(user_id="0xu", platform_id="p1", score=7))
    assert [s.platform_id for s in storage.get_all_user_stats("0xU")] == ["p1", "p2"]
    assert storage.get_user_stats("0xu", "p1").score == 7


# --- client ---

def test_requires_initialize():
    client = ReputationSDK([StaticAdapter()])
    with pytest.raises(SDKNotInitializedError):
        client.get_truth_score("0xuser")

def test_truth_score_saved_to_storage():
    storage = MemoryStorage()
    client = ReputationSDK([StaticAdapter(bets=_bets(wins=2, losses=0))], storage=storage)
    client.initialize()
    ts = client.get_truth_score("0xuser")
    # 2 wins -> 200, (100 - 55) * 10 = 450, volume bonus 200
    assert ts.total_score == 850
    assert ts.breakdown[0].platform_name == "Static"
    assert storage.get_truth_score("0xuser").total_score == 850
    assert storage.get_user_stats("0xuser", "static").wins == 2

def test_failing_adapter_is_dropped():
    good = StaticAdapter("good", bets=_bets(wins=1, losses=0, platform_id="good"))
    bad = StaticAdapter("bad", error=requests.ConnectionError("rpc down"))
    client = ReputationSDK([good, bad])
    client.initialize()
    ts = client.get_truth_score("0xuser")
    assert [b.platform_id for b in ts.breakdown] == ["good"]
    assert len(client.get_all_bets("0xuser")) == 1

def test_all_bets_newest_first():
    a = StaticAdapter("a", bets=_bets(wins=2, losses=0, platform_id="a"))
    client = ReputationSDK([a])
    client.initialize()
    times = [b.timestamp for b in client.get_all_bets("0xuser")]
    assert times == sorted(times, reverse=True)

def test_undated_bets_tolerated():
    bets = _bets(wins=2, losses=1)
    bets[1].timestamp = None
    adapter = StaticAdapter(bets=bets)
    stats = adapter.get_user_stats("0xuser")
    assert stats.first_bet_at == datetime(2025, 1, 1)
    assert stats.last_bet_at == datetime(2025, 1, 1, 2)

    client = ReputationSDK([adapter])
    client.initialize()
    assert [b.id for b in client.get_all_bets("0xuser")] == ["b2", "b0", "b1"]

def test_platform_listing_and_lookup():
    client = ReputationSDK([StaticAdapter("alpha")])
    assert client.get_platforms() == [{"id": "alpha", "name": "Alpha", "chainId": 0, "token": ""}]
    assert client.get_platform_stats("0xuser", "missing") is None

def test_leaderboard_needs_storage():
    with pytest.raises(RuntimeError):
        ReputationSDK([]).get_leaderboard()

def test_backfill_all_saves_and_reports():
    storage = MemoryStorage()
    bets = _bets(wins=150, losses=0)
    good = StaticAdapter("good", bets=bets)
    bad = StaticAdapter("bad", error=RuntimeError("Adapter not initialized"))
    progress = []
    client = ReputationSDK([good, bad], storage=storage)
    counts = client.backfill_all(timedelta(days=30), on_progress=lambda pid, n: progress.append((pid, n)),
                                 end=datetime(2025, 1, 20))
    assert counts == {"good": 150, "bad": 0}
    assert progress == [("good", 100)]
    assert len(storage.bets) == 150


# --- polymarket sdk adapter ---

def test_parse_trade():
    raw = {"proxyWallet": "0xABC", "conditionId": "0xc1", "outcome": "Yes", "side": "BUY",
           "size": 100, "price": 0.4, "timestamp": 1_700_000_000, "transactionHash": "0xtx",
           "asset": "42"}
    bet = parse_trade(raw, {("0xc1", "yes"): True})
    assert bet.id == "0xtx-42-BUY"
    assert bet.user_id == "0xabc"
    assert bet.position == "yes"
    assert bet.amount == pytest.approx(40.0)
    assert bet.won is True
    assert parse_trade(raw).won is None

def test_polymarket_user_bets(monkeypatch):
    trades = [{"proxyWallet": "0xabc", "conditionId": "c1", "outcome": "No", "size": 10,
               "price": 0.5, "timestamp": 1_700_000_000 + i, "id": f"t{i}"} for i in range(3)]
    positions = [{"conditionId": "c1", "outcome": "No", "redeemable": True, "curPrice": 1}]

    def fake_get(url, params=None, **kw):
        return positions if url.endswith("/positions") else trades

    monkeypatch.setattr(sdk.polymarket, "_get", fake_get)
    adapter = PolymarketAdapter()
    stats = adapter.get_user_stats("0xABC")
    assert stats.total_bets == 3
    assert stats.wins == 3
    assert stats.volume == pytest.approx(15.0)
    assert [b.id for b in adapter.get_bets_for_user("0xabc")] == ["t2", "t1", "t0"]

def test_polymarket_positions_failure_leaves_bets_pending(monkeypatch):
    def fake_get(url, params=None, **kw):
        if url.endswith("/positions"):
            raise requests.ConnectionError("down")
        return [{"proxyWallet": "0xabc", "conditionId": "c1", "outcome": "Yes",
                 "size": 1, "price": 1, "timestamp": 1_700_000_000, "id": "t1"}]

    monkeypatch.setattr(sdk.polymarket, "_get", fake_get)
    (bet,) = PolymarketAdapter().get_bets_for_user("0xabc")
    assert bet.won is None

def test_polymarket_backfill_requires_initialize():
    with pytest.raises(RuntimeError, match="not initialized"):
        PolymarketAdapter().backfill(datetime(2025, 1, 1), datetime(2025, 1, 2), lambda b: None)

def test_polymarket_score_formula():
    stats = UserStats(user_id="0xa", platform_id="polymarket", total_bets=20, wins=8,
                      losses=2, win_rate=80.0, volume=2000.0)
    # 800 + (80 - 50) * 15 + min(1000, 200) + 100
    assert PolymarketAdapter().calculate_score(stats) == 1550
