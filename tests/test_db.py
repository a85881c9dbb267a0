import sqlite3
from datetime import datetime

import pytest

import data.db as db
from data.models import PlatformScore, TruthScore, UserStats
from engine.leaderboard import rank_entries
from tests.conftest import make_bet, make_entry, make_trade


def test_tables_created(mem_conn):
    tables = {r[0] for r in mem_conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table'"
    ).fetchall()}
    assert {"simulated_trades", "bets", "users", "truth_scores",
            "traders", "copy_follows"} <= tables

def test_init_db_is_idempotent(mem_conn):
    db.init_db(mem_conn)
    db.init_db(mem_conn)


# --- simulated trades ---

def test_insert_and_read_trade(mem_conn):
    trade = make_trade(metadata={"network": "gnosis"})
    trade_id = db.insert_simulated_trade(mem_conn, trade)
    rows = db.get_pending_trades(mem_conn, "manifold")
    assert len(rows) == 1
    stored = rows[0]
    assert stored.id == trade_id
    assert stored.result == "pending"
    assert stored.pnl is None
    assert stored.metadata == {"network": "gnosis"}
    assert stored.created_at == datetime(2025, 1, 1)

def test_duplicate_position_rejected(mem_conn):
    db.insert_simulated_trade(mem_conn, make_trade())
    with pytest.raises(sqlite3.IntegrityError):
        db.insert_simulated_trade(mem_conn, make_trade(outcome="No"))

def test_same_market_other_follower_allowed(mem_conn):
    db.insert_simulated_trade(mem_conn, make_trade(follower="0xf1"))
    db.insert_simulated_trade(mem_conn, make_trade(follower="0xf2"))
    assert len(db.get_pending_trades(mem_conn, "manifold")) == 2

def test_settle_trade_only_once(mem_conn):
    trade_id = db.insert_simulated_trade(mem_conn, make_trade())
    assert db.settle_trade(mem_conn, trade_id, "win", 100.0, datetime(2025, 1, 2)) == 1
    assert db.settle_trade(mem_conn, trade_id, "loss", -100.0, datetime(2025, 1, 3)) == 0
    mem_conn.commit()
    (trade,) = db.get_simulated_trades(mem_conn, "manifold")
    assert trade.result == "win"
    assert trade.pnl == 100.0
    assert trade.resolved_at == datetime(2025, 1, 2)
    assert db.get_pending_trades(mem_conn, "manifold") == []

def test_simulated_trades_newest_first(mem_conn):
    for i in range(3):
        db.insert_simulated_trade(mem_conn, make_trade(market_id=f"m{i}", offset_minutes=i))
    trades = db.get_simulated_trades(mem_conn, "manifold")
    assert [t.market_id for t in trades] == ["m2", "m1", "m0"]
    assert len(db.get_simulated_trades(mem_conn, "manifold", limit=2)) == 2

def test_simulated_trades_follower_filter(mem_conn):
    db.insert_simulated_trade(mem_conn, make_trade(follower="0xf1"))
    db.insert_simulated_trade(mem_conn, make_trade(follower="0xf2"))
    trades = db.get_simulated_trades(mem_conn, "manifold", follower="0xF2")
    assert [t.follower for t in trades] == ["0xf2"]

def test_count_trades_by_result(mem_conn):
    ids = [db.insert_simulated_trade(mem_conn, make_trade(market_id=f"m{i}")) for i in range(4)]
    db.settle_trade(mem_conn, ids[0], "win", 100.0, datetime(2025, 1, 2))
    db.settle_trade(mem_conn, ids[1], "refund", 0.0, datetime(2025, 1, 2))
    mem_conn.commit()
    assert db.count_trades_by_result(mem_conn, "manifold") == {"win": 1, "refund": 1, "pending": 2}
    assert db.count_trades_by_result(mem_conn, "kalshi") == {}

def test_missing_table_detection():
    conn = sqlite3.connect(":memory:")
    try:
        with pytest.raises(sqlite3.OperationalError) as exc:
            db.get_pending_trades(conn, "manifold")
        assert db.is_missing_table(exc.value)
    finally:
        conn.close()


# --- sdk storage tables ---

def test_bet_upsert_updates_outcome(mem_conn):
    db.save_bet(mem_conn, make_bet(user="0xUSER"))
    db.save_bet(mem_conn, make_bet(user="0xUSER", won=True))
    bet = db.get_bet(mem_conn, "polymarket", "b1")
    assert bet.won is True
    assert bet.user_id == "0xuser"
    assert len(db.get_bets_for_user(mem_conn, "0xUser")) == 1

def test_bets_for_user_platform_filter(mem_conn):
    db.save_bet(mem_conn, make_bet("b1", offset_hours=0))
    db.save_bet(mem_conn, make_bet("b2", offset_hours=5))
    db.save_bet(mem_conn, make_bet("b3", platform_id="other"))
    bets = db.get_bets_for_user(mem_conn, "0xuser", "polymarket")
    assert [b.id for b in bets] == ["b2", "b1"]

def test_user_stats_roundtrip(mem_conn):
    stats = UserStats(user_id="0xABC", platform_id="polymarket", total_bets=10, wins=6,
                      losses=3, pending_bets=1, win_rate=66.67, volume=250.0, score=700,
                      first_bet_at=datetime(2025, 1, 1), last_bet_at=datetime(2025, 2, 1))
    db.save_user_stats(mem_conn, stats)
    stats.score = 800
    db.save_user_stats(mem_conn, stats)
    stored = db.get_user_stats(mem_conn, "0xabc", "polymarket")
    assert stored.score == 800
    assert stored.last_bet_at == datetime(2025, 2, 1)
    assert db.get_user_stats(mem_conn, "0xabc", "other") is None
    assert len(db.get_all_user_stats(mem_conn, "0xabc")) == 1

def test_truth_score_leaderboard(mem_conn):
    for user, total in [("0xa", 300), ("0xb", 900), ("0xc", 600)]:
        db.save_truth_score(mem_conn, TruthScore(
            user_id=user, total_score=total, tier="gold",
            breakdown=[PlatformScore("polymarket", total, 1.0, "Polymarket")],
            last_updated=datetime(2025, 1, 1),
        ))
    board = db.get_truth_score_leaderboard(mem_conn, limit=2)
    assert [s.user_id for s in board] == ["0xb", "0xc"]
    assert board[0].breakdown[0].platform_name == "Polymarket"
    assert db.get_truth_score_leaderboard(mem_conn, limit=2, offset=2)[0].user_id == "0xa"


# --- leaderboard snapshot / follows ---

def test_snapshot_replaces_previous(mem_conn):
    first = rank_entries([make_entry("0xa", 100), make_entry("0xb", 200)])
    db.save_leaderboard_snapshot(mem_conn, first, datetime(2025, 1, 1))
    second = rank_entries([make_entry("0xc", 300)])
    assert db.save_leaderboard_snapshot(mem_conn, second, datetime(2025, 1, 2)) == 1
    rows = mem_conn.execute("SELECT address, rank, tier FROM traders").fetchall()
    assert [tuple(r) for r in rows] == [("0xc", 1, "Silver")]

def test_traders_by_address_case_insensitive(mem_conn):
    db.save_leaderboard_snapshot(mem_conn, rank_entries([make_entry("0xAbC", 100)]),
                                 datetime(2025, 1, 1))
    assert len(db.get_traders_by_address(mem_conn, "0xABC")) == 1

def test_copy_follows(mem_conn):
    now = datetime(2025, 1, 1)
    assert db.add_copy_follow(mem_conn, "0xF", "0xL", "polymarket", now)
    assert not db.add_copy_follow(mem_conn, "0xf", "0xl", "polymarket", now)
    assert [r["leader"] for r in db.get_copy_follows(mem_conn, "0xF")] == ["0xl"]
    assert db.remove_copy_follow(mem_conn, "0xf", "0xL", "polymarket")
    assert not db.remove_copy_follow(mem_conn, "0xf", "0xL", "polymarket")
