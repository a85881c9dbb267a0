from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Optional

import config
from data.models import (
    Bet,
    LeaderboardEntry,
    PlatformScore,
    SimulatedTrade,
    TruthScore,
    UserStats,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
_ISO = "%Y-%m-%dT%H:%M:%SZ"


def _ts(dt: Optional[datetime]) -> Optional[str]:
    return dt.strftime(_ISO) if dt else None


def _dt(s: Optional[str]) -> Optional[datetime]:
    return datetime.strptime(s, _ISO) if s else None


def is_missing_table(exc: Exception) -> bool:
    """True when *exc* means the schema was never created."""
    return isinstance(exc, sqlite3.OperationalError) and "no such table" in str(exc)


# ---------------------------------------------------------------------------
# Connection / schema
# ---------------------------------------------------------------------------
def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    path = db_path or config.DB_PATH
    conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.executescript(
        """
        CREATE TABLE IF NOT EXISTS simulated_trades (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            platform TEXT NOT NULL,
            follower TEXT NOT NULL,
            leader TEXT NOT NULL DEFAULT 'manual',
            market_id TEXT NOT NULL,
            market_question TEXT,
            outcome TEXT NOT NULL,
            amount REAL NOT NULL,
            entry_price REAL,
            potential_payout REAL,
            result TEXT NOT NULL DEFAULT 'pending',
            pnl REAL,
            metadata TEXT,
            created_at TEXT NOT NULL,
            resolved_at TEXT,
            UNIQUE (platform, follower, market_id)
        );

        CREATE TABLE IF NOT EXISTS bets (
            id TEXT NOT NULL,
            platform_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            market_id TEXT,
            position TEXT,
            amount REAL,
            timestamp TEXT,
            won INTEGER,
            claimed_amount REAL,
            tx_hash TEXT,
            PRIMARY KEY (platform_id, id)
        );

        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT NOT NULL,
            platform_id TEXT NOT NULL,
            total_bets INTEGER DEFAULT 0,
            wins INTEGER DEFAULT 0,
            losses INTEGER DEFAULT 0,
            pending_bets INTEGER DEFAULT 0,
            win_rate REAL DEFAULT 0,
            volume REAL DEFAULT 0,
            score INTEGER DEFAULT 0,
            first_bet_at TEXT,
            last_bet_at TEXT,
            PRIMARY KEY (user_id, platform_id)
        );

        CREATE TABLE IF NOT EXISTS truth_scores (
            user_id TEXT PRIMARY KEY,
            total_score INTEGER NOT NULL,
            tier TEXT NOT NULL,
            breakdown TEXT,
            last_updated TEXT
        );

        CREATE TABLE IF NOT EXISTS traders (
            id TEXT PRIMARY KEY,
            rank INTEGER,
            address TEXT NOT NULL,
            username TEXT,
            platform TEXT,
            truth_score INTEGER,
            tier TEXT,
            win_rate REAL,
            total_bets INTEGER,
            pnl REAL,
            volume REAL,
            snapshot_at TEXT
        );

        CREATE TABLE IF NOT EXISTS copy_follows (
            follower TEXT NOT NULL,
            leader TEXT NOT NULL,
            platform TEXT NOT NULL,
            created_at TEXT,
            PRIMARY KEY (follower, leader, platform)
        );

        CREATE INDEX IF NOT EXISTS idx_sim_platform_result ON simulated_trades(platform, result);
        CREATE INDEX IF NOT EXISTS idx_sim_follower ON simulated_trades(follower);
        CREATE INDEX IF NOT EXISTS idx_bets_user ON bets(user_id);
        CREATE INDEX IF NOT EXISTS idx_traders_score ON traders(truth_score);
        """
    )
    conn.commit()
    log.info("Database schema initialised")


# ---------------------------------------------------------------------------
# Simulated trades
# ---------------------------------------------------------------------------
def _row_to_trade(row: sqlite3.Row) -> SimulatedTrade:
    return SimulatedTrade(
        id=row["id"],
        platform=row["platform"],
        follower=row["follower"],
        leader=row["leader"],
        market_id=row["market_id"],
        market_question=row["market_question"] or "",
        outcome=row["outcome"],
        amount=row["amount"],
        entry_price=row["entry_price"],
        potential_payout=row["potential_payout"],
        result=row["result"],
        pnl=row["pnl"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_at=_dt(row["created_at"]),
        resolved_at=_dt(row["resolved_at"]),
    )


def insert_simulated_trade(conn: sqlite3.Connection, t: SimulatedTrade) -> int:
    """Insert a pending trade. Raises sqlite3.IntegrityError on a duplicate."""
    cur = conn.execute(
        """
        INSERT INTO simulated_trades (platform, follower, leader, market_id, market_question,
                                      outcome, amount, entry_price, potential_payout,
                                      result, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (t.platform, t.follower, t.leader, t.market_id, t.market_question,
         t.outcome, t.amount, t.entry_price, t.potential_payout,
         t.result, json.dumps(t.metadata), _ts(t.created_at)),
    )
    conn.commit()
    return cur.lastrowid


def get_pending_trades(conn: sqlite3.Connection, platform: str) -> list[SimulatedTrade]:
    rows = conn.execute(
        "SELECT * FROM simulated_trades WHERE platform=? AND result='pending' ORDER BY created_at",
        (platform,),
    ).fetchall()
    return [_row_to_trade(r) for r in rows]


def get_simulated_trades(conn: sqlite3.Connection, platform: str,
                         follower: str | None = None,
                         limit: int | None = None) -> list[SimulatedTrade]:
    sql = "SELECT * FROM simulated_trades WHERE platform=?"
    params: list = [platform]
    if follower:
        sql += " AND follower=?"
        params.append(follower.lower())
    sql += " ORDER BY created_at DESC, id DESC"
    if limit:
        sql += " LIMIT ?"
        params.append(limit)
    return [_row_to_trade(r) for r in conn.execute(sql, params).fetchall()]


def settle_trade(conn: sqlite3.Connection, trade_id: int, result: str,
                 pnl: float, resolved_at: datetime) -> int:
    """Settle a pending trade; returns 0 when it was already settled."""
    cur = conn.execute(
        "UPDATE simulated_trades SET result=?, pnl=?, resolved_at=? WHERE id=? AND result='pending'",
        (result, pnl, _ts(resolved_at), trade_id),
    )
    return cur.rowcount


def count_trades_by_result(conn: sqlite3.Connection, platform: str) -> dict[str, int]:
    rows = conn.execute(
        "SELECT result, COUNT(*) FROM simulated_trades WHERE platform=? GROUP BY result",
        (platform,),
    ).fetchall()
    return {r[0]: r[1] for r in rows}


# ---------------------------------------------------------------------------
# SDK bets / user stats / truth scores
# ---------------------------------------------------------------------------
def _row_to_bet(row: sqlite3.Row) -> Bet:
    return Bet(
        id=row["id"],
        platform_id=row["platform_id"],
        user_id=row["user_id"],
        market_id=row["market_id"],
        position=row["position"],
        amount=row["amount"],
        timestamp=_dt(row["timestamp"]),
        won=None if row["won"] is None else bool(row["won"]),
        claimed_amount=row["claimed_amount"],
        tx_hash=row["tx_hash"],
    )


def save_bet(conn: sqlite3.Connection, b: Bet) -> None:
    conn.execute(
        """
        INSERT INTO bets (id, platform_id, user_id, market_id, position, amount,
                          timestamp, won, claimed_amount, tx_hash)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(platform_id, id) DO UPDATE SET
            won=excluded.won,
            claimed_amount=excluded.claimed_amount
        """,
        (b.id, b.platform_id, b.user_id.lower(), b.market_id, b.position, b.amount,
         _ts(b.timestamp), None if b.won is None else int(b.won),
         b.claimed_amount, b.tx_hash),
    )
    conn.commit()


def get_bet(conn: sqlite3.Connection, platform_id: str, bet_id: str) -> Optional[Bet]:
    row = conn.execute(
        "SELECT * FROM bets WHERE platform_id=? AND id=?", (platform_id, bet_id)
    ).fetchone()
    return _row_to_bet(row) if row else None


def get_bets_for_user(conn: sqlite3.Connection, user_id: str,
                      platform_id: str | None = None) -> list[Bet]:
    sql = "SELECT * FROM bets WHERE user_id=?"
    params: list = [user_id.lower()]
    if platform_id:
        sql += " AND platform_id=?"
        params.append(platform_id)
    sql += " ORDER BY timestamp DESC"
    return [_row_to_bet(r) for r in conn.execute(sql, params).fetchall()]


def _row_to_stats(row: sqlite3.Row) -> UserStats:
    return UserStats(
        user_id=row["user_id"],
        platform_id=row["platform_id"],
        total_bets=row["total_bets"],
        wins=row["wins"],
        losses=row["losses"],
        pending_bets=row["pending_bets"],
        win_rate=row["win_rate"],
        volume=row["volume"],
        score=row["score"],
        first_bet_at=_dt(row["first_bet_at"]),
        last_bet_at=_dt(row["last_bet_at"]),
    )


def save_user_stats(conn: sqlite3.Connection, s: UserStats) -> None:
    conn.execute(
        """
        INSERT INTO users (user_id, platform_id, total_bets, wins, losses, pending_bets,
                           win_rate, volume, score, first_bet_at, last_bet_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id, platform_id) DO UPDATE SET
            total_bets=excluded.total_bets,
            wins=excluded.wins,
            losses=excluded.losses,
            pending_bets=excluded.pending_bets,
            win_rate=excluded.win_rate,
            volume=excluded.volume,
            score=excluded.score,
            first_bet_at=excluded.first_bet_at,
            last_bet_at=excluded.last_bet_at
        """,
        (s.user_id.lower(), s.platform_id, s.total_bets, s.wins, s.losses, s.pending_bets,
         s.win_rate, s.volume, s.score, _ts(s.first_bet_at), _ts(s.last_bet_at)),
    )
    conn.commit()


def get_user_stats(conn: sqlite3.Connection, user_id: str,
                   platform_id: str) -> Optional[UserStats]:
    row = conn.execute(
        "SELECT * FROM users WHERE user_id=? AND platform_id=?",
        (user_id.lower(), platform_id),
    ).fetchone()
    return _row_to_stats(row) if row else None


def get_all_user_stats(conn: sqlite3.Connection, user_id: str) -> list[UserStats]:
    rows = conn.execute(
        "SELECT * FROM users WHERE user_id=? ORDER BY platform_id", (user_id.lower(),)
    ).fetchall()
    return [_row_to_stats(r) for r in rows]


def _row_to_truth_score(row: sqlite3.Row) -> TruthScore:
    breakdown = [PlatformScore(**b) for b in json.loads(row["breakdown"] or "[]")]
    return TruthScore(
        user_id=row["user_id"],
        total_score=row["total_score"],
        tier=row["tier"],
        breakdown=breakdown,
        last_updated=_dt(row["last_updated"]),
    )


def save_truth_score(conn: sqlite3.Connection, ts: TruthScore) -> None:
    breakdown = [
        {"platform_id": b.platform_id, "platform_name": b.platform_name,
         "score": b.score, "weight": b.weight}
        for b in ts.breakdown
    ]
    conn.execute(
        """
        INSERT INTO truth_scores (user_id, total_score, tier, breakdown, last_updated)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            total_score=excluded.total_score,
            tier=excluded.tier,
            breakdown=excluded.breakdown,
            last_updated=excluded.last_updated
        """,
        (ts.user_id.lower(), ts.total_score, ts.tier, json.dumps(breakdown),
         _ts(ts.last_updated)),
    )
    conn.commit()


def get_truth_score(conn: sqlite3.Connection, user_id: str) -> Optional[TruthScore]:
    row = conn.execute(
        "SELECT * FROM truth_scores WHERE user_id=?", (user_id.lower(),)
    ).fetchone()
    return _row_to_truth_score(row) if row else None


def get_truth_score_leaderboard(conn: sqlite3.Connection, limit: int = 100,
                                offset: int = 0) -> list[TruthScore]:
    rows = conn.execute(
        "SELECT * FROM truth_scores ORDER BY total_score DESC, user_id LIMIT ? OFFSET ?",
        (limit, offset),
    ).fetchall()
    return [_row_to_truth_score(r) for r in rows]


# ---------------------------------------------------------------------------
# Leaderboard snapshot (read by the GUI)
# ---------------------------------------------------------------------------
def save_leaderboard_snapshot(conn: sqlite3.Connection, entries: list[LeaderboardEntry],
                              snapshot_at: datetime) -> int:
    rows = [
        (e.id, e.rank, e.address, e.username, e.platforms[0] if e.platforms else None,
         e.truth_score, e.tier, e.win_rate, e.total_bets, e.pnl, e.volume,
         _ts(snapshot_at))
        for e in entries
    ]
    conn.execute("DELETE FROM traders")
    conn.executemany(
        """
        INSERT INTO traders (id, rank, address, username, platform, truth_score, tier,
                             win_rate, total_bets, pnl, volume, snapshot_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO NOTHING
        """,
        rows,
    )
    conn.commit()
    log.info("Stored leaderboard snapshot: %d traders", len(rows))
    return len(rows)


def get_traders_by_address(conn: sqlite3.Connection, address: str) -> list[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM traders WHERE lower(address)=? ORDER BY truth_score DESC",
        (address.lower(),),
    ).fetchall()


# ---------------------------------------------------------------------------
# Copy follows
# ---------------------------------------------------------------------------
def add_copy_follow(conn: sqlite3.Connection, follower: str, leader: str,
                    platform: str, created_at: datetime) -> bool:
    cur = conn.execute(
        """INSERT OR IGNORE INTO copy_follows (follower, leader, platform, created_at)
           VALUES (?, ?, ?, ?)""",
        (follower.lower(), leader.lower(), platform, _ts(created_at)),
    )
    conn.commit()
    return cur.rowcount > 0


def remove_copy_follow(conn: sqlite3.Connection, follower: str, leader: str,
                       platform: str) -> bool:
    cur = conn.execute(
        "DELETE FROM copy_follows WHERE follower=? AND leader=? AND platform=?",
        (follower.lower(), leader.lower(), platform),
    )
    conn.commit()
    return cur.rowcount > 0


def get_copy_follows(conn: sqlite3.Connection, follower: str) -> list[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM copy_follows WHERE follower=? ORDER BY created_at",
        (follower.lower(),),
    ).fetchall()
