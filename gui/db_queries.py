"""Cached SQL queries for the TruthBounty Streamlit dashboard.

All database access for the GUI goes through this module.
Every public function uses @st.cache_data with appropriate TTLs.
Connections are opened/closed per query call, which keeps Streamlit threads apart.
PRAGMA query_only=ON prevents accidental writes.
"""
from __future__ import annotations

import json
import os
import sqlite3

import numpy as np
import pandas as pd
import streamlit as st

import config


def _get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(config.DB_PATH, timeout=30)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA query_only=ON")
    conn.row_factory = sqlite3.Row
    return conn


def _frame(conn: sqlite3.Connection, sql: str, params: tuple | list = ()) -> pd.DataFrame:
    try:
        return pd.read_sql_query(sql, conn, params=params)
    except (sqlite3.OperationalError, pd.errors.DatabaseError) as exc:
        # Schema not created yet
        if "no such table" in str(exc):
            return pd.DataFrame()
        raise


# ---------------------------------------------------------------------------
# Database stats
# ---------------------------------------------------------------------------
@st.cache_data(ttl=60)
def get_db_stats() -> dict:
    conn = _get_conn()
    try:
        row = conn.execute("""
            SELECT
                (SELECT COUNT(*) FROM traders) AS total_traders,
                (SELECT MAX(snapshot_at) FROM traders) AS snapshot_at,
                (SELECT COUNT(*) FROM simulated_trades) AS total_trades,
                (SELECT COUNT(*) FROM simulated_trades WHERE result='pending') AS pending_trades,
                (SELECT COUNT(*) FROM truth_scores) AS scored_wallets
        """).fetchone()
        return dict(row)
    except sqlite3.OperationalError:
        return {"total_traders": 0, "snapshot_at": None, "total_trades": 0,
                "pending_trades": 0, "scored_wallets": 0}
    finally:
        conn.close()


@st.cache_data(ttl=60)
def get_db_file_size() -> float:
    try:
        return os.path.getsize(config.DB_PATH) / (1024 * 1024)
    except OSError:
        return 0.0


# ---------------------------------------------------------------------------
# Leaderboard snapshot
# ---------------------------------------------------------------------------
@st.cache_data(ttl=60)
def get_traders(
    platform: str = "all",
    search: str = "",
    tier: str = "all",
    limit: int = 50,
    offset: int = 0,
) -> tuple[pd.DataFrame, int]:
    where, params = [], []
    if platform != "all":
        where.append("platform = ?")
        params.append(platform)
    if tier != "all":
        where.append("tier = ?")
        params.append(tier)
    if search:
        where.append("(address LIKE ? OR username LIKE ?)")
        params.extend([f"%{search.lower()}%", f"%{search}%"])
    clause = f"WHERE {' AND '.join(where)}" if where else ""

    conn = _get_conn()
    try:
        df = _frame(conn, f"""
            SELECT rank, address, username, platform, truth_score, tier,
                   win_rate, total_bets, pnl, volume, snapshot_at
            FROM traders {clause}
            ORDER BY truth_score DESC, rank
            LIMIT ? OFFSET ?
        """, params + [limit, offset])
        total_df = _frame(conn, f"SELECT COUNT(*) AS n FROM traders {clause}", params)
        total = int(total_df["n"].iloc[0]) if not total_df.empty else 0
        return df, total
    finally:
        conn.close()


@st.cache_data(ttl=60)
def get_platform_summary() -> pd.DataFrame:
    conn = _get_conn()
    try:
        return _frame(conn, """
            SELECT platform,
                   COUNT(*) AS traders,
                   AVG(truth_score) AS avg_score,
                   MAX(truth_score) AS top_score,
                   SUM(volume) AS volume
            FROM traders
            GROUP BY platform
            ORDER BY traders DESC
        """)
    finally:
        conn.close()


@st.cache_data(ttl=60)
def get_tier_distribution() -> pd.DataFrame:
    conn = _get_conn()
    try:
        return _frame(conn, "SELECT tier, COUNT(*) AS traders FROM traders GROUP BY tier")
    finally:
        conn.close()


@st.cache_data(ttl=60)
def get_score_distribution(platform: str = "all") -> pd.DataFrame:
    conn = _get_conn()
    try:
        if platform == "all":
            return _frame(conn, "SELECT platform, truth_score FROM traders")
        return _frame(conn, "SELECT platform, truth_score FROM traders WHERE platform = ?", (platform,))
    finally:
        conn.close()


@st.cache_data(ttl=60)
def get_score_percentiles(platform: str = "all") -> dict[str, float]:
    """Median, p90 and p99 TruthScore plus the mean; empty when no snapshot."""
    scores = get_score_distribution(platform)
    if scores.empty:
        return {}
    values = scores["truth_score"].to_numpy(dtype=float)
    p50, p90, p99 = np.percentile(values, [50, 90, 99])
    return {"median": float(p50), "p90": float(p90), "p99": float(p99),
            "mean": float(values.mean())}


# ---------------------------------------------------------------------------
# Trader profile
# ---------------------------------------------------------------------------
@st.cache_data(ttl=60)
def get_trader_rows(address: str) -> pd.DataFrame:
    conn = _get_conn()
    try:
        return _frame(conn, """
            SELECT rank, platform, username, truth_score, tier, win_rate,
                   total_bets, pnl, volume, snapshot_at
            FROM traders WHERE lower(address) = ?
            ORDER BY truth_score DESC
        """, (address.lower(),))
    finally:
        conn.close()


@st.cache_data(ttl=60)
def get_trader_truth_score(address: str) -> dict | None:
    conn = _get_conn()
    try:
        row = conn.execute(
            "SELECT * FROM truth_scores WHERE user_id = ?", (address.lower(),)
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    finally:
        conn.close()
    if not row:
        return None
    result = dict(row)
    result["breakdown"] = json.loads(result.get("breakdown") or "[]")
    return result


@st.cache_data(ttl=60)
def get_trader_platform_stats(address: str) -> pd.DataFrame:
    conn = _get_conn()
    try:
        return _frame(conn, """
            SELECT platform_id, total_bets, wins, losses, pending_bets,
                   win_rate, volume, score, last_bet_at
            FROM users WHERE user_id = ?
            ORDER BY score DESC
        """, (address.lower(),))
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Simulated trades
# ---------------------------------------------------------------------------
@st.cache_data(ttl=30)
def get_simulated_trades(platform: str = "all", result: str = "all",
                         follower: str = "", limit: int = 200) -> pd.DataFrame:
    where, params = [], []
    if platform != "all":
        where.append("platform = ?")
        params.append(platform)
    if result != "all":
        where.append("result = ?")
        params.append(result)
    if follower:
        where.append("follower = ?")
        params.append(follower.lower())
    clause = f"WHERE {' AND '.join(where)}" if where else ""

    conn = _get_conn()
    try:
        return _frame(conn, f"""
            SELECT id, platform, follower, leader, market_id, market_question, outcome,
                   amount, entry_price, potential_payout, result, pnl, created_at, resolved_at
            FROM simulated_trades {clause}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
        """, params + [limit])
    finally:
        conn.close()


@st.cache_data(ttl=30)
def get_simulation_summary() -> pd.DataFrame:
    """One row per platform: trade counts by result, volume and realised PnL."""
    conn = _get_conn()
    try:
        return _frame(conn, """
            SELECT platform,
                   COUNT(*) AS trades,
                   SUM(CASE WHEN result='win' THEN 1 ELSE 0 END) AS wins,
                   SUM(CASE WHEN result='loss' THEN 1 ELSE 0 END) AS losses,
                   SUM(CASE WHEN result='refund' THEN 1 ELSE 0 END) AS refunds,
                   SUM(CASE WHEN result='pending' THEN 1 ELSE 0 END) AS pending,
                   SUM(amount) AS volume,
                   COALESCE(SUM(pnl), 0) AS pnl
            FROM simulated_trades
            GROUP BY platform
            ORDER BY trades DESC
        """)
    finally:
        conn.close()


@st.cache_data(ttl=30)
def get_cumulative_pnl(platform: str = "all") -> pd.DataFrame:
    conn = _get_conn()
    try:
        sql = """
            SELECT resolved_at, platform, pnl
            FROM simulated_trades
            WHERE result != 'pending' AND resolved_at IS NOT NULL
        """
        params: tuple = ()
        if platform != "all":
            sql += " AND platform = ?"
            params = (platform,)
        df = _frame(conn, sql + " ORDER BY resolved_at", params)
    finally:
        conn.close()
    if df.empty:
        return df
    df["resolved_at"] = pd.to_datetime(df["resolved_at"])
    df["cumulative_pnl"] = df["pnl"].fillna(0).cumsum()
    return df
