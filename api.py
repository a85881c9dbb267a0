"""JSON response builders for the leaderboard, markets, simulation and resolve endpoints.

Every function returns ``(status_code, payload)``. Successful payloads carry
``"success": True``; error payloads carry ``"success": False`` and an
``"error"`` message. Nothing here raises for an upstream failure.
"""
from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any, Optional

import requests

from adapters import UnknownPlatformError, get_adapter
from data import db
from data.scraper import NotConfiguredError, SubgraphError, utcnow
from engine import resolver, simulator
from engine.leaderboard import LeaderboardCache, get_leaderboard_cache, rank_entries

log = logging.getLogger(__name__)

Response = tuple[int, dict]

_UPSTREAM_ERRORS = (requests.RequestException, SubgraphError, KeyError, ValueError, TypeError)


def _error(status: int, message: str, **extra: Any) -> Response:
    return status, {"success": False, "error": message, **extra}


def _unknown(exc: UnknownPlatformError) -> Response:
    return _error(404, f"Unknown platform: {exc.args[0]}")


def _timestamp() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
def unified_leaderboard(limit: int = 100, offset: int = 0, platform: Optional[str] = None,
                        force_refresh: bool = False,
                        cache: Optional[LeaderboardCache] = None) -> Response:
    cache = cache or get_leaderboard_cache()
    page = cache.get(limit=limit, offset=offset, platform=platform, force_refresh=force_refresh)
    return 200, page.to_dict()


def platform_leaderboard(platform: str, limit: int = 100) -> Response:
    try:
        adapter = get_adapter(platform)
    except UnknownPlatformError as exc:
        return _unknown(exc)

    base = {"platform": adapter.name, "chain": adapter.chain, "timestamp": _timestamp()}
    try:
        entries = rank_entries(adapter.fetch_leaderboard(limit))
    except NotConfiguredError as exc:
        return _error(503, str(exc), data=[], count=0, **base)
    except _UPSTREAM_ERRORS as exc:
        log.warning("%s leaderboard failed: %s", adapter.platform_id, exc)
        return _error(503, str(exc), data=[], count=0, **base)
    except Exception as exc:
        log.exception("%s leaderboard crashed", adapter.platform_id)
        return _error(500, str(exc), data=[], count=0, **base)

    if not entries:
        return _error(503, f"No {adapter.name} leaderboard data available", data=[], count=0, **base)
    return 200, {
        "success": True,
        "data": [e.to_dict() for e in entries[:limit]],
        "count": len(entries),
        **base,
    }


def platform_markets(platform: str, limit: int = 100) -> Response:
    try:
        adapter = get_adapter(platform)
    except UnknownPlatformError as exc:
        return _unknown(exc)

    base = {"platform": adapter.name, "chain": adapter.chain,
            "currency": adapter.currency, "timestamp": _timestamp()}
    try:
        markets = adapter.fetch_markets(limit)
    except NotConfiguredError as exc:
        return _error(503, str(exc), data=[], count=0, **base)
    except _UPSTREAM_ERRORS as exc:
        log.warning("%s markets failed: %s", adapter.platform_id, exc)
        return _error(503, str(exc), data=[], count=0, **base)
    except Exception as exc:
        log.exception("%s markets crashed", adapter.platform_id)
        return _error(500, str(exc), data=[], count=0, **base)

    return 200, {
        "success": True,
        "data": [m.to_dict() for m in markets],
        "count": len(markets),
        **base,
    }


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------
# Each platform's bet form names its fields differently; first key present wins
_FOLLOWER_KEYS = ("follower", "walletAddress", "userAddress")
_MARKET_KEYS = ("marketId", "conditionId", "marketHash", "gameId", "questionId", "ticker", "epoch")
_OUTCOME_KEYS = ("outcomeSelected", "outcomeId", "position", "direction", "outcome")
_AMOUNT_KEYS = ("amountUsd", "amount")
_PRICE_KEYS = ("entryPrice", "priceAtEntry", "price")
_QUESTION_KEYS = ("marketQuestion", "title", "question")

# Platforms whose priceAtEntry is the YES price whichever side was bought
_YES_PRICED = {"kalshi"}


def _first(body: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = body.get(key)
        if value is not None and value != "":
            return value
    return None


def _entry_price(platform: str, body: dict, outcome: Any) -> Any:
    """Price paid for *outcome*, flipping YES-quoted prices for the other side."""
    price = _first(body, _PRICE_KEYS)
    yes_quoted = platform.lower() in _YES_PRICED
    if price is None and body.get("probability") is not None:
        price, yes_quoted = body["probability"], True
    if price is None or not yes_quoted or str(outcome).lower() == "yes":
        return price
    try:
        return 1 - float(price)
    except (TypeError, ValueError):
        return price   # simulate_bet reports it


def simulate(conn: sqlite3.Connection, platform: str, body: dict) -> Response:
    """Record a simulated bet from a request body.

    Accepts the unified ``follower``, ``marketId``, ``outcomeSelected``,
    ``amountUsd``, ``entryPrice`` fields as well as each platform's own names
    (``walletAddress``, ``conditionId``, ``gameId``, ``marketHash``, ``position``,
    ``priceAtEntry``, ``probability``). Sportsbooks send decimal ``odds``.
    """
    outcome = _first(body, _OUTCOME_KEYS)
    try:
        trade = simulator.simulate_bet(
            conn, platform,
            follower=_first(body, _FOLLOWER_KEYS),
            market_id=_first(body, _MARKET_KEYS),
            outcome=outcome,
            amount=_first(body, _AMOUNT_KEYS),
            entry_price=_entry_price(platform, body, outcome),
            odds=_first(body, ("odds",)),
            leader=body.get("leader"),
            market_question=_first(body, _QUESTION_KEYS) or "",
            metadata=body.get("metadata"),
        )
    except UnknownPlatformError as exc:
        return _unknown(exc)
    except simulator.DuplicateBetError as exc:
        return _error(409, str(exc))
    except simulator.SimulationError as exc:
        return _error(400, str(exc))
    except sqlite3.OperationalError as exc:
        if not db.is_missing_table(exc):
            raise
        return _error(500, "Simulated trades table not found; run init first")

    return 200, {
        "success": True,
        "trade": {
            "id": trade.id,
            "platform": trade.platform,
            "follower": trade.follower,
            "leader": trade.leader,
            "marketId": trade.market_id,
            "outcome": trade.outcome,
            "amount": trade.amount,
            "entryPrice": trade.entry_price,
            "potentialPayout": trade.potential_payout,
            "status": trade.result,
            "createdAt": trade.created_at.isoformat(),
        },
        "message": f"Simulated {trade.amount:g} bet on {trade.outcome}",
    }


def simulation_stats(conn: sqlite3.Connection, platform: str,
                     follower: Optional[str] = None) -> Response:
    try:
        stats = simulator.get_simulation_stats(conn, platform, follower)
    except UnknownPlatformError as exc:
        return _unknown(exc)
    except sqlite3.OperationalError as exc:
        if not db.is_missing_table(exc):
            raise
        return 200, {"success": True, "platform": platform, "followers": [],
                     "overall": None, "recentTrades": [],
                     "message": "Simulated trades table not found; run init first"}
    return 200, {"success": True, **stats}


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def resolve(conn: sqlite3.Connection, platform: str) -> Response:
    try:
        summary = resolver.resolve_platform(conn, platform)
    except UnknownPlatformError as exc:
        return _unknown(exc)
    except sqlite3.Error as exc:
        log.exception("Resolve %s failed", platform)
        return _error(500, str(exc))
    return 200, {"success": True, **summary.to_dict()}


def resolve_status(conn: sqlite3.Connection, platform: str) -> Response:
    try:
        return 200, {"success": True, **resolver.get_pending_summary(conn, platform)}
    except UnknownPlatformError as exc:
        return _unknown(exc)


# ---------------------------------------------------------------------------
# Copy-trade follows
# ---------------------------------------------------------------------------
def follow(conn: sqlite3.Connection, body: dict) -> Response:
    follower, leader = body.get("follower"), body.get("leader")
    platform = body.get("platform") or "polymarket"
    if not follower or not leader:
        return _error(400, "Follower and leader addresses required")
    try:
        get_adapter(platform)
    except UnknownPlatformError as exc:
        return _unknown(exc)

    if not db.add_copy_follow(conn, follower, leader, platform, utcnow()):
        return 200, {"success": False, "message": "Already following this leader"}
    return 200, {"success": True, "message": f"Now following {leader.lower()} on {platform}"}


def unfollow(conn: sqlite3.Connection, body: dict) -> Response:
    follower, leader = body.get("follower"), body.get("leader")
    platform = body.get("platform") or "polymarket"
    if not follower or not leader:
        return _error(400, "Follower and leader addresses required")
    removed = db.remove_copy_follow(conn, follower, leader, platform)
    return 200, {"success": removed,
                 "message": "Unfollowed" if removed else "Not following this leader"}


def follows(conn: sqlite3.Connection, follower: Optional[str]) -> Response:
    if not follower:
        return _error(400, "Follower address required")
    rows = [dict(r) for r in db.get_copy_follows(conn, follower)]
    return 200, {"success": True, "follows": rows, "count": len(rows)}
