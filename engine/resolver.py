"""Settle pending simulated trades against each platform's results.

One pass per platform: group pending trades by market, ask the adapter for
each market's resolution, write win/loss/refund with the realised PnL, and
return a ``ResolutionSummary`` whose win/loss/refund/pending counts cover the
whole table for that platform.
"""
from __future__ import annotations

import logging
import sqlite3
import time
from collections import defaultdict
from typing import Optional

import requests

import config
from adapters import get_adapter, get_all_adapters
from data import db
from data.models import MarketResolution, ResolutionSummary, SimulatedTrade
from data.scraper import NotConfiguredError, utcnow

log = logging.getLogger(__name__)

# Upstream failures that skip one market without aborting the run.
# NotConfiguredError is a RuntimeError too and is handled before these.
_MARKET_ERRORS = (requests.RequestException, RuntimeError, KeyError, ValueError, TypeError)


def settle(trade: SimulatedTrade, resolution: MarketResolution) -> tuple[str, float]:
    """(result, pnl) for one trade on a resolved market."""
    if resolution.voided:
        return "refund", 0.0
    if resolution.is_winner(trade.outcome):
        return "win", round(trade.potential_payout - trade.amount, 2)
    return "loss", -trade.amount


def _fill_counts(conn: sqlite3.Connection, summary: ResolutionSummary) -> ResolutionSummary:
    counts = db.count_trades_by_result(conn, summary.platform)
    summary.wins = counts.get("win", 0)
    summary.losses = counts.get("loss", 0)
    summary.refunds = counts.get("refund", 0)
    summary.pending = counts.get("pending", 0)
    return summary


def resolve_platform(conn: sqlite3.Connection, platform_id: str,
                     time_budget: float = config.RESOLVE_TIME_BUDGET) -> ResolutionSummary:
    """Resolve every pending trade for *platform_id* that the platform has settled.

    Raises ``adapters.UnknownPlatformError`` for an unregistered platform.
    A missing table or missing credential yields a summary with ``message``
    set instead of an exception.
    """
    adapter = get_adapter(platform_id)
    started = time.monotonic()
    summary = ResolutionSummary(platform=adapter.platform_id)

    try:
        pending = db.get_pending_trades(conn, adapter.platform_id)
    except sqlite3.OperationalError as exc:
        if not db.is_missing_table(exc):
            raise
        summary.message = "Simulated trades table not found; run init first"
        return summary

    if not pending:
        summary.message = "No pending trades"
        summary.duration = time.monotonic() - started
        return _fill_counts(conn, summary)

    if not adapter.supports_resolution:
        summary.skipped = len(pending)
        summary.message = f"{adapter.name} results are not available; trades stay pending"
        summary.duration = time.monotonic() - started
        return _fill_counts(conn, summary)

    by_market: dict[str, list[SimulatedTrade]] = defaultdict(list)
    for t in pending:
        by_market[t.market_id].append(t)

    resolved_at = utcnow()
    for market_id, trades in by_market.items():
        if time.monotonic() - started > time_budget:
            log.warning("%s resolve hit the %ss budget; %d markets left for next run",
                        adapter.platform_id, time_budget, len(by_market) - summary.markets_checked)
            break

        summary.markets_checked += 1
        try:
            resolution: Optional[MarketResolution] = adapter.fetch_resolution(market_id, trades)
        except NotConfiguredError as exc:
            summary.message = str(exc)
            log.info("%s resolve skipped: %s", adapter.platform_id, exc)
            break
        except _MARKET_ERRORS as exc:
            summary.errors += 1
            log.warning("%s market %s resolution failed: %s", adapter.platform_id, market_id, exc)
            continue

        if resolution is None or not resolution.resolved:
            continue

        for t in trades:
            result, pnl = settle(t, resolution)
            if not db.settle_trade(conn, t.id, result, pnl, resolved_at):
                log.debug("Trade %s already settled elsewhere", t.id)
                continue
            summary.resolved += 1
            log.debug("Trade %s on %s -> %s (%.2f)", t.id, market_id, result, pnl)

    conn.commit()
    summary.skipped = len(pending) - summary.resolved
    summary.duration = time.monotonic() - started
    log.info("%s: resolved %d, skipped %d, errors %d across %d markets",
             adapter.platform_id, summary.resolved, summary.skipped,
             summary.errors, summary.markets_checked)
    return _fill_counts(conn, summary)


def resolve_all(conn: sqlite3.Connection) -> list[ResolutionSummary]:
    return [resolve_platform(conn, a.platform_id) for a in get_all_adapters()]


def get_pending_summary(conn: sqlite3.Connection, platform_id: str) -> dict:
    """Resolution status for one platform without contacting upstream."""
    adapter = get_adapter(platform_id)
    summary = ResolutionSummary(platform=adapter.platform_id)
    try:
        _fill_counts(conn, summary)
    except sqlite3.OperationalError as exc:
        if not db.is_missing_table(exc):
            raise
        summary.message = "Simulated trades table not found; run init first"
    return {
        "platform": summary.platform,
        "pending": summary.pending,
        "resolved": summary.wins + summary.losses + summary.refunds,
        "wins": summary.wins,
        "losses": summary.losses,
        "refunds": summary.refunds,
        "winRate": summary.win_rate,
        "supportsResolution": adapter.supports_resolution,
        "message": summary.message,
    }
