"""Paper trading: record simulated copy-trades and summarise how they did."""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from typing import Optional

import config
from adapters import get_adapter
from data import db
from data.models import SimulatedTrade

log = logging.getLogger(__name__)


class SimulationError(ValueError):
    """A simulated bet failed validation."""


class DuplicateBetError(SimulationError):
    """The follower already holds a simulated position in this market."""


def simulate_bet(conn: sqlite3.Connection, platform: str, follower: str, market_id: str,
                 outcome: str, amount: float, entry_price: Optional[float] = None,
                 odds: Optional[float] = None,
                 leader: Optional[str] = None, market_question: str = "",
                 metadata: Optional[dict] = None) -> SimulatedTrade:
    """Validate and store one pending simulated bet.

    Sportsbook platforms quote decimal *odds*; when given they win over
    *entry_price* and the payout is ``amount * odds``.

    Raises ``SimulationError`` on bad input, ``DuplicateBetError`` when the
    follower already has a position on *market_id*, and
    ``adapters.UnknownPlatformError`` for an unregistered platform.
    """
    adapter = get_adapter(platform)

    required = (("follower", follower), ("marketId", market_id),
                ("outcomeSelected", outcome), ("amountUsd", amount))
    missing = [name for name, value in required if value is None or value == ""]
    if missing:
        raise SimulationError(f"Missing required fields: {', '.join(missing)}")

    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise SimulationError(f"Invalid amount: {amount!r}") from None
    if not adapter.min_amount <= amount <= adapter.max_amount:
        raise SimulationError(
            f"Amount must be between {adapter.min_amount:g} and {adapter.max_amount:g} {adapter.currency}"
        )

    if odds is not None:
        try:
            odds = float(odds)
        except (TypeError, ValueError):
            raise SimulationError(f"Invalid odds: {odds!r}") from None
        if odds < 1:
            raise SimulationError(f"Odds must be decimal odds of at least 1.0, got {odds:g}")
        entry_price = 1 / odds
    elif entry_price is not None:
        try:
            entry_price = float(entry_price)
        except (TypeError, ValueError):
            raise SimulationError(f"Invalid entry price: {entry_price!r}") from None

    price = max(config.SIM_MIN_ENTRY_PRICE, entry_price if entry_price is not None else 0.5)
    if adapter.fixed_payout:
        payout = amount * adapter.fixed_payout
    elif odds is not None:
        payout = amount * odds
    else:
        payout = amount / price

    trade = SimulatedTrade(
        platform=adapter.platform_id,
        follower=follower.lower(),
        leader=(leader or config.SIM_DEFAULT_LEADER).lower(),
        market_id=str(market_id),
        market_question=market_question or "",
        outcome=str(outcome),
        amount=amount,
        entry_price=round(price, 4),
        potential_payout=round(payout, 2),
        metadata=dict(metadata or {}),
    )
    if odds is not None:
        trade.metadata.setdefault("odds", odds)
    try:
        trade.id = db.insert_simulated_trade(conn, trade)
    except sqlite3.IntegrityError:
        raise DuplicateBetError("Already have a position in this market") from None

    log.info("Simulated %s bet: %s %.2f on %s/%s", adapter.platform_id, trade.follower,
             amount, market_id, outcome)
    return trade


def _empty_stats() -> dict:
    return {"total_trades": 0, "wins": 0, "losses": 0, "refunds": 0, "pending": 0,
            "total_pnl": 0.0, "total_volume": 0.0}


def get_simulation_stats(conn: sqlite3.Connection, platform: str,
                         follower: Optional[str] = None) -> dict:
    """Per-follower and overall results of simulated trades on *platform*.

    Refunds are counted on their own, not as wins, losses or pending.
    ``win_rate`` only considers decided trades.
    """
    adapter = get_adapter(platform)
    trades = db.get_simulated_trades(conn, adapter.platform_id, follower=follower)

    per_follower: dict[str, dict] = defaultdict(_empty_stats)
    overall = _empty_stats()
    for t in trades:
        for agg in (per_follower[t.follower], overall):
            agg["total_trades"] += 1
            agg["total_volume"] += t.amount
            if t.result == "win":
                agg["wins"] += 1
            elif t.result == "loss":
                agg["losses"] += 1
            elif t.result == "refund":
                agg["refunds"] += 1
            else:
                agg["pending"] += 1
            agg["total_pnl"] += t.pnl or 0.0

    followers = []
    for address, agg in per_follower.items():
        decided = agg["wins"] + agg["losses"]
        followers.append({
            "follower": address,
            **agg,
            "win_rate": round(agg["wins"] / decided * 100, 1) if decided else 0.0,
            "total_pnl": round(agg["total_pnl"], 2),
            "total_volume": round(agg["total_volume"], 2),
        })
    followers.sort(key=lambda f: f["total_pnl"], reverse=True)

    decided = overall["wins"] + overall["losses"]
    return {
        "platform": adapter.platform_id,
        "followers": followers,
        "overall": {
            "totalTrades": overall["total_trades"],
            "wins": overall["wins"],
            "losses": overall["losses"],
            "refunds": overall["refunds"],
            "pending": overall["pending"],
            "totalPnl": round(overall["total_pnl"], 2),
            "totalVolume": round(overall["total_volume"], 2),
            "overallWinRate": f"{overall['wins'] / decided * 100:.1f}%" if decided else "N/A",
        },
        "recentTrades": [
            {
                "id": t.id,
                "follower": t.follower,
                "leader": t.leader,
                "marketId": t.market_id,
                "marketQuestion": t.market_question,
                "outcome": t.outcome,
                "amount": t.amount,
                "entryPrice": t.entry_price,
                "potentialPayout": t.potential_payout,
                "result": t.result,
                "pnl": t.pnl,
                "createdAt": t.created_at.isoformat() if t.created_at else None,
                "resolvedAt": t.resolved_at.isoformat() if t.resolved_at else None,
            }
            for t in trades[:config.SIM_RECENT_TRADES]
        ],
    }
