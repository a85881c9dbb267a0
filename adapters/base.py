from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import config
from data.models import (
    LeaderboardEntry,
    MarketData,
    MarketOutcome,
    MarketResolution,
    PlatformBreakdown,
    SimulatedTrade,
)
from engine.scoring import get_market_type

log = logging.getLogger(__name__)


class PlatformAdapter:
    """Base class for a prediction-market platform.

    Subclasses set the class attributes and override whichever of
    ``fetch_leaderboard``, ``fetch_markets`` and ``fetch_resolution`` the
    platform's public API supports. The defaults return nothing, which the
    callers treat as "no data" rather than an error.
    """

    platform_id: str = ""
    name: str = ""
    chain: str = "Off-chain"
    currency: str = "USD"
    min_amount: float = config.SIM_DEFAULT_MIN_AMOUNT
    max_amount: float = config.SIM_DEFAULT_MAX_AMOUNT
    fixed_payout: float | None = None   # payout multiple when the platform pays a flat rate
    supports_resolution: bool = False

    @property
    def market_type(self) -> str:
        return get_market_type(self.name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.platform_id}>"

    # ------------------------------------------------------------------
    # Overridable API
    # ------------------------------------------------------------------
    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        return []

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        return []

    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        """Settlement state of one market, given the pending trades on it.

        Returns None (or an unresolved ``MarketResolution``) while the market
        is still open. Only called when ``supports_resolution`` is set.
        """
        return None

    # ------------------------------------------------------------------
    # Builders shared by subclasses
    # ------------------------------------------------------------------
    def entry(self, address: str, score: int, *, win_rate: float, total_bets: int,
              pnl: float, volume: float, wins: int | None = None,
              username: str | None = None, last_active: datetime | None = None,
              **extra) -> LeaderboardEntry:
        """Leaderboard row carrying its own single-platform breakdown."""
        if wins is None:
            wins = int(total_bets * win_rate / 100)
        return LeaderboardEntry(
            address=address,
            username=username,
            truth_score=int(score),
            win_rate=round(win_rate, 2),
            total_bets=total_bets,
            wins=wins,
            losses=max(0, total_bets - wins),
            pnl=pnl,
            volume=volume,
            platforms=[self.name],
            platform_breakdown=[PlatformBreakdown(
                platform=self.name,
                bets=total_bets,
                win_rate=round(win_rate, 2),
                score=int(score),
                volume=volume,
                pnl=pnl,
            )],
            last_active=last_active,
            extra=extra,
        )

    def market(self, external_id: str, title: str, **fields) -> MarketData:
        fields.setdefault("chain", self.chain)
        fields.setdefault("currency", self.currency)
        return MarketData(
            id=f"{self.platform_id}-{external_id}",
            platform=self.platform_id,
            external_id=str(external_id),
            title=title,
            **fields,
        )

    @staticmethod
    def yes_no_outcomes(yes_price: float) -> list[MarketOutcome]:
        no_price = 1 - yes_price
        return [
            MarketOutcome("yes", "Yes", yes_price * 100, 1 / yes_price if yes_price > 0.01 else 100.0),
            MarketOutcome("no", "No", no_price * 100, 1 / no_price if no_price > 0.01 else 100.0),
        ]


def external_id(market_id: str, platform_id: str) -> str:
    """Strip the "<platform>-" prefix from a unified market id, if present."""
    prefix = f"{platform_id}-"
    mid = market_id
    return mid[len(prefix):] if mid.startswith(prefix) else mid


def pick_winner(outcomes: list[str], prices: list[float],
                threshold: float = 0.95) -> Optional[str]:
    """Outcome whose settled price is above *threshold*, if any."""
    for name, price in zip(outcomes, prices):
        if price > threshold:
            return name
    return None


def top_entries(entries: list[LeaderboardEntry], limit: int) -> list[LeaderboardEntry]:
    """Highest TruthScore first, cut to *limit*."""
    return sorted(entries, key=lambda e: e.truth_score, reverse=True)[:limit]
