from __future__ import annotations

import logging
from typing import Optional

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id
from data.models import LeaderboardEntry, MarketData, MarketResolution, SimulatedTrade
from data.scraper import TTL_MARKETS, _cache_get, _cache_set, _get, parse_dt, to_float

log = logging.getLogger(__name__)


def mid_price(m: dict) -> float:
    """YES mid price from the cent-denominated book, clamped to [0.01, 0.99]."""
    ask = to_float(m.get("yes_ask")) or 50
    bid = to_float(m.get("yes_bid")) or 50
    return max(0.01, min(0.99, (ask + bid) / 2 / 100))


@register
class KalshiAdapter(PlatformAdapter):
    """CFTC-regulated exchange; trader data is not public."""

    platform_id = "kalshi"
    name = "Kalshi"
    chain = "Off-chain"
    currency = "USD"
    max_amount = 1000
    supports_resolution = True

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        return []

    def _parse_market(self, m: dict) -> MarketData:
        yes_price = mid_price(m)
        return self.market(
            m["ticker"],
            m.get("title") or m.get("subtitle") or m["ticker"],
            question=m.get("title") or "",
            description=str(m.get("rules_primary") or "")[:500],
            category=m.get("category") or "Events",
            outcomes=self.yes_no_outcomes(yes_price),
            status="open" if m.get("status") in ("open", "active") else "closed",
            yes_price=yes_price,
            no_price=1 - yes_price,
            volume=to_float(m.get("volume")),
            liquidity=to_float(m.get("open_interest")),
            expires_at=parse_dt(m.get("close_time")),
            metadata={
                "eventTicker": m.get("event_ticker"),
                "ticker": m["ticker"],
                "subtitle": m.get("subtitle"),
                "volume24h": to_float(m.get("volume_24h")),
            },
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        key = f"kalshi:markets:{limit}"
        cached = _cache_get(key)
        if cached is not None:
            return cached

        markets: list[MarketData] = []
        cursor = None
        while len(markets) < limit:
            params = {"status": "open", "limit": min(limit, 200)}
            if cursor:
                params["cursor"] = cursor
            data = _get(f"{config.KALSHI_API}/markets", params=params)
            markets.extend(self._parse_market(m) for m in data.get("markets") or [])
            cursor = data.get("cursor")
            if not cursor:
                break

        markets = markets[:limit]
        _cache_set(key, markets, TTL_MARKETS)
        return markets

    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        ticker = external_id(market_id, self.platform_id)
        market = (_get(f"{config.KALSHI_API}/markets/{ticker}") or {}).get("market") or {}
        if market.get("status") not in ("settled", "finalized", "determined"):
            return None
        result = str(market.get("result") or "").lower()
        if result in ("yes", "no"):
            return MarketResolution(market_id, winner=result.capitalize())
        if result == "void":
            return MarketResolution(market_id, voided=True)
        return None
