from __future__ import annotations

import logging
from typing import Optional

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id
from data.models import LeaderboardEntry, MarketData, MarketResolution, ScoreInput, SimulatedTrade
from data.scraper import TTL_MARKETS, _cache_get, _cache_set, _get, parse_dt, to_float, utcnow
from engine.scoring import calculate_truth_score

log = logging.getLogger(__name__)

_DEFAULT_DEPOSITS = 1000.0   # starting mana balance


@register
class ManifoldAdapter(PlatformAdapter):
    """Manifold Markets: play-money (mana) binary markets."""

    platform_id = "manifold"
    name = "Manifold Markets"
    chain = "Off-chain"
    currency = "Mana"
    min_amount = 10
    max_amount = 10_000
    supports_resolution = True

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        users = _get(f"{config.MANIFOLD_API}/users", params={"limit": limit},
                     timeout=config.PLATFORM_FETCH_TIMEOUT, retries=1)
        now = utcnow()
        entries = []
        for user in users or []:
            balance = to_float(user.get("balance"))
            deposits = to_float(user.get("totalDeposits")) or _DEFAULT_DEPOSITS
            pnl = balance - deposits
            profit_pct = pnl / deposits * 100
            bets = int(user.get("creatorTraderCount") or 0)
            # No per-user bet outcomes: derive a win share from the profit ratio
            wins = int(bets * max(0.3, min(0.7, (profit_pct + 50) / 100)))

            result = calculate_truth_score(ScoreInput(
                platform=self.name, pnl=pnl, volume=balance, trades=bets, last_trade_at=now,
            ), now=now)
            entries.append(self.entry(
                user["id"],
                result.total_score,
                win_rate=wins / bets * 100 if bets > 0 else 50.0,
                total_bets=bets,
                wins=wins,
                pnl=pnl,
                volume=balance,
                username=user.get("username") or user.get("name"),
                avatarUrl=user.get("avatarUrl"),
            ))
        return entries

    def _parse_market(self, m: dict) -> MarketData:
        prob = to_float(m.get("probability"), 0.5) or 0.5
        creator = m.get("creatorUsername")
        return self.market(
            m["id"],
            m.get("question", ""),
            question=m.get("question", ""),
            description=str(m.get("textDescription") or "")[:500],
            category=(m.get("groupSlugs") or ["General"])[0],
            outcomes=self.yes_no_outcomes(prob),
            status="resolved" if m.get("isResolved") else "open",
            yes_price=prob,
            no_price=1 - prob,
            volume=to_float(m.get("volume")),
            liquidity=to_float(m.get("totalLiquidity")),
            expires_at=parse_dt(m.get("closeTime")),
            metadata={
                "slug": m.get("slug"),
                "creatorUsername": creator,
                "url": m.get("url") or f"https://manifold.markets/{creator}/{m.get('slug')}",
            },
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        key = f"manifold:markets:{limit}"
        cached = _cache_get(key)
        if cached is not None:
            return cached

        page_size = min(max(limit, 100), 1000)
        markets: list[MarketData] = []
        before = None
        while len(markets) < limit:
            params = {"limit": page_size}
            if before:
                params["before"] = before
            raw = _get(f"{config.MANIFOLD_API}/markets", params=params) or []
            markets.extend(self._parse_market(m) for m in raw
                           if not m.get("isResolved") and m.get("outcomeType") == "BINARY")
            if len(raw) < page_size:
                break
            before = raw[-1]["id"]

        markets = markets[:limit]
        _cache_set(key, markets, TTL_MARKETS)
        return markets

    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        market = _get(f"{config.MANIFOLD_API}/market/{external_id(market_id, self.platform_id)}")
        if not market or not market.get("isResolved"):
            return None
        resolution = str(market.get("resolution") or "").upper()
        if resolution == "CANCEL":
            return MarketResolution(market_id, voided=True)
        if resolution in ("YES", "NO"):
            return MarketResolution(market_id, winner=resolution.capitalize())
        # MKT and other partial resolutions pay neither side in full
        log.info("Manifold market %s resolved %s, treating as refund", market_id, resolution)
        return MarketResolution(market_id, voided=True)
