from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id, pick_winner
from data.models import LeaderboardEntry, MarketData, MarketResolution, SimulatedTrade
from data.scraper import TTL_MARKETS, _cache_get, _cache_set, _get, parse_dt, to_float
from engine.scoring import estimate_win_rate, legacy_pnl_score

log = logging.getLogger(__name__)

_LEADERBOARD_BATCH = 50  # API max per request


def _json_list(raw: Any) -> list:
    """Gamma encodes some arrays as JSON strings."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    return raw if isinstance(raw, list) else []


@register
class PolymarketAdapter(PlatformAdapter):
    platform_id = "polymarket"
    name = "Polymarket"
    chain = "Polygon"
    currency = "USDC"
    supports_resolution = True

    # ------------------------------------------------------------------
    # Leaderboard: Data API
    # ------------------------------------------------------------------
    def fetch_leaderboard(self, limit: int = 100, time_period: str = "ALL",
                          order_by: str = "PNL") -> list[LeaderboardEntry]:
        entries: list[LeaderboardEntry] = []
        offset = 0
        batch = min(limit, _LEADERBOARD_BATCH)

        while len(entries) < limit:
            params: dict[str, Any] = {
                "category": "OVERALL",
                "timePeriod": time_period,
                "orderBy": order_by,
                "limit": batch,
                "offset": offset,
            }
            try:
                data = _get(config.POLYMARKET_LEADERBOARD, params=params,
                            timeout=config.PLATFORM_FETCH_TIMEOUT, retries=1)
            except requests.RequestException:
                if not entries:
                    raise
                log.warning("Leaderboard fetch stopped at offset %d", offset)
                break

            if not data:
                break

            for raw in data:
                addr = raw.get("proxyWallet", "")
                if not addr:
                    continue
                pnl = to_float(raw.get("pnl"))
                vol = to_float(raw.get("vol"))
                entries.append(self.entry(
                    addr,
                    legacy_pnl_score(pnl, vol),
                    win_rate=estimate_win_rate(pnl, vol),
                    total_bets=0,
                    wins=0,
                    pnl=pnl,
                    volume=vol,
                    username=raw.get("userName") or None,
                    polymarketRank=int(to_float(raw.get("rank"), 0)) or None,
                ))

            if len(data) < batch:
                break
            offset += batch

        log.info("Fetched %d Polymarket leaderboard entries", len(entries))
        return entries[:limit]

    # ------------------------------------------------------------------
    # Markets: Gamma API
    # ------------------------------------------------------------------
    def _parse_market(self, raw: dict) -> MarketData:
        prices = [to_float(p, 0.5) for p in _json_list(raw.get("outcomePrices"))]
        yes_price = prices[0] if prices else 0.5
        vol = raw.get("volumeNum") or to_float(raw.get("volume"))
        return self.market(
            raw.get("conditionId") or str(raw.get("id", "")),
            raw.get("question", ""),
            question=raw.get("question", ""),
            description=(raw.get("description") or "")[:500],
            category=raw.get("category") or "General",
            outcomes=self.yes_no_outcomes(yes_price),
            status="closed" if raw.get("closed") else "open",
            yes_price=yes_price,
            no_price=prices[1] if len(prices) > 1 else 1 - yes_price,
            volume=float(vol or 0),
            liquidity=to_float(raw.get("liquidityNum") or raw.get("liquidity")),
            expires_at=parse_dt(raw.get("endDate")),
            metadata={"slug": raw.get("slug"), "gammaId": raw.get("id")},
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        key = f"polymarket:markets:{limit}"
        cached = _cache_get(key)
        if cached is not None:
            return cached

        params = {"active": "true", "closed": "false", "order": "volume",
                  "ascending": "false", "limit": limit}
        data = _get(config.GAMMA_MARKETS_ENDPOINT, params=params)

        markets: list[MarketData] = []
        for raw in data or []:
            try:
                markets.append(self._parse_market(raw))
            except (TypeError, ValueError):
                log.exception("Failed to parse market: %s", raw.get("conditionId", "?"))

        log.info("Fetched %d Polymarket markets", len(markets))
        _cache_set(key, markets, TTL_MARKETS)
        return markets

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        mid = external_id(market_id, self.platform_id)
        if mid.startswith("0x"):
            data = _get(config.GAMMA_MARKETS_ENDPOINT, params={"condition_ids": mid})
            market = data[0] if data else None
        else:
            market = _get(f"{config.GAMMA_MARKETS_ENDPOINT}/{mid}")
        if not market:
            return None
        return resolve_gamma_market(market_id, market)


def resolve_gamma_market(market_id: str, market: dict) -> Optional[MarketResolution]:
    if not (market.get("closed") is True or market.get("resolvedAt")):
        return None

    outcomes = _json_list(market.get("outcomes"))
    prices = [to_float(p) for p in _json_list(market.get("outcomePrices"))]

    winner = None
    if len(outcomes) == 2 and len(prices) == 2:
        winner = pick_winner([str(o) for o in outcomes], prices)
        if winner is None and prices[0] == 0 and prices[1] == 0:
            # Prices zeroed after settlement; the book still shows the result
            if market.get("bestAsk") == 1 and market.get("bestBid") == 0:
                winner = "No"
            elif market.get("bestAsk") == 0 and market.get("bestBid") == 1:
                winner = "Yes"

    if winner is None and market.get("voided"):
        return MarketResolution(market_id, voided=True)
    return MarketResolution(market_id, winner=winner)
