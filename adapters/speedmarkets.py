from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import requests

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id, top_entries
from data.models import LeaderboardEntry, MarketData, MarketOutcome, MarketResolution, SimulatedTrade
from data.scraper import (
    TTL_PRICES,
    _cache_get,
    _cache_set,
    _get,
    from_wei,
    graphql,
    subgraph_gateway_url,
    to_float,
    utcnow,
)
from engine.scoring import score_binary

log = logging.getLogger(__name__)

ASSETS = {"BTC": "bitcoin", "ETH": "ethereum"}
FALLBACK_PRICES = {"BTC": 95000.0, "ETH": 3500.0}

TIME_FRAMES = [
    ("5 min", 300),
    ("10 min", 600),
    ("30 min", 1800),
    ("1 hour", 3600),
]

# Net profit on a winning position after protocol fees
_WIN_PROFIT_RATIO = 0.8

_POSITIONS_QUERY = """
query GetSpeedMarketUsers($first: Int!) {
  positionBalances(first: $first, orderBy: paid, orderDirection: desc) {
    account
    paid
    amount
    position {
      side
      market { result isOpen }
    }
  }
}
"""


# ---------------------------------------------------------------------------
# Spot prices
# ---------------------------------------------------------------------------
def _coingecko_prices() -> dict[str, float]:
    data = _get(config.COINGECKO_PRICE_URL,
                params={"ids": ",".join(ASSETS.values()), "vs_currencies": "usd"},
                timeout=10, retries=1)
    return {sym: to_float((data.get(cg_id) or {}).get("usd")) for sym, cg_id in ASSETS.items()}


def _binance_prices() -> dict[str, float]:
    symbols = [f"{sym}USDT" for sym in ASSETS]
    data = _get(config.BINANCE_PRICE_URL, params={"symbols": json.dumps(symbols)},
                timeout=10, retries=1)
    by_symbol = {t.get("symbol"): to_float(t.get("price")) for t in data or []}
    return {sym: by_symbol.get(f"{sym}USDT", 0.0) for sym in ASSETS}


def spot_prices() -> dict[str, float]:
    """Current USD prices for BTC and ETH, CoinGecko first then Binance.

    Raises ``RuntimeError`` when neither source returns a full set.
    """
    cached = _cache_get("speedmarkets:prices")
    if cached is not None:
        return cached
    for source in (_coingecko_prices, _binance_prices):
        try:
            prices = source()
        except requests.RequestException as exc:
            log.warning("%s failed: %s", source.__name__, exc)
            continue
        if all(prices.get(sym, 0) > 0 for sym in ASSETS):
            _cache_set("speedmarkets:prices", prices, TTL_PRICES)
            return prices
    raise RuntimeError("Unable to fetch prices from any API")


def parse_market_id(ext_id: str) -> tuple[str, int, datetime]:
    """Split "<ASSET>-<seconds>-<epoch minute>" into (asset, seconds, maturity)."""
    asset, seconds, minute = ext_id.split("-")
    maturity = datetime.fromtimestamp(int(minute) * 60 + int(seconds), tz=timezone.utc)
    return asset.upper(), int(seconds), maturity.replace(tzinfo=None)


def aggregate_positions(positions: list[dict]) -> dict[str, dict]:
    """Per-account volume/pnl/trades/wins from position balances.

    Market ``result`` 0 means long won, 1 means short won. Open positions
    with a remaining balance count as trades but move neither pnl nor wins.
    """
    users: dict[str, dict] = {}
    for pos in positions:
        account = (pos.get("account") or "").lower()
        if not account:
            continue
        paid = from_wei(pos.get("paid"))
        remaining = from_wei(pos.get("amount"))
        position = pos.get("position") or {}
        market = position.get("market") or {}
        result = market.get("result")

        agg = users.setdefault(account, {"volume": 0.0, "pnl": 0.0, "trades": 0, "wins": 0})
        agg["volume"] += paid
        agg["trades"] += 1

        if not market.get("isOpen") and result is not None:
            side = position.get("side")
            if (side == "long" and result == 0) or (side == "short" and result == 1):
                agg["wins"] += 1
                agg["pnl"] += paid * _WIN_PROFIT_RATIO
            else:
                agg["pnl"] -= paid
        elif remaining <= 0:
            agg["pnl"] -= paid
    return users


@register
class SpeedMarketsAdapter(PlatformAdapter):
    """Thales Speed Markets: UP/DOWN on BTC and ETH over short windows."""

    platform_id = "speedmarkets"
    name = "Speed Markets"
    chain = "Optimism"
    currency = "sUSD"
    min_amount = 5
    max_amount = 200
    fixed_payout = config.SPEED_MARKET_PAYOUT
    supports_resolution = True

    def fetch_leaderboard(self, limit: int = 100, network: str = "optimism") -> list[LeaderboardEntry]:
        url = subgraph_gateway_url(config.SPEEDMARKETS_SUBGRAPH_IDS[network])
        data = graphql(url, _POSITIONS_QUERY, {"first": 1000}, timeout=config.PLATFORM_FETCH_TIMEOUT)

        entries = []
        for account, agg in aggregate_positions(data.get("positionBalances", [])).items():
            trades, wins = agg["trades"], agg["wins"]
            entries.append(self.entry(
                account,
                score_binary(wins, trades).score,
                win_rate=wins / trades * 100 if trades > 0 else 0.0,
                total_bets=trades,
                wins=wins,
                pnl=agg["pnl"],
                volume=agg["volume"],
                network=network,
            ))

        return top_entries(entries, limit)

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        try:
            prices = spot_prices()
        except RuntimeError:
            log.warning("Spot prices unavailable, using fallback prices")
            prices = dict(FALLBACK_PRICES)

        now = time.time()
        minute = int(now // 60)
        markets = []
        for asset in ASSETS:
            for label, seconds in TIME_FRAMES:
                markets.append(self.market(
                    f"{asset}-{seconds}-{minute}",
                    f"{asset}/USD {label} Prediction",
                    question=f"Will {asset} go UP or DOWN in {label}?",
                    category="Crypto",
                    outcomes=[
                        MarketOutcome("up", "UP", 50, config.SPEED_MARKET_PAYOUT),
                        MarketOutcome("down", "DOWN", 50, config.SPEED_MARKET_PAYOUT),
                    ],
                    expires_at=datetime.fromtimestamp(now + seconds, tz=timezone.utc).replace(tzinfo=None),
                    metadata={
                        "asset": asset,
                        "currentPrice": prices[asset],
                        "timeframe": label,
                        "timeframeSec": seconds,
                        "estimatedPayout": config.SPEED_MARKET_PAYOUT,
                    },
                ))
        return markets[:limit]

    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        asset, _, maturity = parse_market_id(external_id(market_id, self.platform_id))
        if utcnow() < maturity:
            return None

        meta = trades[0].metadata if trades else {}
        strike = to_float(meta.get("strikePrice") or meta.get("currentPrice"))
        if strike <= 0:
            log.warning("Speed market %s has no strike price, skipping", market_id)
            return None

        final = spot_prices().get(asset, 0.0)
        if final <= 0:
            return None
        return MarketResolution(market_id, winner="UP" if final > strike else "DOWN")
