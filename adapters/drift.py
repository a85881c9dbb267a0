from __future__ import annotations

import logging

import requests

import config
from adapters import register
from adapters.base import PlatformAdapter
from data.models import LeaderboardEntry, MarketData
from data.scraper import _get, to_float
from engine.scoring import score_odds

log = logging.getLogger(__name__)

# (perp symbol, title, target price, half-width of the probability ramp)
PREDICTION_CONFIGS = [
    ("BTC-PERP", "Bitcoin above $100,000", 100_000, 20_000),
    ("ETH-PERP", "Ethereum above $4,000", 4_000, 1_000),
    ("SOL-PERP", "Solana above $150", 150, 50),
    ("JUP-PERP", "Jupiter above $2", 2, 1),
]


def threshold_probability(price: float, target: float, spread: float) -> float:
    """Linear ramp from target-spread (5%) to target+spread (95%)."""
    return min(max((price - (target - spread)) / (spread * 2), 0.05), 0.95)


@register
class DriftAdapter(PlatformAdapter):
    """Drift on Solana.

    There is no public trader leaderboard: the DLOB ``topMakers`` ranking is
    the only source, so activity is estimated from the maker's rank.
    """

    platform_id = "drift"
    name = "Drift"
    chain = "Solana"
    currency = "USDC"
    max_amount = 1000

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        makers = _get(f"{config.DRIFT_DLOB_API}/topMakers",
                      params={"marketName": "SOL-PERP", "side": "bid", "limit": 100},
                      timeout=10, retries=1)
        if not isinstance(makers, list):
            return []

        entries = []
        for idx, address in enumerate(makers[:limit]):
            rank_weight = max(1, 50 - idx)
            trades = rank_weight * 100
            volume = rank_weight * 10_000.0
            pnl = volume * 0.02
            entries.append(self.entry(
                address,
                score_odds(pnl, volume, trades).score,
                win_rate=52.0,
                total_bets=trades,
                wins=int(trades * 0.52),
                pnl=pnl,
                volume=volume,
            ))
        return entries

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        markets = []
        for symbol, title, target, spread in PREDICTION_CONFIGS:
            try:
                book = _get(f"{config.DRIFT_DLOB_API}/l2",
                            params={"marketName": symbol, "marketType": "perp", "depth": 1},
                            timeout=5, retries=1)
            except requests.RequestException as exc:
                log.warning("Drift oracle price for %s failed: %s", symbol, exc)
                continue
            oracle = to_float(book.get("oracle"))
            if not oracle:
                continue

            prob = threshold_probability(oracle, target, spread)
            markets.append(self.market(
                symbol,
                title,
                question=f"Will {title.lower()}?",
                category="Crypto",
                outcomes=self.yes_no_outcomes(prob),
                yes_price=prob,
                no_price=1 - prob,
                metadata={"symbol": symbol, "oraclePrice": oracle, "target": target,
                          "source": "drift-dlob"},
            ))
        log.info("Fetched %d Drift prediction markets", len(markets))
        return markets[:limit]
