from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import requests

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id
from data.models import LeaderboardEntry, MarketData, MarketOutcome, MarketResolution, SimulatedTrade
from data.scraper import (
    TTL_MARKETS,
    NotConfiguredError,
    _cache_get,
    _cache_set,
    _get,
    from_wei,
    graphql,
    parse_dt,
    subgraph_gateway_url,
    to_int,
    utcnow,
)
from engine.scoring import score_odds

log = logging.getLogger(__name__)

SPORTS_TO_FETCH = [
    "basketball_nba",
    "americanfootball_nfl",
    "icehockey_nhl",
    "soccer_epl",
    "mma_mixed_martial_arts",
    "baseball_mlb",
    "soccer_spain_la_liga",
    "soccer_germany_bundesliga",
]

SPORT_CATEGORIES = {
    "basketball_nba": "Basketball",
    "americanfootball_nfl": "Football",
    "icehockey_nhl": "Hockey",
    "baseball_mlb": "Baseball",
    "mma_mixed_martial_arts": "MMA",
    "soccer_epl": "Soccer",
    "soccer_spain_la_liga": "Soccer",
    "soccer_germany_bundesliga": "Soccer",
}

# Unsettled games this long past kick-off are refunded
_STALE_AFTER = timedelta(hours=24)

_USERS_QUERY = """
query GetTopUsers($first: Int!) {
  users(first: $first, orderBy: volume, orderDirection: desc, where: { volume_gt: "0" }) {
    id
    volume
    pnl
    trades
  }
}
"""


def estimated_win_share(pnl: float, volume: float) -> float:
    roi = pnl / volume if volume > 0 else 0.0
    if pnl > 0:
        return min(0.7, 0.5 + roi * 0.5)
    return max(0.3, 0.5 + roi * 0.5)


def _require_odds_key() -> str:
    if not config.ODDS_API_KEY:
        raise NotConfiguredError("ODDS_API_KEY is not set")
    return config.ODDS_API_KEY


@register
class OvertimeAdapter(PlatformAdapter):
    platform_id = "overtime"
    name = "Overtime"
    chain = "Optimism"
    currency = "sUSD"
    max_amount = 1000
    supports_resolution = True

    def fetch_leaderboard(self, limit: int = 100, network: str = "optimism") -> list[LeaderboardEntry]:
        url = subgraph_gateway_url(config.OVERTIME_SUBGRAPH_IDS[network])
        data = graphql(url, _USERS_QUERY, {"first": limit}, timeout=config.PLATFORM_FETCH_TIMEOUT)

        entries = []
        for user in data.get("users", []):
            volume = from_wei(user.get("volume"))
            pnl = from_wei(user.get("pnl"))
            trades = to_int(user.get("trades"))
            share = estimated_win_share(pnl, volume)
            entries.append(self.entry(
                user["id"],
                score_odds(pnl, volume, trades).score,
                win_rate=share * 100 if trades > 0 else 0.0,
                total_bets=trades,
                wins=int(trades * share),
                pnl=pnl,
                volume=volume,
                network=network,
            ))
        return entries

    # ------------------------------------------------------------------
    # Markets (The Odds API h2h lines)
    # ------------------------------------------------------------------
    def _parse_event(self, event: dict, sport_key: str) -> Optional[MarketData]:
        home, away = event.get("home_team"), event.get("away_team")
        if not home or not away:
            return None

        home_odds = away_odds = 2.0
        draw_odds = None
        for bookmaker in event.get("bookmakers") or []:
            h2h = next((m for m in bookmaker.get("markets") or [] if m.get("key") == "h2h"), None)
            if h2h and len(h2h.get("outcomes") or []) >= 2:
                prices = {o.get("name"): o.get("price") for o in h2h["outcomes"]}
                home_odds = prices.get(home) or home_odds
                away_odds = prices.get(away) or away_odds
                draw_odds = prices.get("Draw")
                break

        outcomes = [
            MarketOutcome("home", home, 100 / home_odds, home_odds),
            MarketOutcome("away", away, 100 / away_odds, away_odds),
        ]
        if draw_odds:
            outcomes.append(MarketOutcome("draw", "Draw", 100 / draw_odds, draw_odds))

        title = f"{home} vs {away}"
        return self.market(
            event["id"],
            title,
            question=title,
            category=SPORT_CATEGORIES.get(sport_key) or event.get("sport_title") or "Sports",
            outcomes=outcomes,
            yes_price=1 / home_odds,
            no_price=1 / away_odds,
            expires_at=parse_dt(event.get("commence_time")) or utcnow() + timedelta(days=1),
            metadata={
                "sportKey": sport_key,
                "sportTitle": event.get("sport_title"),
                "homeTeam": home,
                "awayTeam": away,
                "bookmakers": len(event.get("bookmakers") or []),
            },
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        api_key = _require_odds_key()
        key = f"overtime:markets:{limit}"
        cached = _cache_get(key)
        if cached is not None:
            return cached

        markets: list[MarketData] = []
        for sport in SPORTS_TO_FETCH:
            try:
                events = _get(f"{config.ODDS_API_BASE}/sports/{sport}/odds", params={
                    "apiKey": api_key, "regions": "us", "markets": "h2h", "oddsFormat": "decimal",
                }, timeout=10, retries=1)
            except requests.HTTPError as exc:
                if exc.response is not None and exc.response.status_code == 429:
                    log.warning("Odds API rate limit hit, stopping at %s", sport)
                    break
                log.warning("Odds API %s failed: %s", sport, exc)
                continue
            for event in events or []:
                market = self._parse_event(event, sport)
                if market:
                    markets.append(market)

        log.info("Fetched %d Overtime sports markets", len(markets))
        markets = markets[:limit]
        _cache_set(key, markets, TTL_MARKETS)
        return markets

    # ------------------------------------------------------------------
    # Resolution (The Odds API scores)
    # ------------------------------------------------------------------
    def _scores(self, sport_key: str) -> dict[str, dict]:
        key = f"overtime:scores:{sport_key}"
        cached = _cache_get(key)
        if cached is not None:
            return cached
        events = _get(f"{config.ODDS_API_BASE}/sports/{sport_key}/scores",
                      params={"apiKey": _require_odds_key(), "daysFrom": 3}, timeout=10, retries=1)
        by_id = {e["id"]: e for e in events or []}
        _cache_set(key, by_id, TTL_MARKETS)
        return by_id

    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        meta = trades[0].metadata if trades else {}
        sport_key = meta.get("sportKey")
        if not sport_key:
            log.warning("Overtime trade on %s has no sportKey, cannot resolve", market_id)
            return None

        event_id = external_id(market_id, self.platform_id)
        scores = self._scores(sport_key)
        event = scores.get(event_id)
        if event is None:
            event = next((e for e in scores.values()
                          if e.get("home_team") == meta.get("homeTeam")
                          and e.get("away_team") == meta.get("awayTeam")), None)

        if not event or not event.get("completed") or not event.get("scores"):
            kickoff = parse_dt(meta.get("maturity") or meta.get("commenceTime"))
            if kickoff and utcnow() - kickoff > _STALE_AFTER:
                return MarketResolution(market_id, voided=True)
            return None

        points = {s.get("name"): to_int(s.get("score"), -1) for s in event["scores"]}
        home, away = event.get("home_team"), event.get("away_team")
        if home not in points or away not in points:
            return None

        if points[home] > points[away]:
            return MarketResolution(market_id, winner="home", also_won=[home, "0"])
        if points[away] > points[home]:
            return MarketResolution(market_id, winner="away", also_won=[away, "2"])
        return MarketResolution(market_id, winner="draw", also_won=["1"])
