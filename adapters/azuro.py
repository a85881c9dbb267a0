from __future__ import annotations

import logging
import math
from typing import Optional

import requests

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id
from data.models import LeaderboardEntry, MarketData, MarketOutcome, MarketResolution, SimulatedTrade
from data.scraper import SubgraphError, from_wei, graphql, parse_dt, to_int
from engine.scoring import calculate_log_score

log = logging.getLogger(__name__)

_BETTORS_QUERY = """
query GetTopBettors($first: Int!) {
  bettors(first: $first, orderBy: rawTurnover, orderDirection: desc,
          where: { betsCount_gt: "0" }) {
    id
    rawTurnover
    betsCount
    wonBetsCount
    lostBetsCount
    canceledBetsCount
    pnl
  }
}
"""

_GAMES_QUERY = """
query GetGames($first: Int!) {
  games(first: $first, where: { status: Created }, orderBy: startsAt, orderDirection: asc) {
    id
    gameId
    startsAt
    sport { name }
    league { name country { name } }
    participants { name }
    conditions(first: 5, where: { status: Created }) { conditionId turnover }
  }
}
"""

_CONDITIONS_QUERY = """
query GetConditions($ids: [ID!]!) {
  conditions(where: { id_in: $ids }) {
    id
    status
    wonOutcomes { outcomeId }
  }
}
"""


@register
class AzuroAdapter(PlatformAdapter):
    platform_id = "azuro"
    name = "Azuro"
    chain = "Multi-chain"
    currency = "USDC"
    max_amount = 1000
    supports_resolution = True

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        per_network = math.ceil(limit / len(config.AZURO_SUBGRAPHS))
        merged: dict[str, dict] = {}

        for network, url in config.AZURO_SUBGRAPHS.items():
            try:
                data = graphql(url, _BETTORS_QUERY, {"first": per_network},
                               timeout=config.PLATFORM_FETCH_TIMEOUT)
            except (requests.RequestException, SubgraphError) as exc:
                log.warning("Azuro %s subgraph failed: %s", network, exc)
                continue

            for b in data.get("bettors", []):
                addr = b["id"].lower()
                agg = merged.setdefault(addr, {"bets": 0, "wins": 0, "volume": 0.0,
                                               "pnl": 0.0, "networks": []})
                agg["bets"] += to_int(b.get("betsCount"))
                agg["wins"] += to_int(b.get("wonBetsCount"))
                agg["volume"] += from_wei(b.get("rawTurnover"))
                agg["pnl"] += from_wei(b.get("pnl"))
                agg["networks"].append(network)

        entries = []
        for addr, agg in merged.items():
            bets, wins = agg["bets"], agg["wins"]
            win_rate = wins / bets * 100 if bets > 0 else 0.0
            entries.append(self.entry(
                addr,
                calculate_log_score(agg["pnl"], agg["volume"], bets, wins),
                win_rate=round(win_rate, 1),
                total_bets=bets,
                wins=wins,
                pnl=agg["pnl"],
                volume=agg["volume"],
                network=",".join(agg["networks"]),
            ))
        log.info("Fetched %d Azuro bettors", len(entries))
        return entries

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        markets: list[MarketData] = []
        for network in ("polygon", "gnosis"):
            try:
                data = graphql(config.AZURO_SUBGRAPHS[network], _GAMES_QUERY,
                               {"first": min(limit, 100)})
            except (requests.RequestException, SubgraphError) as exc:
                log.warning("Azuro %s games query failed: %s", network, exc)
                continue
            for game in data.get("games", []):
                markets.append(self._parse_game(game, network))

        markets.sort(key=lambda m: m.expires_at or parse_dt(0))
        return markets[:limit]

    def _parse_game(self, game: dict, network: str) -> MarketData:
        names = [p.get("name", "") for p in game.get("participants") or []]
        league = (game.get("league") or {}).get("name")
        title = f"{names[0]} vs {names[1]}" if len(names) >= 2 else league or "Unknown Match"
        # Turnover is 6-decimal stablecoin units
        turnover = sum(from_wei(c.get("turnover"), 6) for c in game.get("conditions") or [])
        home = names[0] if names else "Home"
        away = names[1] if len(names) > 1 else "Away"
        return self.market(
            f"{network}-{game['gameId']}",
            title,
            question=title,
            category=(game.get("sport") or {}).get("name") or "Sports",
            outcomes=[
                MarketOutcome("home", home, 33, 3.0),
                MarketOutcome("away", away, 33, 3.0),
                MarketOutcome("draw", "Draw", 34, 2.94),
            ],
            yes_price=0.33,
            no_price=0.33,
            volume=turnover,
            expires_at=parse_dt(to_int(game.get("startsAt"))),
            metadata={
                "gameId": game["gameId"],
                "league": league,
                "network": network,
                "conditionIds": [c.get("conditionId") for c in game.get("conditions") or []],
            },
            chain=network.capitalize(),
            currency="xDAI" if network == "gnosis" else "USDC",
        )

    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        # Simulated Azuro bets store the condition id as market and the network in metadata
        network = (trades[0].metadata.get("network") if trades else None) or "polygon"
        url = config.AZURO_SUBGRAPHS.get(network)
        if url is None:
            log.warning("Unknown Azuro network %r for %s", network, market_id)
            return None

        condition_id = external_id(market_id, self.platform_id)
        data = graphql(url, _CONDITIONS_QUERY, {"ids": [condition_id]})
        conditions = data.get("conditions", [])
        if not conditions:
            return None

        cond = conditions[0]
        if cond.get("status") == "Canceled":
            return MarketResolution(market_id, voided=True)
        if cond.get("status") != "Resolved":
            return None
        won = [str(w["outcomeId"]) for w in cond.get("wonOutcomes") or []]
        if not won:
            return None
        return MarketResolution(market_id, winner=won[0], also_won=won[1:])
