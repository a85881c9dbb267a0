from __future__ import annotations

import logging

import config
from adapters import register
from adapters.base import PlatformAdapter, top_entries
from data.models import LeaderboardEntry
from data.scraper import graphql, subgraph_gateway_url, to_float, to_int
from engine.scoring import score_binary

log = logging.getLogger(__name__)

_USERS_QUERY = """
query GetTopUsers($first: Int!, $orderBy: String!) {
  users(first: $first, orderBy: $orderBy, orderDirection: desc, where: { totalBets_gt: "0" }) {
    id
    totalBets
    totalBNB
    netBNB
    winRate
  }
}
"""


@register
class PancakeSwapAdapter(PlatformAdapter):
    """PancakeSwap Prediction V2 on BSC.

    Only the leaderboard is served. Rounds live on-chain, so there is no
    market list and simulated bets are not resolved here.
    """

    platform_id = "pancakeswap"
    name = "PancakeSwap Prediction"
    chain = "BSC"
    currency = "BNB"

    def fetch_leaderboard(self, limit: int = 100, order_by: str = "totalBets") -> list[LeaderboardEntry]:
        url = subgraph_gateway_url(config.PANCAKESWAP_SUBGRAPH_ID)
        # Over-fetch: many users fall below the minimum sample
        data = graphql(url, _USERS_QUERY, {"first": limit * 2, "orderBy": order_by},
                       timeout=config.PLATFORM_FETCH_TIMEOUT)

        entries = []
        for user in data.get("users", []):
            bets = to_int(user.get("totalBets"))
            if bets < config.MIN_BETS_BINARY:
                continue
            win_rate = to_float(user.get("winRate"))
            wins = int(bets * win_rate / 100)
            entries.append(self.entry(
                user["id"],
                score_binary(wins, bets).score,
                win_rate=win_rate,
                total_bets=bets,
                wins=wins,
                pnl=to_float(user.get("netBNB")),
                volume=to_float(user.get("totalBNB")),
                network="BSC",
            ))
        return top_entries(entries, limit)
