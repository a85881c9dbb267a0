from __future__ import annotations

import logging

import config
from adapters import register
from adapters.base import PlatformAdapter, top_entries
from data.models import LeaderboardEntry, MarketData, ScoreInput
from data.scraper import TTL_MARKETS, _cache_get, _cache_set, _get, parse_dt, to_float, utcnow
from engine.scoring import calculate_truth_score

log = logging.getLogger(__name__)

# Forecast posts carry no per-user accuracy; these stand in for it
_PREDICTIONS_PER_POST = 5
_ASSUMED_ACCURACY = 0.7
_ASSUMED_BRIER = 0.15


@register
class MetaculusAdapter(PlatformAdapter):
    platform_id = "metaculus"
    name = "Metaculus"
    chain = "Off-chain"
    currency = "Points"
    min_amount = 10
    max_amount = 1000

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        data = _get(f"{config.METACULUS_API}/posts/", params={"limit": 100, "type": "forecast"},
                    timeout=config.PLATFORM_FETCH_TIMEOUT, retries=1)

        authors: dict[str, dict] = {}
        for post in data.get("results", []):
            author_id = post.get("author_id")
            if author_id is None:
                continue
            agg = authors.setdefault(str(author_id), {
                "username": post.get("author_username") or "Unknown",
                "posts": 0,
                "forecasters": 0,
            })
            agg["posts"] += 1
            agg["forecasters"] += int(post.get("nr_forecasters") or 0)

        now = utcnow()
        entries = []
        for author_id, agg in authors.items():
            avg_forecasters = agg["forecasters"] / agg["posts"]
            predictions = agg["posts"] * _PREDICTIONS_PER_POST
            pnl = avg_forecasters * 10
            volume = avg_forecasters * 100
            result = calculate_truth_score(ScoreInput(
                platform=self.name, pnl=pnl, volume=volume, trades=predictions, last_trade_at=now,
            ), now=now)
            entries.append(self.entry(
                author_id,
                result.total_score,
                win_rate=_ASSUMED_ACCURACY * 100,
                total_bets=predictions,
                wins=int(predictions * _ASSUMED_ACCURACY),
                pnl=pnl,
                volume=volume,
                username=agg["username"],
                brierScore=_ASSUMED_BRIER,
            ))
        return top_entries(entries, limit)

    def _parse_question(self, q: dict) -> MarketData:
        inner = q.get("question") or {}
        latest = ((inner.get("aggregations") or {}).get("recency_weighted") or {}).get("latest") or {}
        centers = latest.get("centers") or [0.5]
        yes_price = to_float(centers[0], 0.5)

        projects = q.get("projects") or {}
        category = "General"
        for key in ("question_series", "leaderboard_tag"):
            if projects.get(key):
                category = projects[key][0].get("name") or category
                break

        qid = q.get("id") or inner.get("id")
        title = q.get("title") or inner.get("title") or ""
        status = "open" if "open" in (q.get("status"), inner.get("status")) else "closed"
        return self.market(
            str(qid),
            title,
            question=title,
            description=str(inner.get("description") or q.get("description") or "")[:500],
            category=category,
            outcomes=self.yes_no_outcomes(yes_price),
            status=status,
            yes_price=yes_price,
            no_price=1 - yes_price,
            # Forecast count stands in for trading activity
            volume=to_float(q.get("forecasts_count") or q.get("nr_forecasters")),
            expires_at=parse_dt(q.get("scheduled_resolve_time") or inner.get("scheduled_resolve_time")),
            metadata={
                "url": f"https://www.metaculus.com/questions/{qid}",
                "author": q.get("author_username"),
                "forecastsCount": q.get("forecasts_count"),
                "slug": q.get("slug"),
            },
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        key = f"metaculus:markets:{limit}"
        cached = _cache_get(key)
        if cached is not None:
            return cached

        page_size = min(limit, 100)
        markets: list[MarketData] = []
        offset = 0
        while len(markets) < limit:
            data = _get(f"{config.METACULUS_API2}/questions/", params={
                "limit": page_size, "offset": offset, "status": "open",
                "type": "binary", "order_by": "-activity",
            })
            results = data.get("results") or []
            markets.extend(self._parse_question(q) for q in results)
            offset += len(results)
            if not results or offset >= int(data.get("count") or 0):
                break

        markets = markets[:limit]
        _cache_set(key, markets, TTL_MARKETS)
        return markets
