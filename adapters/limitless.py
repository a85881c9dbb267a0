from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import requests

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id, pick_winner, top_entries
from data.models import LeaderboardEntry, MarketData, MarketResolution, ScoreInput, SimulatedTrade
from data.scraper import TTL_PROFILES, _cache_get, _cache_set, _get, parse_dt, to_float, to_int, utcnow
from engine.scoring import calculate_truth_score

log = logging.getLogger(__name__)

_ENRICH_TOP = 30
_UNRANKED = 999_999


def estimated_win_rate(position: int) -> float:
    """Win rate (percent) implied by the Limitless points-leaderboard position."""
    if position <= 100:
        return 75 + (100 - position) * 0.1
    if position <= 1000:
        return 65 + (1000 - position) * 0.01
    if position <= 10_000:
        return 55 + (10_000 - position) * 0.001
    return 50 + min(5, 50_000 / position)


def positions_pnl(data: dict) -> float:
    """Realised PnL across AMM and CLOB positions, in USDC."""
    total = sum(to_float(p.get("realizedPnl")) for p in data.get("amm") or [])
    for p in data.get("clob") or []:
        sides = p.get("positions") or {}
        total += to_float((sides.get("yes") or {}).get("realisedPnl"))
        total += to_float((sides.get("no") or {}).get("realisedPnl"))
    return total / 1e6


def _normalise_price(p: float) -> float:
    return p / 100 if p > 1 else p


@register
class LimitlessAdapter(PlatformAdapter):
    platform_id = "limitless"
    name = "Limitless"
    chain = "Base"
    currency = "USDC"
    supports_resolution = True

    # ------------------------------------------------------------------
    # Leaderboard: traders discovered from market event feeds
    # ------------------------------------------------------------------
    def _market_slugs(self, limit: int) -> list[str]:
        data = _get(f"{config.LIMITLESS_API}/markets/active/slugs", params={"limit": limit},
                    timeout=10, retries=1)
        return [m["slug"] for m in data or [] if m.get("slug")]

    def _market_profiles(self, slug: str) -> list[dict]:
        try:
            data = _get(f"{config.LIMITLESS_API}/markets/{slug}/events", params={"limit": 50},
                        timeout=8, retries=1)
        except requests.RequestException as exc:
            log.debug("Limitless events for %s failed: %s", slug, exc)
            return []
        return [e["profile"] for e in data.get("events") or []
                if (e.get("profile") or {}).get("account")]

    def _enrich(self, address: str) -> tuple[float, float]:
        """(traded volume, realised pnl) for one trader; zeros on failure."""
        key = f"limitless:profile:{address.lower()}"
        cached = _cache_get(key)
        if cached is not None:
            return cached
        try:
            vol = _get(f"{config.LIMITLESS_API}/portfolio/{address}/traded-volume",
                       timeout=5, retries=1)
            pos = _get(f"{config.LIMITLESS_API}/portfolio/{address}/positions",
                       timeout=8, retries=1)
        except requests.RequestException as exc:
            log.debug("Limitless portfolio for %s failed: %s", address[:10], exc)
            return 0.0, 0.0
        result = (to_float((vol or {}).get("data")), positions_pnl(pos or {}))
        _cache_set(key, result, TTL_PROFILES)
        return result

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        slugs = self._market_slugs(config.LIMITLESS_MAX_SLUGS)
        if not slugs:
            return []

        with ThreadPoolExecutor(max_workers=5) as pool:
            profile_lists = list(pool.map(self._market_profiles, slugs))

        traders: dict[str, dict] = {}
        for profiles in profile_lists:
            for profile in profiles:
                addr = profile["account"].lower()
                position = to_int(profile.get("leaderboardPosition"), _UNRANKED) or _UNRANKED
                t = traders.get(addr)
                if t is None:
                    traders[addr] = {"profile": profile, "position": position, "trades": 1}
                    continue
                t["trades"] += 1
                if position < t["position"]:
                    t["profile"], t["position"] = profile, position

        ranked = sorted(traders.values(), key=lambda t: t["position"])
        with ThreadPoolExecutor(max_workers=10) as pool:
            enriched = list(pool.map(
                lambda t: self._enrich(t["profile"]["account"]), ranked[:_ENRICH_TOP]))
        for t, (volume, pnl) in zip(ranked, enriched):
            t["volume"], t["pnl"] = volume, pnl

        now = utcnow()
        entries = []
        for t in ranked:
            volume, pnl = t.get("volume", 0.0), t.get("pnl", 0.0)
            result = calculate_truth_score(ScoreInput(
                platform=self.name, pnl=pnl, volume=volume, trades=t["trades"], last_trade_at=now,
            ), now=now)
            win_rate = estimated_win_rate(t["position"])
            profile = t["profile"]
            entries.append(self.entry(
                profile["account"],
                result.total_score,
                win_rate=round(win_rate, 1),
                total_bets=t["trades"],
                wins=int(t["trades"] * win_rate / 100),
                pnl=pnl,
                volume=volume,
                username=profile.get("username") or None,
                limitlessRank=profile.get("rankName") or "Bronze",
                limitlessPosition=t["position"],
            ))
        return top_entries(entries, limit)

    # ------------------------------------------------------------------
    # Markets
    # ------------------------------------------------------------------
    def _parse_market(self, m: dict) -> MarketData:
        prices = m.get("prices") or []
        yes = _normalise_price(to_float(prices[0], 0.5)) if prices else 0.5
        no = _normalise_price(to_float(prices[1], 0.5)) if len(prices) > 1 else 1 - yes
        volume = to_float(m.get("volumeFormatted"))
        outcomes = self.yes_no_outcomes(yes)
        outcomes[1].probability = no * 100
        return self.market(
            str(m["id"]),
            m.get("title", ""),
            question=m.get("title", ""),
            description=str(m.get("description") or "")[:500],
            category=(m.get("categories") or ["General"])[0],
            outcomes=outcomes,
            yes_price=yes,
            no_price=no,
            volume=volume,
            liquidity=volume * 0.1,
            expires_at=parse_dt(m.get("expirationTimestamp") or m.get("expirationDate")),
            metadata={"conditionId": m.get("conditionId"), "slug": m.get("slug"),
                      "tags": m.get("tags")},
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        page_size = min(limit, 25)
        markets: list[MarketData] = []
        page = 1
        while len(markets) < limit:
            data = _get(f"{config.LIMITLESS_API}/markets/active",
                        params={"limit": page_size, "page": page})
            raw = data.get("data") or []
            markets.extend(self._parse_market(m) for m in raw
                           if not m.get("expired") and m.get("status") == "FUNDED")
            total = to_int(data.get("totalMarketsCount"))
            if len(raw) < page_size or page * page_size >= total:
                break
            page += 1
        return markets[:limit]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        meta = trades[0].metadata if trades else {}
        slug = meta.get("slug") or external_id(market_id, self.platform_id)
        market = _get(f"{config.LIMITLESS_API}/markets/{slug}", timeout=10, retries=1)
        if not market:
            return None

        winning = market.get("winningOutcomeIndex", market.get("winningIndex"))
        if winning is not None:
            return MarketResolution(market_id, winner="Yes" if winning == 0 else "No")

        prices = [_normalise_price(to_float(p)) for p in market.get("prices") or []]
        if len(prices) < 2:
            tokens = market.get("outcomeTokens") or []
            prices = [to_float(t.get("price")) for t in tokens[:2]]
        if len(prices) < 2:
            return None
        return MarketResolution(market_id, winner=pick_winner(["Yes", "No"], prices[:2]))
