from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import config
from adapters import register
from adapters.base import PlatformAdapter, external_id, top_entries
from data.models import (
    LeaderboardEntry,
    MarketData,
    MarketOutcome,
    MarketResolution,
    ScoreInput,
    SimulatedTrade,
)
from data.scraper import _get, parse_dt, to_float, utcnow
from engine.scoring import calculate_truth_score

log = logging.getLogger(__name__)

SPORT_NAMES = {
    1: "Soccer", 2: "Football", 3: "Basketball", 4: "Hockey", 5: "Baseball",
    6: "Tennis", 7: "MMA", 8: "Esports", 9: "Cricket", 10: "Rugby",
}

MARKET_TYPES = {
    1: "Moneyline", 2: "Spread", 3: "Total", 52: "Props", 63: "Game Props", 126: "Moneyline",
}

_VOID_OUTCOME = 3
_ODDS_SCALE = 1e18


def _trades_list(payload: dict | list) -> list:
    data = payload.get("data", payload) if isinstance(payload, dict) else payload
    if isinstance(data, dict):
        return data.get("trades") or []
    return data or []


def bettor_stats(trades: list[dict]) -> dict:
    """Aggregate settled trades into bets/wins/losses/volume/pnl.

    ``outcome`` 0 is a void settlement: counted as a bet with volume but
    neither a win nor a loss.
    """
    stats = {"bets": 0, "wins": 0, "losses": 0, "volume": 0.0, "pnl": 0.0}
    for t in trades:
        if not t.get("settled"):
            continue
        stats["bets"] += 1
        stake = to_float(t.get("betTimeValue"))
        stats["volume"] += stake

        outcome = t.get("outcome")
        if outcome == 0:
            continue
        backed_one = bool(t.get("bettingOutcomeOne"))
        if (backed_one and outcome == 1) or (not backed_one and outcome == 2):
            stats["wins"] += 1
            odds = to_float(t.get("odds"), _ODDS_SCALE) / _ODDS_SCALE
            stats["pnl"] += stake * (odds - 1)
        else:
            stats["losses"] += 1
            stats["pnl"] -= stake
    return stats


@register
class SXBetAdapter(PlatformAdapter):
    platform_id = "sxbet"
    name = "SX Bet"
    chain = "SX Network"
    currency = "USDC"
    max_amount = 1000
    supports_resolution = True

    # ------------------------------------------------------------------
    # Leaderboard
    # ------------------------------------------------------------------
    def _discover_bettors(self, sample: int = 200) -> list[str]:
        payload = _get(f"{config.SXBET_API}/trades", params={"limit": sample},
                       timeout=config.PLATFORM_FETCH_TIMEOUT, retries=1)
        seen: dict[str, None] = {}
        for t in _trades_list(payload):
            if t.get("bettor"):
                seen.setdefault(t["bettor"], None)
        return list(seen)

    def _bettor_trades(self, bettor: str) -> list[dict]:
        payload = _get(f"{config.SXBET_API}/trades",
                       params={"bettor": bettor, "pageSize": 100}, timeout=10, retries=1)
        return _trades_list(payload)

    def fetch_leaderboard(self, limit: int = 100) -> list[LeaderboardEntry]:
        bettors = self._discover_bettors()[:config.SXBET_MAX_BETTORS]
        log.info("SX Bet: fetching history for %d bettors", len(bettors))

        history: dict[str, list[dict]] = {}
        with ThreadPoolExecutor(max_workers=config.SXBET_BATCH_SIZE) as pool:
            futures = {b: pool.submit(self._bettor_trades, b) for b in bettors}
            for bettor, fut in futures.items():
                try:
                    history[bettor] = fut.result()
                except Exception as exc:
                    log.warning("SX Bet trades for %s failed: %s", bettor[:10], exc)

        now = utcnow()
        entries = []
        for bettor, trades in history.items():
            s = bettor_stats(trades)
            if s["bets"] < config.MIN_BETS_ODDS:
                continue
            result = calculate_truth_score(ScoreInput(
                platform=self.name, pnl=s["pnl"], volume=s["volume"],
                trades=s["bets"], last_trade_at=now,
            ), now=now)
            decided = s["wins"] + s["losses"]
            entries.append(self.entry(
                bettor.lower(),
                result.total_score,
                win_rate=round(s["wins"] / decided * 100, 1) if decided else 0.0,
                total_bets=s["bets"],
                wins=s["wins"],
                pnl=s["pnl"],
                volume=s["volume"],
            ))
        return top_entries(entries, limit)

    # ------------------------------------------------------------------
    # Markets
    # ------------------------------------------------------------------
    def _parse_market(self, m: dict) -> MarketData:
        sport = SPORT_NAMES.get(m.get("sportId"), "Sports")
        market_type = MARKET_TYPES.get(m.get("type"), "Moneyline")
        team_one = m.get("teamOneName") or m.get("outcomeOneName") or "Team 1"
        team_two = m.get("teamTwoName") or m.get("outcomeTwoName") or "Team 2"
        title = f"{team_one} vs {team_two}"

        outcomes = [
            MarketOutcome("one", m.get("outcomeOneName") or team_one, 50, 2.0),
            MarketOutcome("two", m.get("outcomeTwoName") or team_two, 50, 2.0),
        ]
        if m.get("outcomeVoidName"):
            outcomes.append(MarketOutcome("void", m["outcomeVoidName"], 10, 10.0))

        return self.market(
            m["marketHash"],
            title,
            question=f"{title} - {market_type}",
            category=sport,
            outcomes=outcomes,
            status="open" if m.get("status") == "ACTIVE" else "closed",
            expires_at=parse_dt(m.get("gameTime")),
            metadata={
                "marketHash": m["marketHash"],
                "sportId": m.get("sportId"),
                "leagueId": m.get("leagueId"),
                "marketType": market_type,
                "line": m.get("line"),
                "league": m.get("group2") or m.get("leagueLabel"),
            },
        )

    def fetch_markets(self, limit: int = 100) -> list[MarketData]:
        page_size = min(limit, 50)
        markets: list[MarketData] = []
        page = 1
        while len(markets) < limit:
            payload = _get(f"{config.SXBET_API}/markets/active",
                           params={"pageSize": page_size, "pageNum": page})
            raw = (payload.get("data") or {}).get("markets") or []
            markets.extend(self._parse_market(m) for m in raw
                           if m.get("status") == "ACTIVE" and m.get("marketHash"))
            if len(raw) < page_size:
                break
            page += 1
        return markets[:limit]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def fetch_resolution(self, market_id: str,
                         trades: list[SimulatedTrade]) -> Optional[MarketResolution]:
        market_hash = external_id(market_id, self.platform_id)
        payload = _get(f"{config.SXBET_API}/markets/{market_hash}", timeout=10, retries=1)
        market = payload.get("data", payload) if isinstance(payload, dict) else None
        if isinstance(market, list):
            market = market[0] if market else None
        if not market:
            return None

        status = market.get("status")
        if status not in ("SETTLED", "VOIDED"):
            return None
        reported = market.get("reportedOutcome")
        if status == "VOIDED" or reported == _VOID_OUTCOME:
            return MarketResolution(market_id, voided=True)
        if reported not in (1, 2):
            return None
        # Trades may name the outcome by index or by label
        label = market.get("outcomeOneName") if reported == 1 else market.get("outcomeTwoName")
        return MarketResolution(market_id, winner=str(reported),
                                also_won=[label] if label else [])
