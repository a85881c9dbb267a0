from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

import requests

import config
from data.models import Bet, UserStats
from data.scraper import _get, to_float
from sdk.adapter import BaseAdapter, BetCallback, consistency_bonus, newest_first

log = logging.getLogger(__name__)

_PAGE_SIZE = 500
# Data API stops paging at offset ~3500
_MAX_PAGES = 7


def _ts(raw: dict) -> datetime:
    ts = raw.get("timestamp", 0)
    if isinstance(ts, (int, float)) and ts > 0:
        return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _position_key(condition_id: str, outcome: str) -> tuple[str, str]:
    return condition_id, (outcome or "").lower()


def parse_trade(raw: dict, outcomes: Optional[dict[tuple[str, str], bool]] = None) -> Bet:
    """Data API trade -> Bet. *outcomes* maps (conditionId, outcome) to won/lost."""
    condition_id = raw.get("conditionId") or raw.get("market") or ""
    outcome = raw.get("outcome") or ""
    size = to_float(raw.get("size"))
    price = to_float(raw.get("price"))
    won = (outcomes or {}).get(_position_key(condition_id, outcome))
    tx = raw.get("transactionHash") or ""
    return Bet(
        id=raw.get("id") or f"{tx}-{raw.get('asset', '')}-{raw.get('side', '')}",
        platform_id="polymarket",
        user_id=(raw.get("proxyWallet") or "").lower(),
        market_id=condition_id,
        position=outcome.lower() or ("yes" if raw.get("side") == "BUY" else "no"),
        amount=round(size * price, 6) if price > 0 else size,
        timestamp=_ts(raw),
        won=won,
        tx_hash=tx or None,
    )


class PolymarketAdapter(BaseAdapter):
    """User trades and settled positions from the public Data API."""

    platform_id = "polymarket"
    platform_name = "Polymarket"
    chain_id = 137
    native_token = "USDC"

    def _settled_outcomes(self, address: str) -> dict[tuple[str, str], bool]:
        """(conditionId, outcome) -> won, for redeemable positions only."""
        try:
            positions = _get(f"{config.POLYMARKET_DATA_API}/positions",
                             params={"user": address, "limit": _PAGE_SIZE})
        except requests.RequestException as exc:
            log.warning("[%s] positions unavailable for %s: %s", self.platform_name, address[:10], exc)
            return {}
        settled = {}
        for p in positions or []:
            if not p.get("redeemable"):
                continue
            settled[_position_key(p.get("conditionId", ""), p.get("outcome", ""))] = \
                to_float(p.get("curPrice")) >= 0.5
        return settled

    def _pages(self, params: dict[str, Any]):
        offset = 0
        for _ in range(_MAX_PAGES):
            data = _get(f"{config.POLYMARKET_DATA_API}/trades",
                        params={**params, "limit": _PAGE_SIZE, "offset": offset})
            if not data:
                return
            yield data
            if len(data) < _PAGE_SIZE:
                return
            offset += _PAGE_SIZE

    def get_bets_for_user(self, address: str) -> list[Bet]:
        address = address.lower()
        outcomes = self._settled_outcomes(address)
        bets = [parse_trade(raw, outcomes)
                for page in self._pages({"user": address})
                for raw in page]
        for b in bets:
            b.user_id = b.user_id or address
        log.info("[%s] %d trades for %s", self.platform_name, len(bets), address[:10])
        return newest_first(bets)

    def backfill(self, start: datetime, end: datetime, on_bet: BetCallback) -> int:
        """Walk recent Data API trades, newest first, until older than *start*."""
        if not self.initialized:
            raise RuntimeError("Adapter not initialized")

        log.info("[%s] Backfilling %s to %s", self.platform_name, start, end)
        count = 0
        users: set[str] = set()
        for page in self._pages({}):
            oldest = None
            for raw in page:
                bet = parse_trade(raw)
                oldest = bet.timestamp if oldest is None else min(oldest, bet.timestamp)
                if start <= bet.timestamp <= end:
                    on_bet(bet)
                    users.add(bet.user_id)
                    count += 1
            if oldest is not None and oldest < start:
                break

        log.info("[%s] Backfill complete: %d bets, %d unique users",
                 self.platform_name, count, len(users))
        return count

    def calculate_score(self, stats: UserStats) -> int:
        # Binary markets: accuracy weighs more, volume is in USDC
        win_points = stats.wins * 100
        win_rate_bonus = (stats.win_rate - 50) * 15 if stats.win_rate > 50 else 0
        volume_bonus = min(1000, math.floor(stats.volume * 0.1))
        return math.floor(win_points + win_rate_bonus + volume_bonus
                          + consistency_bonus(stats.total_bets))
