"""Per-platform bet sources for the reputation SDK.

A ``BaseAdapter`` knows how to list one user's bets on its platform and how
to walk a historical window of everyone's bets. Stats and the per-platform
score are derived from the bet list, so subclasses only implement the two
fetches and, optionally, a platform-specific ``calculate_score``.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable

from data.models import Bet, UserStats

log = logging.getLogger(__name__)

BetCallback = Callable[[Bet], None]


class BaseAdapter(ABC):
    platform_id: str = ""
    platform_name: str = ""
    chain_id: int = 0
    native_token: str = ""

    def __init__(self) -> None:
        self.initialized = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.platform_id}>"

    def initialize(self) -> None:
        self.initialized = True
        log.info("[%s] Initialized on chain %s", self.platform_name, self.chain_id)

    def destroy(self) -> None:
        self.initialized = False
        log.info("[%s] Adapter destroyed", self.platform_name)

    # ------------------------------------------------------------------
    # Platform-specific
    # ------------------------------------------------------------------
    @abstractmethod
    def get_bets_for_user(self, address: str) -> list[Bet]:
        """All bets placed by *address*, newest first."""

    @abstractmethod
    def backfill(self, start: datetime, end: datetime, on_bet: BetCallback) -> int:
        """Feed every bet placed in [start, end] to *on_bet*; returns the count."""

    # ------------------------------------------------------------------
    # Stats / score
    # ------------------------------------------------------------------
    def calculate_score(self, stats: UserStats) -> int:
        win_points = stats.wins * 100
        win_rate_bonus = (stats.win_rate - 55) * 10 if stats.win_rate > 55 else 0
        volume_bonus = min(500, math.floor(stats.volume * 10))
        return math.floor(win_points + win_rate_bonus + volume_bonus
                          + consistency_bonus(stats.total_bets))

    def get_user_stats(self, address: str) -> UserStats:
        bets = self.get_bets_for_user(address)
        resolved = [b for b in bets if b.won is not None]
        wins = sum(1 for b in resolved if b.won)
        dated = [b.timestamp for b in bets if b.timestamp is not None]

        stats = UserStats(
            user_id=address.lower(),
            platform_id=self.platform_id,
            total_bets=len(bets),
            wins=wins,
            losses=len(resolved) - wins,
            pending_bets=len(bets) - len(resolved),
            win_rate=round(wins / len(resolved) * 100, 2) if resolved else 0.0,
            volume=sum(b.amount or 0.0 for b in bets),
            first_bet_at=min(dated, default=None),
            last_bet_at=max(dated, default=None),
        )
        stats.score = self.calculate_score(stats)
        return stats


def newest_first(bets: list[Bet]) -> list[Bet]:
    """Sort bets newest first; undated bets go last."""
    return sorted(bets, key=lambda b: (b.timestamp is not None, b.timestamp or datetime.min),
                  reverse=True)


def consistency_bonus(total_bets: int) -> int:
    if total_bets >= 100:
        return 300
    if total_bets >= 50:
        return 200
    if total_bets >= 20:
        return 100
    return 0
