"""Combine per-platform SDK stats into one weighted TruthScore.

Each platform contributes ``floor(score * weight)`` (weight defaults to 1.0);
an optional recent-activity bonus is added on top and the total is mapped to
a tier. Thresholds and weights are mutable at runtime.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from data.models import PlatformScore, TruthScore, UserStats

log = logging.getLogger(__name__)

DEFAULT_TIER_THRESHOLDS = {
    "bronze": 0,
    "silver": 200,
    "gold": 400,
    "platinum": 650,
    "diamond": 900,
}

TIER_COLORS = {
    "diamond": "#b9f2ff",
    "platinum": "#e5e4e2",
    "gold": "#ffd700",
    "silver": "#c0c0c0",
    "bronze": "#cd7f32",
}


@dataclass
class RecentStats:
    wins: int
    total_bets: int
    win_rate: float    # percent


class ScoringEngine:
    def __init__(self, platform_weights: Optional[dict[str, float]] = None,
                 tier_thresholds: Optional[dict[str, int]] = None,
                 recency_enabled: bool = True,
                 recency_window_days: int = 90,
                 recency_multiplier: float = 0.5):
        self.platform_weights = dict(platform_weights or {})
        self.tier_thresholds = dict(DEFAULT_TIER_THRESHOLDS)
        if tier_thresholds:
            self.tier_thresholds.update(tier_thresholds)
        self.recency_enabled = recency_enabled
        self.recency_window_days = recency_window_days
        self.recency_multiplier = recency_multiplier

    def platform_weight(self, platform_id: str) -> float:
        return self.platform_weights.get(platform_id, 1.0)

    def tier_for(self, total_score: int) -> str:
        for tier in ("diamond", "platinum", "gold", "silver"):
            if total_score >= self.tier_thresholds[tier]:
                return tier
        return "bronze"

    def recency_bonus(self, recent: RecentStats) -> int:
        if not self.recency_enabled or recent.total_bets == 0:
            return 0
        factor = recent.win_rate / 50 if recent.win_rate > 50 else 0.5
        return math.floor(recent.wins * 100 * factor * self.recency_multiplier)

    def calculate_truth_score(self, address: str, stats: list[UserStats],
                              recent: Optional[RecentStats] = None) -> TruthScore:
        breakdown = []
        total = 0
        for s in stats:
            weight = self.platform_weight(s.platform_id)
            breakdown.append(PlatformScore(
                platform_id=s.platform_id,
                platform_name=s.platform_id,
                score=s.score,
                weight=weight,
            ))
            total += math.floor(s.score * weight)

        if recent is not None:
            total += self.recency_bonus(recent)

        return TruthScore(
            user_id=address.lower(),
            total_score=total,
            tier=self.tier_for(total),
            breakdown=breakdown,
        )

    @staticmethod
    def compare_scores(a: TruthScore, b: TruthScore) -> int:
        """Sort key comparator: negative when *a* ranks above *b*."""
        if a.total_score != b.total_score:
            return b.total_score - a.total_score
        return len(b.breakdown) - len(a.breakdown)

    def get_tier_info(self, tier: str) -> dict:
        tier = tier if tier in TIER_COLORS else "bronze"
        return {
            "name": tier.capitalize(),
            "color": TIER_COLORS[tier],
            "minScore": self.tier_thresholds[tier],
        }

    def update_platform_weight(self, platform_id: str, weight: float) -> None:
        if not 0 <= weight <= 1:
            raise ValueError(f"Weight must be within [0, 1], got {weight}")
        self.platform_weights[platform_id] = weight
        log.info("Platform weight for %s set to %.2f", platform_id, weight)

    def update_tier_thresholds(self, thresholds: dict[str, int]) -> None:
        unknown = set(thresholds) - set(DEFAULT_TIER_THRESHOLDS)
        if unknown:
            raise ValueError(f"Unknown tiers: {', '.join(sorted(unknown))}")
        self.tier_thresholds.update(thresholds)
