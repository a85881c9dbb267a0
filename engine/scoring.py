"""TruthScore: skill-weighted reputation on a 0-1300 scale.

Two families of traders are scored differently:

    binary: fixed-payout up/down markets (PancakeSwap, Speed Markets).
            Skill is the Wilson lower bound of the win rate above a coin flip.
    odds:   everything priced by a book or AMM. Skill is ROI discounted by
            its standard error, so a handful of lucky trades earns nothing.

Both then scale edge points by a sample-size confidence curve and add a
recency bonus that decays to zero over three months of inactivity.

Volume-only sources without per-bet ROI (Azuro) use ``calculate_log_score``,
which rewards skill, log-volume activity and log-profit directly.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from scipy import stats

import config
from data.models import ScoreInput, TruthScoreResult
from data.scraper import utcnow


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _round_to(x: float, places: int) -> float:
    factor = 10 ** places
    return _round_half_up(x * factor) / factor


# ---------------------------------------------------------------------------
# Statistical building blocks
# ---------------------------------------------------------------------------
def z_for_confidence(level: float = config.WILSON_CONFIDENCE) -> float:
    """Two-sided normal quantile, e.g. 0.95 -> 1.96."""
    return float(stats.norm.ppf(1 - (1 - level) / 2))


def _wilson_parts(wins: int, total: int, z: float) -> tuple[float, float, float]:
    p = wins / total
    denom = 1 + z * z / total
    center = p + z * z / (2 * total)
    spread = z * math.sqrt((p * (1 - p) + z * z / (4 * total)) / total)
    return center, spread, denom


def wilson_lower_bound(wins: int, total: int, z: float = config.WILSON_Z) -> float:
    """Lower bound of the Wilson score interval for a binomial proportion."""
    if total <= 0 or wins < 0 or wins > total:
        return 0.0
    center, spread, denom = _wilson_parts(wins, total, z)
    return max(0.0, (center - spread) / denom)


def wilson_upper_bound(wins: int, total: int, z: float = config.WILSON_Z) -> float:
    if total <= 0 or wins < 0 or wins > total:
        return 0.0
    center, spread, denom = _wilson_parts(wins, total, z)
    return min(1.0, (center + spread) / denom)


def confidence_multiplier(sample_size: int) -> float:
    """0.5 with no data, approaching 1.0 as the sample grows."""
    if sample_size <= 0:
        return config.CONFIDENCE_MIN
    gain = 1 - math.exp(-sample_size / config.CONFIDENCE_SCALE)
    return config.CONFIDENCE_MIN + (1 - config.CONFIDENCE_MIN) * gain


def conservative_roi(pnl: float, volume: float, trades: int) -> float:
    """ROI minus ROI_Z_SCORE standard errors (variance assumed, not measured)."""
    if volume <= 0 or trades <= 0:
        return 0.0
    std_error = math.sqrt(config.ROI_VARIANCE_ESTIMATE / trades)
    return pnl / volume - config.ROI_Z_SCORE * std_error


def recency_bonus(last_trade_at: Optional[datetime],
                  now: Optional[datetime] = None) -> tuple[int, float]:
    """Return (bonus, whole days since the last trade)."""
    if last_trade_at is None:
        return 0, math.inf
    now = now or utcnow()
    days = math.floor((now - last_trade_at).total_seconds() / 86400)
    if days <= config.RECENCY_FULL_DAYS:
        return config.RECENCY_MAX_BONUS, days
    if days >= config.RECENCY_DECAY_DAYS:
        return 0, days
    progress = (days - config.RECENCY_FULL_DAYS) / (config.RECENCY_DECAY_DAYS - config.RECENCY_FULL_DAYS)
    return _round_half_up(config.RECENCY_MAX_BONUS * (1 - progress)), days


def get_market_type(platform: str) -> str:
    normalized = "".join(ch for ch in platform.lower() if "a" <= ch <= "z")
    for binary in config.BINARY_PLATFORMS:
        if binary in normalized:
            return "binary"
    return "odds"


# ---------------------------------------------------------------------------
# Scorers
# ---------------------------------------------------------------------------
def _points(edge: float, sample_size: int, bonus: int) -> tuple[int, int, int, float]:
    edge_points = min(config.MAX_EDGE_POINTS, _round_half_up(edge * 5000))
    confidence = confidence_multiplier(sample_size)
    score = min(config.MAX_SCORE, _round_half_up(edge_points * confidence * 2))
    total = min(config.MAX_TOTAL_SCORE, score + bonus)
    return edge_points, score, total, confidence


def _days(days: float) -> Optional[int]:
    return None if math.isinf(days) else int(days)


def score_binary(wins: int, total: int, last_trade_at: Optional[datetime] = None,
                 now: Optional[datetime] = None) -> TruthScoreResult:
    bonus, days = recency_bonus(last_trade_at, now)
    if total < config.MIN_BETS_BINARY:
        return TruthScoreResult(
            score=0, total_score=0, eligible=False, market_type="binary",
            sample_size=total, days_since_last_trade=_days(days),
            raw_win_rate=_round_to(wins / total * 100, 1) if total > 0 else 0.0,
            proven_win_rate=0.0,
            reason=f"Need {config.MIN_BETS_BINARY}+ bets (have {total})",
        )

    proven = wilson_lower_bound(wins, total)
    edge = max(0.0, proven - 0.5)
    edge_points, score, total_score, confidence = _points(edge, total, bonus)
    return TruthScoreResult(
        score=score,
        total_score=total_score,
        eligible=True,
        market_type="binary",
        sample_size=total,
        edge=_round_to(edge * 100, 1),
        edge_points=edge_points,
        confidence=_round_half_up(confidence * 100),
        recency_bonus=bonus,
        days_since_last_trade=_days(days),
        raw_win_rate=_round_to(wins / total * 100, 1),
        proven_win_rate=_round_to(proven * 100, 1),
    )


def score_odds(pnl: float, volume: float, trades: int,
               last_trade_at: Optional[datetime] = None,
               now: Optional[datetime] = None) -> TruthScoreResult:
    bonus, days = recency_bonus(last_trade_at, now)
    raw_roi = _round_to(pnl / volume * 100, 1) if volume > 0 else 0.0

    reason = None
    if trades < config.MIN_BETS_ODDS:
        reason = f"Need {config.MIN_BETS_ODDS}+ trades (have {trades})"
    elif volume < config.MIN_VOLUME_ODDS:
        reason = f"Need ${config.MIN_VOLUME_ODDS}+ volume (have ${_round_half_up(volume)})"
    if reason:
        return TruthScoreResult(
            score=0, total_score=0, eligible=False, market_type="odds",
            sample_size=trades, days_since_last_trade=_days(days),
            raw_roi=raw_roi, proven_roi=0.0, reason=reason,
        )

    proven = conservative_roi(pnl, volume, trades)
    edge = max(0.0, proven)
    edge_points, score, total_score, confidence = _points(edge, trades, bonus)
    return TruthScoreResult(
        score=score,
        total_score=total_score,
        eligible=True,
        market_type="odds",
        sample_size=trades,
        edge=_round_to(edge * 100, 1),
        edge_points=edge_points,
        confidence=_round_half_up(confidence * 100),
        recency_bonus=bonus,
        days_since_last_trade=_days(days),
        raw_roi=raw_roi,
        proven_roi=_round_to(proven * 100, 1),
    )


def calculate_truth_score(inp: ScoreInput, now: Optional[datetime] = None) -> TruthScoreResult:
    """Dispatch to the binary or odds scorer based on the platform."""
    if get_market_type(inp.platform) == "binary":
        wins = inp.wins or 0
        total = inp.total_bets if inp.total_bets is not None else wins + (inp.losses or 0)
        return score_binary(wins, total, inp.last_trade_at, now)
    trades = inp.trades if inp.trades is not None else (inp.total_bets or 0)
    return score_odds(inp.pnl or 0.0, inp.volume or 0.0, trades, inp.last_trade_at, now)


def score_breakdown(result: TruthScoreResult) -> dict[str, str]:
    """Human-readable labels for skill, confidence and recency."""
    if not result.eligible:
        return {
            "skill": "Not eligible",
            "confidence": "N/A",
            "recency": "N/A",
            "explanation": result.reason or "Insufficient data",
        }

    edge = result.edge
    if edge >= 10:
        skill = "Elite"
    elif edge >= 7:
        skill = "Excellent"
    elif edge >= 5:
        skill = "Strong"
    elif edge >= 3:
        skill = "Good"
    elif edge >= 1:
        skill = "Slight edge"
    else:
        skill = "No proven edge"

    conf = result.confidence
    if conf >= 95:
        confidence = "Very high"
    elif conf >= 85:
        confidence = "High"
    elif conf >= 70:
        confidence = "Moderate"
    elif conf >= 55:
        confidence = "Low"
    else:
        confidence = "Very low"

    bonus = result.recency_bonus
    if bonus >= 250:
        recency = "Very active"
    elif bonus >= 150:
        recency = "Active"
    elif bonus >= 50:
        recency = "Moderate"
    elif bonus > 0:
        recency = "Low activity"
    else:
        recency = "Inactive"

    binary = result.market_type == "binary"
    edge_text = f"{edge}% above coin flip" if binary else f"{edge}% ROI"
    days_text = (f"{result.days_since_last_trade} days ago"
                 if result.days_since_last_trade is not None else "unknown")
    unit = "bets" if binary else "trades"
    return {
        "skill": f"{skill} ({edge_text})",
        "confidence": f"{confidence} ({conf}%, {result.sample_size} {unit})",
        "recency": f"{recency} (+{bonus} pts, last trade {days_text})",
        "explanation": (f"{skill} performer with {confidence.lower()} confidence. "
                        f"{recency} trader with +{bonus} recency bonus."),
    }


# ---------------------------------------------------------------------------
# Logarithmic activity/profit score
# ---------------------------------------------------------------------------
def calculate_log_score(pnl: float, volume: float, total_bets: int, wins: int) -> int:
    if total_bets < config.LOG_MIN_BETS:
        return 0

    skill = min(config.LOG_SKILL_MAX,
                max(0, math.floor(wilson_lower_bound(wins, total_bets) * config.LOG_SKILL_MAX)))
    activity = 0
    if volume > 0:
        activity = min(config.LOG_ACTIVITY_MAX,
                       max(0, math.floor(math.log10(volume) * config.LOG_ACTIVITY_FACTOR)))
    profit = 0
    if pnl > 0:
        profit = min(config.LOG_PROFIT_MAX,
                     max(0, math.floor(math.log10(pnl) * config.LOG_PROFIT_FACTOR)))

    multiplier = min(1.0, total_bets / config.LOG_FULL_SCORE_BETS)
    return min(config.MAX_TOTAL_SCORE, math.floor((skill + activity + profit) * multiplier))


# ---------------------------------------------------------------------------
# PnL leaderboard score (sources that only publish pnl and volume)
# ---------------------------------------------------------------------------
def legacy_pnl_score(pnl: float, volume: float) -> int:
    base = max(0.0, pnl)
    volume_bonus = min(500.0, volume / 100)
    profit_bonus = min(200.0, pnl / volume * 1000) if pnl > 0 and volume > 0 else 0.0
    return min(config.MAX_TOTAL_SCORE, math.floor(base + volume_bonus + profit_bonus))


def estimate_win_rate(pnl: float, volume: float) -> float:
    """Display-only win rate (percent) inferred from ROI, clamped to 5-95."""
    roi = pnl / volume if volume > 0 else 0.0
    return max(5.0, min(95.0, 50 + roi * 100))


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------
def get_tier(score: float) -> str:
    for name, threshold in config.TIERS:
        if score >= threshold:
            return name
    return config.TIERS[-1][0]
