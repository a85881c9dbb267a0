from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


# ---------------------------------------------------------------------------
# Markets
# ---------------------------------------------------------------------------
@dataclass
class MarketOutcome:
    id: str
    name: str
    probability: float   # percent, 0-100
    odds: float          # decimal odds


@dataclass
class MarketData:
    id: str              # "<platform>-<external_id>"
    platform: str
    external_id: str
    title: str
    question: str = ""
    description: str = ""
    category: str = "General"
    outcomes: list[MarketOutcome] = field(default_factory=list)
    status: str = "open"  # 'open', 'closed', 'resolved'
    yes_price: float = 0.5
    no_price: float = 0.5
    volume: float = 0.0
    liquidity: float = 0.0
    expires_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)
    chain: str = "Off-chain"
    currency: str = "USD"
    fetched_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "platform": self.platform,
            "externalId": self.external_id,
            "title": self.title,
            "question": self.question or self.title,
            "description": self.description,
            "category": self.category,
            "outcomes": [
                {"id": o.id, "name": o.name, "probability": o.probability, "odds": o.odds}
                for o in self.outcomes
            ],
            "status": self.status,
            "yesPrice": self.yes_price,
            "noPrice": self.no_price,
            "volume": self.volume,
            "liquidity": self.liquidity,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "metadata": self.metadata,
            "chain": self.chain,
            "currency": self.currency,
            "fetchedAt": self.fetched_at,
        }


@dataclass
class MarketResolution:
    market_id: str
    winner: Optional[str] = None   # winning outcome label, None while unresolved
    voided: bool = False
    also_won: list[str] = field(default_factory=list)  # multi-winner markets (Azuro)

    @property
    def resolved(self) -> bool:
        return self.voided or self.winner is not None

    def is_winner(self, outcome: str) -> bool:
        winners = [self.winner, *self.also_won] if self.winner is not None else []
        return outcome.strip().lower() in {str(w).strip().lower() for w in winners}


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
@dataclass
class PlatformBreakdown:
    platform: str
    bets: int
    win_rate: float
    score: int
    volume: float
    pnl: float

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "bets": self.bets,
            "winRate": self.win_rate,
            "score": self.score,
            "volume": self.volume,
            "pnl": self.pnl,
        }


@dataclass
class LeaderboardEntry:
    address: str
    truth_score: int
    win_rate: float = 0.0          # percent
    total_bets: int = 0
    wins: int = 0
    losses: int = 0
    pnl: float = 0.0
    volume: float = 0.0
    username: Optional[str] = None
    platforms: list[str] = field(default_factory=list)
    platform_breakdown: list[PlatformBreakdown] = field(default_factory=list)
    rank: int = 0
    tier: str = "Bronze"
    last_active: Optional[datetime] = None
    extra: dict = field(default_factory=dict)   # platform-specific display fields

    @property
    def id(self) -> str:
        platform = self.platforms[0] if self.platforms else "unknown"
        return f"{platform}:{self.address}".lower()

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "rank": self.rank,
            "address": self.address,
            "username": self.username,
            "truthScore": self.truth_score,
            "tier": self.tier,
            "winRate": self.win_rate,
            "totalBets": self.total_bets,
            "totalPredictions": self.total_bets,
            "wins": self.wins,
            "losses": self.losses,
            "pnl": self.pnl,
            "totalVolume": f"{self.volume:.2f}",
            "platforms": list(self.platforms),
            "platformBreakdown": [b.to_dict() for b in self.platform_breakdown],
            "lastActive": self.last_active.isoformat() if self.last_active else None,
        }
        out.update(self.extra)
        return out


@dataclass
class LeaderboardPage:
    data: list[LeaderboardEntry]
    total: int
    cached: bool
    cache_age: Optional[int]       # seconds, None when never refreshed
    is_refreshing: bool
    last_update: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "success": True,
            "data": [e.to_dict() for e in self.data],
            "total": self.total,
            "cached": self.cached,
            "cacheAge": self.cache_age,
            "isRefreshing": self.is_refreshing,
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
        }


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
@dataclass
class ScoreInput:
    platform: str
    wins: Optional[int] = None
    losses: Optional[int] = None
    total_bets: Optional[int] = None
    pnl: Optional[float] = None
    volume: Optional[float] = None
    trades: Optional[int] = None
    last_trade_at: Optional[datetime] = None


@dataclass
class TruthScoreResult:
    score: int                     # skill score, 0-1000
    total_score: int               # skill + recency, 0-1300
    eligible: bool
    market_type: str               # 'binary' or 'odds'
    sample_size: int
    edge: float = 0.0              # percent above baseline, 1dp
    edge_points: int = 0
    confidence: int = 0            # percent
    recency_bonus: int = 0
    days_since_last_trade: Optional[int] = None
    reason: Optional[str] = None
    raw_win_rate: Optional[float] = None     # percent (binary)
    proven_win_rate: Optional[float] = None  # percent (binary)
    raw_roi: Optional[float] = None          # percent (odds)
    proven_roi: Optional[float] = None       # percent (odds)


# ---------------------------------------------------------------------------
# Reputation SDK
# ---------------------------------------------------------------------------
@dataclass
class Bet:
    id: str
    user_id: str
    market_id: str
    position: str          # 'bull'/'bear', 'yes'/'no', outcome name
    amount: float
    timestamp: Optional[datetime]   # None when the source omits it
    platform_id: str = ""
    won: Optional[bool] = None   # None while pending
    claimed_amount: Optional[float] = None
    tx_hash: Optional[str] = None


@dataclass
class UserStats:
    user_id: str
    platform_id: str
    total_bets: int = 0
    wins: int = 0
    losses: int = 0
    pending_bets: int = 0
    win_rate: float = 0.0          # percent, 2dp
    volume: float = 0.0
    score: int = 0
    first_bet_at: Optional[datetime] = None
    last_bet_at: Optional[datetime] = None


@dataclass
class PlatformScore:
    platform_id: str
    score: int
    weight: float
    platform_name: str = ""


@dataclass
class TruthScore:
    user_id: str
    total_score: int
    tier: str
    breakdown: list[PlatformScore] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.utcnow)


# ---------------------------------------------------------------------------
# Simulation / resolution
# ---------------------------------------------------------------------------
@dataclass
class SimulatedTrade:
    platform: str
    follower: str
    market_id: str
    outcome: str
    amount: float
    entry_price: float
    potential_payout: float
    leader: str = "manual"
    market_question: str = ""
    result: str = "pending"        # 'pending', 'win', 'loss', 'refund'
    pnl: Optional[float] = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class ResolutionSummary:
    platform: str
    resolved: int = 0
    skipped: int = 0
    pending: int = 0
    wins: int = 0
    losses: int = 0
    refunds: int = 0
    markets_checked: int = 0
    errors: int = 0
    duration: float = 0.0          # seconds
    message: Optional[str] = None

    @property
    def win_rate(self) -> str:
        decided = self.wins + self.losses
        if decided == 0:
            return "N/A"
        return f"{self.wins / decided * 100:.1f}%"

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "resolved": self.resolved,
            "skipped": self.skipped,
            "pending": self.pending,
            "wins": self.wins,
            "losses": self.losses,
            "refunds": self.refunds,
            "winRate": self.win_rate,
            "marketsChecked": self.markets_checked,
            "errors": self.errors,
            "duration": f"{self.duration * 1000:.0f}ms",
            "message": self.message,
        }
