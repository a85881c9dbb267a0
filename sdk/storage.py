from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from typing import Optional

from data import db
from data.models import Bet, TruthScore, UserStats
from sdk.adapter import newest_first


class StorageProvider(ABC):
    """Persistence used by ``ReputationSDK`` for bets, stats and scores."""

    @abstractmethod
    def save_bet(self, bet: Bet) -> None: ...

    @abstractmethod
    def get_bet(self, platform_id: str, bet_id: str) -> Optional[Bet]: ...

    @abstractmethod
    def get_bets_for_user(self, user_id: str, platform_id: Optional[str] = None) -> list[Bet]: ...

    @abstractmethod
    def save_user_stats(self, stats: UserStats) -> None: ...

    @abstractmethod
    def get_user_stats(self, user_id: str, platform_id: str) -> Optional[UserStats]: ...

    @abstractmethod
    def get_all_user_stats(self, user_id: str) -> list[UserStats]: ...

    @abstractmethod
    def save_truth_score(self, score: TruthScore) -> None: ...

    @abstractmethod
    def get_truth_score(self, user_id: str) -> Optional[TruthScore]: ...

    @abstractmethod
    def get_leaderboard(self, limit: int = 100, offset: int = 0) -> list[TruthScore]: ...


class MemoryStorage(StorageProvider):
    """Dict-backed storage for tests and demos."""

    def __init__(self) -> None:
        self.bets: dict[tuple[str, str], Bet] = {}
        self.stats: dict[tuple[str, str], UserStats] = {}
        self.scores: dict[str, TruthScore] = {}

    def save_bet(self, bet: Bet) -> None:
        self.bets[(bet.platform_id, bet.id)] = bet

    def get_bet(self, platform_id: str, bet_id: str) -> Optional[Bet]:
        return self.bets.get((platform_id, bet_id))

    def get_bets_for_user(self, user_id: str, platform_id: Optional[str] = None) -> list[Bet]:
        user_id = user_id.lower()
        bets = [b for b in self.bets.values()
                if b.user_id.lower() == user_id and (platform_id is None or b.platform_id == platform_id)]
        return newest_first(bets)

    def save_user_stats(self, stats: UserStats) -> None:
        self.stats[(stats.user_id.lower(), stats.platform_id)] = stats

    def get_user_stats(self, user_id: str, platform_id: str) -> Optional[UserStats]:
        return self.stats.get((user_id.lower(), platform_id))

    def get_all_user_stats(self, user_id: str) -> list[UserStats]:
        user_id = user_id.lower()
        return sorted((s for (uid, _), s in self.stats.items() if uid == user_id),
                      key=lambda s: s.platform_id)

    def save_truth_score(self, score: TruthScore) -> None:
        self.scores[score.user_id.lower()] = score

    def get_truth_score(self, user_id: str) -> Optional[TruthScore]:
        return self.scores.get(user_id.lower())

    def get_leaderboard(self, limit: int = 100, offset: int = 0) -> list[TruthScore]:
        ranked = sorted(self.scores.values(), key=lambda s: (-s.total_score, s.user_id))
        return ranked[offset:offset + limit]


class SqliteStorage(StorageProvider):
    """Storage on the project database (``bets``, ``users``, ``truth_scores``)."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def save_bet(self, bet: Bet) -> None:
        db.save_bet(self.conn, bet)

    def get_bet(self, platform_id: str, bet_id: str) -> Optional[Bet]:
        return db.get_bet(self.conn, platform_id, bet_id)

    def get_bets_for_user(self, user_id: str, platform_id: Optional[str] = None) -> list[Bet]:
        return db.get_bets_for_user(self.conn, user_id, platform_id)

    def save_user_stats(self, stats: UserStats) -> None:
        db.save_user_stats(self.conn, stats)

    def get_user_stats(self, user_id: str, platform_id: str) -> Optional[UserStats]:
        return db.get_user_stats(self.conn, user_id, platform_id)

    def get_all_user_stats(self, user_id: str) -> list[UserStats]:
        return db.get_all_user_stats(self.conn, user_id)

    def save_truth_score(self, score: TruthScore) -> None:
        db.save_truth_score(self.conn, score)

    def get_truth_score(self, user_id: str) -> Optional[TruthScore]:
        return db.get_truth_score(self.conn, user_id)

    def get_leaderboard(self, limit: int = 100, offset: int = 0) -> list[TruthScore]:
        return db.get_truth_score_leaderboard(self.conn, limit, offset)
