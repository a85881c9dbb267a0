"""Reputation SDK: per-platform bet adapters, weighted TruthScore, storage."""
from sdk.adapter import BaseAdapter
from sdk.client import ReputationSDK, SDKNotInitializedError
from sdk.polymarket import PolymarketAdapter
from sdk.scoring import RecentStats, ScoringEngine
from sdk.storage import MemoryStorage, SqliteStorage, StorageProvider

__all__ = [
    "BaseAdapter",
    "MemoryStorage",
    "PolymarketAdapter",
    "RecentStats",
    "ReputationSDK",
    "SDKNotInitializedError",
    "ScoringEngine",
    "SqliteStorage",
    "StorageProvider",
]
