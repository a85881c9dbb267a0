from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, Optional

from data.models import Bet, TruthScore, UserStats
from data.scraper import utcnow
from sdk.adapter import BaseAdapter, newest_first
from sdk.scoring import RecentStats, ScoringEngine
from sdk.storage import StorageProvider

log = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

_PROGRESS_EVERY = 100


class SDKNotInitializedError(RuntimeError):
    pass


class ReputationSDK:
    """Unified TruthScore across a set of SDK adapters.

    Usage::

        sdk = ReputationSDK([PolymarketAdapter()], storage=MemoryStorage())
        sdk.initialize()
        score = sdk.get_truth_score("0xabc...")
    """

    def __init__(self, adapters: list[BaseAdapter], storage: Optional[StorageProvider] = None,
                 scoring_engine: Optional[ScoringEngine] = None, max_workers: int = 8):
        self.adapters = list(adapters)
        self.storage = storage
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.max_workers = max_workers
        self.is_initialized = False

    def _require_init(self) -> None:
        if not self.is_initialized:
            raise SDKNotInitializedError("SDK not initialized. Call initialize() first.")

    def _adapter(self, platform_id: str) -> Optional[BaseAdapter]:
        return next((a for a in self.adapters if a.platform_id == platform_id), None)

    def _gather(self, fn: Callable[[BaseAdapter], object], what: str) -> list:
        """Run *fn* on every adapter in parallel; failing adapters are logged and dropped."""
        if not self.adapters:
            return []
        results = []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(self.adapters))) as pool:
            futures = {pool.submit(fn, a): a for a in self.adapters}
            for future, adapter in futures.items():
                try:
                    results.append(future.result())
                except Exception:
                    log.exception("Error getting %s from %s", what, adapter.platform_name)
        return results

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        log.info("Initializing reputation SDK")
        for adapter in self.adapters:
            try:
                adapter.initialize()
            except Exception:
                log.exception("Failed to initialize %s", adapter.platform_name)
        self.is_initialized = True
        log.info("Reputation SDK ready with %d adapter(s)", len(self.adapters))

    def destroy(self) -> None:
        for adapter in self.adapters:
            adapter.destroy()
        self.is_initialized = False
        log.info("Reputation SDK destroyed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_truth_score(self, address: str,
                        recent: Optional[RecentStats] = None) -> TruthScore:
        self._require_init()
        stats: list[UserStats] = self._gather(lambda a: a.get_user_stats(address), "stats")

        score = self.scoring_engine.calculate_truth_score(address, stats, recent)
        for b in score.breakdown:
            adapter = self._adapter(b.platform_id)
            b.platform_name = adapter.platform_name if adapter else b.platform_id

        if self.storage is not None:
            for s in stats:
                self.storage.save_user_stats(s)
            self.storage.save_truth_score(score)
        return score

    def get_all_bets(self, address: str) -> list[Bet]:
        self._require_init()
        per_adapter = self._gather(lambda a: a.get_bets_for_user(address), "bets")
        bets = [b for group in per_adapter for b in group]
        return newest_first(bets)

    def get_platform_stats(self, address: str, platform_id: str) -> Optional[UserStats]:
        adapter = self._adapter(platform_id)
        if adapter is None:
            return None
        return adapter.get_user_stats(address)

    def get_platforms(self) -> list[dict]:
        return [
            {"id": a.platform_id, "name": a.platform_name,
             "chainId": a.chain_id, "token": a.native_token}
            for a in self.adapters
        ]

    def get_leaderboard(self, limit: int = 100, offset: int = 0) -> list[TruthScore]:
        if self.storage is None:
            raise RuntimeError("Storage provider required for leaderboard")
        return self.storage.get_leaderboard(limit, offset)

    # ------------------------------------------------------------------
    # Backfill
    # ------------------------------------------------------------------
    def backfill_all(self, window: timedelta,
                     on_progress: Optional[ProgressCallback] = None,
                     end: Optional[datetime] = None) -> dict[str, int]:
        """Backfill the last *window* of bets on every adapter, one after another.

        Returns bets processed per platform. A failing adapter is logged and
        reported with whatever it processed before the failure.
        """
        end = end or utcnow()
        start = end - window
        processed: dict[str, int] = {}

        for adapter in self.adapters:
            count = 0

            def on_bet(bet: Bet) -> None:
                nonlocal count
                count += 1
                if self.storage is not None:
                    self.storage.save_bet(bet)
                if on_progress and count % _PROGRESS_EVERY == 0:
                    on_progress(adapter.platform_id, count)

            log.info("Backfilling %s", adapter.platform_name)
            try:
                adapter.backfill(start, end, on_bet)
            except Exception:
                log.exception("Backfill error for %s", adapter.platform_name)
            processed[adapter.platform_id] = count
            log.info("%s backfill complete: %d bets", adapter.platform_name, count)
        return processed
