"""Unified leaderboard: fan out to every platform, merge, rank, cache.

The cache serves stale data while a refresh runs in the background. At most
one refresh is in flight: the state is guarded by a ``threading.Lock`` and
completion is signalled on a ``threading.Event`` so a cold request can wait
for someone else's refresh instead of starting its own.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime
from typing import Callable, Iterable, Optional

import config
from adapters import get_all_adapters
from adapters.base import PlatformAdapter
from data import db
from data.models import LeaderboardEntry, LeaderboardPage
from data.scraper import NotConfiguredError, utcnow
from engine.scoring import get_tier

log = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[LeaderboardEntry], datetime], None]


def _normalise(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


def rank_entries(entries: Iterable[LeaderboardEntry]) -> list[LeaderboardEntry]:
    """Sort by TruthScore (desc) and assign 1-based rank and tier.

    Returns new entry objects; the inputs are left untouched.
    """
    ordered = sorted(entries, key=lambda e: e.truth_score, reverse=True)
    return [
        dataclasses.replace(e, rank=i, tier=get_tier(e.truth_score))
        for i, e in enumerate(ordered, start=1)
    ]


def filter_by_platform(entries: list[LeaderboardEntry], platform: str) -> list[LeaderboardEntry]:
    """Case-insensitive substring match on platform names, re-ranked from 1."""
    needle = _normalise(platform)
    matched = [e for e in entries if any(needle in _normalise(p) for p in e.platforms)]
    return rank_entries(matched)


class LeaderboardCache:
    def __init__(self, adapters: Optional[list[PlatformAdapter]] = None,
                 ttl: float = config.LEADERBOARD_CACHE_TTL,
                 refresh_wait: float = config.LEADERBOARD_REFRESH_WAIT,
                 platform_timeout: float = config.PLATFORM_FETCH_TIMEOUT,
                 fetch_limit: int = config.LEADERBOARD_FETCH_LIMIT,
                 on_refresh: Optional[SnapshotCallback] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._adapters = adapters
        self.ttl = ttl
        self.refresh_wait = refresh_wait
        self.platform_timeout = platform_timeout
        self.fetch_limit = fetch_limit
        self.on_refresh = on_refresh
        self._clock = clock

        self._lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._refreshing = False
        self._data: list[LeaderboardEntry] = []
        self._updated_at: Optional[float] = None      # clock() of last swap
        self.last_update: Optional[datetime] = None
        self.platform_status: dict[str, str] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def adapters(self) -> list[PlatformAdapter]:
        return self._adapters if self._adapters is not None else get_all_adapters()

    @property
    def is_refreshing(self) -> bool:
        with self._lock:
            return self._refreshing

    def cache_age(self) -> Optional[float]:
        with self._lock:
            if self._updated_at is None:
                return None
            return self._clock() - self._updated_at

    def is_stale(self) -> bool:
        age = self.cache_age()
        return age is None or age > self.ttl

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    def _fetch_all(self) -> list[LeaderboardEntry]:
        adapters = self.adapters
        status: dict[str, str] = {}
        merged: list[LeaderboardEntry] = []

        pool = ThreadPoolExecutor(max_workers=min(config.LEADERBOARD_MAX_WORKERS, len(adapters) or 1),
                                  thread_name_prefix="leaderboard")
        try:
            futures = {a.platform_id: pool.submit(a.fetch_leaderboard, self.fetch_limit)
                       for a in adapters}
            # Platforms run concurrently, so one deadline bounds each of them
            deadline = self._clock() + self.platform_timeout
            for pid, fut in futures.items():
                try:
                    entries = fut.result(timeout=max(0.0, deadline - self._clock()))
                except FutureTimeout:
                    log.warning("%s leaderboard timed out after %ss", pid, self.platform_timeout)
                    status[pid] = "timeout"
                    continue
                except NotConfiguredError as exc:
                    log.info("%s leaderboard skipped: %s", pid, exc)
                    status[pid] = "not configured"
                    continue
                except Exception as exc:
                    log.warning("%s leaderboard failed: %s", pid, exc)
                    status[pid] = "error"
                    continue
                status[pid] = f"ok ({len(entries)})"
                merged.extend(entries)
        finally:
            # Do not block on stragglers; their results are discarded
            pool.shutdown(wait=False, cancel_futures=True)

        self.platform_status = status
        return merged

    def _claim(self) -> bool:
        with self._lock:
            if self._refreshing:
                return False
            self._refreshing = True
            self._idle.clear()
            return True

    def _run_refresh(self) -> None:
        started = self._clock()
        try:
            ranked = rank_entries(self._fetch_all())
            now = utcnow()
            with self._lock:
                self._data = ranked
                self._updated_at = self._clock()
                self.last_update = now
            log.info("Leaderboard refreshed: %d entries in %.1fs",
                     len(ranked), self._clock() - started)
        finally:
            with self._lock:
                self._refreshing = False
            self._idle.set()

        if self.on_refresh is not None:
            try:
                self.on_refresh(ranked, now)
            except Exception:
                log.exception("Leaderboard snapshot callback failed")

    def refresh(self) -> bool:
        """Fetch every platform and swap the cache. False if one is already running."""
        if not self._claim():
            return False
        self._run_refresh()
        return True

    def _run_refresh_logged(self) -> None:
        try:
            self._run_refresh()
        except Exception:
            log.exception("Background leaderboard refresh failed")

    def refresh_in_background(self) -> Optional[threading.Thread]:
        if not self._claim():
            return None
        worker = threading.Thread(target=self._run_refresh_logged, name="leaderboard-refresh",
                                  daemon=True)
        worker.start()
        return worker

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def get(self, limit: int = 100, offset: int = 0, platform: Optional[str] = None,
            force_refresh: bool = False) -> LeaderboardPage:
        with self._lock:
            cold = self._updated_at is None
            in_flight = self._refreshing

        if cold:
            if in_flight or not self.refresh():
                log.info("Waiting up to %ss for in-flight leaderboard refresh", self.refresh_wait)
                self._idle.wait(self.refresh_wait)
        elif force_refresh or self.is_stale():
            self.refresh_in_background()

        with self._lock:
            data = self._data
            updated_at = self._updated_at
            refreshing = self._refreshing
            last_update = self.last_update

        if platform and platform.strip().lower() != "all":
            data = filter_by_platform(data, platform)
        offset = max(0, offset)
        page = data[offset:offset + max(0, limit)]
        return LeaderboardPage(
            data=page,
            total=len(data),
            cached=not cold,
            cache_age=None if updated_at is None else int(self._clock() - updated_at),
            is_refreshing=refreshing,
            last_update=last_update,
        )


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------
_instance: Optional[LeaderboardCache] = None
_instance_lock = threading.Lock()


def get_leaderboard_cache() -> LeaderboardCache:
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = LeaderboardCache()
        return _instance


def sqlite_snapshot(db_path: Optional[str] = None) -> SnapshotCallback:
    """Snapshot callback writing each refresh to the ``traders`` table.

    Opens its own connection because refreshes run on worker threads.
    """
    def _save(entries: list[LeaderboardEntry], snapshot_at: datetime) -> None:
        conn = db.get_connection(db_path)
        try:
            db.init_db(conn)
            db.save_leaderboard_snapshot(conn, entries, snapshot_at)
        finally:
            conn.close()

    return _save
