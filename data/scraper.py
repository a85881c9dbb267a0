"""Shared HTTP plumbing for the platform adapters.

One ``requests.Session`` for every upstream, GET/POST with retry and
exponential backoff, a GraphQL helper for The Graph subgraphs, and a small
in-memory TTL cache for responses that change slowly.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import requests

import config

log = logging.getLogger(__name__)


class SubgraphError(RuntimeError):
    """A GraphQL endpoint answered 200 but reported errors."""


class NotConfiguredError(RuntimeError):
    """A required credential or endpoint is missing from the environment."""


# ---------------------------------------------------------------------------
# In-memory TTL cache
# ---------------------------------------------------------------------------

_cache: dict[str, tuple[Any, float]] = {}

TTL_MARKETS = 300    # 5 min, active market lists
TTL_PRICES = 30      # 30 s, spot prices
TTL_PROFILES = 900   # 15 min, per-trader enrichment (volume, positions)


def _cache_get(key: str) -> Any:
    entry = _cache.get(key)
    if entry and time.monotonic() < entry[1]:
        log.debug("Cache hit: %s", key[:60])
        return entry[0]
    _cache.pop(key, None)
    return None


def _cache_set(key: str, data: Any, ttl: int) -> None:
    _cache[key] = (data, time.monotonic() + ttl)


def clear_scraper_cache() -> None:
    """Evict all cached API responses (e.g. after a forced refresh)."""
    _cache.clear()
    log.info("Scraper cache cleared")


# ---------------------------------------------------------------------------
# Session with retry / backoff
# ---------------------------------------------------------------------------

_session = requests.Session()
_session.headers.update({"Accept": "application/json"})


def _request(method: str, url: str, *, params: dict | None = None, json: Any = None,
             timeout: float | None = None, retries: int | None = None) -> Any:
    attempts = retries or config.API_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            resp = _session.request(method, url, params=params, json=json,
                                    timeout=timeout or config.API_REQUEST_TIMEOUT)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as exc:
            if attempt == attempts:
                log.error("API request failed after %d attempts: %s", attempts, url)
                raise
            wait = config.API_RETRY_BACKOFF ** attempt
            log.warning("API request failed (attempt %d/%d): %s, retrying in %.1fs",
                        attempt, attempts, exc, wait)
            time.sleep(wait)


def _get(url: str, params: dict | None = None, timeout: float | None = None,
         retries: int | None = None) -> Any:
    """GET with retries + exponential backoff."""
    return _request("GET", url, params=params, timeout=timeout, retries=retries)


def _post(url: str, payload: Any, timeout: float | None = None,
          retries: int | None = None) -> Any:
    """POST a JSON body with retries + exponential backoff."""
    return _request("POST", url, json=payload, timeout=timeout, retries=retries)


def graphql(url: str, query: str, variables: dict | None = None,
            timeout: float | None = 15, retries: int | None = 1) -> dict:
    """Run a GraphQL query and return its ``data`` object."""
    result = _post(url, {"query": query, "variables": variables or {}},
                   timeout=timeout, retries=retries)
    if result.get("errors"):
        message = result["errors"][0].get("message", "unknown error")
        raise SubgraphError(f"{url}: {message}")
    return result.get("data") or {}


def subgraph_gateway_url(subgraph_id: str) -> str:
    """Decentralised-network URL for a subgraph; needs GRAPH_API_KEY."""
    if not config.GRAPH_API_KEY:
        raise NotConfiguredError("GRAPH_API_KEY is not set")
    return (f"https://gateway-arbitrum.network.thegraph.com/api/"
            f"{config.GRAPH_API_KEY}/subgraphs/id/{subgraph_id}")


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def from_wei(raw: Any, decimals: int = 18) -> float:
    try:
        return float(raw or 0) / 10 ** decimals
    except (TypeError, ValueError):
        return 0.0


def to_float(raw: Any, default: float = 0.0) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def to_int(raw: Any, default: int = 0) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return default


def parse_dt(raw: Any) -> Optional[datetime]:
    """Naive-UTC datetime from ISO strings, epoch seconds or epoch millis."""
    if raw in (None, ""):
        return None
    if isinstance(raw, (int, float)):
        ts = raw / 1000 if raw > 1e11 else raw
        return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)
    s = str(raw)
    if s.isdigit():
        return parse_dt(int(s))
    # Handle both "2025-10-29T19:00:43Z" and "2025-10-29T19:01:04.738799Z"
    s = s.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
