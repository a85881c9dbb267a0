"""
Platform adapter registry: one adapter per prediction-market platform.

Each adapter is a ``PlatformAdapter`` subclass that maps a third-party
REST/GraphQL API into the common shapes:

    fetch_leaderboard(limit)  -> list[LeaderboardEntry]
    fetch_markets(limit)      -> list[MarketData]
    fetch_resolution(market_id, trades) -> MarketResolution | None

Adapters raise on upstream failure; callers decide whether a failure is
fatal (single-platform endpoints) or tolerated (the unified leaderboard).
"""
from __future__ import annotations

from adapters.base import PlatformAdapter

# Registry: platform_id -> adapter instance
ADAPTERS: dict[str, PlatformAdapter] = {}

# Fan-out order for the unified leaderboard (fastest responders first)
LEADERBOARD_ORDER = [
    "manifold",
    "metaculus",
    "kalshi",
    "pancakeswap",
    "azuro",
    "gnosis",
    "drift",
    "overtime",
    "speedmarkets",
    "limitless",
    "polymarket",
    "sxbet",
]


class UnknownPlatformError(KeyError):
    pass


def register(cls: type[PlatformAdapter]) -> type[PlatformAdapter]:
    """Class decorator: instantiate the adapter and add it to the registry."""
    ADAPTERS[cls.platform_id] = cls()
    return cls


def get_adapter(platform_id: str) -> PlatformAdapter:
    try:
        return ADAPTERS[platform_id.lower()]
    except KeyError:
        raise UnknownPlatformError(platform_id) from None


def get_all_adapters() -> list[PlatformAdapter]:
    return [ADAPTERS[pid] for pid in LEADERBOARD_ORDER if pid in ADAPTERS]


def get_all_platform_ids() -> list[str]:
    return [a.platform_id for a in get_all_adapters()]


# Import all adapter modules to trigger registration
from adapters import manifold      # noqa: F401, E402
from adapters import metaculus     # noqa: F401, E402
from adapters import kalshi        # noqa: F401, E402
from adapters import pancakeswap   # noqa: F401, E402
from adapters import azuro         # noqa: F401, E402
from adapters import gnosis        # noqa: F401, E402
from adapters import drift         # noqa: F401, E402
from adapters import overtime      # noqa: F401, E402
from adapters import speedmarkets  # noqa: F401, E402
from adapters import limitless     # noqa: F401, E402
from adapters import polymarket    # noqa: F401, E402
from adapters import sxbet         # noqa: F401, E402
