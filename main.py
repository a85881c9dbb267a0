"""Entry point: leaderboard, markets, simulated bets, resolution, SDK scores."""
from __future__ import annotations

import argparse
import json
import logging
import time

import schedule

import api
import config
from adapters import get_all_platform_ids
from data import db
from engine.leaderboard import LeaderboardCache, sqlite_snapshot
from engine.resolver import resolve_all
from sdk import PolymarketAdapter, ReputationSDK, SqliteStorage

log = logging.getLogger("main")


def _print(status: int, payload: dict) -> int:
    print(json.dumps(payload, indent=2, default=str))
    return 0 if status < 400 else 1


# ---------------------------------------------------------------------------
# Scheduled cycles
# ---------------------------------------------------------------------------
def refresh_cycle(cache: LeaderboardCache) -> None:
    """Refresh the unified leaderboard; the snapshot callback stores it."""
    log.info("=== Leaderboard refresh ===")
    if not cache.refresh():
        log.info("Refresh already in flight, skipping")
        return
    log.info("Leaderboard now has %d traders", cache.get(limit=0).total)


def resolve_cycle(conn) -> None:
    log.info("=== Resolving simulated trades ===")
    for summary in resolve_all(conn):
        if summary.resolved or summary.errors:
            log.info("%s: %d resolved, %d pending, %d errors",
                     summary.platform, summary.resolved, summary.pending, summary.errors)


def run_loop(conn) -> None:
    cache = LeaderboardCache(on_refresh=sqlite_snapshot(config.DB_PATH))
    log.info(
        "Starting leaderboard loop (every %d min) + resolve loop (every %d min)",
        config.LEADERBOARD_INTERVAL_MINUTES,
        config.RESOLVE_INTERVAL_MINUTES,
    )

    def leaderboard_job():
        try:
            refresh_cycle(cache)
        except Exception:
            log.exception("Leaderboard cycle failed, will retry next interval")

    def resolve_job():
        try:
            resolve_cycle(conn)
        except Exception:
            log.exception("Resolve cycle failed")

    leaderboard_job()
    resolve_job()

    schedule.every(config.LEADERBOARD_INTERVAL_MINUTES).minutes.do(leaderboard_job)
    schedule.every(config.RESOLVE_INTERVAL_MINUTES).minutes.do(resolve_job)

    while True:
        schedule.run_pending()
        time.sleep(30)


def sdk_score(conn, address: str) -> dict:
    sdk = ReputationSDK([PolymarketAdapter()], storage=SqliteStorage(conn))
    sdk.initialize()
    try:
        score = sdk.get_truth_score(address)
    finally:
        sdk.destroy()
    return {
        "success": True,
        "address": score.user_id,
        "totalScore": score.total_score,
        "tier": sdk.scoring_engine.get_tier_info(score.tier),
        "breakdown": [
            {"platformId": b.platform_id, "platformName": b.platform_name,
             "score": b.score, "weight": b.weight}
            for b in score.breakdown
        ],
    }


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    platforms = get_all_platform_ids()
    parser = argparse.ArgumentParser(description="TruthBounty prediction-market reputation")
    parser.add_argument("--db", default=config.DB_PATH, help="SQLite database path")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create the database schema")

    p = sub.add_parser("leaderboard", help="unified leaderboard across platforms")
    p.add_argument("--platform", help="filter by platform name (substring)")
    p.add_argument("--limit", type=int, default=100)
    p.add_argument("--offset", type=int, default=0)
    p.add_argument("--refresh", action="store_true", help="force a refresh")

    p = sub.add_parser("platform", help="one platform's leaderboard")
    p.add_argument("platform", choices=platforms)
    p.add_argument("--limit", type=int, default=100)

    p = sub.add_parser("markets", help="one platform's open markets")
    p.add_argument("platform", choices=platforms)
    p.add_argument("--limit", type=int, default=50)

    p = sub.add_parser("simulate", help="record a simulated bet")
    p.add_argument("platform", choices=platforms)
    p.add_argument("--follower", required=True)
    p.add_argument("--market", required=True, help="market id")
    p.add_argument("--outcome", required=True)
    p.add_argument("--amount", type=float, required=True)
    p.add_argument("--price", type=float, help="entry price (0-1)")
    p.add_argument("--leader")
    p.add_argument("--question", default="")

    p = sub.add_parser("stats", help="simulated trade results")
    p.add_argument("platform", choices=platforms)
    p.add_argument("--follower")

    p = sub.add_parser("resolve", help="settle pending simulated trades")
    p.add_argument("platform", nargs="?", choices=platforms, help="all platforms when omitted")
    p.add_argument("--status", action="store_true", help="show counts without resolving")

    p = sub.add_parser("score", help="SDK TruthScore for a wallet")
    p.add_argument("address")

    p = sub.add_parser("follow", help="manage copy-trade follows")
    p.add_argument("follower")
    p.add_argument("leader", nargs="?")
    p.add_argument("--platform", default="polymarket", choices=platforms)
    p.add_argument("--remove", action="store_true")

    sub.add_parser("run", help="continuous refresh + resolve loop")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config.DB_PATH = args.db
    conn = db.get_connection()
    db.init_db(conn)

    try:
        if args.command == "init":
            log.info("Database initialised at %s", args.db)
            return 0

        if args.command == "leaderboard":
            return _print(*api.unified_leaderboard(args.limit, args.offset, args.platform,
                                                   force_refresh=args.refresh))

        if args.command == "platform":
            return _print(*api.platform_leaderboard(args.platform, args.limit))

        if args.command == "markets":
            return _print(*api.platform_markets(args.platform, args.limit))

        if args.command == "simulate":
            return _print(*api.simulate(conn, args.platform, {
                "follower": args.follower,
                "marketId": args.market,
                "outcomeSelected": args.outcome,
                "amountUsd": args.amount,
                "entryPrice": args.price,
                "leader": args.leader,
                "marketQuestion": args.question,
            }))

        if args.command == "stats":
            return _print(*api.simulation_stats(conn, args.platform, args.follower))

        if args.command == "resolve":
            if args.platform:
                fn = api.resolve_status if args.status else api.resolve
                return _print(*fn(conn, args.platform))
            results = [(api.resolve_status if args.status else api.resolve)(conn, pid)[1]
                       for pid in get_all_platform_ids()]
            return _print(200, {"success": True, "results": results})

        if args.command == "score":
            return _print(200, sdk_score(conn, args.address))

        if args.command == "follow":
            body = {"follower": args.follower, "leader": args.leader, "platform": args.platform}
            if args.leader is None:
                return _print(*api.follows(conn, args.follower))
            return _print(*(api.unfollow if args.remove else api.follow)(conn, body))

        if args.command == "run":
            run_loop(conn)
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
