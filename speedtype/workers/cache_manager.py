"""
Operator tool for the leaderboard cache.

    speedtype-cache refresh [--duration 60]
    speedtype-cache clear
    speedtype-cache status
"""
import argparse
import json
import logging
from typing import List, Optional

from speedtype.core.config import settings
from speedtype.core.logging import configure_logging
from speedtype.core.redis_client import get_redis
from speedtype.features.leaderboard.cache import LeaderboardCache
from speedtype.features.results.repository import ResultStore
from speedtype.models.leaderboard import LEADERBOARD_DURATIONS

logger = logging.getLogger("speedtype.workers.cache")


def refresh(cache: LeaderboardCache, durations: List[int]) -> dict:
    report = {str(d): cache.rebuild(d) for d in durations}
    logger.info("[cache] refreshed", extra={"details": report})
    return report


def clear(cache: LeaderboardCache) -> dict:
    return {"cleared": cache.clear_all()}


def status(cache: LeaderboardCache) -> dict:
    return {str(d): cache.size(d) for d in LEADERBOARD_DURATIONS}


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="speedtype-cache", description="Manage the Redis leaderboard cache.")
    sub = parser.add_subparsers(dest="command", required=True)

    refresh_cmd = sub.add_parser("refresh", help="Rebuild partitions from the database.")
    refresh_cmd.add_argument("--duration", type=int, choices=LEADERBOARD_DURATIONS, help="Only this duration.")
    sub.add_parser("clear", help="Delete every leaderboard partition.")
    sub.add_parser("status", help="Show cached entry counts per duration.")
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    if get_redis() is None:
        print("REDIS_URL is not configured; nothing to do.")
        return 1

    cache = LeaderboardCache(ResultStore())
    if args.command == "refresh":
        durations = [args.duration] if args.duration else list(LEADERBOARD_DURATIONS)
        report = refresh(cache, durations)
    elif args.command == "clear":
        report = clear(cache)
    else:
        report = status(cache)

    print(json.dumps(report, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
