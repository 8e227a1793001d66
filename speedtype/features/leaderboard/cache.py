"""
Redis leaderboard cache.

One sorted set per duration (leaderboard:{duration}) holds encoded members,
and one short-lived hash per entry (entry:{id}) holds display details. The
cache is never authoritative: every read may return None, in which case the
caller serves from the store.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from speedtype.core.config import settings
from speedtype.core.logging import log_event
from speedtype.core.metrics import cache_errors_total
from speedtype.core.redis_client import REDIS_ERRORS, entry_key, get_redis, leaderboard_key
from speedtype.features.leaderboard import scoring
from speedtype.features.results.repository import ResultStore
from speedtype.models.leaderboard import (
    LEADERBOARD_DURATIONS,
    LeaderboardEntry,
    LeaderboardPage,
    display_name,
    iso_utc,
    parse_iso,
)

# A page is stale when more than this share of its detail hashes expired
STALE_MISSING_RATIO = 0.5


def _entry_mapping(entry: LeaderboardEntry, duration: int) -> Dict[str, str]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "username": entry.username,
        "email": entry.email or "",
        "wpm": str(entry.wpm),
        "accuracy": str(entry.accuracy),
        "duration": str(duration),
        "created_at": iso_utc(entry.created_at),
    }


def _entry_from_hash(data: Dict[str, str], rank: int) -> LeaderboardEntry:
    user_id = data.get("user_id", "")
    return LeaderboardEntry(
        id=data["id"],
        user_id=user_id,
        username=display_name(data.get("username"), user_id),
        email=data.get("email", ""),
        wpm=int(data.get("wpm", 0)),
        accuracy=int(data.get("accuracy", 0)),
        created_at=parse_iso(data["created_at"]),
        rank=rank,
    )


class LeaderboardCache:
    def __init__(
        self,
        store: ResultStore,
        *,
        max_size: Optional[int] = None,
        entry_ttl_seconds: Optional[int] = None,
        redis_getter: Callable = get_redis,
    ):
        self.store = store
        self.max_size = max_size or settings.LEADERBOARD_MAX_SIZE
        self.entry_ttl_seconds = entry_ttl_seconds or settings.LEADERBOARD_ENTRY_TTL_SECONDS
        self.redis_getter = redis_getter

    def _error(self, op: str, exc: Exception, **details) -> None:
        cache_errors_total.inc({"op": op})
        log_event(
            "warning",
            "cache.error",
            error_code="cache_unavailable",
            extra={"op": op, "error": exc, **details},
        )

    def _queue_entry(self, pipe, entry: LeaderboardEntry, duration: int) -> None:
        pipe.zadd(
            leaderboard_key(duration),
            {scoring.member(entry.id, entry.user_id, entry.created_at): scoring.score(entry.wpm, entry.accuracy)},
        )
        pipe.hset(entry_key(entry.id), mapping=_entry_mapping(entry, duration))
        pipe.expire(entry_key(entry.id), self.entry_ttl_seconds)

    def upsert(self, entry: LeaderboardEntry, duration: int) -> Optional[int]:
        """
        Add one accepted result and trim the partition to its top max_size.

        Returns the partition size before the write (0 means the partition was
        cold and now holds only this entry), or None when the cache was skipped.
        """
        client = self.redis_getter()
        if client is None:
            return None
        try:
            pipe = client.pipeline(transaction=True)
            pipe.zcard(leaderboard_key(duration))
            self._queue_entry(pipe, entry, duration)
            # Ranks are ascending by score; drop everything below the top max_size
            pipe.zremrangebyrank(leaderboard_key(duration), 0, -(self.max_size + 1))
            previous_size = pipe.execute()[0]
        except REDIS_ERRORS as exc:
            self._error("upsert", exc, duration=duration, entry_id=entry.id)
            return None
        return int(previous_size or 0)

    def page(self, duration: int, page: int, page_size: int) -> Optional[LeaderboardPage]:
        """Serve one page from the cache, or None when the caller must fall back."""
        client = self.redis_getter()
        if client is None:
            return None

        offset = (page - 1) * page_size
        key = leaderboard_key(duration)
        try:
            pipe = client.pipeline(transaction=False)
            pipe.zcard(key)
            pipe.zrevrange(key, offset, offset + page_size - 1)
            total, members = pipe.execute()
            if not total:
                return None
            if not members:
                return LeaderboardPage(entries=[], total=int(total))

            pipe = client.pipeline(transaction=False)
            for value in members:
                entry_id, _ = scoring.parse_member(value)
                pipe.hgetall(entry_key(entry_id))
            details: List[Dict[str, str]] = pipe.execute()
        except REDIS_ERRORS as exc:
            self._error("page", exc, duration=duration)
            return None

        missing = sum(1 for data in details if not data)
        if missing > len(members) * STALE_MISSING_RATIO:
            log_event(
                "info",
                "cache.stale",
                event_type="leaderboard_stale",
                extra={"duration": duration, "missing": missing, "requested": len(members)},
            )
            return None

        entries = [
            _entry_from_hash(data, offset + position + 1)
            for position, data in enumerate(details)
            if data
        ]
        return LeaderboardPage(entries=entries, total=int(total))

    def rebuild(self, duration: int) -> int:
        """Replace the partition with the store's top max_size results. Returns entries written."""
        entries = self.store.top_results(duration, self.max_size, 0)
        client = self.redis_getter()
        if client is None:
            return 0
        try:
            pipe = client.pipeline(transaction=True)
            pipe.delete(leaderboard_key(duration))
            for entry in entries:
                self._queue_entry(pipe, entry, duration)
            pipe.execute()
        except REDIS_ERRORS as exc:
            self._error("rebuild", exc, duration=duration)
            return 0

        log_event(
            "info",
            "cache.rebuilt",
            event_type="leaderboard_rebuilt",
            extra={"duration": duration, "entries": len(entries)},
        )
        return len(entries)

    def rebuild_quietly(self, duration: int) -> int:
        """Rebuild for background and best-effort callers; store errors are logged, not raised."""
        try:
            return self.rebuild(duration)
        except SQLAlchemyError as exc:
            log_event(
                "error",
                "cache.rebuild_failed",
                error_code="rebuild_store_error",
                extra={"duration": duration, "error": exc},
            )
            return 0

    def clear_all(self) -> bool:
        client = self.redis_getter()
        if client is None:
            return False
        try:
            client.delete(*[leaderboard_key(d) for d in LEADERBOARD_DURATIONS])
            return True
        except REDIS_ERRORS as exc:
            self._error("clear", exc)
            return False

    def size(self, duration: int) -> Optional[int]:
        """Number of cached entries for a duration, None when the cache is unreachable."""
        client = self.redis_getter()
        if client is None:
            return None
        try:
            return int(client.zcard(leaderboard_key(duration)))
        except REDIS_ERRORS as exc:
            self._error("size", exc, duration=duration)
            return None
