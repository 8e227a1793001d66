from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Callable, Optional

from speedtype.core.config import settings
from speedtype.core.logging import log_event
from speedtype.core.redis_client import REDIS_ERRORS, get_redis, streak_key
from speedtype.models.streak import UserStreak


def advance_streak(current: Optional[UserStreak], today: date) -> UserStreak:
    """
    Apply one day of activity.

    Same day: unchanged. Consecutive day: +1. Any longer gap (or no history): reset to 1.
    """
    if current is None or current.last_activity_date is None:
        longest = current.longest_streak if current else 0
        return UserStreak(current_streak=1, longest_streak=max(1, longest), last_activity_date=today)

    gap = (today - current.last_activity_date).days
    if gap <= 0:
        return current

    length = current.current_streak + 1 if gap == 1 else 1
    return UserStreak(
        current_streak=length,
        longest_streak=max(current.longest_streak, length),
        last_activity_date=today,
    )


class StreakService:
    """Daily streaks stored as JSON in Redis, one key per player."""

    def __init__(
        self,
        *,
        ttl_seconds: Optional[int] = None,
        redis_getter: Callable = get_redis,
        now_fn: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.ttl_seconds = ttl_seconds or settings.STREAK_TTL_SECONDS
        self.redis_getter = redis_getter
        self.now_fn = now_fn

    def get(self, player_id: str) -> Optional[UserStreak]:
        """Stored streak (empty if none); None when the store is unreachable or the record is unreadable."""
        client = self.redis_getter()
        if client is None:
            return None
        try:
            raw = client.get(streak_key(player_id))
        except REDIS_ERRORS as exc:
            log_event("warning", "streak.read_failed", user_id=player_id, error_code="redis_unavailable",
                      extra={"error": exc})
            return None
        if not raw:
            return UserStreak()
        try:
            return UserStreak.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as exc:
            log_event("warning", "streak.corrupt_record", user_id=player_id, error_code="streak_corrupt",
                      extra={"error": exc})
            return None

    def update(self, player_id: str) -> Optional[UserStreak]:
        """Record activity for today (UTC) and return the new streak, or None on failure."""
        current = self.get(player_id)
        if current is None:
            return None

        today = self.now_fn().astimezone(timezone.utc).date()
        updated = advance_streak(current, today)
        if updated is current:
            return current

        client = self.redis_getter()
        try:
            client.setex(streak_key(player_id), self.ttl_seconds, json.dumps(updated.to_dict()))
        except REDIS_ERRORS as exc:
            log_event("warning", "streak.write_failed", user_id=player_id, error_code="redis_unavailable",
                      extra={"error": exc})
            return None
        return updated
