"""
speedtype/core/idempotency.py
Replay protection for result submissions.

One marker per (player, attempt-id), set atomically with a 24h expiry.
"""

import re
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from speedtype.core.config import settings
from speedtype.core.logging import log_event
from speedtype.core.redis_client import REDIS_ERRORS, get_redis, idempotency_key

_UUID_V4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_valid_attempt_id(value: Optional[str]) -> bool:
    """True when value is a version-4 UUID string."""
    if not value or not isinstance(value, str):
        return False
    return bool(_UUID_V4_RE.match(value))


class InMemoryMarkers:
    """Bounded, expiring marker table used when Redis is unreachable."""

    def __init__(self, max_keys: int, time_fn: Callable[[], float] = time.monotonic):
        self.max_keys = max(1, max_keys)
        self.time_fn = time_fn
        self._expiry: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def set_if_absent(self, key: str, ttl_seconds: int) -> bool:
        """Return True if the marker was set, False if it already existed."""
        now = self.time_fn()
        with self._lock:
            expires_at = self._expiry.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._expiry[key] = now + ttl_seconds
            self._expiry.move_to_end(key)
            while len(self._expiry) > self.max_keys:
                self._expiry.popitem(last=False)
            return True

    def exists(self, key: str) -> bool:
        with self._lock:
            expires_at = self._expiry.get(key)
            return expires_at is not None and expires_at > self.time_fn()

    def discard(self, key: str) -> None:
        with self._lock:
            self._expiry.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._expiry.clear()


# In-memory fallback
_fallback = InMemoryMarkers(settings.IDEMPOTENCY_FALLBACK_MAX_KEYS)


def check_and_set(player_id: str, attempt_id: str, ttl_seconds: Optional[int] = None) -> bool:
    """
    Check if the attempt was already submitted, and mark it if not (atomic).

    Args:
        player_id: Authenticated player id
        attempt_id: Client-generated attempt id (validated by the caller)
        ttl_seconds: Marker lifetime, defaults to IDEMPOTENCY_TTL_SECONDS

    Returns:
        True if the attempt was already seen (duplicate request)
        False if the attempt is new (first time seeing it)
    """
    ttl = ttl_seconds or settings.IDEMPOTENCY_TTL_SECONDS
    key = idempotency_key(player_id, attempt_id)

    client = get_redis()
    if client is not None:
        try:
            # SET NX is the single atomic primitive; None means the key existed
            was_set = client.set(key, "1", nx=True, ex=ttl)
            return not was_set
        except REDIS_ERRORS as exc:
            log_event(
                "warning",
                "idempotency.store_unavailable",
                user_id=player_id,
                attempt_id=attempt_id,
                error_code="redis_unavailable",
                extra={"error": exc},
            )

    return not _fallback.set_if_absent(key, ttl)


def release(player_id: str, attempt_id: str) -> None:
    """Drop the marker so a submission that was never saved can be retried."""
    key = idempotency_key(player_id, attempt_id)
    _fallback.discard(key)

    client = get_redis()
    if client is None:
        return
    try:
        client.delete(key)
    except REDIS_ERRORS as exc:
        log_event(
            "warning",
            "idempotency.release_failed",
            user_id=player_id,
            attempt_id=attempt_id,
            error_code="redis_unavailable",
            extra={"error": exc},
        )


def clear_fallback_keys() -> None:
    """Clear in-process markers (testing only)."""
    _fallback.clear()
