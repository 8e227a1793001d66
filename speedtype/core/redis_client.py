"""
Shared Redis client and key layout.

Redis is optional: when REDIS_URL is unset every consumer takes its
"store unavailable" branch (in-process fallback or authoritative store).
"""
from typing import Optional

from redis import Redis
from redis.exceptions import RedisError

from speedtype.core.config import settings

# Errors every Redis consumer treats as "store unavailable"
REDIS_ERRORS = (RedisError, OSError)

_client: Optional[Redis] = None
_override_set = False


def is_redis_configured() -> bool:
    return _override_set or bool(settings.REDIS_URL)


def init_redis(url: Optional[str] = None) -> Optional[Redis]:
    """Create the process-wide client. Connections are opened lazily per command."""
    global _client
    redis_url = url or settings.REDIS_URL
    if not redis_url:
        _client = None
        return None
    _client = Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    return _client


def get_redis() -> Optional[Redis]:
    """Return the shared client, or None when Redis is not configured."""
    if _client is None and not _override_set and settings.REDIS_URL:
        init_redis()
    return _client


def set_redis_client(client) -> None:
    """Install an explicit client (tests, scripts). None restores the settings-driven client."""
    global _client, _override_set
    _client = client
    _override_set = client is not None


def reset_redis() -> None:
    global _client, _override_set
    _client = None
    _override_set = False


# Key builders
def leaderboard_key(duration: int) -> str:
    return f"leaderboard:{duration}"


def entry_key(entry_id: str) -> str:
    return f"entry:{entry_id}"


def idempotency_key(player_id: str, attempt_id: str) -> str:
    return f"idempotency:submit:{player_id}:{attempt_id}"


def ratelimit_key(policy: str, identifier: str) -> str:
    return f"ratelimit:{policy}:{identifier}"


def streak_key(player_id: str) -> str:
    return f"streak:user:{player_id}"
