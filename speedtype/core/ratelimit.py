"""
Sliding-window rate limiter.

- Redis sorted-set log per identity+policy, one batched round trip per check.
- In-process fallback (bounded LRU of identities) when Redis is unconfigured
  or unreachable, so protection continues instead of failing open.
"""

import math
import threading
import time
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from starlette.requests import Request

from speedtype.core.config import settings
from speedtype.core.logging import log_event
from speedtype.core.metrics import ratelimit_block_total, ratelimit_fallback_total
from speedtype.core.redis_client import REDIS_ERRORS, get_redis, ratelimit_key


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int  # epoch ms when the oldest counted request leaves the window
    retry_after: int  # whole seconds, 0 when allowed
    backend: str = "redis"

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at_ms),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def _retry_after_seconds(reset_at_ms: float, now_ms: float) -> int:
    return max(1, int(math.ceil((reset_at_ms - now_ms) / 1000.0)))


class InMemorySlidingWindow:
    """Per-process sliding-window log, bounded to max_keys identities (LRU)."""

    def __init__(self, max_keys: int, time_fn: Callable[[], float] = time.time):
        self.max_keys = max(1, max_keys)
        self.time_fn = time_fn
        self.windows: "OrderedDict[str, Deque[float]]" = OrderedDict()
        self._lock = threading.Lock()

    def hit(self, key: str, *, limit: int, window_ms: int) -> RateLimitDecision:
        now_ms = self.time_fn() * 1000.0
        with self._lock:
            log = self.windows.get(key)
            if log is None:
                log = deque()
                self.windows[key] = log
            self.windows.move_to_end(key)
            while len(self.windows) > self.max_keys:
                self.windows.popitem(last=False)

            cutoff = now_ms - window_ms
            while log and log[0] <= cutoff:
                log.popleft()

            if len(log) >= limit:
                reset_at = log[0] + window_ms
                return RateLimitDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at_ms=int(reset_at),
                    retry_after=_retry_after_seconds(reset_at, now_ms),
                    backend="memory",
                )

            log.append(now_ms)
            reset_at = log[0] + window_ms
            return RateLimitDecision(
                allowed=True,
                limit=limit,
                remaining=max(0, limit - len(log)),
                reset_at_ms=int(reset_at),
                retry_after=0,
                backend="memory",
            )

    def clear(self) -> None:
        with self._lock:
            self.windows.clear()


class RateLimiter:
    """Named-policy limiter: Redis first, in-process window on store failure."""

    def __init__(
        self,
        policies: Optional[Dict[str, int]] = None,
        *,
        window_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
        fallback: Optional[InMemorySlidingWindow] = None,
        time_fn: Callable[[], float] = time.time,
        redis_getter: Callable = get_redis,
    ):
        self.policies = policies or settings.rate_limit_policies()
        self.window_ms = int((window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS) * 1000)
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled
        self.time_fn = time_fn
        self.fallback = fallback or InMemorySlidingWindow(settings.RATE_LIMIT_FALLBACK_MAX_KEYS, time_fn=time_fn)
        self._redis_getter = redis_getter

    def limit_for(self, policy: str) -> int:
        if policy not in self.policies:
            raise KeyError(f"Unknown rate limit policy: {policy}")
        return self.policies[policy]

    def check(self, policy: str, identifier: str) -> RateLimitDecision:
        limit = self.limit_for(policy)
        if not self.enabled:
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit, reset_at_ms=0, retry_after=0, backend="disabled")

        key = ratelimit_key(policy, identifier)
        client = self._redis_getter()
        decision = None
        if client is not None:
            try:
                decision = self._check_redis(client, key, limit)
            except REDIS_ERRORS as exc:
                ratelimit_fallback_total.inc(labels={"scope": policy})
                log_event(
                    "warning",
                    "ratelimit.store_unavailable",
                    error_code="redis_unavailable",
                    extra={"policy": policy, "error": exc},
                )

        if decision is None:
            decision = self.fallback.hit(key, limit=limit, window_ms=self.window_ms)

        if not decision.allowed:
            ratelimit_block_total.inc(labels={"scope": policy})
        return decision

    def _check_redis(self, client, key: str, limit: int) -> RateLimitDecision:
        now_ms = int(self.time_fn() * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex[:12]}"

        pipe = client.pipeline(transaction=True)
        pipe.zremrangebyscore(key, 0, now_ms - self.window_ms)
        pipe.zadd(key, {member: now_ms})
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        pipe.pexpire(key, self.window_ms)
        _, _, count, oldest, _ = pipe.execute()

        oldest_ms = float(oldest[0][1]) if oldest else float(now_ms)
        reset_at = oldest_ms + self.window_ms

        if count > limit:
            # Denied hits do not occupy the window
            client.zrem(key, member)
            return RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at_ms=int(reset_at),
                retry_after=_retry_after_seconds(reset_at, now_ms),
            )

        return RateLimitDecision(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at_ms=int(reset_at),
            retry_after=0,
        )


def get_rate_limit_identifier(request: Optional[Request], user_id: Optional[str] = None) -> str:
    """Player id when authenticated, otherwise the client address."""
    if user_id:
        return f"user:{user_id}"
    if request is None:
        return "ip:unknown"

    forwarded = request.headers.get("x-forwarded-for")
    real_ip = request.headers.get("x-real-ip")
    ip = None
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    ip = ip or real_ip or (request.client.host if request.client else None) or "unknown"
    return f"ip:{ip}"


_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = RateLimiter()
    return _limiter


def set_rate_limiter(limiter: Optional[RateLimiter]) -> None:
    global _limiter
    _limiter = limiter
