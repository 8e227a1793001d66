from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from speedtype.core.auth import get_player_id
from speedtype.core.errors import RateLimitError, app_error_handler
from speedtype.core.logging import get_request_id
from speedtype.core.ratelimit import RateLimiter, get_rate_limit_identifier, get_rate_limiter

# Paths limited elsewhere or not at all
_EXEMPT_PREFIXES = (
    "/api/submit-result",  # limited inside the submission pipeline, after the replay guard
    "/api/admin",
    "/api/redis-health",
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limits for read endpoints, keyed by player or client address."""

    def __init__(self, app, *, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self._limiter = limiter

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter or get_rate_limiter()

    def _policy_for_request(self, request: Request) -> Optional[str]:
        path = request.url.path
        if not path.startswith("/api/") or path.startswith(_EXEMPT_PREFIXES):
            return None
        if path.startswith("/api/leaderboard"):
            return "leaderboard"
        return "general"

    async def dispatch(self, request: Request, call_next):
        policy = self._policy_for_request(request)
        if not policy:
            return await call_next(request)

        identifier = get_rate_limit_identifier(request, get_player_id(request))
        # check() does blocking Redis I/O
        decision = await run_in_threadpool(self.limiter.check, policy, identifier)
        if decision.allowed:
            response = await call_next(request)
            for name, value in decision.headers().items():
                response.headers[name] = value
            return response

        rid = getattr(request.state, "request_id", None) or get_request_id()
        return await app_error_handler(
            request,
            RateLimitError(
                "Too many requests. Please try again later.",
                request_id=rid,
                headers=decision.headers(),
            ),
        )
