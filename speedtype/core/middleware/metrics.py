import time
from starlette.middleware.base import BaseHTTPMiddleware

from speedtype.core.logging import latency_bucket_ms
from speedtype.core.metrics import http_latency_total, http_requests_total, normalize_path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests by route shape and status, plus coarse latency buckets."""

    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        _record_request_metric(request, response, duration_ms)
        return response


def _record_request_metric(request, response, duration_ms: float) -> None:
    try:
        path = normalize_path(request.url.path)
        status = getattr(response, "status_code", None) or 0
        http_requests_total.inc(labels={
            "method": request.method.upper(),
            "path": path,
            "status": str(status),
        })
        http_latency_total.inc(labels={"path": path, "bucket": latency_bucket_ms(duration_ms)})
    except Exception:
        # Do not fail the request on metrics errors
        return
