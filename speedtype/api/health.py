"""
Health and diagnostics endpoints.

Lightweight probes for operational monitoring; no secrets are returned.
"""

import logging
import time
import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from speedtype.core.auth import AdminActor, require_admin
from speedtype.core.database import REQUIRED_TABLES, get_engine
from speedtype.core.errors import ServiceUnavailableError
from speedtype.core.redis_client import REDIS_ERRORS, get_redis, is_redis_configured

logger = logging.getLogger("speedtype")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables. Redis is optional."""
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")

        inspector = inspect(engine)
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
        if missing:
            detail = f"missing tables: {', '.join(missing)}"
            logger.warning(f"[readyz] {detail}")
            return JSONResponse(status_code=503, content={"status": "error", "detail": detail})
    except Exception as e:
        logger.error(f"[readyz] readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    return {"status": "ok", "redis": _redis_status()}


def _redis_status() -> str:
    client = get_redis()
    if client is None:
        return "disabled"
    try:
        client.ping()
        return "ok"
    except REDIS_ERRORS:
        return "degraded"


@router.get("/api/redis-health")
def redis_health(actor: AdminActor = Depends(require_admin)):
    """PING latency plus a SET/GET/DEL round trip on a throwaway key."""
    client = get_redis()
    if client is None or not is_redis_configured():
        raise ServiceUnavailableError("Redis is not configured")

    probe_key = f"health:probe:{uuid.uuid4().hex[:8]}"
    try:
        start = time.perf_counter()
        client.ping()
        ping_ms = round((time.perf_counter() - start) * 1000, 2)

        client.set(probe_key, "ok", ex=10)
        echoed = client.get(probe_key)
        client.delete(probe_key)
    except REDIS_ERRORS as exc:
        logger.error(f"[redis-health] probe failed: {exc}")
        raise ServiceUnavailableError("Redis is unreachable")

    return {
        "status": "ok" if echoed == "ok" else "degraded",
        "ping_ms": ping_ms,
        "round_trip": echoed == "ok",
    }
