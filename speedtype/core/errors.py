"""Error normalization and handlers."""

import logging
import builtins
from typing import Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from speedtype.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.headers = headers or {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class ReplayError(AppError):
    """Raised when an attempt-id has already been submitted."""
    code = "already_submitted"
    status_code = 400


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429


class PersistenceError(AppError):
    code = "persistence_failed"
    status_code = 500


class ServiceUnavailableError(AppError):
    code = "service_unavailable"
    status_code = 503


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {"error": message, "code": code, "request_id": request_id}


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid)
    logger = logging.getLogger("speedtype")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "status": exc.status_code, "details": {"message": exc.message}},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    for name, value in exc.headers.items():
        response.headers[name] = value
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("speedtype")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
    message = "Invalid request data"
    if fields:
        message = f"Invalid request data: {', '.join(f for f in fields if f)}"
    payload = _error_payload("validation_error", message, rid)
    logging.getLogger("speedtype").warning(
        "request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400}
    )
    response = JSONResponse(status_code=400, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("speedtype")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Internal server error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
