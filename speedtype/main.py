import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from speedtype.api import health, leaderboard, metrics, results, streaks  # noqa: E402
from speedtype.core.config import settings, validate_config  # noqa: E402
from speedtype.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from speedtype.core.logging import configure_logging  # noqa: E402
from speedtype.core.middleware.metrics import MetricsMiddleware  # noqa: E402
from speedtype.core.middleware.ratelimit import RateLimitMiddleware  # noqa: E402
from speedtype.core.middleware.request_id import RequestIdMiddleware  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("speedtype")
    logger.info("Starting speedtype backend...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logging.getLogger("speedtype").info("Stopping speedtype backend...")


app = FastAPI(title="speedtype - results & leaderboard", lifespan=lifespan)

# Middlewares (last added runs first)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(results.router)
app.include_router(leaderboard.router)
app.include_router(streaks.router)
app.include_router(health.router)
app.include_router(metrics.router)


def run() -> None:
    """Start the API server (``speedtype-serve``)."""
    import uvicorn

    uvicorn.run(
        "speedtype.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    run()
