# speedtype/conftest.py
import pytest
from fastapi.testclient import TestClient

from speedtype.core import idempotency
from speedtype.core.config import settings
from speedtype.core.database import create_all_tables, dispose_engine, init_engine
from speedtype.core.metrics import METRICS
from speedtype.core.ratelimit import set_rate_limiter
from speedtype.core.redis_client import reset_redis, set_redis_client
from speedtype.tests.mocks import FakeRedis


@pytest.fixture(scope="function", autouse=True)
def database():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive across sessions.
    """
    engine = init_engine("sqlite://")
    create_all_tables()
    yield engine
    dispose_engine()


@pytest.fixture(scope="function", autouse=True)
def fake_redis():
    """Every test talks to an in-memory Redis unless it opts out with `no_redis`."""
    client = FakeRedis()
    set_redis_client(client)
    yield client
    reset_redis()


@pytest.fixture
def no_redis(monkeypatch):
    """Redis not configured at all."""
    reset_redis()
    monkeypatch.setattr(settings, "REDIS_URL", None)
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_shared_state():
    idempotency.clear_fallback_keys()
    set_rate_limiter(None)
    METRICS.reset()
    yield
    idempotency.clear_fallback_keys()
    set_rate_limiter(None)


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_KEY", "test-admin-key")
    return "test-admin-key"


@pytest.fixture
def client():
    from speedtype.main import app
    return TestClient(app)
