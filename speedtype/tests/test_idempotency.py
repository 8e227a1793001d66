"""Replay protection: atomic set-if-absent with in-process fallback."""
import threading
import uuid

from sqlalchemy import func, select

from speedtype.core import idempotency
from speedtype.core.database import get_db_session, typing_results
from speedtype.core.redis_client import idempotency_key, set_redis_client
from speedtype.features.results.outcomes import Accepted, Rejection, RejectionKind
from speedtype.features.results.pipeline import SubmissionPipeline
from speedtype.features.results.repository import ResultStore
from speedtype.models.submission import SubmissionRequest
from speedtype.tests.factories import build_submission, create_profile
from speedtype.tests.mocks import FakeRedis


def test_attempt_id_must_be_uuid_v4():
    assert idempotency.is_valid_attempt_id(str(uuid.uuid4()))
    assert idempotency.is_valid_attempt_id(str(uuid.uuid4()).upper())
    assert not idempotency.is_valid_attempt_id(str(uuid.uuid1()))
    assert not idempotency.is_valid_attempt_id("not-a-uuid")
    assert not idempotency.is_valid_attempt_id("")
    assert not idempotency.is_valid_attempt_id(None)


def test_first_call_marks_second_call_is_duplicate(fake_redis):
    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    assert idempotency.check_and_set("player-1", attempt) is True
    assert fake_redis.get(idempotency_key("player-1", attempt)) == "1"


def test_marker_is_scoped_per_player():
    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    assert idempotency.check_and_set("player-2", attempt) is False


def test_marker_expires_after_ttl():
    clock = {"now": 1000.0}
    set_redis_client(FakeRedis(time_fn=lambda: clock["now"]))

    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    clock["now"] += 86400 - 1
    assert idempotency.check_and_set("player-1", attempt) is True
    clock["now"] += 2
    assert idempotency.check_and_set("player-1", attempt) is False


def test_falls_back_to_memory_when_redis_down(fake_redis):
    fake_redis.available = False
    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    assert idempotency.check_and_set("player-1", attempt) is True


def test_falls_back_to_memory_without_redis(no_redis):
    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    assert idempotency.check_and_set("player-1", attempt) is True


def test_memory_markers_are_bounded():
    markers = idempotency.InMemoryMarkers(max_keys=2, time_fn=lambda: 0.0)
    assert markers.set_if_absent("a", 60)
    assert markers.set_if_absent("b", 60)
    assert markers.set_if_absent("c", 60)
    # Oldest entry evicted
    assert not markers.exists("a")
    assert markers.exists("b") and markers.exists("c")


def test_concurrent_duplicates_persist_and_reward_once():
    create_profile("racer", coins=0)
    pipeline = SubmissionPipeline(ResultStore())
    payload = SubmissionRequest.model_validate(build_submission())

    outcomes = []
    barrier = threading.Barrier(8)

    def submit():
        barrier.wait()
        outcomes.append(pipeline.submit("racer", payload))

    threads = [threading.Thread(target=submit) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    accepted = [o for o in outcomes if isinstance(o, Accepted)]
    replays = [o for o in outcomes if isinstance(o, Rejection) and o.kind is RejectionKind.REPLAY]
    assert len(accepted) == 1
    assert len(replays) == 7

    with get_db_session() as session:
        rows = session.execute(select(func.count()).select_from(typing_results)).scalar()
    assert rows == 1
    assert ResultStore().get_balance("racer") == accepted[0].coins_earned


def test_release_allows_the_attempt_again(fake_redis):
    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    idempotency.release("player-1", attempt)
    assert fake_redis.get(idempotency_key("player-1", attempt)) is None
    assert idempotency.check_and_set("player-1", attempt) is False


def test_release_clears_memory_marker_during_outage(fake_redis):
    fake_redis.available = False
    attempt = str(uuid.uuid4())
    assert idempotency.check_and_set("player-1", attempt) is False
    idempotency.release("player-1", attempt)
    assert idempotency.check_and_set("player-1", attempt) is False
