"""End-to-end behaviour of POST /api/submit-result."""
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from speedtype.core.database import get_db_session, typing_results
from speedtype.core.metrics import submissions_total
from speedtype.core.ratelimit import RateLimiter, set_rate_limiter
from speedtype.core.redis_client import leaderboard_key, streak_key
from speedtype.features.results.repository import ResultStore
from speedtype.tests.factories import START_MS, build_submission, create_profile, keystrokes_for

PLAYER = {"X-User-Id": "player-1"}


def _row_count():
    with get_db_session() as session:
        return session.execute(select(func.count()).select_from(typing_results)).scalar()


def test_accepted_submission_persists_rewards_and_caches(client, fake_redis):
    create_profile("player-1", coins=10, username="speedy")
    resp = client.post("/api/submit-result", json=build_submission(), headers=PLAYER)

    assert resp.status_code == 200
    body = resp.json()
    assert body["wpm"] == 24
    assert body["accuracy"] == 100
    assert body["correctChars"] == 60
    assert body["incorrectChars"] == 0
    assert body["duration"] == 30
    assert body["coinsEarned"] == 103
    assert body["totalCoins"] == 113
    assert body["createdAt"].endswith("Z")
    assert body["streak"] == {"currentStreak": 1, "longestStreak": 1}

    assert _row_count() == 1
    assert fake_redis.zcard(leaderboard_key(30)) == 1
    assert fake_redis.get(streak_key("player-1"))
    assert submissions_total.value({"outcome": "accepted"}) == 1


def test_client_supplied_stats_are_ignored(client):
    create_profile("player-1")
    payload = build_submission(wpm=250, accuracy=100)
    resp = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert resp.status_code == 200
    assert resp.json()["wpm"] == 24


def test_replay_is_rejected_without_new_row(client):
    create_profile("player-1")
    payload = build_submission()
    first = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert first.status_code == 200

    second = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert second.status_code == 400
    assert second.json()["error"] == "Test result already submitted"
    assert second.json()["code"] == "replay"
    assert _row_count() == 1
    assert ResultStore().get_balance("player-1") == 103


def test_unauthenticated_submission_rejected_before_validation(client):
    resp = client.post("/api/submit-result", json={"attemptId": "x"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Unauthorized - Please log in"


def test_malformed_attempt_id_rejected(client):
    resp = client.post("/api/submit-result", json=build_submission(attempt_id="1234"), headers=PLAYER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid attempt ID"
    assert _row_count() == 0


def test_missing_fields_are_validation_errors(client):
    resp = client.post("/api/submit-result", json={"attemptId": str(uuid.uuid4())}, headers=PLAYER)
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "validation_error"
    assert "wordsTyped" in body["error"]


def test_long_gap_is_rejected_before_recalculation(client):
    words = ["ab"] * 7  # 21 keystrokes
    strokes = keystrokes_for(words)[:19]
    strokes.append({"timestamp": strokes[-1]["timestamp"] + 35000, "key": "b", "wordIndex": 6, "isCorrect": True})
    payload = build_submission(words, duration=60, keystrokes=strokes)

    resp = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Session expired or invalid")
    assert resp.json()["code"] == "timing_invalid"
    assert _row_count() == 0


def test_superhuman_wpm_rejected(client):
    # 61 ten-letter words in 15s: 671 chars -> 536.8 wpm
    words = ["abcdefghij"] * 61
    payload = build_submission(words, duration=15, gap_ms=20)
    resp = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "WPM exceeds human capability (max 300 WPM)"
    assert resp.json()["code"] == "plausibility_invalid"


def test_rate_limit_blocks_submissions_over_quota(client):
    create_profile("player-1")
    set_rate_limiter(RateLimiter({"test-submission": 2}, enabled=True))

    for _ in range(2):
        assert client.post("/api/submit-result", json=build_submission(), headers=PLAYER).status_code == 200

    blocked = client.post("/api/submit-result", json=build_submission(), headers=PLAYER)
    assert blocked.status_code == 429
    assert blocked.json()["code"] == "rate_limited"
    assert blocked.headers["Retry-After"]
    assert blocked.headers["X-RateLimit-Limit"] == "2"


def test_persistence_failure_is_generic_500(client, monkeypatch):
    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO typing_results", {}, Exception("disk full"))

    monkeypatch.setattr(ResultStore, "insert_validated_result", broken_insert)
    resp = client.post("/api/submit-result", json=build_submission(), headers=PLAYER)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to save result"
    assert "disk full" not in resp.text


def test_failed_save_can_be_retried_with_same_attempt(client, monkeypatch):
    create_profile("player-1")
    payload = build_submission()

    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT INTO typing_results", {}, Exception("connection reset"))

    with monkeypatch.context() as patched:
        patched.setattr(ResultStore, "insert_validated_result", broken_insert)
        failed = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert failed.status_code == 500
    assert _row_count() == 0

    retry = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert retry.status_code == 200
    assert _row_count() == 1
    assert ResultStore().get_balance("player-1") == 103

    replay = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert replay.json()["code"] == "replay"


def test_reward_failure_keeps_the_result(client):
    # No profile row: the increment and the fallback both fail
    resp = client.post("/api/submit-result", json=build_submission(), headers=PLAYER)
    assert resp.status_code == 200
    assert resp.json()["coinsEarned"] == 103
    assert resp.json()["totalCoins"] is None
    assert _row_count() == 1


def test_redis_outage_still_accepts_once(client, fake_redis):
    create_profile("player-1")
    fake_redis.available = False
    payload = build_submission()

    first = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert first.status_code == 200
    assert "streak" not in first.json()

    replay = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert replay.status_code == 400
    assert _row_count() == 1


def test_without_redis_configured(client, no_redis):
    create_profile("player-1")
    resp = client.post("/api/submit-result", json=build_submission(), headers=PLAYER)
    assert resp.status_code == 200
    assert resp.json()["totalCoins"] == 103


@pytest.mark.parametrize("theme,expected", [(None, "monkeytype-inspired"), ("dracula", "dracula")])
def test_theme_defaults(client, theme, expected):
    create_profile("player-1")
    payload = build_submission(theme=theme)
    assert client.post("/api/submit-result", json=payload, headers=PLAYER).status_code == 200
    with get_db_session() as session:
        stored = session.execute(select(typing_results.c.theme)).scalar()
    assert stored == expected


def test_start_time_is_the_reference_point(client):
    # Keystrokes recorded a minute after the claimed start of a 15s test
    payload = build_submission(duration=15, start_ms=START_MS)
    payload["startTime"] = START_MS - 60_000
    resp = client.post("/api/submit-result", json=payload, headers=PLAYER)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid keystroke timestamps"
