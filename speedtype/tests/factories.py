"""Builders for request payloads and seeded rows."""
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import insert

from speedtype.core.database import get_db_session, profiles, typing_results

START_MS = 1_700_000_000_000


def keystrokes_for(words, start_ms=START_MS, gap_ms=200, first_offset_ms=100):
    """One keystroke per character plus the separating space, evenly spaced."""
    events = []
    t = start_ms + first_offset_ms
    for index, word in enumerate(words):
        for ch in word + " ":
            events.append({"timestamp": t, "key": ch, "wordIndex": index, "isCorrect": True})
            t += gap_ms
    return events


def build_submission(words=None, *, duration=30, attempt_id=None, start_ms=START_MS, gap_ms=200,
                     typed=None, keystrokes=None, **extra):
    words = words if words is not None else ["hello"] * 10
    payload = {
        "attemptId": attempt_id or str(uuid.uuid4()),
        "keystrokes": keystrokes if keystrokes is not None else keystrokes_for(words, start_ms, gap_ms),
        "wordsTyped": typed if typed is not None else list(words),
        "expectedWords": list(words),
        "duration": duration,
        "startTime": start_ms,
    }
    payload.update(extra)
    return payload


def create_profile(player_id, *, coins=0, username=None, email=None):
    with get_db_session() as session:
        session.execute(
            insert(profiles).values(
                id=player_id,
                username=username,
                email=email,
                coins=coins,
                created_at=datetime.now(timezone.utc),
            )
        )


def seed_result(player_id, *, wpm, accuracy=100, duration=60, created_at=None, result_id=None):
    result_id = result_id or str(uuid.uuid4())
    created_at = created_at or datetime(2024, 1, 1, tzinfo=timezone.utc)
    with get_db_session() as session:
        session.execute(
            insert(typing_results).values(
                id=result_id,
                user_id=player_id,
                wpm=wpm,
                accuracy=accuracy,
                correct_chars=wpm * 5,
                incorrect_chars=0,
                duration=duration,
                theme="monkeytype-inspired",
                language="en",
                created_at=created_at,
            )
        )
    return result_id


def at(seconds):
    """A fixed UTC instant offset by the given seconds."""
    return datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=seconds)
