"""
Sorted-set encoding of the leaderboard order.

Entries rank by (wpm desc, accuracy desc, created_at asc). The score holds the
two integer metrics exactly; the member starts with an inverted fixed-width
timestamp so that, among equal scores, a reversed range returns the earliest
result first.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Tuple

from speedtype.models.leaderboard import ensure_utc

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Upper bound for microsecond timestamps (roughly year 5138)
MAX_TIMESTAMP_US = 10 ** 17
_TIMESTAMP_WIDTH = 17


def score(wpm: int, accuracy: int) -> int:
    return int(wpm) * 1000 + int(accuracy)


def timestamp_us(value: datetime) -> int:
    delta = ensure_utc(value) - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def member(entry_id: str, user_id: str, created_at: datetime) -> str:
    inverted = MAX_TIMESTAMP_US - timestamp_us(created_at)
    return f"{inverted:0{_TIMESTAMP_WIDTH}d}:{entry_id}:{user_id}"


def parse_member(value: str) -> Tuple[str, str]:
    """Return (entry_id, user_id) from an encoded member."""
    _, entry_id, user_id = value.split(":", 2)
    return entry_id, user_id
