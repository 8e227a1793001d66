from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional

# Test durations that own a leaderboard partition
LEADERBOARD_DURATIONS = (15, 30, 60, 120)

LeaderboardSource = Literal["cache", "database"]


@dataclass
class LeaderboardEntry:
    """Projection of a validated result for leaderboard display."""

    id: str
    user_id: str
    username: str
    email: str
    wpm: int
    accuracy: int
    created_at: datetime
    rank: Optional[int] = None

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["created_at"] = iso_utc(self.created_at)
        return payload


@dataclass
class LeaderboardPage:
    entries: List[LeaderboardEntry] = field(default_factory=list)
    total: int = 0


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_utc(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def display_name(username: Optional[str], user_id: str) -> str:
    return username or f"User {user_id[:8]}"
