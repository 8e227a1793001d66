from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass
class UserStreak:
    """
    Daily play streak for a player. Day-level, UTC calendar days only.
    """

    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastActivityDate": self.last_activity_date.isoformat() if self.last_activity_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserStreak":
        raw_day = data.get("lastActivityDate")
        return cls(
            current_streak=int(data.get("currentStreak") or 0),
            longest_streak=int(data.get("longestStreak") or 0),
            last_activity_date=date.fromisoformat(raw_day) if raw_day else None,
        )
