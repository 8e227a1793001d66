"""
Tagged outcomes for the submission pipeline.

Every stage either passes or produces a Rejection carrying its kind, so the
HTTP layer can map kinds to status codes exhaustively.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

from speedtype.models.streak import UserStreak


class RejectionKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_REQUEST = "invalid_request"
    REPLAY = "replay"
    RATE_LIMITED = "rate_limited"
    TIMING_INVALID = "timing_invalid"
    PLAUSIBILITY_INVALID = "plausibility_invalid"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class ValidationResult:
    """Verdict of a pure validation check."""
    valid: bool
    reason: str = ""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, reason=reason)


@dataclass(frozen=True)
class Rejection:
    kind: RejectionKind
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Accepted:
    id: str
    wpm: int
    accuracy: int
    correct_chars: int
    incorrect_chars: int
    duration: int
    created_at: str
    coins_earned: int
    total_coins: Optional[int] = None
    streak: Optional[UserStreak] = None

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "wpm": self.wpm,
            "accuracy": self.accuracy,
            "correctChars": self.correct_chars,
            "incorrectChars": self.incorrect_chars,
            "duration": self.duration,
            "createdAt": self.created_at,
            "coinsEarned": self.coins_earned,
            "totalCoins": self.total_coins,
        }
        if self.streak is not None:
            payload["streak"] = {
                "currentStreak": self.streak.current_streak,
                "longestStreak": self.streak.longest_streak,
            }
        return payload


SubmissionOutcome = Union[Accepted, Rejection]
