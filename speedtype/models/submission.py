from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_KEYSTROKES = 20000
MAX_WORDS = 5000
DEFAULT_THEME = "monkeytype-inspired"


class Keystroke(BaseModel):
    """One key event captured by the client during a test."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: float  # epoch ms
    key: str = ""
    word_index: int = Field(0, alias="wordIndex")
    is_correct: bool = Field(False, alias="isCorrect")


class SubmissionRequest(BaseModel):
    """
    A finished typing test as reported by the client.

    Client-side wpm/accuracy are not part of the model and are dropped if sent;
    the server recomputes them from the word arrays.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    attempt_id: str = Field(..., alias="attemptId", min_length=1, max_length=64)
    keystrokes: List[Keystroke] = Field(default_factory=list, max_length=MAX_KEYSTROKES)
    words_typed: List[Optional[str]] = Field(..., alias="wordsTyped", max_length=MAX_WORDS)
    expected_words: List[Optional[str]] = Field(..., alias="expectedWords", max_length=MAX_WORDS)
    duration: int = Field(..., gt=0, le=3600)
    start_time: int = Field(..., alias="startTime", gt=0)
    theme: Optional[str] = Field(None, max_length=100)
    language: str = Field("en", max_length=16)
