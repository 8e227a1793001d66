"""Server-side recomputation of WPM and accuracy from the raw word arrays."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class TypingStats:
    wpm: int
    accuracy: int
    correct_chars: int
    incorrect_chars: int

    @property
    def total_chars(self) -> int:
        return self.correct_chars + self.incorrect_chars


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_word(typed: str, expected: str) -> tuple[int, int]:
    """Return (correct, incorrect) characters for one word, trailing space included."""
    if typed == expected:
        return len(expected) + 1, 0

    min_len = min(len(typed), len(expected))
    matches = sum(1 for j in range(min_len) if typed[j] == expected[j])
    incorrect = abs(len(typed) - len(expected)) + (min_len - matches) + 1
    return matches, incorrect


def recalculate_stats(
    words_typed: Sequence[Optional[str]],
    expected_words: Sequence[Optional[str]],
    duration_s: float,
) -> TypingStats:
    correct = 0
    incorrect = 0
    for typed, expected in zip(words_typed, expected_words):
        word_correct, word_incorrect = score_word(typed or "", expected or "")
        correct += word_correct
        incorrect += word_incorrect

    minutes = duration_s / 60 if duration_s > 0 else 0
    wpm = round_half_up((correct / 5) / minutes) if minutes > 0 else 0

    total = correct + incorrect
    accuracy = round_half_up(correct / total * 100) if total > 0 else 100

    return TypingStats(wpm=wpm, accuracy=accuracy, correct_chars=correct, incorrect_chars=incorrect)
