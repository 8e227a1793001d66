from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from speedtype.features.results.outcomes import ValidationResult
from speedtype.features.results.stats import TypingStats
from speedtype.models.submission import Keystroke

REASON_WPM_CEILING = "WPM exceeds human capability (max 300 WPM)"
REASON_BAD_STATS = "Invalid calculated statistics"
REASON_KEYSTROKE_RATIO = "Invalid keystroke-to-character ratio"
REASON_BACKSPACE = "Suspicious typing pattern"

BACKSPACE_KEY = "Backspace"


@dataclass(frozen=True)
class PlausibilityLimits:
    max_wpm: int = 300
    min_keystroke_ratio: float = 0.3
    max_keystroke_ratio: float = 10.0
    max_backspace_ratio: float = 0.8
    min_keystrokes_for_backspace_check: int = 20


DEFAULT_PLAUSIBILITY_LIMITS = PlausibilityLimits()


def check_plausibility(
    stats: TypingStats,
    keystrokes: Sequence[Keystroke],
    limits: PlausibilityLimits = DEFAULT_PLAUSIBILITY_LIMITS,
) -> ValidationResult:
    """Bounds-check recomputed metrics against human typing envelopes."""
    if stats.wpm > limits.max_wpm:
        return ValidationResult.reject(REASON_WPM_CEILING)

    if stats.wpm < 0 or stats.accuracy < 0 or stats.accuracy > 100:
        return ValidationResult.reject(REASON_BAD_STATS)

    count = len(keystrokes)
    if count == 0:
        return ValidationResult.ok()

    ratio = count / (stats.total_chars or 1)
    if ratio < limits.min_keystroke_ratio or ratio > limits.max_keystroke_ratio:
        return ValidationResult.reject(REASON_KEYSTROKE_RATIO)

    if count >= limits.min_keystrokes_for_backspace_check:
        backspaces = sum(1 for k in keystrokes if k.key == BACKSPACE_KEY)
        if backspaces / count > limits.max_backspace_ratio:
            return ValidationResult.reject(REASON_BACKSPACE)

    return ValidationResult.ok()
