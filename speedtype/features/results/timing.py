"""
Keystroke timeline checks.

Rules run in order and the first violation wins:
1. events may not end more than 2s before the claimed start;
2. events must sit inside [start - 5s, start + duration + tolerance];
3. with enough keystrokes, gap and rate statistics must look human.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from speedtype.features.results.outcomes import ValidationResult
from speedtype.models.submission import Keystroke

REASON_PRECEDES_START = "Invalid timing - keystrokes precede recorded start time"
REASON_OUT_OF_WINDOW = "Invalid keystroke timestamps"
REASON_GAP_TOO_LARGE = "Session expired or invalid - keystroke gap too large"
REASON_TOO_MANY_PAUSES = "Session expired or invalid - too many idle pauses"
REASON_MEAN_GAP = "Invalid keystroke timing pattern"
REASON_RATE = "Invalid keystroke rate distribution"
REASON_BURST = "Automated typing pattern detected"


@dataclass(frozen=True)
class TimingLimits:
    max_lead_before_start_ms: float = 2000
    clock_skew_grace_ms: float = 5000
    min_tolerance_ms: float = 20000
    tolerance_fraction: float = 0.2
    min_keystrokes_for_gap_checks: int = 10
    max_single_gap_ms: float = 30000
    long_gap_ms: float = 10000
    max_long_gaps: int = 3
    min_mean_gap_ms: float = 3
    max_mean_gap_ms: float = 5000
    min_keystrokes_per_second: float = 0.1
    max_keystrokes_per_second: float = 100
    # Off by default: window thresholds have not been tuned against real players.
    burst_detection_enabled: bool = False
    burst_window: int = 10
    burst_min_stddev_ms: float = 5


DEFAULT_TIMING_LIMITS = TimingLimits()


def keystroke_gaps(timestamps: Sequence[float]) -> List[float]:
    return [timestamps[i] - timestamps[i - 1] for i in range(1, len(timestamps))]


def detect_typing_bursts(gaps: Sequence[float], window: int = 10, min_stddev_ms: float = 5) -> bool:
    """True if any run of `window` consecutive gaps is near-perfectly uniform."""
    for i in range(0, len(gaps) - window + 1):
        chunk = gaps[i:i + window]
        mean = sum(chunk) / len(chunk)
        stddev = math.sqrt(sum((gap - mean) ** 2 for gap in chunk) / len(chunk))
        if stddev < min_stddev_ms:
            return True
    return False


def validate_timing(
    keystrokes: Sequence[Keystroke],
    start_time_ms: float,
    duration_s: float,
    limits: TimingLimits = DEFAULT_TIMING_LIMITS,
) -> ValidationResult:
    timestamps = sorted(k.timestamp for k in keystrokes)
    first = timestamps[0] if timestamps else start_time_ms
    last = timestamps[-1] if timestamps else start_time_ms

    if last - start_time_ms < -limits.max_lead_before_start_ms:
        return ValidationResult.reject(REASON_PRECEDES_START)

    duration_ms = duration_s * 1000
    tolerance_ms = max(limits.min_tolerance_ms, duration_ms * limits.tolerance_fraction)
    if first < start_time_ms - limits.clock_skew_grace_ms or last > start_time_ms + duration_ms + tolerance_ms:
        return ValidationResult.reject(REASON_OUT_OF_WINDOW)

    if len(timestamps) < limits.min_keystrokes_for_gap_checks:
        return ValidationResult.ok()

    gaps = keystroke_gaps(timestamps)
    if any(gap > limits.max_single_gap_ms for gap in gaps):
        return ValidationResult.reject(REASON_GAP_TOO_LARGE)

    long_gaps = sum(1 for gap in gaps if gap > limits.long_gap_ms)
    if long_gaps > limits.max_long_gaps:
        return ValidationResult.reject(REASON_TOO_MANY_PAUSES)

    mean_gap = sum(gaps) / len(gaps)
    if mean_gap < limits.min_mean_gap_ms or mean_gap > limits.max_mean_gap_ms:
        return ValidationResult.reject(REASON_MEAN_GAP)

    elapsed_ms = last - first
    if elapsed_ms > 0:
        per_second = len(timestamps) / (elapsed_ms / 1000)
        if per_second < limits.min_keystrokes_per_second or per_second > limits.max_keystrokes_per_second:
            return ValidationResult.reject(REASON_RATE)

    if limits.burst_detection_enabled and detect_typing_bursts(gaps, limits.burst_window, limits.burst_min_stddev_ms):
        return ValidationResult.reject(REASON_BURST)

    return ValidationResult.ok()
