"""
Result submission pipeline.

identity -> attempt id -> replay guard -> rate limit -> timing -> recalculation
-> plausibility -> insert -> reward -> leaderboard cache -> streak

Everything before the insert may reject. After the insert the result is
durable and the remaining stages only degrade the response.
"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from speedtype.core import idempotency
from speedtype.core.logging import log_event
from speedtype.core.metrics import submissions_total
from speedtype.core.ratelimit import RateLimiter, get_rate_limiter
from speedtype.features.leaderboard.cache import LeaderboardCache
from speedtype.features.results.outcomes import Accepted, Rejection, RejectionKind, SubmissionOutcome
from speedtype.features.results.plausibility import (
    DEFAULT_PLAUSIBILITY_LIMITS,
    PlausibilityLimits,
    check_plausibility,
)
from speedtype.features.results.repository import ResultStore
from speedtype.features.results.stats import recalculate_stats
from speedtype.features.results.timing import DEFAULT_TIMING_LIMITS, TimingLimits, validate_timing
from speedtype.features.rewards.service import RewardIssuer
from speedtype.features.streaks.service import StreakService
from speedtype.models.leaderboard import LeaderboardEntry, display_name, iso_utc
from speedtype.models.submission import DEFAULT_THEME, SubmissionRequest

SUBMISSION_POLICY = "test-submission"

MSG_UNAUTHENTICATED = "Unauthorized - Please log in"
MSG_INVALID_ATTEMPT = "Invalid attempt ID"
MSG_REPLAY = "Test result already submitted"
MSG_RATE_LIMITED = "Too many submissions. Please wait before trying again."
MSG_SAVE_FAILED = "Failed to save result"


class SubmissionPipeline:
    def __init__(
        self,
        store: ResultStore,
        *,
        rewards: Optional[RewardIssuer] = None,
        cache: Optional[LeaderboardCache] = None,
        streaks: Optional[StreakService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        replay_guard: Callable[[str, str], bool] = idempotency.check_and_set,
        replay_release: Callable[[str, str], None] = idempotency.release,
        timing_limits: TimingLimits = DEFAULT_TIMING_LIMITS,
        plausibility_limits: PlausibilityLimits = DEFAULT_PLAUSIBILITY_LIMITS,
    ):
        self.store = store
        self.rewards = rewards or RewardIssuer(store)
        self.cache = cache or LeaderboardCache(store)
        self.streaks = streaks or StreakService()
        self.rate_limiter = rate_limiter
        self.replay_guard = replay_guard
        self.replay_release = replay_release
        self.timing_limits = timing_limits
        self.plausibility_limits = plausibility_limits

    def _reject(
        self,
        kind: RejectionKind,
        reason: str,
        *,
        player_id: Optional[str],
        attempt_id: Optional[str],
        headers: Optional[dict] = None,
        log: bool = True,
    ) -> Rejection:
        submissions_total.inc({"outcome": kind.value})
        if log:
            log_event(
                "warning",
                "submission.rejected",
                user_id=player_id,
                attempt_id=attempt_id,
                event_type=kind.value,
                error_code=kind.value,
                extra={"reason": reason},
            )
        return Rejection(kind=kind, reason=reason, headers=headers or {})

    def submit(self, player_id: Optional[str], request: SubmissionRequest) -> SubmissionOutcome:
        attempt_id = request.attempt_id

        if not player_id:
            return self._reject(RejectionKind.UNAUTHENTICATED, MSG_UNAUTHENTICATED,
                                player_id=None, attempt_id=attempt_id)

        if not idempotency.is_valid_attempt_id(attempt_id):
            return self._reject(RejectionKind.INVALID_REQUEST, MSG_INVALID_ATTEMPT,
                                player_id=player_id, attempt_id=attempt_id)

        if self.replay_guard(player_id, attempt_id):
            # Replays stop here without validation logging
            return self._reject(RejectionKind.REPLAY, MSG_REPLAY,
                                player_id=player_id, attempt_id=attempt_id, log=False)

        limiter = self.rate_limiter or get_rate_limiter()
        decision = limiter.check(SUBMISSION_POLICY, f"user:{player_id}")
        if not decision.allowed:
            return self._reject(RejectionKind.RATE_LIMITED, MSG_RATE_LIMITED,
                                player_id=player_id, attempt_id=attempt_id, headers=decision.headers())

        timing = validate_timing(request.keystrokes, request.start_time, request.duration, self.timing_limits)
        if not timing.valid:
            return self._reject(RejectionKind.TIMING_INVALID, timing.reason,
                                player_id=player_id, attempt_id=attempt_id)

        stats = recalculate_stats(request.words_typed, request.expected_words, request.duration)

        verdict = check_plausibility(stats, request.keystrokes, self.plausibility_limits)
        if not verdict.valid:
            return self._reject(RejectionKind.PLAUSIBILITY_INVALID, verdict.reason,
                                player_id=player_id, attempt_id=attempt_id)

        try:
            saved = self.store.insert_validated_result(
                player_id,
                wpm=stats.wpm,
                accuracy=stats.accuracy,
                correct_chars=stats.correct_chars,
                incorrect_chars=stats.incorrect_chars,
                duration=request.duration,
                theme=request.theme or DEFAULT_THEME,
                language=request.language or "en",
            )
        except Exception as exc:
            log_event(
                "error",
                "submission.persist_failed",
                user_id=player_id,
                attempt_id=attempt_id,
                error_code=RejectionKind.PERSISTENCE_FAILED.value,
                extra={"error": exc},
            )
            # Nothing was saved, so the same attempt may be retried
            self.replay_release(player_id, attempt_id)
            return self._reject(RejectionKind.PERSISTENCE_FAILED, MSG_SAVE_FAILED,
                                player_id=player_id, attempt_id=attempt_id, log=False)

        reward = self.rewards.issue(player_id, stats.wpm, request.duration)

        profile = self._profile_quietly(player_id)
        previous_size = self.cache.upsert(
            LeaderboardEntry(
                id=saved["id"],
                user_id=player_id,
                username=display_name(profile.get("username") if profile else None, player_id),
                email=(profile.get("email") if profile else None) or "",
                wpm=stats.wpm,
                accuracy=stats.accuracy,
                created_at=saved["created_at"],
            ),
            request.duration,
        )
        if previous_size == 0:
            # A cold partition now holds only this result; refill it from the store
            self.cache.rebuild_quietly(request.duration)

        streak = self.streaks.update(player_id)

        submissions_total.inc({"outcome": "accepted"})
        log_event(
            "info",
            "submission.accepted",
            user_id=player_id,
            attempt_id=attempt_id,
            event_type="accepted",
            extra={
                "result_id": saved["id"],
                "wpm": stats.wpm,
                "accuracy": stats.accuracy,
                "duration": request.duration,
                "coins": reward.coins_earned,
            },
        )
        return Accepted(
            id=saved["id"],
            wpm=stats.wpm,
            accuracy=stats.accuracy,
            correct_chars=stats.correct_chars,
            incorrect_chars=stats.incorrect_chars,
            duration=request.duration,
            created_at=iso_utc(saved["created_at"]),
            coins_earned=reward.coins_earned,
            total_coins=reward.total_coins,
            streak=streak,
        )

    def _profile_quietly(self, player_id: str) -> Optional[dict]:
        try:
            return self.store.get_profile(player_id)
        except SQLAlchemyError as exc:
            log_event("warning", "submission.profile_unavailable", user_id=player_id, extra={"error": exc})
            return None
