"""
Coin rewards for accepted results.

Issued after the result row is committed. A failed reward never rejects the
submission: the caller gets coins_earned regardless and total_coins=None.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from speedtype.core.logging import log_event
from speedtype.core.metrics import reward_fallback_total
from speedtype.features.results.repository import BalanceUpdateError, ResultStore
from speedtype.features.results.stats import round_half_up

REWARD_DIVISOR = 7
MAX_CAS_ATTEMPTS = 3

# Store failures the issuer degrades on
STORE_ERRORS = (SQLAlchemyError, BalanceUpdateError)


def compute_reward(wpm: int, duration: int) -> int:
    """Coins for a run: wpm * duration / 7, rounded half-up, never negative."""
    if duration <= 0:
        return 0
    return max(0, round_half_up(wpm * duration / REWARD_DIVISOR))


@dataclass(frozen=True)
class RewardResult:
    coins_earned: int
    total_coins: Optional[int]


class RewardIssuer:
    def __init__(self, store: ResultStore, max_cas_attempts: int = MAX_CAS_ATTEMPTS):
        self.store = store
        self.max_cas_attempts = max_cas_attempts

    def issue(self, player_id: str, wpm: int, duration: int) -> RewardResult:
        amount = compute_reward(wpm, duration)
        total: Optional[int] = None

        try:
            total = self.store.add_balance(player_id, amount)
        except STORE_ERRORS as exc:
            log_event(
                "warning",
                "reward.increment_failed",
                user_id=player_id,
                error_code="reward_increment_failed",
                extra={"amount": amount, "error": exc},
            )
            total = self._compare_and_set(player_id, amount)

        if total is None:
            total = self._best_effort_balance(player_id)

        return RewardResult(coins_earned=amount, total_coins=total)

    def _compare_and_set(self, player_id: str, amount: int) -> Optional[int]:
        """Read-modify-write guarded by the previously read value; retried on contention."""
        for attempt in range(1, self.max_cas_attempts + 1):
            try:
                current = self.store.get_balance(player_id)
                if self.store.compare_and_set_balance(player_id, current, current + amount):
                    reward_fallback_total.inc({"result": "applied"})
                    log_event(
                        "info",
                        "reward.fallback",
                        user_id=player_id,
                        event_type="reward_fallback_applied",
                        extra={"amount": amount, "attempt": attempt},
                    )
                    return current + amount
            except STORE_ERRORS as exc:
                reward_fallback_total.inc({"result": "error"})
                log_event(
                    "error",
                    "reward.fallback",
                    user_id=player_id,
                    error_code="reward_fallback_failed",
                    extra={"amount": amount, "attempt": attempt, "error": exc},
                )
                return None

        reward_fallback_total.inc({"result": "contended"})
        log_event(
            "error",
            "reward.fallback",
            user_id=player_id,
            error_code="reward_fallback_contended",
            extra={"amount": amount, "attempts": self.max_cas_attempts},
        )
        return None

    def _best_effort_balance(self, player_id: str) -> Optional[int]:
        try:
            return self.store.get_balance(player_id)
        except STORE_ERRORS as exc:
            log_event(
                "warning",
                "reward.balance_unavailable",
                user_id=player_id,
                error_code="balance_read_failed",
                extra={"error": exc},
            )
            return None
