"""
Authoritative store access for typing results and coin balances.

All writes are single statements inside one transaction; nothing here
retries or swallows errors, callers decide how to degrade.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import and_, func, insert, or_, select, update

from speedtype.core.database import get_db_session, profiles, typing_results
from speedtype.models.leaderboard import LeaderboardEntry, display_name, ensure_utc


class BalanceUpdateError(RuntimeError):
    """Raised when a balance row could not be updated."""


def _ranking_order():
    return (
        typing_results.c.wpm.desc(),
        typing_results.c.accuracy.desc(),
        typing_results.c.created_at.asc(),
        typing_results.c.id.desc(),
    )


class ResultStore:
    """SQLAlchemy-backed implementation of the persistence calls the pipeline needs."""

    def insert_validated_result(
        self,
        player_id: str,
        wpm: int,
        accuracy: int,
        correct_chars: int,
        incorrect_chars: int,
        duration: int,
        theme: str,
        language: str,
    ) -> Dict[str, object]:
        """Insert one validated row and return its generated id and timestamp."""
        result_id = str(uuid.uuid4())
        created_at = datetime.now(timezone.utc)
        with get_db_session() as session:
            session.execute(
                insert(typing_results).values(
                    id=result_id,
                    user_id=player_id,
                    wpm=wpm,
                    accuracy=accuracy,
                    correct_chars=correct_chars,
                    incorrect_chars=incorrect_chars,
                    duration=duration,
                    theme=theme,
                    language=language,
                    created_at=created_at,
                )
            )
        return {"id": result_id, "created_at": created_at}

    def get_profile(self, player_id: str) -> Optional[Dict[str, object]]:
        with get_db_session() as session:
            row = session.execute(
                select(profiles.c.id, profiles.c.username, profiles.c.email, profiles.c.coins)
                .where(profiles.c.id == player_id)
            ).first()
        if row is None:
            return None
        return {"id": row.id, "username": row.username, "email": row.email, "coins": int(row.coins or 0)}

    def get_balance(self, player_id: str) -> int:
        with get_db_session() as session:
            coins = session.execute(
                select(profiles.c.coins).where(profiles.c.id == player_id)
            ).scalar()
        if coins is None:
            raise BalanceUpdateError(f"No profile for player {player_id}")
        return int(coins)

    def add_balance(self, player_id: str, amount: int) -> int:
        """Atomic increment; returns the new balance."""
        with get_db_session() as session:
            result = session.execute(
                update(profiles)
                .where(profiles.c.id == player_id)
                .values(coins=profiles.c.coins + amount)
            )
            if result.rowcount == 0:
                raise BalanceUpdateError(f"No profile for player {player_id}")
            coins = session.execute(
                select(profiles.c.coins).where(profiles.c.id == player_id)
            ).scalar()
        return int(coins)

    def compare_and_set_balance(self, player_id: str, expected: int, new_value: int) -> bool:
        """Write new_value only if the balance still equals expected."""
        with get_db_session() as session:
            result = session.execute(
                update(profiles)
                .where(and_(profiles.c.id == player_id, profiles.c.coins == expected))
                .values(coins=new_value)
            )
            return result.rowcount == 1

    def top_results(self, duration: int, limit: int, offset: int = 0) -> List[LeaderboardEntry]:
        """Results for a duration in leaderboard order, ranks filled from the offset."""
        query = (
            select(
                typing_results.c.id,
                typing_results.c.user_id,
                typing_results.c.wpm,
                typing_results.c.accuracy,
                typing_results.c.created_at,
                profiles.c.username,
                profiles.c.email,
            )
            .select_from(typing_results.outerjoin(profiles, profiles.c.id == typing_results.c.user_id))
            .where(typing_results.c.duration == duration)
            .order_by(*_ranking_order())
            .limit(limit)
            .offset(offset)
        )
        with get_db_session() as session:
            rows = session.execute(query).all()

        return [
            LeaderboardEntry(
                id=row.id,
                user_id=row.user_id,
                username=display_name(row.username, row.user_id),
                email=row.email or "",
                wpm=int(row.wpm),
                accuracy=int(row.accuracy),
                created_at=ensure_utc(row.created_at),
                rank=offset + index + 1,
            )
            for index, row in enumerate(rows)
        ]

    def count_results(self, duration: int) -> int:
        with get_db_session() as session:
            return int(
                session.execute(
                    select(func.count()).select_from(typing_results).where(typing_results.c.duration == duration)
                ).scalar()
                or 0
            )

    def rank_for_player(self, player_id: str, duration: int) -> Optional[Dict[str, int]]:
        """1 + number of results strictly outranking the player's best, or None without results."""
        t = typing_results.c
        with get_db_session() as session:
            best = session.execute(
                select(t.wpm, t.accuracy, t.created_at)
                .where(and_(t.user_id == player_id, t.duration == duration))
                .order_by(t.wpm.desc(), t.accuracy.desc(), t.created_at.asc())
                .limit(1)
            ).first()
            if best is None:
                return None

            better = session.execute(
                select(func.count())
                .select_from(typing_results)
                .where(
                    and_(
                        t.duration == duration,
                        or_(
                            t.wpm > best.wpm,
                            and_(t.wpm == best.wpm, t.accuracy > best.accuracy),
                            and_(t.wpm == best.wpm, t.accuracy == best.accuracy, t.created_at < best.created_at),
                        ),
                    )
                )
            ).scalar() or 0

            total = session.execute(
                select(func.count()).select_from(typing_results).where(t.duration == duration)
            ).scalar() or 0

        return {"rank": int(better) + 1, "total": int(total)}
