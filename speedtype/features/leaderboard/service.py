from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from speedtype.core.metrics import leaderboard_reads_total
from speedtype.features.leaderboard.cache import LeaderboardCache
from speedtype.features.results.repository import ResultStore
from speedtype.models.leaderboard import LeaderboardEntry, LeaderboardSource


@dataclass
class LeaderboardView:
    duration: int
    page: int
    page_size: int
    source: LeaderboardSource
    total: int = 0
    entries: List[LeaderboardEntry] = field(default_factory=list)
    rebuild_scheduled: bool = False

    def to_dict(self) -> dict:
        return {
            "duration": self.duration,
            "page": self.page,
            "pageSize": self.page_size,
            "total": self.total,
            "totalPages": math.ceil(self.total / self.page_size) if self.page_size else 0,
            "source": self.source,
            "entries": [entry.to_dict() for entry in self.entries],
        }


class LeaderboardService:
    """Cache-first leaderboard reads with store fallback."""

    def __init__(self, store: ResultStore, cache: LeaderboardCache):
        self.store = store
        self.cache = cache

    def get_page(
        self,
        duration: int,
        page: int,
        page_size: int,
        schedule: Optional[Callable[..., None]] = None,
    ) -> LeaderboardView:
        """
        Return one leaderboard page.

        A cold or stale partition is served from the store and, when a
        scheduler is given (FastAPI BackgroundTasks.add_task), rebuilt after
        the response is sent.
        """
        cached = self.cache.page(duration, page, page_size)
        if cached is not None and cached.entries:
            leaderboard_reads_total.inc({"source": "cache"})
            return LeaderboardView(
                duration=duration,
                page=page,
                page_size=page_size,
                source="cache",
                total=cached.total,
                entries=cached.entries,
            )

        offset = (page - 1) * page_size
        entries = self.store.top_results(duration, page_size, offset)
        total = self.store.count_results(duration)
        leaderboard_reads_total.inc({"source": "database"})

        rebuild_scheduled = False
        if cached is None and schedule is not None and total > 0:
            schedule(self.cache.rebuild_quietly, duration)
            rebuild_scheduled = True

        return LeaderboardView(
            duration=duration,
            page=page,
            page_size=page_size,
            source="database",
            total=total,
            entries=entries,
            rebuild_scheduled=rebuild_scheduled,
        )

    def get_player_rank(self, player_id: str, duration: int) -> dict:
        """Rank of the player's best result; rank is None when they have no result for the duration."""
        ranked = self.store.rank_for_player(player_id, duration)
        if ranked is None:
            return {"rank": None, "total": self.store.count_results(duration)}
        return ranked
