from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from speedtype.core.auth import AdminActor, require_admin, require_player
from speedtype.core.errors import ValidationError
from speedtype.core.logging import log_event
from speedtype.features.leaderboard.cache import LeaderboardCache
from speedtype.features.leaderboard.service import LeaderboardService
from speedtype.features.results.repository import ResultStore
from speedtype.models.leaderboard import LEADERBOARD_DURATIONS

router = APIRouter(prefix="/api", tags=["leaderboard"])

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

_service = None


def get_leaderboard_service() -> LeaderboardService:
    global _service
    if _service is None:
        store = ResultStore()
        _service = LeaderboardService(store, LeaderboardCache(store))
    return _service


def _check_duration(duration: int) -> int:
    if duration not in LEADERBOARD_DURATIONS:
        allowed = ", ".join(str(d) for d in LEADERBOARD_DURATIONS)
        raise ValidationError(f"Invalid duration. Must be one of: {allowed}")
    return duration


@router.get("/leaderboard")
def get_leaderboard(
    background_tasks: BackgroundTasks,
    duration: int = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Paginated leaderboard for one duration, served from the cache when warm."""
    _check_duration(duration)
    view = service.get_page(duration, page, page_size, schedule=background_tasks.add_task)
    return view.to_dict()


@router.get("/leaderboard/rank")
def get_rank(
    duration: int = Query(...),
    player_id: str = Depends(require_player),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    _check_duration(duration)
    ranked = service.get_player_rank(player_id, duration)
    return {"duration": duration, **ranked}


@router.post("/admin/leaderboard/rebuild")
def rebuild_leaderboard(
    duration: Optional[int] = Query(None),
    actor: AdminActor = Depends(require_admin),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Rebuild one partition, or all of them when no duration is given."""
    durations = [_check_duration(duration)] if duration is not None else list(LEADERBOARD_DURATIONS)
    rebuilt = {str(d): service.cache.rebuild(d) for d in durations}
    log_event("info", "admin.leaderboard_rebuild", event_type="admin_action",
              extra={"actor": actor.actor_id, "rebuilt": rebuilt})
    return {"rebuilt": rebuilt}


@router.delete("/admin/leaderboard/cache")
def clear_leaderboard_cache(
    actor: AdminActor = Depends(require_admin),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    cleared = service.cache.clear_all()
    log_event("info", "admin.leaderboard_clear", event_type="admin_action",
              extra={"actor": actor.actor_id, "cleared": cleared})
    return {"cleared": cleared}
