from fastapi import APIRouter, Depends

from speedtype.core.auth import require_player
from speedtype.core.errors import ServiceUnavailableError
from speedtype.features.streaks.service import StreakService

router = APIRouter(prefix="/api", tags=["streaks"])

streak_service = StreakService()


@router.get("/user/streak")
def get_current_streak(player_id: str = Depends(require_player)):
    """Return the caller's daily streak."""
    streak = streak_service.get(player_id)
    if streak is None:
        raise ServiceUnavailableError("Streak data is temporarily unavailable")
    return streak.to_dict()
