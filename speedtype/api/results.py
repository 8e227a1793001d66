"""
Result submission endpoint.

POST /api/submit-result runs the anti-cheat pipeline and maps each rejection
kind onto the error contract.
"""
from fastapi import APIRouter, Depends

from speedtype.core.auth import require_player
from speedtype.core.errors import (
    AppError,
    PersistenceError,
    RateLimitError,
    ReplayError,
    UnauthorizedError,
    ValidationError,
)
from speedtype.features.results.outcomes import Accepted, Rejection, RejectionKind
from speedtype.features.results.pipeline import SubmissionPipeline
from speedtype.features.results.repository import ResultStore
from speedtype.models.submission import SubmissionRequest

router = APIRouter(prefix="/api", tags=["results"])

_REJECTION_ERRORS = {
    RejectionKind.UNAUTHENTICATED: UnauthorizedError,
    RejectionKind.INVALID_REQUEST: ValidationError,
    RejectionKind.REPLAY: ReplayError,
    RejectionKind.RATE_LIMITED: RateLimitError,
    RejectionKind.TIMING_INVALID: ValidationError,
    RejectionKind.PLAUSIBILITY_INVALID: ValidationError,
    RejectionKind.PERSISTENCE_FAILED: PersistenceError,
}

_pipeline = None


def get_pipeline() -> SubmissionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = SubmissionPipeline(ResultStore())
    return _pipeline


def rejection_to_error(rejection: Rejection) -> AppError:
    error_cls = _REJECTION_ERRORS[rejection.kind]
    return error_cls(rejection.reason, code=rejection.kind.value, headers=rejection.headers)


@router.post("/submit-result")
def submit_result(
    payload: SubmissionRequest,
    player_id: str = Depends(require_player),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
):
    outcome = pipeline.submit(player_id, payload)
    if isinstance(outcome, Accepted):
        return outcome.to_dict()
    raise rejection_to_error(outcome)
