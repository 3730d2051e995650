from typing import Any

from fastapi import HTTPException, status

from ..domain.errors import (
    InvalidTransition,
    NotFoundError,
    SchedulingError,
    StockRace,
    ValidationFailure,
)
from ..schemas import ConflictRead


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValidationFailure):
        detail: dict[str, Any] = {
            "error": "validation_failed",
            "message": str(exc),
            "conflicts": [ConflictRead.from_domain(c).model_dump(mode="json") for c in exc.conflicts],
        }
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(exc, StockRace):
        detail = {
            "error": "stock_race",
            "message": str(exc),
            "retryable": True,
            "session_id": getattr(exc.session, "id", None),
        }
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(exc, InvalidTransition):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "invalid_transition", "message": str(exc)},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
