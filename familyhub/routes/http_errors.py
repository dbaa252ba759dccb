from __future__ import annotations

from fastapi import HTTPException, status

from ..errors import (
    FamilyHubError,
    IdGenerationExhaustedError,
    NotFoundError,
    NotLinkedToMealPlanError,
    RegenerationInProgressError,
)


def to_http_exception(exc: FamilyHubError) -> HTTPException:
    """Map a service failure onto the status code clients see."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (NotLinkedToMealPlanError, RegenerationInProgressError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, IdGenerationExhaustedError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Too many simultaneous changes, please try again",
        )
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")
