"""Helpers shared by the pre-registration routers."""

from typing import NoReturn

from fastapi import HTTPException, status
from services.pre_registration_service.models import AccessOutcome
from services.pre_registration_service.services.errors import (
    AlreadyAccessed,
    Expired,
    InvalidMember,
    NotFound,
    PreRegistrationError,
    StorageError,
)

_ERROR_STATUS: dict[type[PreRegistrationError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidMember: status.HTTP_404_NOT_FOUND,
    AlreadyAccessed: status.HTTP_409_CONFLICT,
    Expired: status.HTTP_410_GONE,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

OUTCOME_STATUS: dict[AccessOutcome, int] = {
    AccessOutcome.SUCCESS: status.HTTP_200_OK,
    AccessOutcome.INVALID_SECRET: status.HTTP_401_UNAUTHORIZED,
    AccessOutcome.LOCKED: status.HTTP_423_LOCKED,
    AccessOutcome.EXPIRED: status.HTTP_410_GONE,
    AccessOutcome.ALREADY_ACCESSED: status.HTTP_409_CONFLICT,
}


def raise_http_error(exc: Exception) -> NoReturn:
    """Translate a service-layer exception into an HTTPException."""
    if isinstance(exc, StorageError):
        # Don't leak driver details
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pre-registration storage unavailable, try again later",
        ) from exc
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            raise HTTPException(status_code=status_code, detail=exc.message) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    raise exc
