"""Member-facing first-access endpoints.

No bearer token here: the temporary password is the credential.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from libs.db.session import get_async_db
from services.pre_registration_service.routers._shared import (
    OUTCOME_STATUS,
    raise_http_error,
)
from services.pre_registration_service.schemas import (
    AccessRequest,
    AccessResponse,
    PhoneAccessRequest,
)
from services.pre_registration_service.services.access import (
    AccessResult,
    attempt_access,
    attempt_access_by_phone,
)
from services.pre_registration_service.services.errors import PreRegistrationError
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/pre-registrations", tags=["pre-registrations"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _access_response(result: AccessResult) -> JSONResponse:
    body = AccessResponse.model_validate(result)
    return JSONResponse(
        status_code=OUTCOME_STATUS[result.outcome],
        content=body.model_dump(mode="json"),
    )


@router.post("/access", response_model=AccessResponse)
async def access_by_phone(
    body: PhoneAccessRequest,
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """First login with phone number and temporary password."""
    try:
        result = await attempt_access_by_phone(
            db,
            phone=body.phone,
            candidate_secret=body.temporary_password,
            origin_ip=_client_ip(request),
        )
    except (PreRegistrationError, ValueError) as exc:
        raise_http_error(exc)
    return _access_response(result)


@router.post("/{credential_id}/access", response_model=AccessResponse)
async def access_pre_registration(
    credential_id: uuid.UUID,
    body: AccessRequest,
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """First login with a pre-registration link and temporary password."""
    try:
        result = await attempt_access(
            db,
            credential_id,
            candidate_secret=body.temporary_password,
            origin_ip=_client_ip(request),
        )
    except PreRegistrationError as exc:
        raise_http_error(exc)
    return _access_response(result)
