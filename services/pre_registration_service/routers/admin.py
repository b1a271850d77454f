"""Admin pre-registration endpoints: issue, rotate, bulk reset, review."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.pre_registration_service.models import DeliveryChannel
from services.pre_registration_service.routers._shared import raise_http_error
from services.pre_registration_service.schemas import (
    BulkRegenerateItem,
    BulkRegenerateResponse,
    CreatePreRegistrationRequest,
    CredentialResponse,
    IssuedSecretResponse,
    PendingListResponse,
    RotateSecretRequest,
    UpdateNotesRequest,
)
from services.pre_registration_service.services.errors import PreRegistrationError
from services.pre_registration_service.services.issuance import (
    IssuedSecret,
    create_credential,
    regenerate_all_pending,
    regenerate_credential,
    resend_credential,
    update_credential_notes,
)
from services.pre_registration_service.services.listing import (
    get_credential_detail,
    list_pending,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/admin/pre-registrations", tags=["admin-pre-registrations"])


def _issued_response(issued: IssuedSecret) -> IssuedSecretResponse:
    return IssuedSecretResponse(
        credential_id=issued.credential_id,
        temporary_password=issued.plaintext_secret,
        masked_password=issued.masked_secret,
        channel=issued.channel,
        send_count=issued.send_count,
        expires_at=issued.expires_at,
    )


@router.post(
    "",
    response_model=IssuedSecretResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_pre_registration(
    body: CreatePreRegistrationRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Issue a temporary password for a member who has not registered yet.

    The plaintext is in this response only; it is never stored.
    """
    try:
        issued = await create_credential(
            db,
            member_id=body.member_id,
            issued_by_id=admin.user_id,
            channel=body.channel,
            notes=body.notes,
        )
    except (PreRegistrationError, ValueError) as exc:
        raise_http_error(exc)
    return _issued_response(issued)


@router.get("", response_model=PendingListResponse)
async def list_pending_pre_registrations(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """List pending pre-registrations (not accessed, not expired), newest first."""
    try:
        result = await list_pending(db, page=page, page_size=page_size)
    except (PreRegistrationError, ValueError) as exc:
        raise_http_error(exc)
    return PendingListResponse(
        records=[CredentialResponse.model_validate(view) for view in result.records],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.post("/reset-pending", response_model=BulkRegenerateResponse)
async def reset_pending_pre_registrations(
    body: Optional[RotateSecretRequest] = None,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Regenerate the temporary password of every pending pre-registration.

    Returns the new plaintext passwords so the admin can deliver them. A
    failure on one member is reported in its item and does not abort the rest.
    """
    channel = body.channel if body else DeliveryChannel.DIRECT_MESSAGE
    try:
        results = await regenerate_all_pending(
            db, channel=channel, performed_by=admin.user_id
        )
    except PreRegistrationError as exc:
        raise_http_error(exc)

    items = [
        BulkRegenerateItem(
            credential_id=result.credential_id,
            member_id=result.member_id,
            member_name=result.member_name,
            member_phone=result.member_phone,
            status="success" if result.succeeded else "error",
            temporary_password=result.issued.plaintext_secret
            if result.issued
            else None,
            masked_password=result.issued.masked_secret if result.issued else None,
            error=result.error,
        )
        for result in results
    ]
    success_count = sum(1 for item in items if item.status == "success")
    logger.info(
        "Admin %s reset %d pending pre-registrations", admin.user_id, success_count
    )
    return BulkRegenerateResponse(
        total=len(items),
        success_count=success_count,
        error_count=len(items) - success_count,
        results=items,
    )


@router.get("/{credential_id}", response_model=CredentialResponse)
async def get_pre_registration(
    credential_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        view = await get_credential_detail(db, credential_id)
    except PreRegistrationError as exc:
        raise_http_error(exc)
    return CredentialResponse.model_validate(view)


@router.patch("/{credential_id}", response_model=CredentialResponse)
async def update_pre_registration_notes(
    credential_id: uuid.UUID,
    body: UpdateNotesRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Replace the admin notes on a pre-registration."""
    try:
        await update_credential_notes(
            db, credential_id, notes=body.notes, performed_by=admin.user_id
        )
        view = await get_credential_detail(db, credential_id)
    except PreRegistrationError as exc:
        raise_http_error(exc)
    return CredentialResponse.model_validate(view)


@router.post("/{credential_id}/resend", response_model=IssuedSecretResponse)
async def resend_pre_registration(
    credential_id: uuid.UUID,
    body: RotateSecretRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Rotate the temporary password for re-delivery.

    The previous password stops working. Not safe to retry blindly: a second
    call rotates again.
    """
    try:
        issued = await resend_credential(
            db, credential_id, channel=body.channel, performed_by=admin.user_id
        )
    except (PreRegistrationError, ValueError) as exc:
        raise_http_error(exc)
    return _issued_response(issued)


@router.post("/{credential_id}/regenerate", response_model=IssuedSecretResponse)
async def regenerate_pre_registration(
    credential_id: uuid.UUID,
    body: RotateSecretRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Rotate the temporary password, reset the send count and lift any lockout."""
    try:
        issued = await regenerate_credential(
            db, credential_id, channel=body.channel, performed_by=admin.user_id
        )
    except (PreRegistrationError, ValueError) as exc:
        raise_http_error(exc)
    logger.info(
        "Admin %s regenerated pre-registration %s", admin.user_id, credential_id
    )
    return _issued_response(issued)
