"""Persistence helpers for pre-registration credentials.

Every read-modify-write goes through ``lock_credential`` (SELECT ... FOR
UPDATE) inside a ``storage_guard`` block, so the check and the write happen
in one transaction and driver errors surface as ``StorageError``.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from libs.common.logging import get_logger
from services.pre_registration_service.models import (
    CredentialAuditAction,
    CredentialAuditLog,
    PreRegistrationCredential,
)
from services.pre_registration_service.services.errors import (
    NotFound,
    PreRegistrationError,
    StorageError,
)
from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@asynccontextmanager
async def storage_guard(db: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Roll back on any failure; wrap driver errors in StorageError."""
    try:
        yield
    except PreRegistrationError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Storage failure during %s", operation)
        raise StorageError(f"Storage failure during {operation}") from exc


async def get_credential(
    db: AsyncSession, credential_id: uuid.UUID
) -> Optional[PreRegistrationCredential]:
    result = await db.execute(
        select(PreRegistrationCredential)
        .where(PreRegistrationCredential.id == credential_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def locking_select(credential_id: uuid.UUID) -> Select:
    return (
        select(PreRegistrationCredential)
        .where(PreRegistrationCredential.id == credential_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def lock_credential(
    db: AsyncSession, credential_id: uuid.UUID
) -> PreRegistrationCredential:
    """Load a credential with a row lock held until commit/rollback."""
    result = await db.execute(locking_select(credential_id))
    credential = result.scalar_one_or_none()
    if credential is None:
        raise NotFound(credential_id)
    return credential


async def supersede_pending(
    db: AsyncSession, member_id: uuid.UUID, *, now: datetime
) -> int:
    """Retire a member's other pending credentials by expiring them now.

    Returns the number of rows retired.
    """
    result = await db.execute(
        update(PreRegistrationCredential)
        .where(
            PreRegistrationCredential.member_id == member_id,
            PreRegistrationCredential.first_accessed_at.is_(None),
            PreRegistrationCredential.expires_at > now,
        )
        .values(expires_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def pending_filter(query: Select, now: datetime) -> Select:
    return query.where(
        PreRegistrationCredential.first_accessed_at.is_(None),
        PreRegistrationCredential.expires_at > now,
    )


async def count_pending(db: AsyncSession, *, now: datetime) -> int:
    query = pending_filter(
        select(func.count()).select_from(PreRegistrationCredential), now
    )
    return (await db.execute(query)).scalar() or 0


async def find_active_for_member(
    db: AsyncSession, member_id: uuid.UUID, *, now: datetime
) -> Optional[PreRegistrationCredential]:
    """Most recent pending credential of a member."""
    query = pending_filter(select(PreRegistrationCredential), now).where(
        PreRegistrationCredential.member_id == member_id
    )
    result = await db.execute(
        query.order_by(PreRegistrationCredential.created_at.desc()).limit(1)
    )
    return result.scalars().first()


async def find_latest_for_member(
    db: AsyncSession, member_id: uuid.UUID
) -> Optional[PreRegistrationCredential]:
    """Most recently created credential of a member, whatever its state."""
    result = await db.execute(
        select(PreRegistrationCredential)
        .where(PreRegistrationCredential.member_id == member_id)
        .order_by(PreRegistrationCredential.created_at.desc())
        .limit(1)
    )
    return result.scalars().first()


def add_audit_entry(
    db: AsyncSession,
    credential: PreRegistrationCredential,
    *,
    action: CredentialAuditAction,
    performed_by: str,
    now: datetime,
    masked_secret: Optional[str] = None,
    ip_address: Optional[str] = None,
    details: Optional[dict] = None,
) -> CredentialAuditLog:
    entry = CredentialAuditLog(
        credential_id=credential.id,
        action=action,
        performed_by=performed_by,
        masked_secret=masked_secret,
        ip_address=ip_address,
        details=details,
        created_at=now,
    )
    db.add(entry)
    return entry
