"""Read-only queries over pre-registration credentials for admin review."""

import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import Clock, system_clock, to_utc
from services.members_service.models import Member, MemberProfile
from services.pre_registration_service.models import (
    DeliveryChannel,
    PreRegistrationCredential,
)
from services.pre_registration_service.services.credential_state import (
    CredentialState,
    is_expired,
    is_locked,
)
from services.pre_registration_service.services.credential_store import (
    count_pending,
    find_active_for_member,
    pending_filter,
    storage_guard,
)
from services.pre_registration_service.services.errors import NotFound
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class CredentialView:
    """Credential joined with member display fields. Never carries the hash."""

    id: uuid.UUID
    member_id: uuid.UUID
    member_name: str
    member_email: Optional[str]
    member_phone: Optional[str]
    issued_by_id: str
    delivery_channel: DeliveryChannel
    notes: Optional[str]
    issued_at: datetime
    send_count: int
    last_sent_at: datetime
    first_accessed_at: Optional[datetime]
    first_access_ip: Optional[str]
    failed_attempts: int
    max_attempts: int
    locked_until: Optional[datetime]
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    is_expired: bool
    is_locked: bool

    @property
    def has_accessed(self) -> bool:
        return self.first_accessed_at is not None

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.failed_attempts)


@dataclass(frozen=True)
class PendingPage:
    records: list[CredentialView]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


def _view(
    credential: PreRegistrationCredential,
    member: Optional[Member],
    phone: Optional[str],
    now: datetime,
) -> CredentialView:
    state = CredentialState.from_record(credential)
    return CredentialView(
        id=credential.id,
        member_id=credential.member_id,
        member_name=member.full_name if member else "Unknown",
        member_email=member.email if member else None,
        member_phone=phone,
        issued_by_id=credential.issued_by_id,
        delivery_channel=credential.delivery_channel,
        notes=credential.notes,
        issued_at=to_utc(credential.issued_at),
        send_count=credential.send_count,
        last_sent_at=to_utc(credential.last_sent_at),
        first_accessed_at=state.first_accessed_at,
        first_access_ip=credential.first_access_ip,
        failed_attempts=credential.failed_attempts,
        max_attempts=credential.max_attempts,
        locked_until=state.locked_until,
        expires_at=state.expires_at,
        created_at=to_utc(credential.created_at),
        updated_at=to_utc(credential.updated_at),
        is_expired=state.first_accessed_at is None and is_expired(state, now),
        is_locked=is_locked(state, now),
    )


def _joined_query():
    return (
        select(PreRegistrationCredential, Member, MemberProfile.phone)
        .join(Member, Member.id == PreRegistrationCredential.member_id)
        .outerjoin(MemberProfile, MemberProfile.member_id == Member.id)
    )


async def list_pending(
    db: AsyncSession,
    *,
    page: int = 1,
    page_size: int = 20,
    clock: Clock = system_clock,
) -> PendingPage:
    """Pending credentials (never accessed, not expired), newest first.

    ``total`` counts every pending credential, independent of the page.
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    now = clock.now()
    async with storage_guard(db, "list_pending"):
        total = await count_pending(db, now=now)
        result = await db.execute(
            pending_filter(_joined_query(), now)
            .order_by(
                PreRegistrationCredential.created_at.desc(),
                PreRegistrationCredential.id,
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = result.all()

    return PendingPage(
        records=[_view(cred, member, phone, now) for cred, member, phone in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


async def get_credential_detail(
    db: AsyncSession,
    credential_id: uuid.UUID,
    *,
    clock: Clock = system_clock,
) -> CredentialView:
    """Single credential with member fields and derived status flags."""
    async with storage_guard(db, "get_credential_detail"):
        result = await db.execute(
            _joined_query().where(PreRegistrationCredential.id == credential_id)
        )
        row = result.first()
    if row is None:
        raise NotFound(credential_id)
    credential, member, phone = row
    return _view(credential, member, phone, clock.now())


async def get_active_credential(
    db: AsyncSession,
    member_id: uuid.UUID,
    *,
    clock: Clock = system_clock,
) -> Optional[PreRegistrationCredential]:
    """The member's current pending credential, if any."""
    async with storage_guard(db, "get_active_credential"):
        return await find_active_for_member(db, member_id, now=clock.now())
