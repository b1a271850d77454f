"""Issuance of temporary credentials: create, resend, regenerate, bulk regenerate.

Each operation is one transaction. The plaintext secret leaves this module
only inside the returned ``IssuedSecret``; logs and audit rows carry the
masked form.

Create is safe to retry after a storage error (a retry issues a fresh
credential and supersedes the earlier one). Resend and regenerate are not:
a blind retry rotates the secret a second time and invalidates a secret
that may already have been delivered.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import Clock, system_clock
from libs.common.logging import get_logger
from libs.common.member_utils import member_exists
from services.members_service.models import Member, MemberProfile
from services.pre_registration_service.models import (
    CredentialAuditAction,
    DeliveryChannel,
    PreRegistrationCredential,
)
from services.pre_registration_service.services.credential_hasher import (
    CredentialHasher,
    get_credential_hasher,
)
from services.pre_registration_service.services.credential_state import (
    CredentialState,
    is_expired,
    reset_lockout,
)
from services.pre_registration_service.services.credential_store import (
    add_audit_entry,
    lock_credential,
    pending_filter,
    storage_guard,
    supersede_pending,
)
from services.pre_registration_service.services.errors import (
    AlreadyAccessed,
    Expired,
    InvalidMember,
    PreRegistrationError,
    StorageError,
)
from services.pre_registration_service.services.password_generator import (
    PasswordGenerator,
    format_secret_for_audit,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

default_generator = PasswordGenerator()


@dataclass(frozen=True)
class IssuedSecret:
    """A freshly issued secret, for immediate one-time delivery."""

    credential_id: uuid.UUID
    plaintext_secret: str = field(repr=False)
    expires_at: datetime
    send_count: int
    channel: DeliveryChannel

    @property
    def masked_secret(self) -> str:
        return format_secret_for_audit(self.plaintext_secret)


def generate_secret(
    generator: PasswordGenerator, channel: DeliveryChannel
) -> str:
    """Text messages get the shorter, unambiguous variant."""
    settings = get_settings()
    if channel == DeliveryChannel.TEXT_MESSAGE:
        return generator.generate_channel_friendly(
            settings.PREREG_CHANNEL_SECRET_LENGTH
        )
    return generator.generate(settings.PREREG_SECRET_LENGTH)


async def _hash_secret(hasher: CredentialHasher, secret: str) -> str:
    # bcrypt is CPU bound; keep it off the event loop
    try:
        return await asyncio.to_thread(hasher.hash, secret)
    except Exception as exc:
        logger.exception("Hashing backend failed")
        raise StorageError("Could not hash temporary secret") from exc


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_credential(
    db: AsyncSession,
    *,
    member_id: uuid.UUID,
    issued_by_id: str,
    channel: DeliveryChannel = DeliveryChannel.DIRECT_MESSAGE,
    notes: Optional[str] = None,
    generator: Optional[PasswordGenerator] = None,
    hasher: Optional[CredentialHasher] = None,
    clock: Clock = system_clock,
) -> IssuedSecret:
    """Issue a new temporary credential for a member.

    Other pending credentials of the member are retired in the same
    transaction, so only one is active at a time.

    Raises:
        InvalidMember: member_id does not resolve
        StorageError: persistence failure
    """
    settings = get_settings()
    generator = generator or default_generator
    hasher = hasher or get_credential_hasher()

    async with storage_guard(db, "create_credential"):
        if not await member_exists(db, member_id):
            raise InvalidMember(member_id)

        secret = generate_secret(generator, channel)
        secret_hash = await _hash_secret(hasher, secret)

        now = clock.now()
        superseded = await supersede_pending(db, member_id, now=now)

        credential_id = uuid.uuid4()
        expires_at = now + timedelta(days=settings.PREREG_EXPIRY_DAYS)
        credential = PreRegistrationCredential(
            id=credential_id,
            member_id=member_id,
            issued_by_id=issued_by_id,
            secret_hash=secret_hash,
            delivery_channel=channel,
            notes=notes or None,
            issued_at=now,
            send_count=1,
            last_sent_at=now,
            failed_attempts=0,
            max_attempts=settings.PREREG_MAX_ATTEMPTS,
            locked_until=None,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        db.add(credential)
        add_audit_entry(
            db,
            credential,
            action=CredentialAuditAction.CREATED,
            performed_by=issued_by_id,
            now=now,
            masked_secret=format_secret_for_audit(secret),
            details={"channel": channel.value, "superseded": superseded},
        )
        await db.commit()

    logger.info(
        "Issued pre-registration %s for member %s via %s (secret=%s, superseded=%d)",
        credential_id,
        member_id,
        channel.value,
        format_secret_for_audit(secret),
        superseded,
    )
    return IssuedSecret(
        credential_id=credential_id,
        plaintext_secret=secret,
        expires_at=expires_at,
        send_count=1,
        channel=channel,
    )


# ---------------------------------------------------------------------------
# Resend / Regenerate
# ---------------------------------------------------------------------------


async def _rotate_secret(
    db: AsyncSession,
    credential_id: uuid.UUID,
    *,
    channel: DeliveryChannel,
    performed_by: str,
    regenerate: bool,
    generator: Optional[PasswordGenerator],
    hasher: Optional[CredentialHasher],
    clock: Clock,
) -> IssuedSecret:
    generator = generator or default_generator
    hasher = hasher or get_credential_hasher()
    operation = "regenerate_credential" if regenerate else "resend_credential"

    async with storage_guard(db, operation):
        credential = await lock_credential(db, credential_id)
        now = clock.now()
        state = CredentialState.from_record(credential)

        if state.first_accessed_at is not None:
            raise AlreadyAccessed(credential_id)
        if is_expired(state, now):
            raise Expired(credential_id)

        secret = generate_secret(generator, channel)
        credential.secret_hash = await _hash_secret(hasher, secret)
        credential.issued_at = now
        credential.last_sent_at = now
        credential.delivery_channel = channel
        credential.updated_at = now

        if regenerate:
            credential.send_count = 1
            reset_lockout(state).apply_to(credential)
            action = CredentialAuditAction.REGENERATED
        else:
            credential.send_count = (credential.send_count or 0) + 1
            action = CredentialAuditAction.RESENT

        send_count = credential.send_count
        expires_at = state.expires_at
        add_audit_entry(
            db,
            credential,
            action=action,
            performed_by=performed_by,
            now=now,
            masked_secret=format_secret_for_audit(secret),
            details={"channel": channel.value, "send_count": send_count},
        )
        await db.commit()

    logger.info(
        "%s pre-registration %s via %s (secret=%s, send_count=%d)",
        "Regenerated" if regenerate else "Resent",
        credential_id,
        channel.value,
        format_secret_for_audit(secret),
        send_count,
    )
    return IssuedSecret(
        credential_id=credential_id,
        plaintext_secret=secret,
        expires_at=expires_at,
        send_count=send_count,
        channel=channel,
    )


async def resend_credential(
    db: AsyncSession,
    credential_id: uuid.UUID,
    *,
    channel: DeliveryChannel,
    performed_by: str,
    generator: Optional[PasswordGenerator] = None,
    hasher: Optional[CredentialHasher] = None,
    clock: Clock = system_clock,
) -> IssuedSecret:
    """Rotate the secret for re-delivery and bump ``send_count``.

    The previous secret stops verifying. Attempt counters and any lock are
    left as they are.

    Raises:
        NotFound, AlreadyAccessed, Expired, StorageError
    """
    return await _rotate_secret(
        db,
        credential_id,
        channel=channel,
        performed_by=performed_by,
        regenerate=False,
        generator=generator,
        hasher=hasher,
        clock=clock,
    )


async def regenerate_credential(
    db: AsyncSession,
    credential_id: uuid.UUID,
    *,
    channel: DeliveryChannel,
    performed_by: str,
    generator: Optional[PasswordGenerator] = None,
    hasher: Optional[CredentialHasher] = None,
    clock: Clock = system_clock,
) -> IssuedSecret:
    """Rotate the secret, reset ``send_count`` to 1 and lift any lockout.

    Raises:
        NotFound, AlreadyAccessed, Expired, StorageError
    """
    return await _rotate_secret(
        db,
        credential_id,
        channel=channel,
        performed_by=performed_by,
        regenerate=True,
        generator=generator,
        hasher=hasher,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Bulk regenerate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BulkRegenerateResult:
    """Outcome of one credential in a bulk regenerate."""

    credential_id: uuid.UUID
    member_id: uuid.UUID
    member_name: str
    member_phone: Optional[str]
    issued: Optional[IssuedSecret] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.issued is not None


async def regenerate_all_pending(
    db: AsyncSession,
    *,
    channel: DeliveryChannel = DeliveryChannel.DIRECT_MESSAGE,
    performed_by: str,
    generator: Optional[PasswordGenerator] = None,
    hasher: Optional[CredentialHasher] = None,
    clock: Clock = system_clock,
) -> list[BulkRegenerateResult]:
    """Regenerate the secret of every pending credential, newest first.

    Each credential is rotated in its own transaction exactly like
    ``regenerate_credential`` (row lock, audit row, lockout lifted). A
    credential that fails, for instance because the member logged in
    meanwhile, is reported in its result and does not stop the batch.

    Raises:
        StorageError: the pending credentials could not be read
    """
    async with storage_guard(db, "regenerate_all_pending"):
        query = pending_filter(
            select(
                PreRegistrationCredential.id,
                PreRegistrationCredential.member_id,
                Member.first_name,
                Member.last_name,
                MemberProfile.phone,
            )
            .outerjoin(Member, Member.id == PreRegistrationCredential.member_id)
            .outerjoin(MemberProfile, MemberProfile.member_id == Member.id),
            clock.now(),
        ).order_by(PreRegistrationCredential.created_at.desc())
        pending = (await db.execute(query)).all()
        await db.commit()

    results: list[BulkRegenerateResult] = []
    for credential_id, member_id, first_name, last_name, phone in pending:
        member_name = f"{first_name or ''} {last_name or ''}".strip() or "Unknown"
        try:
            issued = await regenerate_credential(
                db,
                credential_id,
                channel=channel,
                performed_by=performed_by,
                generator=generator,
                hasher=hasher,
                clock=clock,
            )
        except PreRegistrationError as exc:
            logger.warning(
                "Bulk regenerate skipped %s: %s", credential_id, exc.message
            )
            results.append(
                BulkRegenerateResult(
                    credential_id=credential_id,
                    member_id=member_id,
                    member_name=member_name,
                    member_phone=phone,
                    error=exc.message,
                )
            )
            continue
        results.append(
            BulkRegenerateResult(
                credential_id=credential_id,
                member_id=member_id,
                member_name=member_name,
                member_phone=phone,
                issued=issued,
            )
        )

    succeeded = sum(1 for result in results if result.succeeded)
    logger.info(
        "Bulk regenerated %d pending pre-registrations (%d failed)",
        succeeded,
        len(results) - succeeded,
    )
    return results


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


async def update_credential_notes(
    db: AsyncSession,
    credential_id: uuid.UUID,
    *,
    notes: Optional[str],
    performed_by: str,
    clock: Clock = system_clock,
) -> PreRegistrationCredential:
    """Replace the admin annotation. Allowed in any state."""
    async with storage_guard(db, "update_credential_notes"):
        credential = await lock_credential(db, credential_id)
        now = clock.now()
        credential.notes = notes or None
        credential.updated_at = now
        add_audit_entry(
            db,
            credential,
            action=CredentialAuditAction.NOTES_UPDATED,
            performed_by=performed_by,
            now=now,
        )
        await db.commit()
        await db.refresh(credential)
    return credential
