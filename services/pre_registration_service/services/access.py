"""First-access validation of temporary credentials.

Flow for one attempt:
    1. Read the credential and reject early (accessed, expired, locked)
       without touching the hasher.
    2. Verify the candidate outside any row lock; bcrypt is slow.
    3. Re-read the row under SELECT ... FOR UPDATE, re-run the early
       checks, apply the transition and commit.

Step 3 serialises concurrent attempts on the same credential, so two wrong
guesses cannot both observe a pre-lockout counter.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import Clock, system_clock
from libs.common.logging import get_logger
from libs.common.member_utils import find_member_by_phone
from services.pre_registration_service.models import (
    AccessOutcome,
    CredentialAuditAction,
)
from services.pre_registration_service.services.credential_hasher import (
    CredentialHasher,
    get_credential_hasher,
)
from services.pre_registration_service.services.credential_state import (
    CredentialState,
    precheck,
    register_attempt,
)
from services.pre_registration_service.services.credential_store import (
    add_audit_entry,
    find_latest_for_member,
    get_credential,
    lock_credential,
    storage_guard,
)
from services.pre_registration_service.services.errors import NotFound, StorageError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessResult:
    credential_id: uuid.UUID
    outcome: AccessOutcome
    attempts_remaining: int
    locked_until: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == AccessOutcome.SUCCESS


def _result(
    credential_id: uuid.UUID, outcome: AccessOutcome, state: CredentialState
) -> AccessResult:
    return AccessResult(
        credential_id=credential_id,
        outcome=outcome,
        attempts_remaining=state.attempts_remaining,
        locked_until=state.locked_until if outcome == AccessOutcome.LOCKED else None,
    )


def _ensure_digest(
    hasher: CredentialHasher, state: CredentialState, credential_id: uuid.UUID
) -> None:
    # A corrupted hash must not be reported to the member as a wrong guess
    if not hasher.is_well_formed(state.secret_hash):
        logger.error("Stored secret digest for %s is malformed", credential_id)
        raise StorageError(
            "Stored secret digest is malformed", credential_id=credential_id
        )


async def _verify(
    hasher: CredentialHasher,
    candidate: str,
    digest: str,
    credential_id: uuid.UUID,
) -> bool:
    try:
        return await asyncio.to_thread(hasher.verify, candidate, digest)
    except Exception as exc:
        logger.exception("Hashing backend failed verifying %s", credential_id)
        raise StorageError(
            "Could not verify temporary secret", credential_id=credential_id
        ) from exc


async def attempt_access(
    db: AsyncSession,
    credential_id: uuid.UUID,
    *,
    candidate_secret: str,
    origin_ip: Optional[str] = None,
    hasher: Optional[CredentialHasher] = None,
    clock: Clock = system_clock,
) -> AccessResult:
    """Validate a first-login attempt and advance the lockout state.

    Raises:
        NotFound: unknown credential
        StorageError: persistence failure or corrupted stored digest
    """
    hasher = hasher or get_credential_hasher()
    lockout = timedelta(minutes=get_settings().PREREG_LOCKOUT_MINUTES)

    async with storage_guard(db, "attempt_access"):
        credential = await get_credential(db, credential_id)
        if credential is None:
            raise NotFound(credential_id)

        state = CredentialState.from_record(credential)
        rejected = precheck(state, clock.now())
        if rejected is not None:
            # Nothing written; end the read transaction
            await db.commit()
            logger.info("Access to %s rejected: %s", credential_id, rejected.value)
            return _result(credential_id, rejected, state)

        _ensure_digest(hasher, state, credential_id)
        verified_digest = state.secret_hash
        matched = await _verify(
            hasher, candidate_secret, verified_digest, credential_id
        )

        credential = await lock_credential(db, credential_id)
        now = clock.now()
        state = CredentialState.from_record(credential)
        rejected = precheck(state, now)
        if rejected is not None:
            await db.commit()
            logger.info("Access to %s rejected: %s", credential_id, rejected.value)
            return _result(credential_id, rejected, state)

        if state.secret_hash != verified_digest:
            # Rotated while we were hashing
            _ensure_digest(hasher, state, credential_id)
            matched = await _verify(
                hasher, candidate_secret, state.secret_hash, credential_id
            )

        next_state, outcome = register_attempt(
            state, matched=matched, now=now, origin_ip=origin_ip, lockout=lockout
        )
        next_state.apply_to(credential)
        credential.updated_at = now

        if outcome == AccessOutcome.SUCCESS:
            add_audit_entry(
                db,
                credential,
                action=CredentialAuditAction.FIRST_ACCESS,
                performed_by="member",
                now=now,
                ip_address=origin_ip,
            )
        elif outcome == AccessOutcome.LOCKED:
            add_audit_entry(
                db,
                credential,
                action=CredentialAuditAction.LOCKED,
                performed_by="member",
                now=now,
                ip_address=origin_ip,
                details={"failed_attempts": next_state.failed_attempts},
            )
        await db.commit()

    if outcome == AccessOutcome.SUCCESS:
        logger.info("First access recorded for %s from %s", credential_id, origin_ip)
    else:
        logger.warning(
            "Failed access to %s from %s (%s, %d attempts remaining)",
            credential_id,
            origin_ip,
            outcome.value,
            next_state.attempts_remaining,
        )
    return _result(credential_id, outcome, next_state)


async def attempt_access_by_phone(
    db: AsyncSession,
    *,
    phone: str,
    candidate_secret: str,
    origin_ip: Optional[str] = None,
    hasher: Optional[CredentialHasher] = None,
    clock: Clock = system_clock,
) -> AccessResult:
    """Member-facing login: resolve the member's latest credential by phone.

    Raises:
        ValueError: malformed phone number
        NotFound: no member with that phone, or no credential issued
        StorageError: persistence failure
    """
    async with storage_guard(db, "attempt_access_by_phone"):
        member = await find_member_by_phone(db, phone)
        if member is None:
            raise NotFound(message="No pre-registration found for this phone")
        credential = await find_latest_for_member(db, member.id)
        if credential is None:
            raise NotFound(message="No pre-registration found for this phone")
        credential_id = credential.id

    return await attempt_access(
        db,
        credential_id,
        candidate_secret=candidate_secret,
        origin_ip=origin_ip,
        hasher=hasher,
        clock=clock,
    )
