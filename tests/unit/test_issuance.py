"""Unit tests for credential issuance: create, resend, regenerate, notes.

Tests call the issuance functions directly with the db_session fixture.
"""

import logging
import uuid
from datetime import timedelta

import pytest
from services.pre_registration_service.models import (
    AccessOutcome,
    CredentialAuditAction,
    CredentialAuditLog,
    DeliveryChannel,
    PreRegistrationCredential,
)
from services.pre_registration_service.services.access import attempt_access
from services.pre_registration_service.services.errors import (
    AlreadyAccessed,
    Expired,
    InvalidMember,
    NotFound,
    StorageError,
)
from services.pre_registration_service.services.issuance import (
    create_credential,
    regenerate_all_pending,
    regenerate_credential,
    resend_credential,
    update_credential_notes,
)
from services.pre_registration_service.services.listing import get_active_credential
from services.pre_registration_service.services.password_generator import (
    format_secret_for_audit,
)
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tests.factories import CredentialFactory, MemberFactory, MemberProfileFactory
from tests.fakes import CountingHasher

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_member(db, **overrides):
    member = MemberFactory.create(**overrides)
    db.add(member)
    await db.commit()
    return member


async def _issue(db, member, clock, hasher, **kwargs):
    kwargs.setdefault("issued_by_id", "A1")
    return await create_credential(
        db, member_id=member.id, clock=clock, hasher=hasher, **kwargs
    )


async def _load(db, credential_id) -> PreRegistrationCredential:
    result = await db.execute(
        select(PreRegistrationCredential)
        .where(PreRegistrationCredential.id == credential_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _audit_actions(db, credential_id) -> list[CredentialAuditAction]:
    result = await db.execute(
        select(CredentialAuditLog)
        .where(CredentialAuditLog.credential_id == credential_id)
        .order_by(CredentialAuditLog.created_at)
    )
    return [entry.action for entry in result.scalars().all()]


# ---------------------------------------------------------------------------
# create_credential
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_stores_hash_and_returns_plaintext_once(
    db_session, clock, hasher
):
    member = await _make_member(db_session)

    issued = await _issue(db_session, member, clock, hasher, notes="met at fair")

    assert len(issued.plaintext_secret) == 12
    assert issued.send_count == 1
    assert issued.channel == DeliveryChannel.DIRECT_MESSAGE
    assert issued.plaintext_secret not in repr(issued)

    credential = await _load(db_session, issued.credential_id)
    assert credential.member_id == member.id
    assert credential.issued_by_id == "A1"
    assert credential.secret_hash != issued.plaintext_secret
    assert hasher.verify(issued.plaintext_secret, credential.secret_hash)
    assert credential.send_count == 1
    assert credential.failed_attempts == 0
    assert credential.max_attempts == 5
    assert credential.locked_until is None
    assert credential.first_accessed_at is None
    assert credential.notes == "met at fair"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_expires_thirty_days_after_issue(db_session, clock, hasher):
    member = await _make_member(db_session)

    issued = await _issue(db_session, member, clock, hasher)

    assert issued.expires_at == clock.now() + timedelta(days=30)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_text_message_uses_channel_friendly_secret(
    db_session, clock, hasher
):
    member = await _make_member(db_session)

    issued = await _issue(
        db_session, member, clock, hasher, channel=DeliveryChannel.TEXT_MESSAGE
    )

    assert len(issued.plaintext_secret) == 8
    assert not set("0O1lI").intersection(issued.plaintext_secret)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_unknown_member_raises_invalid_member(db_session, clock, hasher):
    with pytest.raises(InvalidMember):
        await create_credential(
            db_session,
            member_id=uuid.uuid4(),
            issued_by_id="A1",
            clock=clock,
            hasher=hasher,
        )

    rows = (await db_session.execute(select(PreRegistrationCredential))).all()
    assert rows == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_supersedes_previous_pending_credential(
    db_session, clock, hasher
):
    member = await _make_member(db_session)
    first = await _issue(db_session, member, clock, hasher)
    clock.advance(minutes=5)

    second = await _issue(db_session, member, clock, hasher)

    active = await get_active_credential(db_session, member.id, clock=clock)
    assert active is not None
    assert active.id == second.credential_id

    old = await attempt_access(
        db_session,
        first.credential_id,
        candidate_secret=first.plaintext_secret,
        hasher=hasher,
        clock=clock,
    )
    assert old.outcome == AccessOutcome.EXPIRED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_audits_masked_secret_and_never_logs_plaintext(
    db_session, clock, hasher, caplog
):
    caplog.set_level(logging.INFO)
    member = await _make_member(db_session)

    issued = await _issue(db_session, member, clock, hasher)

    result = await db_session.execute(
        select(CredentialAuditLog).where(
            CredentialAuditLog.credential_id == issued.credential_id
        )
    )
    entry = result.scalar_one()
    assert entry.action == CredentialAuditAction.CREATED
    assert entry.performed_by == "A1"
    assert entry.masked_secret == format_secret_for_audit(issued.plaintext_secret)
    assert entry.masked_secret.startswith("********")
    assert issued.plaintext_secret not in caplog.text
    assert issued.masked_secret in caplog.text


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_wraps_driver_failure_in_storage_error(
    db_session, clock, hasher, monkeypatch
):
    member = await _make_member(db_session)

    async def failing_commit(self):
        raise OperationalError("INSERT", {}, Exception("connection reset"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)

    with pytest.raises(StorageError) as exc_info:
        await _issue(db_session, member, clock, hasher)
    assert isinstance(exc_info.value.__cause__, OperationalError)


# ---------------------------------------------------------------------------
# resend_credential
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resend_rotates_secret_and_increments_send_count(
    db_session, clock, hasher
):
    member = await _make_member(db_session)
    issued = await _issue(db_session, member, clock, hasher)

    clock.advance(hours=1)
    first = await resend_credential(
        db_session,
        issued.credential_id,
        channel=DeliveryChannel.TEXT_MESSAGE,
        performed_by="A2",
        hasher=hasher,
        clock=clock,
    )
    second = await resend_credential(
        db_session,
        issued.credential_id,
        channel=DeliveryChannel.DIRECT_MESSAGE,
        performed_by="A2",
        hasher=hasher,
        clock=clock,
    )

    assert first.send_count == 2
    assert second.send_count == 3
    assert second.expires_at == issued.expires_at

    credential = await _load(db_session, issued.credential_id)
    assert credential.send_count == 3
    assert credential.delivery_channel == DeliveryChannel.DIRECT_MESSAGE
    assert not hasher.verify(issued.plaintext_secret, credential.secret_hash)
    assert not hasher.verify(first.plaintext_secret, credential.secret_hash)
    assert hasher.verify(second.plaintext_secret, credential.secret_hash)

    assert await _audit_actions(db_session, issued.credential_id) == [
        CredentialAuditAction.CREATED,
        CredentialAuditAction.RESENT,
        CredentialAuditAction.RESENT,
    ]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resend_old_secret_no_longer_grants_access(db_session, clock, hasher):
    member = await _make_member(db_session)
    issued = await _issue(db_session, member, clock, hasher)
    resent = await resend_credential(
        db_session,
        issued.credential_id,
        channel=DeliveryChannel.DIRECT_MESSAGE,
        performed_by="A1",
        hasher=hasher,
        clock=clock,
    )

    stale = await attempt_access(
        db_session,
        issued.credential_id,
        candidate_secret=issued.plaintext_secret,
        hasher=hasher,
        clock=clock,
    )
    fresh = await attempt_access(
        db_session,
        issued.credential_id,
        candidate_secret=resent.plaintext_secret,
        hasher=hasher,
        clock=clock,
    )

    assert stale.outcome == AccessOutcome.INVALID_SECRET
    assert fresh.outcome == AccessOutcome.SUCCESS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resend_keeps_active_lock(db_session, clock, hasher):
    member = await _make_member(db_session)
    credential = CredentialFactory.create(
        member_id=member.id,
        now=clock.now(),
        failed_attempts=5,
        locked_until=clock.now() + timedelta(minutes=15),
    )
    db_session.add(credential)
    await db_session.commit()

    await resend_credential(
        db_session,
        credential.id,
        channel=DeliveryChannel.DIRECT_MESSAGE,
        performed_by="A1",
        hasher=hasher,
        clock=clock,
    )

    reloaded = await _load(db_session, credential.id)
    assert reloaded.failed_attempts == 5
    assert reloaded.locked_until is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resend_rejects_accessed_credential(db_session, clock, hasher):
    member = await _make_member(db_session)
    credential = CredentialFactory.create(
        member_id=member.id, now=clock.now(), first_accessed_at=clock.now()
    )
    db_session.add(credential)
    await db_session.commit()

    with pytest.raises(AlreadyAccessed):
        await resend_credential(
            db_session,
            credential.id,
            channel=DeliveryChannel.DIRECT_MESSAGE,
            performed_by="A1",
            hasher=hasher,
            clock=clock,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resend_rejects_expired_credential(db_session, clock, hasher):
    member = await _make_member(db_session)
    issued = await _issue(db_session, member, clock, hasher)
    clock.advance(days=30)

    with pytest.raises(Expired):
        await resend_credential(
            db_session,
            issued.credential_id,
            channel=DeliveryChannel.DIRECT_MESSAGE,
            performed_by="A1",
            hasher=hasher,
            clock=clock,
        )

    credential = await _load(db_session, issued.credential_id)
    assert credential.send_count == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_resend_unknown_credential_raises_not_found(db_session, clock, hasher):
    with pytest.raises(NotFound):
        await resend_credential(
            db_session,
            uuid.uuid4(),
            channel=DeliveryChannel.DIRECT_MESSAGE,
            performed_by="A1",
            hasher=hasher,
            clock=clock,
        )


# ---------------------------------------------------------------------------
# regenerate_credential
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_regenerate_resets_send_count_and_lifts_lock(db_session, clock, hasher):
    member = await _make_member(db_session)
    issued = await _issue(db_session, member, clock, hasher)
    for _ in range(2):
        await resend_credential(
            db_session,
            issued.credential_id,
            channel=DeliveryChannel.DIRECT_MESSAGE,
            performed_by="A1",
            hasher=hasher,
            clock=clock,
        )
    for _ in range(5):
        await attempt_access(
            db_session,
            issued.credential_id,
            candidate_secret="wrong-secret",
            hasher=hasher,
            clock=clock,
        )

    clock.advance(minutes=1)
    regenerated = await regenerate_credential(
        db_session,
        issued.credential_id,
        channel=DeliveryChannel.TEXT_MESSAGE,
        performed_by="A1",
        hasher=hasher,
        clock=clock,
    )

    assert regenerated.send_count == 1
    assert len(regenerated.plaintext_secret) == 8
    credential = await _load(db_session, issued.credential_id)
    assert credential.send_count == 1
    assert credential.failed_attempts == 0
    assert credential.locked_until is None

    result = await attempt_access(
        db_session,
        issued.credential_id,
        candidate_secret=regenerated.plaintext_secret,
        hasher=hasher,
        clock=clock,
    )
    assert result.outcome == AccessOutcome.SUCCESS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_regenerate_rejects_accessed_credential(db_session, clock, hasher):
    member = await _make_member(db_session)
    credential = CredentialFactory.create(
        member_id=member.id, now=clock.now(), first_accessed_at=clock.now()
    )
    db_session.add(credential)
    await db_session.commit()

    with pytest.raises(AlreadyAccessed):
        await regenerate_credential(
            db_session,
            credential.id,
            channel=DeliveryChannel.DIRECT_MESSAGE,
            performed_by="A1",
            hasher=hasher,
            clock=clock,
        )


# ---------------------------------------------------------------------------
# regenerate_all_pending
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_regenerate_all_pending_rotates_only_pending_credentials(
    db_session, clock, hasher
):
    first = await _make_member(db_session, first_name="Ana", last_name="Souza")
    db_session.add(
        MemberProfileFactory.create(member_id=first.id, phone="5511911112222")
    )
    second = await _make_member(db_session)
    issued_first = await _issue(db_session, first, clock, hasher)
    clock.advance(seconds=1)
    issued_second = await _issue(db_session, second, clock, hasher)
    for _ in range(5):
        await attempt_access(
            db_session,
            issued_second.credential_id,
            candidate_secret="wrong-secret",
            hasher=hasher,
            clock=clock,
        )

    used = await _make_member(db_session)
    accessed = CredentialFactory.create(
        member_id=used.id, now=clock.now(), first_accessed_at=clock.now()
    )
    accessed_id = accessed.id
    db_session.add(accessed)
    await db_session.commit()

    clock.advance(minutes=1)
    results = await regenerate_all_pending(
        db_session, performed_by="A1", hasher=hasher, clock=clock
    )

    assert all(result.succeeded for result in results)
    assert [result.credential_id for result in results] == [
        issued_second.credential_id,
        issued_first.credential_id,
    ]
    by_id = {result.credential_id: result for result in results}
    assert by_id[issued_first.credential_id].member_name == "Ana Souza"
    assert by_id[issued_first.credential_id].member_phone == "5511911112222"
    assert accessed_id not in by_id

    unlocked = await _load(db_session, issued_second.credential_id)
    assert unlocked.failed_attempts == 0
    assert unlocked.locked_until is None
    assert unlocked.send_count == 1
    assert CredentialAuditAction.REGENERATED in await _audit_actions(
        db_session, issued_second.credential_id
    )

    new_secret = by_id[issued_second.credential_id].issued.plaintext_secret
    result = await attempt_access(
        db_session,
        issued_second.credential_id,
        candidate_secret=new_secret,
        hasher=hasher,
        clock=clock,
    )
    assert result.outcome == AccessOutcome.SUCCESS


class FailFirstHashHasher(CountingHasher):
    def __init__(self):
        super().__init__()
        self.hash_calls = 0

    def hash(self, plaintext: str) -> str:
        self.hash_calls += 1
        if self.hash_calls == 1:
            raise RuntimeError("bcrypt backend unavailable")
        return super().hash(plaintext)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_regenerate_all_pending_reports_failures_and_continues(
    db_session, clock, hasher
):
    older = await _issue(db_session, await _make_member(db_session), clock, hasher)
    clock.advance(seconds=1)
    newest = await _issue(db_session, await _make_member(db_session), clock, hasher)

    results = await regenerate_all_pending(
        db_session, performed_by="A1", hasher=FailFirstHashHasher(), clock=clock
    )

    assert [result.credential_id for result in results] == [
        newest.credential_id,
        older.credential_id,
    ]
    failed, rotated = results
    assert not failed.succeeded
    assert failed.error == "Could not hash temporary secret"
    assert rotated.succeeded

    untouched = await attempt_access(
        db_session,
        newest.credential_id,
        candidate_secret=newest.plaintext_secret,
        hasher=hasher,
        clock=clock,
    )
    assert untouched.outcome == AccessOutcome.SUCCESS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_regenerate_all_pending_with_nothing_pending(db_session, clock, hasher):
    assert (
        await regenerate_all_pending(
            db_session, performed_by="A1", hasher=hasher, clock=clock
        )
        == []
    )


# ---------------------------------------------------------------------------
# update_credential_notes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_update_notes_in_any_state(db_session, clock, hasher):
    member = await _make_member(db_session)
    credential = CredentialFactory.create(
        member_id=member.id, now=clock.now(), first_accessed_at=clock.now()
    )
    db_session.add(credential)
    await db_session.commit()

    updated = await update_credential_notes(
        db_session, credential.id, notes="called twice", performed_by="A1", clock=clock
    )
    assert updated.notes == "called twice"

    cleared = await update_credential_notes(
        db_session, credential.id, notes="", performed_by="A1", clock=clock
    )
    assert cleared.notes is None
    assert await _audit_actions(db_session, credential.id) == [
        CredentialAuditAction.NOTES_UPDATED,
        CredentialAuditAction.NOTES_UPDATED,
    ]
