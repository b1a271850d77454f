"""
Lockout and first-access state machine for temporary credentials.

Pure functions over an immutable snapshot, no database dependencies, so the
transition rules can be tested on their own. The store copies the snapshot
back onto the ORM row.

States:
    issued    accepting attempts
    locked    locked_until in the future, every attempt rejected
    expired   now >= expires_at and never accessed
    accessed  terminal, first_accessed_at set
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from libs.common.datetime_utils import to_utc
from services.pre_registration_service.models.enums import AccessOutcome


@dataclass(frozen=True)
class CredentialState:
    """Snapshot of the access-related columns of one credential."""

    secret_hash: str
    failed_attempts: int
    max_attempts: int
    expires_at: datetime
    locked_until: Optional[datetime] = None
    first_accessed_at: Optional[datetime] = None
    first_access_ip: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> "CredentialState":
        return cls(
            secret_hash=record.secret_hash,
            failed_attempts=record.failed_attempts or 0,
            max_attempts=record.max_attempts,
            expires_at=to_utc(record.expires_at),
            locked_until=to_utc(record.locked_until),
            first_accessed_at=to_utc(record.first_accessed_at),
            first_access_ip=record.first_access_ip,
        )

    def apply_to(self, record) -> None:
        record.failed_attempts = self.failed_attempts
        record.locked_until = self.locked_until
        record.first_accessed_at = self.first_accessed_at
        record.first_access_ip = self.first_access_ip

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.max_attempts - self.failed_attempts)


def is_expired(state: CredentialState, now: datetime) -> bool:
    return now >= state.expires_at


def is_locked(state: CredentialState, now: datetime) -> bool:
    return state.locked_until is not None and state.locked_until > now


def precheck(state: CredentialState, now: datetime) -> Optional[AccessOutcome]:
    """
    Outcome that rejects an attempt without looking at the secret.

    Returns None when the credential accepts attempts. Checked before any
    hashing so rejected attempts stay cheap.
    """
    if state.first_accessed_at is not None:
        return AccessOutcome.ALREADY_ACCESSED
    if is_expired(state, now):
        return AccessOutcome.EXPIRED
    if is_locked(state, now):
        return AccessOutcome.LOCKED
    return None


def clear_elapsed_lock(state: CredentialState, now: datetime) -> CredentialState:
    """A lock that has run out starts the member on a fresh attempt budget."""
    if state.locked_until is not None and state.locked_until <= now:
        return replace(state, failed_attempts=0, locked_until=None)
    return state


def register_attempt(
    state: CredentialState,
    *,
    matched: bool,
    now: datetime,
    origin_ip: Optional[str],
    lockout: timedelta,
) -> tuple[CredentialState, AccessOutcome]:
    """
    Apply one verified attempt.

    The caller must have run ``precheck`` first; this function only handles
    credentials that accept attempts.

    Returns:
        (next_state, outcome)
    """
    state = clear_elapsed_lock(state, now)

    if matched:
        return (
            replace(
                state,
                first_accessed_at=now,
                first_access_ip=origin_ip,
                failed_attempts=0,
                locked_until=None,
            ),
            AccessOutcome.SUCCESS,
        )

    failed = state.failed_attempts + 1
    if failed >= state.max_attempts:
        return (
            replace(state, failed_attempts=failed, locked_until=now + lockout),
            AccessOutcome.LOCKED,
        )
    return replace(state, failed_attempts=failed), AccessOutcome.INVALID_SECRET


def reset_lockout(state: CredentialState) -> CredentialState:
    """Administrative override used by regenerate."""
    return replace(state, failed_attempts=0, locked_until=None)
