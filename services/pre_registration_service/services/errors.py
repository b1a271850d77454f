"""Error taxonomy for pre-registration credential operations.

Expected conditions of a login attempt (wrong secret, lockout) are reported
through ``AccessResult`` instead; everything here is raised.
"""

import uuid
from typing import Optional


class PreRegistrationError(Exception):
    """Base exception for credential issuance and access."""

    def __init__(self, message: str, credential_id: Optional[uuid.UUID] = None):
        self.message = message
        self.credential_id = credential_id
        super().__init__(message)


class InvalidLength(PreRegistrationError, ValueError):
    """Secret length too short to hold one character of each required class."""

    def __init__(self, length: int, minimum: int):
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"Secret length must be at least {minimum} characters, got {length}"
        )


class InvalidMember(PreRegistrationError):
    def __init__(self, member_id: uuid.UUID):
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class NotFound(PreRegistrationError):
    def __init__(self, credential_id: Optional[uuid.UUID] = None, message: str = ""):
        super().__init__(
            message or f"Pre-registration {credential_id} not found", credential_id
        )


class AlreadyAccessed(PreRegistrationError):
    def __init__(self, credential_id: uuid.UUID):
        super().__init__(
            "Member already completed first access; issue a new pre-registration",
            credential_id,
        )


class Expired(PreRegistrationError):
    def __init__(self, credential_id: uuid.UUID):
        super().__init__(
            "Pre-registration expired; issue a new pre-registration", credential_id
        )


class StorageError(PreRegistrationError):
    """Persistence failure or corrupted stored data.

    The underlying exception, when there is one, is chained as ``__cause__``.
    """
