"""Enums for the Pre-registration Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class DeliveryChannel(str, enum.Enum):
    """How the plaintext secret was last handed to the member."""

    DIRECT_MESSAGE = "direct-message"
    TEXT_MESSAGE = "text-message"


class AccessOutcome(str, enum.Enum):
    SUCCESS = "success"
    INVALID_SECRET = "invalid_secret"
    LOCKED = "locked"
    EXPIRED = "expired"
    ALREADY_ACCESSED = "already_accessed"


class CredentialAuditAction(str, enum.Enum):
    CREATED = "created"
    RESENT = "resent"
    REGENERATED = "regenerated"
    NOTES_UPDATED = "notes_updated"
    FIRST_ACCESS = "first_access"
    LOCKED = "locked"
