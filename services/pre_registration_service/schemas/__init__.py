"""Pre-registration Service schemas package.

Re-exports all schemas so routers can import from one place.
"""

from services.pre_registration_service.schemas.credential import (  # noqa: F401
    AccessRequest,
    AccessResponse,
    BulkRegenerateItem,
    BulkRegenerateResponse,
    CreatePreRegistrationRequest,
    CredentialResponse,
    IssuedSecretResponse,
    PendingListResponse,
    PhoneAccessRequest,
    RotateSecretRequest,
    UpdateNotesRequest,
)

__all__ = [
    "AccessRequest",
    "AccessResponse",
    "BulkRegenerateItem",
    "BulkRegenerateResponse",
    "CreatePreRegistrationRequest",
    "CredentialResponse",
    "IssuedSecretResponse",
    "PendingListResponse",
    "PhoneAccessRequest",
    "RotateSecretRequest",
    "UpdateNotesRequest",
]
