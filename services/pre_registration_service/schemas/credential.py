"""Pre-registration request/response schemas."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.pre_registration_service.models.enums import (
    AccessOutcome,
    DeliveryChannel,
)


class CreatePreRegistrationRequest(BaseModel):
    member_id: uuid.UUID
    channel: DeliveryChannel = DeliveryChannel.DIRECT_MESSAGE
    notes: Optional[str] = Field(default=None, max_length=2000)


class RotateSecretRequest(BaseModel):
    """Body for resend and regenerate."""

    channel: DeliveryChannel = DeliveryChannel.DIRECT_MESSAGE


class UpdateNotesRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class IssuedSecretResponse(BaseModel):
    """Returned once, right after issuance. The plaintext is not stored."""

    credential_id: uuid.UUID
    temporary_password: str
    masked_password: str
    channel: DeliveryChannel
    send_count: int
    expires_at: datetime


class BulkRegenerateItem(BaseModel):
    credential_id: uuid.UUID
    member_id: uuid.UUID
    member_name: str
    member_phone: Optional[str] = None
    status: Literal["success", "error"]
    temporary_password: Optional[str] = None
    masked_password: Optional[str] = None
    error: Optional[str] = None


class BulkRegenerateResponse(BaseModel):
    """Plaintext passwords for every rotated credential, for delivery."""

    total: int
    success_count: int
    error_count: int
    results: list[BulkRegenerateItem]


class CredentialResponse(BaseModel):
    id: uuid.UUID
    member_id: uuid.UUID
    member_name: str
    member_email: Optional[str] = None
    member_phone: Optional[str] = None
    issued_by_id: str
    delivery_channel: DeliveryChannel
    notes: Optional[str] = None
    issued_at: datetime
    send_count: int
    last_sent_at: datetime
    first_accessed_at: Optional[datetime] = None
    first_access_ip: Optional[str] = None
    failed_attempts: int
    max_attempts: int
    attempts_remaining: int
    locked_until: Optional[datetime] = None
    expires_at: datetime
    is_expired: bool
    is_locked: bool
    has_accessed: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingListResponse(BaseModel):
    records: list[CredentialResponse]
    total: int
    page: int
    page_size: int
    total_pages: int

    model_config = ConfigDict(from_attributes=True)


class AccessRequest(BaseModel):
    temporary_password: str = Field(..., min_length=1, max_length=64)


class PhoneAccessRequest(AccessRequest):
    phone: str = Field(..., min_length=10, max_length=20)


class AccessResponse(BaseModel):
    credential_id: uuid.UUID
    outcome: AccessOutcome
    attempts_remaining: int
    locked_until: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
