"""PreRegistrationCredential model: one row per pending member onboarding."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.pre_registration_service.models.enums import DeliveryChannel, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship


class PreRegistrationCredential(Base):
    """Temporary credential for a member's very first access.

    Only the hash of the secret is stored. Once ``first_accessed_at`` is set
    the row is history and no longer rotated.
    """

    __tablename__ = "pre_registration_credentials"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    member_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("members.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    issued_by_id: Mapped[str] = mapped_column(String, nullable=False)

    # Secret
    secret_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    delivery_channel: Mapped[DeliveryChannel] = mapped_column(
        SAEnum(
            DeliveryChannel,
            name="delivery_channel_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=DeliveryChannel.DIRECT_MESSAGE,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Send history
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    send_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    last_sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    # Access
    first_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    first_access_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    locked_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    member: Mapped["Member"] = relationship("Member", lazy="selectin")  # noqa: F821

    __table_args__ = (
        CheckConstraint("send_count >= 1", name="ck_prereg_send_count_positive"),
        CheckConstraint("failed_attempts >= 0", name="ck_prereg_failed_non_negative"),
        CheckConstraint("max_attempts >= 1", name="ck_prereg_max_attempts_positive"),
        Index(
            "ix_prereg_pending",
            "first_accessed_at",
            "expires_at",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PreRegistrationCredential {self.id} member={self.member_id} "
            f"sends={self.send_count} failed={self.failed_attempts}>"
        )
