"""Member lookup utilities shared by services that reference members.

Members live in the same relational backend, so lookups are plain queries
against the members tables rather than calls to another service.
"""

import re
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.members_service.models import Member, MemberProfile

DEFAULT_COUNTRY_CODE = "55"

_PHONE_FORMATTING = re.compile(r"[\s\-().+]")


def normalize_phone(phone: str) -> str:
    """
    Normalise a phone number to digits with the country code.

    "(11) 99999-9999" and "+55 11 99999-9999" both become "5511999999999".

    Raises:
        ValueError: if the number does not have 10-11 national digits
    """
    cleaned = _PHONE_FORMATTING.sub("", phone or "")
    if not cleaned.startswith(DEFAULT_COUNTRY_CODE) or len(cleaned) <= 11:
        cleaned = DEFAULT_COUNTRY_CODE + cleaned
    if not re.fullmatch(rf"{DEFAULT_COUNTRY_CODE}\d{{10,11}}", cleaned):
        raise ValueError(f"Invalid phone number format: {phone!r}")
    return cleaned


async def member_exists(db: AsyncSession, member_id: uuid.UUID) -> bool:
    result = await db.execute(select(Member.id).where(Member.id == member_id))
    return result.scalar_one_or_none() is not None


async def find_member_by_phone(db: AsyncSession, phone: str) -> Optional[Member]:
    """Return the member whose profile phone matches, or None."""
    normalized = normalize_phone(phone)
    result = await db.execute(
        select(Member)
        .join(MemberProfile, MemberProfile.member_id == Member.id)
        .where(MemberProfile.phone == normalized)
    )
    return result.scalars().first()
