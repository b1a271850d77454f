"""Members Service models package.

Re-exports the member models so that:
  - ``from services.members_service.models import Member`` works unchanged
  - Alembic env.py imports continue to work without modification
  - SQLAlchemy's mapper registry sees every model class on import
"""

from services.members_service.models.member import (  # noqa: F401
    Member,
    MemberProfile,
)

__all__ = [
    "Member",
    "MemberProfile",
]
