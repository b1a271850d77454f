"""Pre-registration Service models package.

Re-exports all models and enums so that:
  - ``from services.pre_registration_service.models import PreRegistrationCredential``
    works from routers, services and tests
  - Alembic env.py sees every table on import

Importing this package also registers the members models, which the
credential foreign key and relationship point at.
"""

from services.members_service import models as _member_models  # noqa: F401
from services.pre_registration_service.models.audit import (  # noqa: F401
    CredentialAuditLog,
)
from services.pre_registration_service.models.credential import (  # noqa: F401
    PreRegistrationCredential,
)
from services.pre_registration_service.models.enums import (  # noqa: F401
    AccessOutcome,
    CredentialAuditAction,
    DeliveryChannel,
)

__all__ = [
    "AccessOutcome",
    "CredentialAuditAction",
    "CredentialAuditLog",
    "DeliveryChannel",
    "PreRegistrationCredential",
]
