"""Pre-registration service routers."""

from services.pre_registration_service.routers.access import router as access_router
from services.pre_registration_service.routers.admin import router as admin_router

__all__ = [
    "access_router",
    "admin_router",
]
