"""FastAPI application for the Pre-registration Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.pre_registration_service.routers import access_router, admin_router


def create_app() -> FastAPI:
    """Create and configure the Pre-registration Service FastAPI app."""
    app = FastAPI(
        title="Confraria Pre-registration Service",
        version="0.1.0",
        description="Temporary first-access credentials for members who have not registered yet.",
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "pre_registration"}

    # Member-facing first login
    app.include_router(access_router)

    # Admin issuance and review
    app.include_router(admin_router)

    return app


app = create_app()
