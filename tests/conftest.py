from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient

from libs.auth.dependencies import get_current_user, require_admin
from libs.auth.models import AuthUser
from tests.fakes import ADMIN_AUTH_ID, CountingHasher, FakeClock


def make_admin_user(user_id: str = ADMIN_AUTH_ID) -> AuthUser:
    return AuthUser(
        user_id=user_id,
        email="admin@test.com",
        role="authenticated",
        app_metadata={"roles": ["admin"]},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> CountingHasher:
    return CountingHasher(rounds=4)


@pytest_asyncio.fixture
async def admin_client(client) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as an admin via dependency overrides."""
    from services.pre_registration_service.app.main import app

    async def mock_admin():
        return make_admin_user()

    app.dependency_overrides[require_admin] = mock_admin
    app.dependency_overrides[get_current_user] = mock_admin
    yield client


@pytest_asyncio.fixture
async def member_client(client) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as a plain (non-admin) member."""
    from services.pre_registration_service.app.main import app

    async def mock_member():
        return AuthUser(user_id="member-1", email="member@test.com")

    app.dependency_overrides[get_current_user] = mock_member
    yield client
