"""
Pytest fixtures for authkernel tests.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from authkernel.config import Settings
from authkernel.database import Store, build_engine
from authkernel.facade import AuthorizationFacade
from authkernel.kernel.identity.jwt import JWTSigner
from authkernel.kernel.identity.password import PasswordHasher
from authkernel.schemas.auth import PrincipalResponse, RoleResponse


# Each test gets its own in-memory database
TEST_DATABASE_URL = "sqlite+aiosqlite://"

TEST_PASSWORD = "TestPassword123"


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = None):
        self._now = now or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now += delta


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: cheap hashing, shared-secret signing."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        app_secret="test-secret-key-for-testing-only",
        bcrypt_rounds=4,
        default_token_ttl="1h",
        auth_token_ttl="1h",
    )


@pytest.fixture
def hasher(settings: Settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def signer(settings: Settings) -> JWTSigner:
    return JWTSigner.from_settings(settings)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest_asyncio.fixture(scope="function")
async def store(settings: Settings) -> AsyncGenerator[Store, None]:
    """Create a store with a fresh schema."""
    store = Store(build_engine(settings.database_url))
    await store.init_db()

    yield store

    await store.close()


@pytest_asyncio.fixture(scope="function")
async def db_session(store: Store) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with store.session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def facade(store: Store, signer: JWTSigner, clock: FixedClock, settings: Settings, hasher: PasswordHasher) -> AuthorizationFacade:
    return AuthorizationFacade(store, signer, clock=clock, settings=settings, hasher=hasher)


@pytest_asyncio.fixture
async def test_principal(facade: AuthorizationFacade) -> PrincipalResponse:
    """Create a test principal with a password."""
    response = await facade.create_principal({
        "id": 1,
        "username": "testuser",
        "email": "testuser@example.com",
        "password": TEST_PASSWORD,
    })
    assert response.status, response.errors
    return response.data


@pytest_asyncio.fixture
async def pin_principal(facade: AuthorizationFacade) -> PrincipalResponse:
    """Create a test principal that authenticates with a PIN only."""
    response = await facade.create_principal({
        "id": 2,
        "username": "kiosk",
        "pin": "1234",
    })
    assert response.status, response.errors
    return response.data


@pytest_asyncio.fixture
async def reader_role(facade: AuthorizationFacade) -> RoleResponse:
    """Role granting OWN read on permission 1."""
    role = (await facade.create_role("reader")).data
    response = await facade.add_permissions_to_role(role.id, [
        {"permission_id": 1, "name": "documents", "read": 1, "write": 0, "execute": 0},
    ])
    assert response.status, response.errors
    return role


@pytest_asyncio.fixture
async def editor_role(facade: AuthorizationFacade) -> RoleResponse:
    """Role granting ALL read and OWN execute on permission 1."""
    role = (await facade.create_role("editor")).data
    response = await facade.add_permissions_to_role(role.id, [
        {"permission_id": 1, "name": "documents", "read": 2, "write": 0, "execute": 1},
    ])
    assert response.status, response.errors
    return role


@pytest.fixture
def fail_statement(monkeypatch):
    """
    Make session.execute raise a store error for one kind of statement.

    Usage: fail_statement(Delete, "auth_role_permissions"). Call
    monkeypatch.undo() (or leave the test) to restore normal execution.
    """
    original = AsyncSession.execute

    def install(statement_type, table_name: str) -> None:
        async def execute(self, statement, *args, **kwargs):
            if isinstance(statement, statement_type) and statement.table.name == table_name:
                raise OperationalError(str(statement), {}, Exception("disk I/O error"))
            return await original(self, statement, *args, **kwargs)

        monkeypatch.setattr(AsyncSession, "execute", execute)

    return install
