"""Integration test fixtures for database, services and HTTP client.

The database is an in-memory SQLite shared through a StaticPool, with a
``set_config`` SQL function registered on connect so the tenant gate runs
unchanged and every binding it writes can be asserted on. Redis is
fakeredis. Uses polyfactory for type-safe test data generation.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from redis.asyncio import Redis
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from src.agrogate.core.config import Settings
from src.agrogate.core.container import AppContainer, build_container
from src.agrogate.core.exceptions import AuthenticationError
from src.agrogate.core.identity_provider import IdentityAssertion
from src.agrogate.core.notifications import MailSender
from src.agrogate.models import Tenant, User
from tests.factories import TenantFactory, UserFactory


class FakeIdentityProvider:
    """In-memory stand-in for Google: authorization codes map to assertions."""

    def __init__(self) -> None:
        self.assertions: dict[str, IdentityAssertion] = {}

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/auth?state={state}"

    async def exchange_code(self, code: str) -> IdentityAssertion:
        try:
            return self.assertions[code]
        except KeyError:
            raise AuthenticationError("Failed to verify Google identity") from None


@pytest.fixture
def bindings() -> list[tuple[str, str]]:
    """Every (name, value) written through set_config, in order."""
    return []


@pytest.fixture
async def engine(bindings: list[tuple[str, str]]) -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory database with all tables."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _register_set_config(dbapi_connection: Any, _: Any) -> None:
        def set_config(name: str, value: str, is_local: Any) -> str:
            bindings.append((name, value))
            return value

        dbapi_connection.create_function("set_config", 3, set_config)

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def mailer(settings: Settings) -> AsyncGenerator[MailSender]:
    sender = MailSender(settings)
    sender.send = AsyncMock()  # type: ignore[method-assign]
    yield sender
    sender.shutdown()


@pytest.fixture
def container(
    settings: Settings,
    engine: AsyncEngine,
    fake_redis: Redis,
    identity_provider: FakeIdentityProvider,
    mailer: MailSender,
) -> AppContainer:
    return build_container(
        settings,
        engine=engine,
        redis=fake_redis,
        identity_provider=identity_provider,
        mailer=mailer,
    )


@pytest.fixture
def make_tenant(container: AppContainer) -> Callable[..., Awaitable[Tenant]]:
    """Persist a tenant built by TenantFactory; kwargs override fields."""

    async def _make(**kwargs: Any) -> Tenant:
        tenant = TenantFactory.build(**kwargs)
        async with container.gate.bypass_session() as session:
            session.add(tenant)
        return tenant

    return _make


@pytest.fixture
def make_user(container: AppContainer) -> Callable[..., Awaitable[User]]:
    """Persist a user built by UserFactory; ``tenant_id`` is required."""

    async def _make(**kwargs: Any) -> User:
        user = UserFactory.build(**kwargs)
        async with container.gate.bypass_session() as session:
            session.add(user)
        return user

    return _make


@pytest.fixture
async def tenant(make_tenant: Callable[..., Awaitable[Tenant]]) -> Tenant:
    return await make_tenant()


@pytest.fixture
async def admin(tenant: Tenant, make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user(tenant_id=tenant.id, role="ADMIN", email="admin@fazenda.com")


@pytest.fixture
async def client(container: AppContainer) -> AsyncGenerator[AsyncClient]:
    """HTTP client against the application, wired to the test container."""
    from src.agrogate.main import app

    app.state.container = container
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
