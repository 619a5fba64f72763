"""Tenant Context Gate - transaction-scoped row-level security binding.

Row-level security policies filter every tenant table on the session
variable ``app.current_org_id``; a second variable, ``app.bypass_rls``, lets
a policy admit cross-tenant reads for auth and administration code.

Both variables are written with ``set_config(..., is_local => true)``, which
scopes the value to the current transaction. The binding therefore dies with
the commit/rollback and can never leak into the next user of a pooled
connection.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.agrogate.core.logging import db_scope_context, get_logger

logger = get_logger(__name__)

TENANT_SETTING = "app.current_org_id"
BYPASS_SETTING = "app.bypass_rls"

type ScopedWork[T] = Callable[[AsyncSession], Awaitable[T]]


class TenantContextGate:
    """Opens transactions that are bound to one tenant, or explicitly bypass RLS.

    Each call creates its own session (and so claims its own pooled
    connection), so concurrent scopes never observe each other's binding.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _bind(self, session: AsyncSession, name: str, value: str) -> None:
        """Write a transaction-local configuration value."""
        await session.execute(
            text("SELECT set_config(:name, :value, true)"),
            {"name": name, "value": value},
        )

    @asynccontextmanager
    async def tenant_session(self, tenant_id: UUID | str) -> AsyncGenerator[AsyncSession]:
        """Yield a session whose transaction is bound to ``tenant_id``.

        Commits when the block exits normally, rolls back on any exception,
        including a failure of the binding itself.
        """
        with db_scope_context(tenant_id):
            async with self._session_factory() as session, session.begin():
                await self._bind(session, TENANT_SETTING, str(tenant_id))
                yield session

    @asynccontextmanager
    async def bypass_session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session whose transaction bypasses tenant filtering.

        The tenant variable is never bound in a bypass transaction.
        """
        with db_scope_context(None):
            async with self._session_factory() as session, session.begin():
                await self._bind(session, BYPASS_SETTING, "true")
                yield session

    async def open_tenant_scope[T](self, tenant_id: UUID | str, work: ScopedWork[T]) -> T:
        """Run ``work`` inside a transaction bound to ``tenant_id``."""
        async with self.tenant_session(tenant_id) as session:
            return await work(session)

    async def open_bypass_scope[T](self, work: ScopedWork[T]) -> T:
        """Run ``work`` inside a transaction that bypasses tenant filtering."""
        async with self.bypass_session() as session:
            return await work(session)
