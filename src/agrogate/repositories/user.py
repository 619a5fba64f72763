"""Repository for User entity."""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import select

from src.agrogate.models import User
from src.agrogate.models.base import utc_now
from src.agrogate.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    model = User

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email address (case-insensitive; emails are stored lower-case)."""
        result = await self.session.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def get_in_tenant(self, tenant_id: UUID, user_id: UUID) -> User | None:
        result = await self.session.execute(
            select(User).where(User.id == user_id, User.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def exists_by_email(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def count_by_tenant(self, tenant_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(User).where(User.tenant_id == tenant_id)
        )
        return int(result.scalar_one())

    async def list_ids_by_custom_role(self, custom_role_id: UUID) -> Sequence[UUID]:
        result = await self.session.execute(
            select(User.id).where(User.custom_role_id == custom_role_id)
        )
        return result.scalars().all()

    async def detach_custom_role(self, custom_role_id: UUID) -> None:
        """Clear ``custom_role_id`` on every user of a role; they fall back to their base role."""
        await self.session.execute(
            update(User)
            .where(User.custom_role_id == custom_role_id)  # type: ignore[arg-type]
            .values(custom_role_id=None, updated_at=utc_now())
        )

    async def get_by_provider_subject(self, subject: str) -> User | None:
        result = await self.session.execute(select(User).where(User.provider_subject == subject))
        return result.scalar_one_or_none()
