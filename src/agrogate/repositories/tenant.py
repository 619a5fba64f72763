"""Repository for Tenant entity."""

from src.agrogate.models import Tenant
from src.agrogate.repositories.base import BaseRepository


class TenantRepository(BaseRepository[Tenant]):
    model = Tenant
