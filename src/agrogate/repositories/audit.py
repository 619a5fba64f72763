"""Repository for AuditLog entity (insert only; querying lives outside this service)."""

from src.agrogate.models import AuditLog
from src.agrogate.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    model = AuditLog
