"""Audit writer - records security-relevant actions."""

from typing import Any
from uuid import UUID

from src.agrogate.core.audit_context import get_audit_context
from src.agrogate.core.db import TenantContextGate
from src.agrogate.core.logging import get_logger
from src.agrogate.models import AuditAction, AuditLog, User
from src.agrogate.repositories import AuditLogRepository

logger = get_logger(__name__)


class AuditWriter:
    """Best-effort audit trail.

    Every entry is written in its own bypass transaction, after the business
    transaction that triggered it has finished. Failures are logged and
    swallowed: an audit outage must never fail a login or an admin change.
    """

    def __init__(self, gate: TenantContextGate):
        self.gate = gate

    async def record(
        self,
        action: AuditAction | str,
        *,
        actor: User | None = None,
        tenant_id: UUID | None = None,
        target_type: str | None = None,
        target_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLog | None:
        action_value = action.value if isinstance(action, AuditAction) else action
        ctx = get_audit_context()

        entry = AuditLog(
            actor_id=actor.id if actor else None,
            actor_email=actor.email if actor else None,
            actor_role=actor.role if actor else None,
            action=action_value,
            target_type=target_type,
            target_id=target_id,
            metadata_=metadata,
            ip_address=ctx.ip_address if ctx else None,
            request_id=ctx.request_id if ctx else None,
            tenant_id=tenant_id or (actor.tenant_id if actor else None),
        )

        try:
            async with self.gate.bypass_session() as session:
                await AuditLogRepository(session).save(entry)
        except Exception as e:
            # Fire-and-forget: log the failure but don't propagate
            logger.warning("Failed to record audit log", action=action_value, error=str(e))
            return None

        logger.debug(
            "Audit log recorded",
            action=action_value,
            target_type=target_type,
            target_id=str(target_id) if target_id else None,
        )
        return entry
