"""Audit log for admin actions (who did what). Best-effort: runs after the ledger commit."""

from typing import Any

from pymongo.errors import PyMongoError

from app.core.logging import get_logger
from app.models.audit_log import AuditLog

log = get_logger(__name__)


async def record_audit(
    admin_id: str,
    action: str,
    entity: str,
    entity_id: str,
    meta: dict[str, Any] | None = None,
    ip: str | None = None,
) -> AuditLog | None:
    """Append to audit_logs. A failed write is logged, never raised: the change it describes is already committed."""
    try:
        return await AuditLog(
            admin_id=admin_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            meta=meta or {},
            ip=ip,
        ).insert()
    except PyMongoError as e:
        log.warning("audit_failed", action=action, entity=entity, entity_id=entity_id, error=str(e))
        return None
