from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class AuditLog(Document):
    admin_id: str
    action: str  # TOPUP_APPROVED, USER_REJECTED, COINS_ADJUSTED, ...
    entity: str  # collection name of the target
    entity_id: str
    meta: dict[str, Any] = Field(default_factory=dict)
    ip: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("admin_id", 1), ("created_at", -1)],
            [("action", 1)],
            [("entity", 1), ("entity_id", 1)],
        ]
