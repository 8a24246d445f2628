from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class Notification(Document):
    user_id: str
    kind: str  # TOPUP_APPROVED, TOPUP_REJECTED, COINS_ADDED, COINS_REMOVED, PROFILE_*
    data: dict[str, Any] = Field(default_factory=dict)
    seen: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "notifications"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("user_id", 1), ("seen", 1)],
        ]
