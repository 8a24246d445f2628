from datetime import datetime
from enum import Enum

from beanie import Document, Link, PydanticObjectId
from pydantic import Field

from app.models.user import User


class ConnectionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


OPEN_STATUSES = (ConnectionStatus.PENDING, ConnectionStatus.APPROVED)


class ConnectionRequest(Document):
    requester: Link[User]
    target_user_id: PydanticObjectId
    post_id: PydanticObjectId | None = None
    status: ConnectionStatus = ConnectionStatus.PENDING
    admin_note: str | None = None
    refund_applied: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "connection_requests"
        indexes = [
            [("requester", 1), ("created_at", -1)],
            [("target_user_id", 1), ("created_at", -1)],
            [("status", 1)],
        ]
