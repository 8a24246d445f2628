from datetime import datetime
from enum import Enum

from beanie import Document, Indexed
from pydantic import Field


class UserStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


class User(Document):
    username: Indexed(str, unique=True)
    email: str | None = None
    full_name: str = ""
    status: UserStatus = UserStatus.PENDING
    role: UserRole = UserRole.USER
    # Only changed by app.services.balance together with a ledger entry.
    coins: int = 0
    ledger_seq: int = 0  # sequence of the newest ledger entry for this user
    telegram_chat_id: str | None = None
    telegram_notifications: bool = False
    session_version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPERADMIN)

    class Settings:
        name = "users"
        indexes = [[("status", 1)], [("role", 1)]]
