from datetime import datetime
from enum import Enum

from beanie import Document, Link
from pydantic import Field

from app.models.user import User


class PostStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    HIDDEN = "HIDDEN"


class Post(Document):
    user: Link[User]
    title: str | None = None
    description: str
    status: PostStatus = PostStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "posts"
        indexes = [[("user", 1), ("created_at", -1)], [("status", 1)]]
