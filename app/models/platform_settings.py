from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field

from app.models.types import MoneyDecimal

SINGLETON_KEY = "default"


class PlatformSettings(Document):
    """Admin-editable pricing and bank details; exactly one document (key=default)."""
    key: Indexed(str, unique=True) = SINGLETON_KEY
    coin_price_mvr: MoneyDecimal
    cost_post: int
    cost_connect: int
    allow_refunds: bool = True
    bank_name: str = ""
    bank_account_name: str = ""
    bank_account_number: str = ""
    bank_branch: str = ""
    updated_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "platform_settings"
