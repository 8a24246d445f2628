from datetime import datetime
from enum import Enum

from beanie import Document, Link
from pydantic import Field

from app.models.types import MoneyDecimal
from app.models.user import User


class TopupStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class CoinTopup(Document):
    """Bank-transfer claim awaiting admin verification against the slip."""
    user: Link[User]
    amount_mvr: MoneyDecimal
    price_per_coin: MoneyDecimal  # coin price when submitted
    slip_ref: str
    status: TopupStatus = TopupStatus.PENDING
    computed_coins: int | None = None  # set once, on approval
    credited_price_per_coin: MoneyDecimal | None = None
    admin_note: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "coin_topups"
        indexes = [
            [("user", 1), ("created_at", -1)],
            [("status", 1), ("created_at", -1)],
        ]
