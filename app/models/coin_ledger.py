from datetime import datetime
from enum import Enum

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel


class LedgerReason(str, Enum):
    TOPUP = "TOPUP"
    POST = "POST"
    CONNECT = "CONNECT"
    ADJUST = "ADJUST"
    REFUND = "REFUND"
    OTHER = "OTHER"


class CoinLedgerEntry(Document):
    """Append-only: one row per balance change, never updated or deleted."""
    user_id: PydanticObjectId
    seq: int  # per-user, equals User.ledger_seq right after the change
    delta: int  # positive = credit, negative = debit
    balance_after: int
    reason: LedgerReason
    ref_table: str | None = None  # posts, connection_requests, coin_topups
    ref_id: str | None = None
    description: str = ""
    idempotency_key: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "coin_ledger"
        indexes = [
            IndexModel([("user_id", ASCENDING), ("seq", DESCENDING)], unique=True),
            IndexModel([("reason", ASCENDING)]),
            IndexModel([("ref_table", ASCENDING), ("ref_id", ASCENDING)]),
            IndexModel(
                [("idempotency_key", ASCENDING)],
                unique=True,
                partialFilterExpression={"idempotency_key": {"$type": "string"}},
            ),
        ]
