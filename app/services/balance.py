"""
Per-user coin balance.

User.coins is a counter kept equal to the sum of the user's ledger deltas: it only changes
through apply_delta, and apply_delta is always paired with ledger.append in one transaction
(apply_ledger_entry below). The non-negativity check is part of the update filter, so two
concurrent debits cannot both pass it; different users touch different documents and never
contend.
"""

from datetime import datetime

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Inc, Set
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.exceptions import BadRequestError, InsufficientFundsError, NotFoundError
from app.models.coin_ledger import CoinLedgerEntry, LedgerReason
from app.models.user import User
from app.services import ledger


async def get_balance(user_id: PydanticObjectId) -> int:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user.coins


async def apply_delta(
    session: AsyncIOMotorClientSession,
    user_id: PydanticObjectId,
    delta: int,
) -> User:
    """Add delta to the balance and bump ledger_seq; returns the updated user."""
    query = User.find_one(User.id == user_id, session=session)
    if delta < 0:
        query = User.find_one(User.id == user_id, User.coins >= -delta, session=session)
    updated = await query.update(
        Inc({User.coins: delta, User.ledger_seq: 1}),
        Set({User.updated_at: datetime.utcnow()}),
        session=session,
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is not None:
        return updated
    user = await User.get(user_id, session=session)
    if not user:
        raise NotFoundError("User not found")
    raise InsufficientFundsError(required=-delta, balance=user.coins)


async def apply_ledger_entry(
    session: AsyncIOMotorClientSession,
    user_id: PydanticObjectId,
    delta: int,
    reason: LedgerReason,
    ref_table: str | None = None,
    ref_id: str | None = None,
    description: str = "",
    idempotency_key: str | None = None,
) -> tuple[CoinLedgerEntry, int]:
    """
    The debit/credit primitive: balance update + ledger row in the caller's transaction.
    Returns (ledger_entry, balance_after).
    """
    if delta == 0:
        raise BadRequestError("Ledger delta must be nonzero")
    user = await apply_delta(session, user_id, delta)
    entry = await ledger.append(
        session,
        user,
        delta,
        reason,
        ref_table=ref_table,
        ref_id=ref_id,
        description=description,
        idempotency_key=idempotency_key,
    )
    return entry, user.coins
