"""Append-only coin ledger. Every write happens inside the caller's transaction."""

from beanie import PydanticObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.exceptions import BadRequestError
from app.core.pagination import decode_seq_cursor, paginate
from app.models.coin_ledger import CoinLedgerEntry, LedgerReason
from app.models.user import User


async def append(
    session: AsyncIOMotorClientSession,
    user: User,
    delta: int,
    reason: LedgerReason,
    ref_table: str | None = None,
    ref_id: str | None = None,
    description: str = "",
    idempotency_key: str | None = None,
) -> CoinLedgerEntry:
    """
    Insert one immutable entry for a balance change already applied in this session.
    `user` is the document as returned by balance.apply_delta, so its coins and ledger_seq
    are the post-change values. A failed insert aborts the transaction along with the balance change.
    """
    if delta == 0:
        raise BadRequestError("Ledger delta must be nonzero")
    entry = CoinLedgerEntry(
        user_id=user.id,
        seq=user.ledger_seq,
        delta=delta,
        balance_after=user.coins,
        reason=reason,
        ref_table=ref_table,
        ref_id=ref_id,
        description=description,
        idempotency_key=idempotency_key,
    )
    await entry.insert(session=session)
    return entry


async def list_for_user(
    user_id: PydanticObjectId,
    limit: int = 50,
    cursor: str | None = None,
) -> tuple[list[CoinLedgerEntry], str | None]:
    """Newest first. Returns (entries, next_cursor); next_cursor is None on the last page."""
    limit, _ = paginate(limit, 0)
    before = decode_seq_cursor(cursor)
    query = CoinLedgerEntry.find(CoinLedgerEntry.user_id == user_id)
    if before is not None:
        query = query.find(CoinLedgerEntry.seq < before)
    entries = await query.sort(-CoinLedgerEntry.seq).limit(limit).to_list()
    next_cursor = None
    if len(entries) == limit and entries[-1].seq > 1:
        next_cursor = str(entries[-1].seq)
    return entries, next_cursor


async def find_for_ref(
    ref_table: str,
    ref_id: str,
    reason: LedgerReason,
    session: AsyncIOMotorClientSession | None = None,
) -> CoinLedgerEntry | None:
    return await CoinLedgerEntry.find_one(
        CoinLedgerEntry.ref_table == ref_table,
        CoinLedgerEntry.ref_id == ref_id,
        CoinLedgerEntry.reason == reason,
        session=session,
    )


async def sum_deltas_by_user() -> dict[PydanticObjectId, int]:
    """Total of all deltas per user (for the consistency audit)."""
    rows = await CoinLedgerEntry.aggregate(
        [{"$group": {"_id": "$user_id", "total": {"$sum": "$delta"}}}]
    ).to_list()
    return {row["_id"]: row["total"] for row in rows}


async def sum_deltas_for_user(user_id: PydanticObjectId, max_seq: int) -> int:
    """Total of the user's deltas with seq <= max_seq, i.e. as of that ledger position."""
    rows = await CoinLedgerEntry.aggregate(
        [
            {"$match": {"user_id": user_id, "seq": {"$lte": max_seq}}},
            {"$group": {"_id": None, "total": {"$sum": "$delta"}}},
        ]
    ).to_list()
    return rows[0]["total"] if rows else 0
