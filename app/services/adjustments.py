"""Manual coin adjustments by admins (ADJUST ledger entries)."""

from beanie import PydanticObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.audit import record_audit
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.db.transaction import run_in_transaction
from app.models.coin_ledger import CoinLedgerEntry, LedgerReason
from app.services import balance, notifications

log = get_logger(__name__)


async def adjust_coins(
    user_id: PydanticObjectId,
    admin_id: str,
    delta: int,
    note: str | None = None,
    ip: str | None = None,
) -> tuple[CoinLedgerEntry, int]:
    """Signed correction; a debit larger than the balance raises InsufficientFundsError."""
    if delta == 0:
        raise BadRequestError("Adjustment must be nonzero")

    async def _op(session: AsyncIOMotorClientSession) -> tuple[CoinLedgerEntry, int]:
        return await balance.apply_ledger_entry(
            session,
            user_id,
            delta,
            LedgerReason.ADJUST,
            ref_table="users",
            ref_id=str(user_id),
            description=note or "Manual adjustment",
        )

    entry, balance_after = await run_in_transaction(_op, name="coins_adjust")
    log.info("coins_adjusted", user_id=str(user_id), delta=delta, balance=balance_after, admin_id=admin_id)
    kind = "COINS_ADDED" if delta > 0 else "COINS_REMOVED"
    await notifications.notify(str(user_id), kind, {"amount": abs(delta), "balance": balance_after, "note": note})
    await record_audit(
        admin_id,
        "COINS_ADJUSTED",
        "users",
        str(user_id),
        {"delta": delta, "balance_after": balance_after, "ledger_entry_id": str(entry.id), "note": note},
        ip,
    )
    return entry, balance_after
