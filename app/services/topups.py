"""Bank-transfer top-ups: PENDING -> APPROVED | REJECTED, credit applied at most once."""

from datetime import datetime
from decimal import Decimal, InvalidOperation

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Set
from bson import Decimal128
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.audit import record_audit
from app.core.config import get_settings
from app.core.exceptions import BadRequestError, InvalidStateError, NotFoundError
from app.core.logging import get_logger
from app.core.pagination import paginate
from app.db.transaction import run_in_transaction
from app.models.coin_ledger import LedgerReason
from app.models.coin_topup import CoinTopup, TopupStatus
from app.models.types import link_id
from app.models.user import User
from app.services import balance, notifications, telegram
from app.services.pricing import PricingProvider, compute_coins

log = get_logger(__name__)

REF_TABLE = "coin_topups"
MAX_AMOUNT_MVR = Decimal("100000000")


def parse_amount(value: Decimal | str | int | float) -> Decimal:
    """Validate a claimed transfer amount: positive, at most 2 decimal places."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise BadRequestError("Invalid amount", details={"amount_mvr": str(value)}) from None
    if not amount.is_finite() or amount <= 0:
        raise BadRequestError("Amount must be greater than zero", details={"amount_mvr": str(value)})
    if amount >= MAX_AMOUNT_MVR:
        raise BadRequestError("Amount is too large", details={"amount_mvr": str(value)})
    quantized = amount.quantize(Decimal("0.01"))
    if quantized != amount:
        raise BadRequestError("Amount can have at most 2 decimal places", details={"amount_mvr": str(value)})
    return quantized


def ensure_pending(topup: CoinTopup, action: str) -> None:
    if topup.status != TopupStatus.PENDING:
        raise InvalidStateError(
            f"Cannot {action} a top-up that is already {topup.status.value.lower()}",
            current_status=topup.status.value,
        )


class TopupWorkflow:
    def __init__(
        self,
        pricing: PricingProvider,
        notify: notifications.Notifier = notifications.notify,
        audit=record_audit,
        rate_policy: str | None = None,
    ) -> None:
        self.pricing = pricing
        self.notify = notify
        self.audit = audit
        self.rate_policy = rate_policy or get_settings().topup_rate_policy

    async def submit(self, user_id: PydanticObjectId, amount_mvr: Decimal | str, slip_ref: str) -> CoinTopup:
        """Record a PENDING claim with the coin price snapshotted at submission."""
        amount = parse_amount(amount_mvr)
        slip_ref = (slip_ref or "").strip()
        if not slip_ref:
            raise BadRequestError("Bank slip is required")
        user = await User.get(user_id)
        if not user:
            raise NotFoundError("User not found")
        pricing = await self.pricing.get_pricing()
        estimated = compute_coins(amount, pricing.coin_price_mvr)
        if estimated < 1:
            raise BadRequestError(
                f"Amount is below the price of one coin (MVR {pricing.coin_price_mvr})",
                details={"coin_price_mvr": str(pricing.coin_price_mvr)},
            )
        topup = await CoinTopup(
            user=user,
            amount_mvr=amount,
            price_per_coin=pricing.coin_price_mvr,
            slip_ref=slip_ref,
        ).insert()
        log.info("topup_submitted", topup_id=str(topup.id), user_id=str(user.id), amount_mvr=str(amount))
        await notifications.notify_admins(telegram.format_admin_topup_message(user.username, str(amount), estimated))
        return topup

    async def approve(
        self,
        topup_id: PydanticObjectId,
        admin_id: str,
        note: str | None = None,
        ip: str | None = None,
    ) -> CoinTopup:
        """
        Credit floor(amount / rate) coins and mark APPROVED in one transaction.
        Anything but PENDING raises InvalidStateError with nothing written.
        """
        pricing = await self.pricing.get_pricing()

        async def _op(session: AsyncIOMotorClientSession) -> tuple[CoinTopup, int]:
            topup = await CoinTopup.get(topup_id, session=session)
            if not topup:
                raise NotFoundError("Top-up not found")
            ensure_pending(topup, "approve")
            rate = pricing.coin_price_mvr if self.rate_policy == "approval" else topup.price_per_coin
            coins = compute_coins(topup.amount_mvr, rate)
            if coins < 1:
                raise BadRequestError(
                    "Top-up amount is below the price of one coin; reject it instead",
                    details={"amount_mvr": str(topup.amount_mvr), "coin_price_mvr": str(rate)},
                )
            now = datetime.utcnow()
            updated = await CoinTopup.find_one(
                CoinTopup.id == topup.id,
                CoinTopup.status == TopupStatus.PENDING,
                session=session,
            ).update(
                Set({
                    CoinTopup.status: TopupStatus.APPROVED.value,
                    CoinTopup.computed_coins: coins,
                    CoinTopup.credited_price_per_coin: Decimal128(rate),
                    CoinTopup.admin_note: note,
                    CoinTopup.reviewed_by: admin_id,
                    CoinTopup.reviewed_at: now,
                    CoinTopup.updated_at: now,
                }),
                session=session,
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if updated is None:
                raise InvalidStateError("Top-up is no longer pending", current_status="UNKNOWN")
            _, balance_after = await balance.apply_ledger_entry(
                session,
                link_id(topup.user),
                coins,
                LedgerReason.TOPUP,
                ref_table=REF_TABLE,
                ref_id=str(topup.id),
                description=f"Coin topup approved - MVR {topup.amount_mvr}",
                idempotency_key=f"topup:{topup.id}",
            )
            return updated, balance_after

        topup, balance_after = await run_in_transaction(_op, name="topup_approve")
        user_id = str(link_id(topup.user))
        log.info("topup_approved", topup_id=str(topup.id), user_id=user_id, coins=topup.computed_coins, admin_id=admin_id)
        await self.notify(
            user_id,
            "TOPUP_APPROVED",
            {"topup_id": str(topup.id), "coins": topup.computed_coins, "balance": balance_after, "note": note},
        )
        await self.audit(
            admin_id,
            "TOPUP_APPROVED",
            REF_TABLE,
            str(topup.id),
            {
                "coins": topup.computed_coins,
                "amount_mvr": str(topup.amount_mvr),
                "credited_price_per_coin": str(topup.credited_price_per_coin),
                "note": note,
            },
            ip,
        )
        return topup

    async def reject(
        self,
        topup_id: PydanticObjectId,
        admin_id: str,
        note: str | None = None,
        ip: str | None = None,
    ) -> CoinTopup:
        """PENDING -> REJECTED. No balance change; single-document update needs no transaction."""
        now = datetime.utcnow()
        updated = await CoinTopup.find_one(
            CoinTopup.id == topup_id,
            CoinTopup.status == TopupStatus.PENDING,
        ).update(
            Set({
                CoinTopup.status: TopupStatus.REJECTED.value,
                CoinTopup.admin_note: note,
                CoinTopup.reviewed_by: admin_id,
                CoinTopup.reviewed_at: now,
                CoinTopup.updated_at: now,
            }),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if updated is None:
            existing = await CoinTopup.get(topup_id)
            if not existing:
                raise NotFoundError("Top-up not found")
            ensure_pending(existing, "reject")
            raise InvalidStateError("Top-up is no longer pending", current_status=existing.status.value)
        user_id = str(link_id(updated.user))
        log.info("topup_rejected", topup_id=str(updated.id), user_id=user_id, admin_id=admin_id)
        await self.notify(
            user_id,
            "TOPUP_REJECTED",
            {"topup_id": str(updated.id), "amount_mvr": str(updated.amount_mvr), "note": note},
        )
        await self.audit(admin_id, "TOPUP_REJECTED", REF_TABLE, str(updated.id), {"note": note}, ip)
        return updated


async def list_for_user(user_id: PydanticObjectId) -> list[CoinTopup]:
    return await CoinTopup.find(CoinTopup.user.id == user_id).sort(-CoinTopup.created_at).to_list()


async def list_queue(status: TopupStatus | None, limit: int = 50, offset: int = 0) -> tuple[list[CoinTopup], int]:
    """Admin queue, newest first. Returns (topups, total)."""
    limit, offset = paginate(limit, offset)
    query = CoinTopup.find(CoinTopup.status == status) if status else CoinTopup.find_all()
    total = await query.count()
    items = await query.sort(-CoinTopup.created_at).skip(offset).limit(limit).to_list()
    return items, total
