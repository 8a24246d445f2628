"""Connection requests: charged on send, refundable when an admin rejects them."""

from datetime import datetime

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, Set
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.audit import record_audit
from app.core.exceptions import BadRequestError, ConflictError, InvalidStateError, NotFoundError
from app.core.logging import get_logger
from app.db.transaction import run_in_transaction
from app.models.coin_ledger import LedgerReason
from app.models.connection_request import OPEN_STATUSES, ConnectionRequest, ConnectionStatus
from app.models.types import link_id
from app.models.user import User
from app.services import balance, ledger, notifications
from app.services.pricing import PricingProvider, SpendAction
from app.services.spend_gate import GatedResult, SpendGate

log = get_logger(__name__)

REF_TABLE = "connection_requests"


async def create_connection_request(
    gate: SpendGate,
    requester_id: PydanticObjectId,
    target_user_id: PydanticObjectId,
    post_id: PydanticObjectId | None = None,
) -> GatedResult[ConnectionRequest]:
    if requester_id == target_user_id:
        raise BadRequestError("Cannot send a connection request to yourself")
    if not await User.get(target_user_id):
        raise NotFoundError("Target user not found")

    async def _no_open_request(session: AsyncIOMotorClientSession) -> None:
        existing = await ConnectionRequest.find_one(
            ConnectionRequest.requester.id == requester_id,
            ConnectionRequest.target_user_id == target_user_id,
            In(ConnectionRequest.status, [s.value for s in OPEN_STATUSES]),
            session=session,
        )
        if existing:
            raise ConflictError("Connection request already exists", details={"request_id": str(existing.id)})

    async def _create(session: AsyncIOMotorClientSession) -> ConnectionRequest:
        requester = await User.get(requester_id, session=session)
        return await ConnectionRequest(
            requester=requester,
            target_user_id=target_user_id,
            post_id=post_id,
        ).insert(session=session)

    return await gate.run_gated(requester_id, SpendAction.CONNECT, _create, check=_no_open_request)


async def list_for_user(user_id: PydanticObjectId, direction: str) -> list[ConnectionRequest]:
    if direction == "sent":
        query = ConnectionRequest.find(ConnectionRequest.requester.id == user_id)
    elif direction == "received":
        query = ConnectionRequest.find(ConnectionRequest.target_user_id == user_id)
    else:
        raise BadRequestError("Invalid direction. Must be 'sent' or 'received'")
    return await query.sort(-ConnectionRequest.created_at).to_list()


async def reject_connection_request(
    request_id: PydanticObjectId,
    admin_id: str,
    pricing: PricingProvider,
    note: str | None = None,
    ip: str | None = None,
) -> ConnectionRequest:
    """
    PENDING -> REJECTED. With allow_refunds on, the CONNECT charge is credited back as a
    REFUND entry in the same transaction as the status change.
    """
    allow_refunds = (await pricing.get_pricing()).allow_refunds

    async def _op(session: AsyncIOMotorClientSession) -> tuple[ConnectionRequest, int, int | None]:
        req = await ConnectionRequest.get(request_id, session=session)
        if not req:
            raise NotFoundError("Connection request not found")
        if req.status != ConnectionStatus.PENDING:
            raise InvalidStateError(
                f"Cannot reject a connection request that is {req.status.value.lower()}",
                current_status=req.status.value,
            )
        refund = 0
        balance_after = None
        if allow_refunds and not req.refund_applied:
            charge = await ledger.find_for_ref(REF_TABLE, str(req.id), LedgerReason.CONNECT, session=session)
            if charge is not None and charge.delta < 0:
                refund = -charge.delta
                _, balance_after = await balance.apply_ledger_entry(
                    session,
                    charge.user_id,
                    refund,
                    LedgerReason.REFUND,
                    ref_table=REF_TABLE,
                    ref_id=str(req.id),
                    description="Connection request rejected - refund",
                    idempotency_key=f"refund:{REF_TABLE}:{req.id}",
                )
        updated = await ConnectionRequest.find_one(
            ConnectionRequest.id == req.id,
            ConnectionRequest.status == ConnectionStatus.PENDING,
            session=session,
        ).update(
            Set({
                ConnectionRequest.status: ConnectionStatus.REJECTED.value,
                ConnectionRequest.admin_note: note,
                ConnectionRequest.refund_applied: req.refund_applied or refund > 0,
                ConnectionRequest.updated_at: datetime.utcnow(),
            }),
            session=session,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if updated is None:
            raise InvalidStateError("Connection request is no longer pending", current_status="UNKNOWN")
        return updated, refund, balance_after

    req, refund, balance_after = await run_in_transaction(_op, name="connection_reject")
    requester_id = str(link_id(req.requester))
    log.info("connection_rejected", request_id=str(req.id), refund=refund, admin_id=admin_id)
    if refund:
        await notifications.notify(
            requester_id,
            "COINS_ADDED",
            {"amount": refund, "balance": balance_after, "reason": "REFUND", "request_id": str(req.id)},
        )
    await record_audit(admin_id, "CONNECTION_REJECTED", REF_TABLE, str(req.id), {"note": note, "refund": refund}, ip)
    return req
