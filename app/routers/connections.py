from typing import Literal

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.deps import get_current_user, get_spend_gate
from app.models.connection_request import ConnectionRequest
from app.models.types import link_id
from app.models.user import User
from app.services import connections as connections_service
from app.services.spend_gate import SpendGate

router = APIRouter()


class CreateConnectionRequest(BaseModel):
    target_user_id: PydanticObjectId
    post_id: PydanticObjectId | None = None


def connection_out(r: ConnectionRequest) -> dict:
    return {
        "id": str(r.id),
        "requester_id": str(link_id(r.requester)),
        "target_user_id": str(r.target_user_id),
        "post_id": str(r.post_id) if r.post_id else None,
        "status": r.status.value,
        "admin_note": r.admin_note,
        "refund_applied": r.refund_applied,
        "created_at": r.created_at.isoformat(),
    }


@router.post("", status_code=201)
async def create_connection(
    body: CreateConnectionRequest,
    user: User = Depends(get_current_user),
    gate: SpendGate = Depends(get_spend_gate),
):
    """Send a connection request (costs cost_connect coins; profile must be approved)."""
    result = await connections_service.create_connection_request(gate, user.id, body.target_user_id, body.post_id)
    return {
        "request": connection_out(result.entity),
        "coins_spent": result.charge.cost,
        "coins": result.charge.balance_after,
    }


@router.get("")
async def my_connections(
    direction: Literal["sent", "received"] = Query("sent"),
    user: User = Depends(get_current_user),
):
    requests = await connections_service.list_for_user(user.id, direction)
    return {"requests": [connection_out(r) for r in requests]}
