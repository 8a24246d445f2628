from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.deps import get_current_user, get_topup_workflow
from app.models.coin_ledger import CoinLedgerEntry
from app.models.coin_topup import CoinTopup
from app.models.types import link_id
from app.models.user import User
from app.services import balance as balance_service
from app.services import ledger as ledger_service
from app.services import topups as topups_service
from app.services.topups import TopupWorkflow

router = APIRouter()


class SubmitTopupRequest(BaseModel):
    amount_mvr: Decimal = Field(gt=0)
    slip_ref: str = Field(min_length=1, max_length=255)  # object key of the uploaded bank slip


def ledger_entry_out(e: CoinLedgerEntry) -> dict:
    return {
        "id": str(e.id),
        "seq": e.seq,
        "delta": e.delta,
        "balance_after": e.balance_after,
        "reason": e.reason.value,
        "ref_table": e.ref_table,
        "ref_id": e.ref_id,
        "description": e.description,
        "created_at": e.created_at.isoformat(),
    }


def topup_out(t: CoinTopup) -> dict:
    return {
        "id": str(t.id),
        "user_id": str(link_id(t.user)),
        "amount_mvr": str(t.amount_mvr),
        "price_per_coin": str(t.price_per_coin),
        "credited_price_per_coin": str(t.credited_price_per_coin) if t.credited_price_per_coin is not None else None,
        "computed_coins": t.computed_coins,
        "slip_ref": t.slip_ref,
        "status": t.status.value,
        "admin_note": t.admin_note,
        "reviewed_at": t.reviewed_at.isoformat() if t.reviewed_at else None,
        "created_at": t.created_at.isoformat(),
    }


@router.get("/balance")
async def coins_balance(user: User = Depends(get_current_user)):
    """Return current coin balance."""
    coins = await balance_service.get_balance(user.id)
    return {"coins": coins}


@router.get("/ledger")
async def coins_ledger(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
    cursor: str | None = Query(None),
):
    """Return ledger entries for current user (newest first)."""
    entries, next_cursor = await ledger_service.list_for_user(user.id, limit=limit, cursor=cursor)
    return {"entries": [ledger_entry_out(e) for e in entries], "limit": limit, "next_cursor": next_cursor}


@router.post("/topups", status_code=201)
async def submit_topup(
    body: SubmitTopupRequest,
    user: User = Depends(get_current_user),
    workflow: TopupWorkflow = Depends(get_topup_workflow),
):
    """Claim a bank transfer; an admin verifies the slip and approves or rejects."""
    topup = await workflow.submit(user.id, body.amount_mvr, body.slip_ref)
    return topup_out(topup)


@router.get("/topups")
async def my_topups(user: User = Depends(get_current_user)):
    topups = await topups_service.list_for_user(user.id)
    return {"topups": [topup_out(t) for t in topups]}
