from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from app.core.audit import record_audit
from app.core.pagination import paginate
from app.deps import client_ip, get_pricing_provider, get_topup_workflow, require_admin
from app.models.audit_log import AuditLog
from app.models.coin_topup import TopupStatus
from app.models.user import User, UserStatus
from app.routers.coins import ledger_entry_out, topup_out
from app.routers.connections import connection_out
from app.routers.settings import public_settings_out
from app.services import adjustments as adjustments_service
from app.services import connections as connections_service
from app.services import topups as topups_service
from app.services import users as users_service
from app.services.pricing import DatabasePricingProvider, PricingProvider, PricingUpdate, load_platform_settings
from app.services.topups import TopupWorkflow

router = APIRouter()


class ReviewRequest(BaseModel):
    note: str | None = Field(default=None, max_length=255)


class AdjustCoinsRequest(BaseModel):
    delta: int
    note: str | None = Field(default=None, max_length=255)


def user_out(u: User) -> dict:
    return {
        "id": str(u.id),
        "username": u.username,
        "full_name": u.full_name,
        "status": u.status.value,
        "role": u.role.value,
        "coins": u.coins,
    }


# Top-ups

@router.get("/topups")
async def admin_topups(
    status: TopupStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
):
    """Admin: top-up queue, newest first."""
    items, total = await topups_service.list_queue(status, limit=limit, offset=offset)
    return {"topups": [topup_out(t) for t in items], "total": total, "limit": limit, "offset": offset}


@router.post("/topups/{topup_id}/approve")
async def admin_approve_topup(
    topup_id: PydanticObjectId,
    request: Request,
    body: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
    workflow: TopupWorkflow = Depends(get_topup_workflow),
):
    """Admin: credit the top-up (409 if it is not pending)."""
    note = body.note if body else None
    topup = await workflow.approve(topup_id, str(admin.id), note=note, ip=client_ip(request))
    return topup_out(topup)


@router.post("/topups/{topup_id}/reject")
async def admin_reject_topup(
    topup_id: PydanticObjectId,
    request: Request,
    body: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
    workflow: TopupWorkflow = Depends(get_topup_workflow),
):
    """Admin: reject the top-up (409 if it is not pending)."""
    note = body.note if body else None
    topup = await workflow.reject(topup_id, str(admin.id), note=note, ip=client_ip(request))
    return topup_out(topup)


# Users

@router.get("/users")
async def admin_users(
    status: UserStatus | None = Query(UserStatus.PENDING),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
):
    """Admin: profiles awaiting review (PENDING by default), oldest first."""
    items, total = await users_service.list_queue(status, limit=limit, offset=offset)
    return {"users": [user_out(u) for u in items], "total": total, "limit": limit, "offset": offset}


@router.post("/users/{user_id}/approve")
async def admin_approve_user(
    user_id: PydanticObjectId,
    request: Request,
    body: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
):
    user = await users_service.set_status(
        user_id, UserStatus.APPROVED, str(admin.id), note=body.note if body else None, ip=client_ip(request)
    )
    return user_out(user)


@router.post("/users/{user_id}/reject")
async def admin_reject_user(
    user_id: PydanticObjectId,
    request: Request,
    body: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
):
    user = await users_service.set_status(
        user_id, UserStatus.REJECTED, str(admin.id), note=body.note if body else None, ip=client_ip(request)
    )
    return user_out(user)


@router.post("/users/{user_id}/coins")
async def admin_adjust_coins(
    user_id: PydanticObjectId,
    body: AdjustCoinsRequest,
    request: Request,
    admin: User = Depends(require_admin),
):
    """Admin: manual signed adjustment, recorded as an ADJUST ledger entry."""
    entry, coins = await adjustments_service.adjust_coins(
        user_id, str(admin.id), body.delta, note=body.note, ip=client_ip(request)
    )
    return {"entry": ledger_entry_out(entry), "coins": coins}


# Connection requests

@router.post("/connections/{request_id}/reject")
async def admin_reject_connection(
    request_id: PydanticObjectId,
    request: Request,
    body: ReviewRequest | None = None,
    admin: User = Depends(require_admin),
    pricing: PricingProvider = Depends(get_pricing_provider),
):
    """Admin: reject a pending connection request, refunding its cost when refunds are enabled."""
    req = await connections_service.reject_connection_request(
        request_id, str(admin.id), pricing, note=body.note if body else None, ip=client_ip(request)
    )
    return connection_out(req)


# Settings

@router.get("/settings")
async def admin_settings(admin: User = Depends(require_admin)):
    s = await load_platform_settings()
    return {
        **public_settings_out(s),
        "allow_refunds": s.allow_refunds,
        "updated_by": s.updated_by,
        "updated_at": s.updated_at.isoformat(),
    }


@router.patch("/settings")
async def admin_update_settings(
    body: PricingUpdate,
    request: Request,
    admin: User = Depends(require_admin),
):
    """Admin: change coin price, action costs, refunds or bank details."""
    s = await DatabasePricingProvider().update(str(admin.id), body)
    await record_audit(
        str(admin.id),
        "SETTINGS_UPDATED",
        "platform_settings",
        str(s.id),
        body.model_dump(mode="json", exclude_none=True),
        client_ip(request),
    )
    return {**public_settings_out(s), "allow_refunds": s.allow_refunds}


# Audit log

@router.get("/audits")
async def admin_audits(
    limit: int = Query(100, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
):
    limit, offset = paginate(limit, offset)
    total = await AuditLog.find_all().count()
    items = await AuditLog.find_all().sort(-AuditLog.created_at).skip(offset).limit(limit).to_list()
    return {
        "audits": [
            {
                "id": str(a.id),
                "admin_id": a.admin_id,
                "action": a.action,
                "entity": a.entity,
                "entity_id": a.entity_id,
                "meta": a.meta,
                "ip": a.ip,
                "created_at": a.created_at.isoformat(),
            }
            for a in items
        ],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
