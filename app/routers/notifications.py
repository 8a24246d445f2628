from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query

from app.deps import get_current_user
from app.models.user import User
from app.services import notifications as notifications_service

router = APIRouter()


@router.get("")
async def my_notifications(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
):
    items = await notifications_service.list_for_user(user.id, limit=limit)
    return {
        "notifications": [
            {
                "id": str(n.id),
                "kind": n.kind,
                "data": n.data,
                "seen": n.seen,
                "created_at": n.created_at.isoformat(),
            }
            for n in items
        ]
    }


@router.post("/{notification_id}/seen")
async def mark_seen(notification_id: PydanticObjectId, user: User = Depends(get_current_user)):
    await notifications_service.mark_seen(user.id, notification_id)
    return {"status": "ok"}
