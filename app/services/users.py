"""Identity lookup and profile moderation."""

from datetime import datetime

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Set

from app.core.audit import record_audit
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.core.pagination import paginate
from app.models.user import User, UserStatus
from app.services import notifications

log = get_logger(__name__)


async def get_user(user_id: PydanticObjectId) -> User:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def set_status(
    user_id: PydanticObjectId,
    status: UserStatus,
    admin_id: str,
    note: str | None = None,
    ip: str | None = None,
) -> User:
    """Admin approve/reject of a profile. Only APPROVED users can spend coins."""
    user = await User.find_one(User.id == user_id).update(
        Set({User.status: status.value, User.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if user is None:
        raise NotFoundError("User not found")
    kind = "PROFILE_APPROVED" if status == UserStatus.APPROVED else "PROFILE_REJECTED"
    log.info("user_status_changed", user_id=str(user.id), status=status.value, admin_id=admin_id)
    await notifications.notify(str(user.id), kind, {"note": note})
    await record_audit(admin_id, f"USER_{status.value}", "users", str(user.id), {"note": note}, ip)
    return user


async def list_queue(status: UserStatus | None, limit: int = 50, offset: int = 0) -> tuple[list[User], int]:
    """Admin moderation queue, oldest first. Returns (users, total)."""
    limit, offset = paginate(limit, offset)
    query = User.find(User.status == status) if status else User.find_all()
    total = await query.count()
    items = await query.sort(+User.created_at, +User.id).skip(offset).limit(limit).to_list()
    return items, total
