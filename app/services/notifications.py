"""User notifications: in-app record plus optional Telegram delivery via the worker.

Fire-and-forget from the ledger's point of view. notify() runs after the financial change has
committed, so a failure here is logged and dropped rather than raised.
"""

from typing import Any, Awaitable, Callable

from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.notification import Notification
from app.models.user import User
from app.services import telegram

log = get_logger(__name__)

Notifier = Callable[[str, str, dict[str, Any]], Awaitable[None]]


async def _deliver(user_id: str, kind: str, payload: dict[str, Any]) -> None:
    await Notification(user_id=user_id, kind=kind, data=payload).insert()
    if not get_settings().telegram_bot_token:
        return
    user = await User.get(PydanticObjectId(user_id))
    if not user or not user.telegram_notifications or not user.telegram_chat_id:
        return
    text = telegram.format_user_message(kind, payload)
    if text:
        from app.worker.tasks import enqueue_telegram
        await enqueue_telegram(user.telegram_chat_id, text)


async def notify(user_id: str, kind: str, payload: dict[str, Any], deliver: Notifier = _deliver) -> None:
    try:
        await deliver(user_id, kind, payload)
    except Exception as e:
        log.warning("notify_failed", user_id=user_id, kind=kind, error=str(e), error_type=type(e).__name__)


async def notify_admins(text: str) -> None:
    """Best-effort message to the admin Telegram chat."""
    chat_id = get_settings().telegram_admin_chat_id
    if not chat_id:
        return
    try:
        from app.worker.tasks import enqueue_telegram
        await enqueue_telegram(chat_id, text)
    except Exception as e:
        log.warning("notify_admins_failed", error=str(e), error_type=type(e).__name__)


async def list_for_user(user_id: PydanticObjectId, limit: int = 50) -> list[Notification]:
    return (
        await Notification.find(Notification.user_id == str(user_id))
        .sort(-Notification.created_at)
        .limit(limit)
        .to_list()
    )


async def mark_seen(user_id: PydanticObjectId, notification_id: PydanticObjectId) -> None:
    n = await Notification.get(notification_id)
    if not n or n.user_id != str(user_id):
        raise NotFoundError("Notification not found")
    if not n.seen:
        await n.set({Notification.seen: True})
