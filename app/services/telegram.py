"""Telegram Bot API messages for users and the admin chat."""

from typing import Any

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger

log = get_logger(__name__)


def format_user_message(kind: str, data: dict[str, Any]) -> str | None:
    """Text for a user notification kind, or None when the kind has no Telegram message."""
    note = data.get("note")
    reason = f" Reason: {note}" if note else ""
    if kind == "TOPUP_APPROVED":
        return f"💰 Your coin top-up has been approved! {data.get('coins')} coins have been added to your account."
    if kind == "TOPUP_REJECTED":
        return f"❌ Your coin top-up request for MVR {data.get('amount_mvr')} was not approved.{reason}"
    if kind == "COINS_ADDED":
        return f"💰 {data.get('amount')} coins have been added to your account. Balance: {data.get('balance')}."
    if kind == "COINS_REMOVED":
        return f"➖ {data.get('amount')} coins have been removed from your account. Balance: {data.get('balance')}.{reason}"
    if kind == "PROFILE_APPROVED":
        return "🎉 Your profile has been approved! You can now create posts and connect with others."
    if kind == "PROFILE_REJECTED":
        return f"❌ Your profile was not approved.{reason}"
    return None


def format_admin_topup_message(username: str, amount_mvr: str, estimated_coins: int) -> str:
    return (
        "💳 New coin top-up request\n"
        f"User: {username}\n"
        f"Amount: MVR {amount_mvr}\n"
        f"Coins at current price: {estimated_coins}"
    )


async def send_message(chat_id: str, text: str, client: httpx.AsyncClient | None = None) -> bool:
    """
    POST sendMessage. Returns False when no bot token is configured;
    raises httpx.HTTPError when Telegram rejects the call.
    """
    settings = get_settings()
    if not settings.telegram_bot_token:
        log.warning("telegram_not_configured")
        return False
    url = f"{settings.telegram_api_base}/bot{settings.telegram_bot_token}/sendMessage"
    payload = {"chat_id": chat_id, "text": text}
    if client is None:
        async with httpx.AsyncClient(timeout=10.0) as c:
            resp = await c.post(url, json=payload)
    else:
        resp = await client.post(url, json=payload)
    resp.raise_for_status()
    return True
