"""Shared FastAPI dependencies."""

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request

from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.logging import bind_actor
from app.core.security import load_session_cookie
from app.models.user import User
from app.services.pricing import DatabasePricingProvider, PricingProvider
from app.services.spend_gate import SpendGate
from app.services.topups import TopupWorkflow

SESSION_COOKIE_NAME = "kaiveni_session"


async def get_current_user(request: Request) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    try:
        oid = PydanticObjectId(user_id)
    except (InvalidId, TypeError):
        raise UnauthorizedError("Invalid session") from None
    user = await User.get(oid)
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_actor(str(user.id), user.role.value)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency: require current user to have role ADMIN or SUPERADMIN."""
    if not user.is_admin:
        raise ForbiddenError("Admin only")
    return user


def get_pricing_provider() -> PricingProvider:
    return DatabasePricingProvider()


def get_spend_gate(pricing: PricingProvider = Depends(get_pricing_provider)) -> SpendGate:
    return SpendGate(pricing)


def get_topup_workflow(pricing: PricingProvider = Depends(get_pricing_provider)) -> TopupWorkflow:
    return TopupWorkflow(pricing)


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
