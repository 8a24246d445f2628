"""Partner-seeking posts; creating one costs cost_post coins."""

from beanie import PydanticObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.exceptions import BadRequestError
from app.models.post import Post
from app.models.user import User
from app.services.pricing import SpendAction
from app.services.spend_gate import GatedResult, SpendGate


async def create_post(
    gate: SpendGate,
    user_id: PydanticObjectId,
    description: str,
    title: str | None = None,
) -> GatedResult[Post]:
    description = (description or "").strip()
    if not description:
        raise BadRequestError("Description is required")

    async def _create(session: AsyncIOMotorClientSession) -> Post:
        user = await User.get(user_id, session=session)
        return await Post(user=user, title=title, description=description).insert(session=session)

    return await gate.run_gated(user_id, SpendAction.POST, _create)


async def list_for_user(user_id: PydanticObjectId) -> list[Post]:
    return await Post.find(Post.user.id == user_id).sort(-Post.created_at).to_list()
