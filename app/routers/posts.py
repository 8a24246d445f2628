from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import get_current_user, get_spend_gate
from app.models.post import Post
from app.models.user import User
from app.services import posts as posts_service
from app.services.spend_gate import SpendGate

router = APIRouter()


class CreatePostRequest(BaseModel):
    title: str | None = Field(default=None, max_length=120)
    description: str = Field(min_length=1, max_length=5000)


def post_out(p: Post) -> dict:
    return {
        "id": str(p.id),
        "title": p.title,
        "description": p.description,
        "status": p.status.value,
        "created_at": p.created_at.isoformat(),
    }


@router.post("", status_code=201)
async def create_post(
    body: CreatePostRequest,
    user: User = Depends(get_current_user),
    gate: SpendGate = Depends(get_spend_gate),
):
    """Create a post (costs cost_post coins; profile must be approved)."""
    result = await posts_service.create_post(gate, user.id, body.description, title=body.title)
    return {"post": post_out(result.entity), "coins_spent": result.charge.cost, "coins": result.charge.balance_after}


@router.get("/mine")
async def my_posts(user: User = Depends(get_current_user)):
    posts = await posts_service.list_for_user(user.id)
    return {"posts": [post_out(p) for p in posts]}
