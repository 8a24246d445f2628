"""Pagination helpers."""

from typing import Generic, TypeVar

from pydantic import BaseModel

from app.core.exceptions import BadRequestError

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: list[T]
    limit: int
    offset: int
    total: int | None = None


class CursorPage(BaseModel, Generic[T]):
    """Newest-first slice; pass next_cursor back to continue after the last item."""
    items: list[T]
    limit: int
    next_cursor: str | None = None


def paginate(limit: int, offset: int, max_limit: int = 200) -> tuple[int, int]:
    """Clamp limit/offset; return (limit, offset)."""
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def decode_seq_cursor(cursor: str | None) -> int | None:
    """Cursor is the sequence number of the last item already seen."""
    if cursor is None or cursor == "":
        return None
    try:
        value = int(cursor)
    except ValueError:
        raise BadRequestError("Invalid cursor", details={"cursor": cursor}) from None
    if value < 1:
        raise BadRequestError("Invalid cursor", details={"cursor": cursor})
    return value
