"""One ledger operation = one MongoDB transaction."""

from typing import Awaitable, Callable, TypeVar

from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo import WriteConcern
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern

from app.core.config import get_settings
from app.core.exceptions import StorageError
from app.core.logging import get_logger
from app.db.init import get_client

log = get_logger(__name__)

T = TypeVar("T")


async def run_in_transaction(
    operation: Callable[[AsyncIOMotorClientSession], Awaitable[T]],
    name: str = "transaction",
) -> T:
    """
    Run operation(session) inside a snapshot transaction and commit.

    Concurrent writers to the same document get a WriteConflict (TransientTransactionError);
    with_transaction re-runs the whole operation, so callers must only read and write through
    the session they are given. Any exception aborts the transaction. Driver errors surface as
    StorageError; application errors (AppError) propagate unchanged.
    """
    settings = get_settings()
    try:
        async with await get_client().start_session() as session:
            return await session.with_transaction(
                operation,
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
                max_commit_time_ms=settings.transaction_max_commit_ms,
            )
    except PyMongoError as e:
        log.error("transaction_failed", operation=name, error=str(e), error_type=type(e).__name__)
        raise StorageError() from e
