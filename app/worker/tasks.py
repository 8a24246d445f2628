"""ARQ job definitions."""

import uuid
from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from app.core.config import get_settings
from app.core.logging import get_logger

log = get_logger(__name__)


async def _run_with_dlq(
    job_name: str,
    job_id: str | None,
    args: list[Any],
    kwargs: dict[str, Any],
    coro,
) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        return await coro
    except Exception as e:
        from app.models.failed_job import FailedJob
        fid = job_id or str(uuid.uuid4())
        await FailedJob(
            job_name=job_name,
            job_id=fid,
            args=args,
            kwargs=kwargs,
            reason=str(e)[:2000],
            retries=0,
        ).insert()
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def deliver_telegram(ctx: dict[str, Any], chat_id: str, text: str) -> None:
    """Send one Telegram message (user or admin chat)."""
    from app.services import telegram
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None

    async def _run() -> None:
        sent = await telegram.send_message(chat_id, text, client=ctx.get("http"))
        log.info("telegram_delivered" if sent else "telegram_skipped", chat_id=chat_id)

    # chat_id only: message text can carry notes about the user
    await _run_with_dlq("deliver_telegram", job_id, [chat_id], {}, _run())


async def audit_ledger_consistency(ctx: dict[str, Any]) -> int:
    """Cron job: compare every user's coins with the sum of their ledger deltas."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    from app.worker.cron import run_ledger_audit
    return await _run_with_dlq("audit_ledger_consistency", job_id, [], {}, run_ledger_audit())


async def startup(ctx: dict) -> None:
    import httpx

    from app.core.logging import configure_logging
    from app.db.init import init_db
    configure_logging(debug=get_settings().debug)
    await init_db()
    ctx["http"] = httpx.AsyncClient(timeout=10.0)


async def shutdown(ctx: dict) -> None:
    from app.db.init import close_db
    http = ctx.get("http")
    if http is not None:
        await http.aclose()
    close_db()


def get_redis_settings(conn_retries: int = 5) -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
        conn_retries=conn_retries,
    )


_pool: ArqRedis | None = None


async def get_pool() -> ArqRedis:
    """Shared enqueue pool for the API process. No connect retries: callers are best-effort."""
    global _pool
    if _pool is None:
        _pool = await create_pool(get_redis_settings(conn_retries=0))
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def enqueue_telegram(chat_id: str, text: str) -> None:
    """Enqueue deliver_telegram (called after a committed change, never inside a transaction)."""
    redis = await get_pool()
    await redis.enqueue_job("deliver_telegram", chat_id, text)
