import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.models.audit_log import AuditLog
from app.models.coin_ledger import CoinLedgerEntry
from app.models.coin_topup import CoinTopup
from app.models.connection_request import ConnectionRequest
from app.models.failed_job import FailedJob
from app.models.notification import Notification
from app.models.platform_settings import PlatformSettings
from app.models.post import Post
from app.models.user import User

DOCUMENT_MODELS = [
    User,
    CoinLedgerEntry,
    CoinTopup,
    PlatformSettings,
    Post,
    ConnectionRequest,
    Notification,
    AuditLog,
    FailedJob,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def create_client(uri: str, server_selection_timeout_ms: int) -> AsyncIOMotorClient:
    kwargs = {"serverSelectionTimeoutMS": server_selection_timeout_ms}
    if _use_tls(uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    return AsyncIOMotorClient(uri, **kwargs)


def get_client() -> AsyncIOMotorClient:
    """Client bound by the last init_db(); transactions start their sessions here."""
    if _client is None:
        raise RuntimeError("init_db() has not been called")
    return _client


async def init_db(uri: str | None = None, db_name: str | None = None) -> AsyncIOMotorClient:
    global _client
    settings = get_settings()
    client = create_client(uri or settings.mongodb_uri, settings.mongodb_server_selection_timeout_ms)
    database = client[db_name or settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    _client = client
    return client


def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
