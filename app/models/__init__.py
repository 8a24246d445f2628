from app.models.user import User
from app.models.coin_ledger import CoinLedgerEntry
from app.models.coin_topup import CoinTopup
from app.models.platform_settings import PlatformSettings
from app.models.notification import Notification
from app.models.audit_log import AuditLog
from app.models.post import Post
from app.models.connection_request import ConnectionRequest
from app.models.failed_job import FailedJob

__all__ = [
    "User",
    "CoinLedgerEntry",
    "CoinTopup",
    "PlatformSettings",
    "Notification",
    "AuditLog",
    "Post",
    "ConnectionRequest",
    "FailedJob",
]
