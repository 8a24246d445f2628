from decimal import Decimal
from functools import lru_cache
from typing import Any, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None:
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # MongoDB (transactions need a replica set)
    mongodb_uri: str = Field(default="mongodb://localhost:27017/?replicaSet=rs0", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="kaiveni", alias="MONGODB_DB_NAME")
    mongodb_server_selection_timeout_ms: int = Field(default=5000, alias="MONGODB_SERVER_SELECTION_TIMEOUT_MS")
    transaction_max_commit_ms: int = Field(default=5000, alias="TRANSACTION_MAX_COMMIT_MS")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Telegram
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_admin_chat_id: str = Field(default="", alias="TELEGRAM_ADMIN_CHAT_ID")
    telegram_api_base: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_BASE")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Pricing seed: copied into the platform_settings document on first read only
    default_coin_price_mvr: Decimal = Field(default=Decimal("10.00"), alias="DEFAULT_COIN_PRICE_MVR")
    default_cost_post: int = Field(default=2, alias="DEFAULT_COST_POST")
    default_cost_connect: int = Field(default=5, alias="DEFAULT_COST_CONNECT")
    default_allow_refunds: bool = Field(default=True, alias="DEFAULT_ALLOW_REFUNDS")

    # Bank transfer details shown on the buy-coins screen (seed)
    bank_name: str = Field(default="Bank of Maldives", alias="BANK_NAME")
    bank_account_name: str = Field(default="Kaiveni Pvt Ltd", alias="BANK_ACCOUNT_NAME")
    bank_account_number: str = Field(default="", alias="BANK_ACCOUNT_NUMBER")
    bank_branch: str = Field(default="", alias="BANK_BRANCH")

    # Which coin price an approved top-up is credited at
    topup_rate_policy: Literal["approval", "submission"] = Field(default="approval", alias="TOPUP_RATE_POLICY")


@lru_cache
def get_settings() -> Settings:
    return Settings()
