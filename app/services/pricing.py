"""Coin price and per-action costs.

Components take a PricingProvider in their constructor; the API wires DatabasePricingProvider
(the platform_settings singleton), tests use StaticPricingProvider.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum

from bson import Decimal128
from pydantic import BaseModel, ConfigDict, Field
from pymongo.errors import DuplicateKeyError

from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.models.coin_ledger import LedgerReason
from app.models.platform_settings import SINGLETON_KEY, PlatformSettings


class SpendAction(str, Enum):
    POST = "POST"
    CONNECT = "CONNECT"

    @property
    def reason(self) -> LedgerReason:
        return LedgerReason(self.value)


class Pricing(BaseModel):
    """Consistent snapshot of the pricing singleton."""
    model_config = ConfigDict(frozen=True)

    coin_price_mvr: Decimal = Field(gt=0)
    cost_post: int = Field(ge=0)
    cost_connect: int = Field(ge=0)
    allow_refunds: bool = True

    def cost_for(self, action: SpendAction) -> int:
        if action is SpendAction.POST:
            return self.cost_post
        return self.cost_connect


class PricingUpdate(BaseModel):
    """Admin edit; unset fields keep their value."""
    coin_price_mvr: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    cost_post: int | None = Field(default=None, ge=0)
    cost_connect: int | None = Field(default=None, ge=0)
    allow_refunds: bool | None = None
    bank_name: str | None = Field(default=None, max_length=120)
    bank_account_name: str | None = Field(default=None, max_length=120)
    bank_account_number: str | None = Field(default=None, max_length=64)
    bank_branch: str | None = Field(default=None, max_length=120)


def compute_coins(amount_mvr: Decimal, coin_price_mvr: Decimal) -> int:
    """floor(amount / price); price must be positive."""
    if coin_price_mvr <= 0:
        raise BadRequestError("Coin price must be positive", details={"coin_price_mvr": str(coin_price_mvr)})
    return int((amount_mvr / coin_price_mvr).to_integral_value(rounding=ROUND_FLOOR))


class PricingProvider(ABC):
    @abstractmethod
    async def get_pricing(self) -> Pricing:
        """Return the current pricing snapshot."""
        ...


class StaticPricingProvider(PricingProvider):
    def __init__(self, pricing: Pricing) -> None:
        self.pricing = pricing

    async def get_pricing(self) -> Pricing:
        return self.pricing


def _seed_settings() -> PlatformSettings:
    s = get_settings()
    return PlatformSettings(
        key=SINGLETON_KEY,
        coin_price_mvr=s.default_coin_price_mvr,
        cost_post=s.default_cost_post,
        cost_connect=s.default_cost_connect,
        allow_refunds=s.default_allow_refunds,
        bank_name=s.bank_name,
        bank_account_name=s.bank_account_name,
        bank_account_number=s.bank_account_number,
        bank_branch=s.bank_branch,
    )


async def load_platform_settings() -> PlatformSettings:
    """Return the singleton, creating it from env defaults on first use."""
    doc = await PlatformSettings.find_one(PlatformSettings.key == SINGLETON_KEY)
    if doc:
        return doc
    try:
        return await _seed_settings().insert()
    except DuplicateKeyError:
        # Another request seeded it first.
        return await PlatformSettings.find_one(PlatformSettings.key == SINGLETON_KEY)


def to_pricing(doc: PlatformSettings) -> Pricing:
    return Pricing(
        coin_price_mvr=doc.coin_price_mvr,
        cost_post=doc.cost_post,
        cost_connect=doc.cost_connect,
        allow_refunds=doc.allow_refunds,
    )


class DatabasePricingProvider(PricingProvider):
    async def get_pricing(self) -> Pricing:
        return to_pricing(await load_platform_settings())

    async def update(self, admin_id: str, values: PricingUpdate) -> PlatformSettings:
        """Apply an admin edit to the singleton; returns the stored document."""
        changes = values.model_dump(exclude_none=True)
        if not changes:
            raise BadRequestError("No settings to update")
        doc = await load_platform_settings()
        if "coin_price_mvr" in changes:
            changes["coin_price_mvr"] = Decimal128(changes["coin_price_mvr"])
        changes["updated_by"] = admin_id
        changes["updated_at"] = datetime.utcnow()
        await doc.set(changes)
        return await load_platform_settings()
