from fastapi import APIRouter

from app.models.platform_settings import PlatformSettings
from app.services.pricing import load_platform_settings

router = APIRouter()


def public_settings_out(s: PlatformSettings) -> dict:
    return {
        "coin_price_mvr": str(s.coin_price_mvr),
        "cost_post": s.cost_post,
        "cost_connect": s.cost_connect,
        "bank_name": s.bank_name,
        "bank_account_name": s.bank_account_name,
        "bank_account_number": s.bank_account_number,
        "bank_branch": s.bank_branch,
    }


@router.get("")
async def public_settings():
    """Coin price, action costs and bank details for the buy-coins screen."""
    return public_settings_out(await load_platform_settings())
