"""Field types shared by documents."""

from decimal import Decimal
from typing import Annotated, Any

from beanie import Document, Link, PydanticObjectId
from bson import Decimal128
from pydantic import BeforeValidator


def _from_decimal128(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


# Money amounts are stored as Decimal128 and read back as Decimal.
MoneyDecimal = Annotated[Decimal, BeforeValidator(_from_decimal128)]


def link_id(value: Link | Document) -> PydanticObjectId:
    """Id behind a Link field, whether it holds an unfetched Link or the document itself."""
    if isinstance(value, Link):
        return value.ref.id
    return value.id
