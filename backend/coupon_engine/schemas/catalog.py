from decimal import Decimal

from pydantic import ConfigDict, Field

from coupon_engine.schemas.common import DocumentModel


class Product(DocumentModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = ""
    category: str | None = None
    brand: str | None = None
    price: Decimal = Field(default=Decimal("0.00"), ge=0)
