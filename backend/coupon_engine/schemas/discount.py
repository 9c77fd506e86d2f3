from __future__ import annotations

from decimal import Decimal

from pydantic import Field

from coupon_engine.schemas.common import DocumentModel
from coupon_engine.schemas.coupon import Coupon


class ApplicabilityResult(DocumentModel):
    is_applicable: bool
    reason: str


class AffectedItem(DocumentModel):
    product_id: str
    discount_amount: Decimal
    free_quantity: int | None = None
    discount_percentage: Decimal | None = None
    category: str | None = None
    line_index: int | None = None


class DiscountResult(DocumentModel):
    total_discount: Decimal = Decimal("0.00")
    free_shipping: bool = False
    affected_items: list[AffectedItem] = Field(default_factory=list)
    tier_applied: str | None = None
    applications_used: int | None = None
    loyalty_multiplier: Decimal | None = None
    buy_categories: list[str] | None = None
    get_categories: list[str] | None = None


class ApplicableCoupon(DocumentModel):
    coupon: Coupon
    discount_amount: Decimal
    free_shipping: bool
    affected_items: list[AffectedItem] = Field(default_factory=list)
    reason: str
    priority: int = 0
    stackable: bool = False
