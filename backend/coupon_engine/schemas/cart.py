from __future__ import annotations

from decimal import Decimal

from pydantic import Field, computed_field

from coupon_engine.schemas.common import DocumentModel
from coupon_engine.services import pricing


class CartItem(DocumentModel):
    product_id: str
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)
    discount_amount: Decimal = Decimal("0.00")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def line_total(self) -> Decimal:
        return pricing.quantize_money(self.price * self.quantity)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def final_price(self) -> Decimal:
        return pricing.quantize_money(self.price * self.quantity - self.discount_amount)


class AppliedCoupon(DocumentModel):
    coupon_id: str | None = None
    code: str
    discount_amount: Decimal


class Cart(DocumentModel):
    """Immutable cart snapshot; subtotal and total are always derived from the current state."""

    user_id: str | None = None
    items: list[CartItem] = Field(default_factory=list)
    shipping_cost: Decimal = Field(default=Decimal("0.00"), ge=0)
    total_discount: Decimal = Decimal("0.00")
    free_shipping: bool = False
    applied_coupons: list[AppliedCoupon] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def subtotal(self) -> Decimal:
        raw = sum((item.price * item.quantity for item in self.items), start=Decimal("0.00"))
        return pricing.quantize_money(raw)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        shipping = Decimal("0.00") if self.free_shipping else self.shipping_cost
        total = self.subtotal - self.total_discount + shipping
        if total < 0:
            total = Decimal("0.00")
        return pricing.quantize_money(total)

    def add_item(self, product_id: str, quantity: int, price: Decimal) -> "Cart":
        items = list(self.items)
        for idx, item in enumerate(items):
            if item.product_id == product_id:
                items[idx] = item.model_copy(update={"quantity": item.quantity + quantity})
                break
        else:
            items.append(CartItem(product_id=product_id, quantity=quantity, price=price))
        return self.model_copy(update={"items": items})

    def remove_item(self, product_id: str) -> "Cart":
        return self.model_copy(update={"items": [item for item in self.items if item.product_id != product_id]})

    def clear_coupons(self) -> "Cart":
        items = [item.model_copy(update={"discount_amount": Decimal("0.00")}) for item in self.items]
        return self.model_copy(
            update={
                "items": items,
                "applied_coupons": [],
                "total_discount": Decimal("0.00"),
                "free_shipping": False,
            }
        )
