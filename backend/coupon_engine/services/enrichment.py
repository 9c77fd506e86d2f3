from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from coupon_engine.schemas.cart import Cart, CartItem
from coupon_engine.schemas.catalog import Product


@dataclass(frozen=True)
class EnrichedItem:
    """A cart line paired with its catalog product (``None`` when the product id is unknown).

    ``index`` is the line's position in the cart; repeated product ids stay distinct lines.
    """

    item: CartItem
    product: Product | None
    index: int = 0

    @property
    def product_id(self) -> str:
        return self.item.product_id

    @property
    def quantity(self) -> int:
        return self.item.quantity

    @property
    def price(self) -> Decimal:
        return self.item.price

    @property
    def line_total(self) -> Decimal:
        return self.item.price * self.item.quantity

    @property
    def category(self) -> str | None:
        return self.product.category if self.product is not None else None

    @property
    def brand(self) -> str | None:
        return self.product.brand if self.product is not None else None


def enrich_items(cart: Cart, products: Iterable[Product]) -> list[EnrichedItem]:
    product_map = {product.id: product for product in products}
    return [
        EnrichedItem(item=item, product=product_map.get(item.product_id), index=idx)
        for idx, item in enumerate(cart.items)
    ]


def resolved(items: Iterable[EnrichedItem]) -> list[EnrichedItem]:
    """Items whose product reference resolved; unresolved lines never match a coupon predicate."""
    return [entry for entry in items if entry.product is not None]


def quantity_of_products(items: Iterable[EnrichedItem], product_ids: set[str]) -> int:
    return sum(entry.quantity for entry in resolved(items) if entry.product_id in product_ids)


def quantity_in_categories(items: Iterable[EnrichedItem], categories: set[str]) -> int:
    return sum(entry.quantity for entry in resolved(items) if entry.category in categories)
