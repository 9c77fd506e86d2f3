from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, field_validator, model_validator

from coupon_engine.schemas.common import DocumentModel, as_utc


class CouponType(str, enum.Enum):
    cart_wise = "cart_wise"
    product_wise = "product_wise"
    bxgy = "bxgy"
    tiered = "tiered"
    flash_sale = "flash_sale"
    user_specific = "user_specific"
    graduated_bxgy = "graduated_bxgy"
    cross_category_bxgy = "cross_category_bxgy"


class DiscountKind(str, enum.Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"
    free_shipping = "free_shipping"


def _list_or_none(value: Any) -> Any:
    # Rule lists that are not lists are treated as absent rather than rejected.
    if value is None or isinstance(value, (list, tuple)):
        return value
    return None


class DiscountSpec(DocumentModel):
    type: DiscountKind
    value: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)


class BaseConditions(DocumentModel):
    minimum_amount: Decimal | None = Field(default=None, ge=0)
    max_total_usage: int | None = Field(default=None, ge=0)


class ProductQuantity(DocumentModel):
    product_id: str
    quantity: int = Field(default=1, ge=0)


class ProductWiseConditions(BaseConditions):
    applicable_products: list[str] = Field(default_factory=list)
    applicable_categories: list[str] = Field(default_factory=list)
    applicable_brands: list[str] = Field(default_factory=list)


class BxGyConditions(BaseConditions):
    buy_products: list[ProductQuantity] = Field(default_factory=list)
    get_products: list[ProductQuantity] = Field(default_factory=list)
    repetition_limit: int | None = Field(default=None, ge=0)


class GraduatedRule(DocumentModel):
    name: str | None = None
    buy_quantity: int = Field(ge=1)
    get_quantity: int = Field(default=1, ge=0)
    discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)

    @property
    def label(self) -> str:
        return self.name or f"Buy {self.buy_quantity} Get {self.get_quantity}"


class GraduatedBxGyConditions(BxGyConditions):
    graduated_rules: list[GraduatedRule] | None = None

    @field_validator("graduated_rules", mode="before")
    @classmethod
    def _normalize_rules(cls, value: Any) -> Any:
        return _list_or_none(value)


class CrossCategoryConditions(BaseConditions):
    buy_categories: list[str] | None = None
    get_categories: list[str] | None = None
    buy_quantity: int | None = Field(default=None, ge=0)
    get_quantity: int | None = Field(default=None, ge=0)
    get_discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    repetition_limit: int | None = Field(default=None, ge=0)


class Tier(DocumentModel):
    name: str | None = None
    minimum_amount: Decimal = Field(ge=0)
    discount_type: DiscountKind = DiscountKind.percentage
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)

    @property
    def label(self) -> str:
        return self.name or f"Tier {self.minimum_amount}"


class TieredRules(DocumentModel):
    tiers: list[Tier] | None = None

    @field_validator("tiers", mode="before")
    @classmethod
    def _normalize_tiers(cls, value: Any) -> Any:
        return _list_or_none(value)


class TimeWindow(DocumentModel):
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)
    # 0 = Sunday ... 6 = Saturday
    days_of_week: list[int] | None = None


class FlashSaleData(DocumentModel):
    discount_multiplier: Decimal | None = Field(default=None, ge=0)
    time_windows: list[TimeWindow] | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class RegistrationDays(DocumentModel):
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)


class UserCriteria(DocumentModel):
    user_type: str | None = None
    is_first_time: bool | None = None
    loyalty_level: int | None = None
    min_orders: int | None = None
    max_orders: int | None = None
    loyalty_multiplier: Decimal | None = Field(default=None, ge=0)
    max_multiplier: Decimal | None = Field(default=None, ge=0)
    registration_days: RegistrationDays | None = None


class CouponBase(DocumentModel):
    id: str | None = None
    code: str = Field(min_length=3, max_length=20)
    name: str = ""
    description: str | None = None
    discount: DiscountSpec
    priority: int = 0
    stackable: bool = False
    is_active: bool = True
    start_date: datetime
    end_date: datetime
    current_usage: int = Field(default=0, ge=0)

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc_dates(cls, value: datetime) -> datetime:
        return as_utc(value)  # type: ignore[return-value]

    @model_validator(mode="after")
    def _check_window(self) -> "CouponBase":
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class CartWiseCoupon(CouponBase):
    type: Literal["cart_wise"]
    conditions: BaseConditions = Field(default_factory=BaseConditions)


class ProductWiseCoupon(CouponBase):
    type: Literal["product_wise"]
    conditions: ProductWiseConditions = Field(default_factory=ProductWiseConditions)


class BxGyCoupon(CouponBase):
    type: Literal["bxgy"]
    conditions: BxGyConditions = Field(default_factory=BxGyConditions)


class TieredCoupon(CouponBase):
    type: Literal["tiered"]
    conditions: BaseConditions = Field(default_factory=BaseConditions)
    tiered_rules: TieredRules | None = None


class FlashSaleCoupon(CouponBase):
    type: Literal["flash_sale"]
    conditions: BaseConditions = Field(default_factory=BaseConditions)
    flash_sale_data: FlashSaleData | None = None


class UserSpecificCoupon(CouponBase):
    type: Literal["user_specific"]
    conditions: BaseConditions = Field(default_factory=BaseConditions)
    user_criteria: UserCriteria | None = None


class GraduatedBxGyCoupon(CouponBase):
    type: Literal["graduated_bxgy"]
    conditions: GraduatedBxGyConditions = Field(default_factory=GraduatedBxGyConditions)


class CrossCategoryBxGyCoupon(CouponBase):
    type: Literal["cross_category_bxgy"]
    conditions: CrossCategoryConditions = Field(default_factory=CrossCategoryConditions)


Coupon = Annotated[
    Union[
        CartWiseCoupon,
        ProductWiseCoupon,
        BxGyCoupon,
        TieredCoupon,
        FlashSaleCoupon,
        UserSpecificCoupon,
        GraduatedBxGyCoupon,
        CrossCategoryBxGyCoupon,
    ],
    Field(discriminator="type"),
]

coupon_adapter: TypeAdapter[Coupon] = TypeAdapter(Coupon)


def parse_coupon(data: Any) -> Coupon:
    """Validate a persisted coupon document (camelCase or snake_case) into its typed variant."""
    if isinstance(data, CouponBase):
        return data  # type: ignore[return-value]
    return coupon_adapter.validate_python(data)
