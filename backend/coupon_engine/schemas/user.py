from datetime import datetime

from pydantic import Field, field_validator

from coupon_engine.schemas.common import DocumentModel, as_utc


class User(DocumentModel):
    """Shopper profile supplied with a request; only read for eligibility and loyalty multipliers."""

    type: str | None = None
    is_first_time: bool | None = None
    loyalty_level: int = Field(default=0, ge=0)
    order_count: int = Field(default=0, ge=0)
    registration_date: datetime | None = None

    @field_validator("registration_date")
    @classmethod
    def _utc_registration(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)
