from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: Any
    code: str | None = None
    # Eligibility reason when a coupon was rejected.
    reason: str | None = None
