class CouponEngineError(RuntimeError):
    pass


class CouponNotApplicableError(CouponEngineError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Coupon not applicable: {reason}")
        self.reason = reason


class DiscountComputationError(CouponEngineError):
    pass
