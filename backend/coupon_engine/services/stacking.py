from __future__ import annotations

import logging
from decimal import Decimal
from itertools import combinations
from typing import Iterator, Sequence

from coupon_engine.schemas.discount import ApplicableCoupon

logger = logging.getLogger(__name__)

# Largest number of stackable coupons combined on one cart.
MAX_STACK_SIZE = 3


def combination_score(combo: Sequence[ApplicableCoupon]) -> Decimal:
    # Independent discounts summed; not recomputed against the discounted cart.
    return sum((entry.discount_amount for entry in combo), start=Decimal("0.00"))


def candidate_combinations(
    stackable: Sequence[ApplicableCoupon], non_stackable: Sequence[ApplicableCoupon], *, max_size: int = MAX_STACK_SIZE
) -> Iterator[tuple[ApplicableCoupon, ...]]:
    ordered = sorted(stackable, key=lambda entry: entry.priority, reverse=True)
    for size in range(1, min(max_size, len(ordered)) + 1):
        yield from combinations(ordered, size)
    for entry in non_stackable:
        yield (entry,)


def select_best(applicable: Sequence[ApplicableCoupon], *, max_size: int = MAX_STACK_SIZE) -> list[ApplicableCoupon]:
    """Pick the single best non-stackable coupon or the best bounded combination of stackable ones.

    Ties keep the first combination found, so higher-priority stackable coupons win over equal-scoring
    alternatives and stackable combinations win over equal-scoring non-stackable coupons. Only a
    positive total is selected; when every candidate discounts nothing the result is empty.
    """
    stackable = [entry for entry in applicable if entry.stackable]
    non_stackable = [entry for entry in applicable if not entry.stackable]

    if not stackable:
        if not non_stackable:
            return []
        return [max(non_stackable, key=lambda entry: entry.discount_amount)]

    best: tuple[ApplicableCoupon, ...] = ()
    best_score = Decimal("0.00")
    evaluated = 0
    for combo in candidate_combinations(stackable, non_stackable, max_size=max_size):
        evaluated += 1
        score = combination_score(combo)
        if score > best_score:
            best, best_score = combo, score

    logger.info(
        "stacking_selected",
        extra={
            "candidates": len(applicable),
            "combinations_evaluated": evaluated,
            "selected_codes": [entry.coupon.code for entry in best],
            "total_discount": best_score,
        },
    )
    return list(best)
