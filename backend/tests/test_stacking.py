from decimal import Decimal

from coupon_engine.schemas.discount import ApplicableCoupon
from coupon_engine.services import stacking


def _entry(coupon_factory, code: str, amount: str, *, stackable: bool, priority: int = 0) -> ApplicableCoupon:
    coupon = coupon_factory("cart_wise", id=code.lower(), code=code, stackable=stackable, priority=priority)
    return ApplicableCoupon(
        coupon=coupon,
        discount_amount=Decimal(amount),
        free_shipping=False,
        reason="Cart meets minimum requirements",
        priority=priority,
        stackable=stackable,
    )


def _codes(selected: list[ApplicableCoupon]) -> list[str]:
    return [entry.coupon.code for entry in selected]


def test_non_stackable_beats_stack_when_larger(coupon_factory) -> None:
    candidates = [
        _entry(coupon_factory, "STACK40", "40", stackable=True),
        _entry(coupon_factory, "STACK50", "50", stackable=True),
        _entry(coupon_factory, "STACK25", "25", stackable=True),
        _entry(coupon_factory, "SOLO125", "125", stackable=False),
    ]
    assert _codes(stacking.select_best(candidates)) == ["SOLO125"]


def test_stack_beats_non_stackable_when_larger(coupon_factory) -> None:
    candidates = [
        _entry(coupon_factory, "STACK40", "40", stackable=True, priority=1),
        _entry(coupon_factory, "STACK50", "50", stackable=True, priority=2),
        _entry(coupon_factory, "SOLO80", "80", stackable=False),
    ]
    assert _codes(stacking.select_best(candidates)) == ["STACK50", "STACK40"]


def test_only_non_stackable_returns_single_best(coupon_factory) -> None:
    candidates = [
        _entry(coupon_factory, "SOLO10", "10", stackable=False),
        _entry(coupon_factory, "SOLO30", "30", stackable=False),
        _entry(coupon_factory, "SOLO20", "20", stackable=False),
    ]
    assert _codes(stacking.select_best(candidates)) == ["SOLO30"]
    assert stacking.select_best([]) == []


def test_combination_size_is_bounded(coupon_factory) -> None:
    candidates = [_entry(coupon_factory, f"STACK{i}", "10", stackable=True) for i in range(5)]
    selected = stacking.select_best(candidates)
    assert len(selected) == stacking.MAX_STACK_SIZE == 3
    assert stacking.combination_score(selected) == Decimal("30")


def test_ties_keep_first_combination_in_priority_order(coupon_factory) -> None:
    candidates = [
        _entry(coupon_factory, "LOWPRIO", "20", stackable=True, priority=1),
        _entry(coupon_factory, "HIGHPRIO", "20", stackable=True, priority=5),
    ]
    selected = stacking.select_best(candidates, max_size=1)
    assert _codes(selected) == ["HIGHPRIO"]

    tie_with_solo = [
        _entry(coupon_factory, "STACK", "30", stackable=True),
        _entry(coupon_factory, "SOLO", "30", stackable=False),
    ]
    assert _codes(stacking.select_best(tie_with_solo)) == ["STACK"]


def test_candidate_combinations_enumeration(coupon_factory) -> None:
    stackable = [_entry(coupon_factory, f"STACK{i}", "1", stackable=True) for i in range(4)]
    solo = [_entry(coupon_factory, "SOLO", "1", stackable=False)]
    combos = list(stacking.candidate_combinations(stackable, solo))
    # C(4,1) + C(4,2) + C(4,3) stackable combinations plus one singleton
    assert len(combos) == 4 + 6 + 4 + 1
    assert combos[-1] == (solo[0],)


def test_chosen_total_at_least_any_single_candidate(coupon_factory) -> None:
    amounts = [("A1", "15", True), ("B2", "70", False), ("C3", "35", True), ("D4", "22", True), ("E5", "5", False)]
    candidates = [_entry(coupon_factory, f"CODE{code}", amount, stackable=flag) for code, amount, flag in amounts]
    selected = stacking.select_best(candidates)
    best_total = stacking.combination_score(selected)
    assert all(best_total >= entry.discount_amount for entry in candidates)
    assert best_total == Decimal("72")


def test_zero_discount_candidates_select_nothing(coupon_factory) -> None:
    candidates = [
        _entry(coupon_factory, "ZERO1", "0.00", stackable=True),
        _entry(coupon_factory, "ZERO2", "0.00", stackable=True),
        _entry(coupon_factory, "SOLO0", "0.00", stackable=False),
    ]
    assert stacking.select_best(candidates) == []

    with_one_positive = [*candidates, _entry(coupon_factory, "SOLO5", "5", stackable=False)]
    assert _codes(stacking.select_best(with_one_positive)) == ["SOLO5"]
