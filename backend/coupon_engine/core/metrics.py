from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_coupon_evaluated() -> None:
    _inc("coupons_evaluated")


def record_coupon_applicable() -> None:
    _inc("coupons_applicable")


def record_coupon_applied() -> None:
    _inc("coupons_applied")


def record_coupon_rejected() -> None:
    _inc("coupons_rejected")


def record_discount_failure() -> None:
    _inc("discount_failures")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
