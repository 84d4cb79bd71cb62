from datetime import timedelta

import pytest

from database import now_utc
from pricing import calculate_discount, calculate_shipping, checkout_summary, coupon_is_valid


@pytest.mark.parametrize(
    "subtotal, state, expected",
    [
        (1000, "Karnataka", 0),
        (999, "Karnataka", 50),
        (500, "Nagaland", 150),
        (2000, "Nagaland", 0),
    ],
)
def test_shipping(subtotal, state, expected):
    assert calculate_shipping(subtotal, {"state": state}) == expected


def test_percentage_discount_is_capped():
    coupon = {"discount_type": "percentage", "discount_value": 50, "maximum_discount": 200}
    assert calculate_discount(coupon, 1000) == 200
    assert calculate_discount({"discount_type": "percentage", "discount_value": 10}, 1234.5) == 123.45


def test_fixed_discount_never_exceeds_amount():
    assert calculate_discount({"discount_type": "fixed", "discount_value": 300}, 120) == 120


def test_coupon_validity_window_and_usage():
    now = now_utc()
    base = {"is_active": True, "used_count": 0}
    assert coupon_is_valid(base, now)
    assert not coupon_is_valid({**base, "valid_until": now - timedelta(days=1)}, now)
    assert not coupon_is_valid({**base, "valid_from": now + timedelta(days=1)}, now)
    assert not coupon_is_valid({**base, "usage_limit": 2, "used_count": 2}, now)
    assert not coupon_is_valid({**base, "is_active": False}, now)


def test_checkout_summary():
    summary = checkout_summary(500, {"state": "Karnataka"})
    assert summary == {"subtotal": 500, "shipping": 50, "tax": 90.0, "discount": 0, "total": 640.0}


def test_checkout_summary_minimum_amount():
    coupon = {"is_active": True, "discount_type": "fixed", "discount_value": 100, "minimum_amount": 1000}
    assert checkout_summary(500, None, coupon)["discount"] == 0
    summary = checkout_summary(1500, None, coupon)
    assert summary["discount"] == 100
    assert summary["total"] == 1670.0
