"""Checkout arithmetic: shipping, tax and coupon discounts."""
from datetime import datetime
from typing import Optional

from database import now_utc

TAX_RATE = 0.18
FREE_SHIPPING_THRESHOLD = 999
STANDARD_SHIPPING = 50
REMOTE_SURCHARGE = 100
REMOTE_STATES = {"Andaman and Nicobar Islands", "Lakshadweep", "Mizoram", "Nagaland"}


def calculate_shipping(subtotal: float, address: Optional[dict]) -> float:
    if subtotal > FREE_SHIPPING_THRESHOLD:
        return 0
    if address and address.get("state") in REMOTE_STATES:
        return STANDARD_SHIPPING + REMOTE_SURCHARGE
    return STANDARD_SHIPPING


def calculate_tax(subtotal: float) -> float:
    return round(subtotal * TAX_RATE, 2)


def coupon_is_valid(coupon: dict, now: Optional[datetime] = None) -> bool:
    now = now or now_utc()
    if not coupon.get("is_active", False):
        return False
    valid_from = coupon.get("valid_from")
    valid_until = coupon.get("valid_until")
    if valid_from and now < valid_from:
        return False
    if valid_until and now > valid_until:
        return False
    limit = coupon.get("usage_limit")
    if limit is not None and coupon.get("used_count", 0) >= limit:
        return False
    return True


def calculate_discount(coupon: dict, amount: float) -> float:
    value = coupon.get("discount_value", 0)
    if coupon.get("discount_type") == "fixed":
        discount = min(value, amount)
    else:
        discount = amount * value / 100
        cap = coupon.get("maximum_discount")
        if cap is not None:
            discount = min(discount, cap)
    return round(discount, 2)


def checkout_summary(subtotal: float, address: Optional[dict], coupon: Optional[dict] = None) -> dict:
    shipping = calculate_shipping(subtotal, address)
    tax = calculate_tax(subtotal)
    discount = 0
    if coupon and coupon_is_valid(coupon) and subtotal >= coupon.get("minimum_amount", 0):
        discount = calculate_discount(coupon, subtotal)
    total = round(subtotal + shipping + tax - discount, 2)
    return {
        "subtotal": subtotal,
        "shipping": shipping,
        "tax": tax,
        "discount": discount,
        "total": total,
    }
