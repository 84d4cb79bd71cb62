from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from database import get_db
from pricing import checkout_summary
from routes import success
from routes.cart import populate_products
from routes.coupons import find_active_coupon
from security import get_current_user

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


class CheckoutBody(BaseModel):
    coupon_code: Optional[str] = None
    shipping_address_id: Optional[str] = None


def pick_shipping_address(user: dict, address_id: Optional[str]):
    addresses = user.get("addresses", [])
    if address_id:
        return next((a for a in addresses if a.get("id") == address_id), None)
    return next((a for a in addresses if a.get("is_default")), None)


@router.post("/calculate")
def calculate_checkout(body: CheckoutBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    cart = db["cart"].find_one({"user_id": current["id"]})
    if not cart or not cart.get("items"):
        raise HTTPException(status_code=400, detail="Cart is empty")

    address = pick_shipping_address(current, body.shipping_address_id)
    if not address:
        raise HTTPException(status_code=400, detail="No shipping address found")

    coupon = find_active_coupon(db, body.coupon_code)
    summary = checkout_summary(cart.get("total_price", 0), address, coupon)

    applied = None
    if coupon and summary["discount"] > 0:
        applied = {"code": coupon["code"], "discount": summary["discount"]}

    return success(
        checkout_summary=summary,
        shipping_address=address,
        cart_items=populate_products(db, cart["items"]),
        applied_coupon=applied,
    )
