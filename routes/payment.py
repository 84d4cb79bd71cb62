import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
import payments
from database import get_db, now_utc
from routes import success
from routes.orders import place_order, record_status, render_order, save_order
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["payment"])

PAYMENT_METHODS = [
    {
        "id": "card",
        "name": "Credit/Debit Card",
        "description": "Pay with Visa, MasterCard, or Rupay",
        "supported_cards": ["visa", "mastercard", "rupay"],
    },
    {
        "id": "upi",
        "name": "UPI",
        "description": "Pay using any UPI app",
        "supported_apps": ["gpay", "phonepe", "paytm", "bhim"],
    },
    {
        "id": "netbanking",
        "name": "Net Banking",
        "description": "Pay using your bank account",
    },
]


class CreateIntentBody(BaseModel):
    checkout_data: Optional[dict] = None


class PaymentSuccessBody(BaseModel):
    payment_intent_id: str


class PaymentFailureBody(BaseModel):
    payment_intent_id: Optional[str] = None
    error: Optional[dict] = None


@router.get("/methods")
def get_payment_methods(current: dict = Depends(get_current_user)):
    return success(payment_methods=PAYMENT_METHODS)


@router.post("/create-intent")
def create_payment_intent(body: CreateIntentBody, current: dict = Depends(get_current_user)):
    checkout = body.checkout_data
    if not checkout or not checkout.get("total") or not checkout.get("shipping_address"):
        raise HTTPException(status_code=400, detail="Invalid checkout data")

    # Stripe wants the smallest currency unit
    amount = int(round(float(checkout["total"]) * 100))
    intent = payments.create_payment_intent(
        amount,
        config.PAYMENT_CURRENCY,
        {"user_id": current["id"], "checkout_data": json.dumps(checkout)},
    )
    return success(client_secret=intent.get("client_secret"), payment_intent_id=intent.get("id"))


@router.post("/success")
def handle_payment_success(body: PaymentSuccessBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    existing = db["order"].find_one({
        "payment.payment_intent_id": body.payment_intent_id,
        "user_id": current["id"],
    })
    if existing:
        return success(order=render_order(db, existing), message="Payment already processed")

    intent = payments.retrieve_payment_intent(body.payment_intent_id)
    metadata = intent.get("metadata") or {}
    if metadata.get("user_id", current["id"]) != current["id"]:
        logger.warning("User %s tried to claim payment intent %s", current["id"], body.payment_intent_id)
        raise HTTPException(status_code=404, detail="Payment not found")
    if intent.get("status") != "succeeded":
        logger.warning("Payment intent %s not successful: %s", body.payment_intent_id, intent.get("status"))
        raise HTTPException(status_code=400, detail="Payment not successful")

    checkout = json.loads(metadata.get("checkout_data") or "{}")
    user_id = current["id"]

    cart = db["cart"].find_one({"user_id": user_id})
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    if not cart.get("items"):
        raise HTTPException(status_code=400, detail="Cart is empty")

    applied = checkout.get("applied_coupon") or {}
    order = place_order(
        db,
        user_id,
        {
            "items": [
                {
                    "product_id": i["product_id"],
                    "variant": i["variant"],
                    "quantity": i["quantity"],
                    "price": i["price"],
                }
                for i in cart["items"]
            ],
            "total_amount": checkout["total"],
            "subtotal": checkout.get("subtotal", 0),
            "shipping": checkout.get("shipping", 0),
            "tax": checkout.get("tax", 0),
            "discount": checkout.get("discount", 0),
            "shipping_address": checkout["shipping_address"],
            "coupon_code": applied.get("code"),
            "payment": {
                "method": "card",
                "payment_intent_id": intent["id"],
                "status": "completed",
                "amount": checkout["total"],
            },
        },
        status="confirmed",
    )

    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": [], "total_items": 0, "total_price": 0, "updated_at": now_utc()}},
    )
    logger.info("Payment %s succeeded, order %s", intent["id"], order["order_number"])
    return success(order=render_order(db, order), message="Payment successful and order created")


@router.post("/failure")
def handle_payment_failure(body: PaymentFailureBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    if body.payment_intent_id:
        order = db["order"].find_one({"payment.payment_intent_id": body.payment_intent_id, "user_id": current["id"]})
        if order:
            record_status(order, "payment_failed")
            order["payment"]["status"] = "failed"
            save_order(db, order, "payment")
    message = (body.error or {}).get("message") or "Payment failed"
    logger.warning("Payment failure reported for %s: %s", body.payment_intent_id, message)
    return JSONResponse(status_code=400, content={"status": "fail", "message": message})
