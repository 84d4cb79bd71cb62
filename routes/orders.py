import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

import inventory
from database import get_db, now_utc, pagination_info, paginate, serialize_doc, to_object_id
from routes import success
from routes.cart import populate_products
from routes.coupons import consume_coupon, usable_coupon
from schemas import Order as OrderSchema, OrderItem, OrderStatus, Payment, ShippingAddress
from security import get_current_user, public_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

CANCELLABLE = ("pending", "confirmed")
RETURN_WINDOW_DAYS = 7
ORDER_NUMBER_ATTEMPTS = 5


class OrderCreateBody(BaseModel):
    items: List[OrderItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    subtotal: float = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    total_amount: float = Field(..., ge=0)
    payment: Optional[Payment] = None
    coupon_code: Optional[str] = None
    notes: Optional[str] = None


class ReasonBody(BaseModel):
    reason: Optional[str] = None


class StatusUpdateBody(BaseModel):
    status: OrderStatus
    note: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_provider: Optional[str] = None


def next_order_number(db, offset: int = 0) -> str:
    """ORD-YYYYMMDD-NNNN where NNNN counts today's orders."""
    now = now_utc()
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    count = db["order"].count_documents({"created_at": {"$gte": start, "$lt": start + timedelta(days=1)}})
    return f"ORD-{now:%Y%m%d}-{count + 1 + offset:04d}"


def place_order(db, user_id: str, data: dict, status: str = "pending") -> dict:
    """
    Insert an order: compute line totals, number it, seed the status history,
    then take the stock and count the coupon use.
    """
    items = [dict(i) for i in data["items"]]
    for item in items:
        item["total"] = round(item["quantity"] * item["price"], 2)

    stamp = now_utc()
    for attempt in range(ORDER_NUMBER_ATTEMPTS):
        order = OrderSchema(
            order_number=next_order_number(db, attempt),
            user_id=user_id,
            status=status,
            status_history=[{"status": status, "timestamp": stamp, "note": "Order created"}],
            **{**data, "items": items},
        ).model_dump()
        order["created_at"] = stamp
        order["updated_at"] = stamp
        try:
            db["order"].insert_one(order)
            break
        except DuplicateKeyError:
            logger.warning("Order number %s taken, retrying", order["order_number"])
    else:
        raise HTTPException(status_code=500, detail="Could not allocate an order number")

    inventory.apply_order_items(db, items, -1)
    consume_coupon(db, data.get("coupon_code"))
    logger.info("Order %s created for user %s (%s)", order["order_number"], user_id, order["total_amount"])
    return order


def record_status(order: dict, status: str, note: Optional[str] = None) -> dict:
    """Set the status and append the matching history entry."""
    stamp = now_utc()
    order["status"] = status
    order["updated_at"] = stamp
    order.setdefault("status_history", []).append(
        {"status": status, "timestamp": stamp, "note": note or f"Status updated to {status}"}
    )
    return order


def save_order(db, order: dict, *fields):
    update = {f: order.get(f) for f in ("status", "status_history", "updated_at") + fields}
    db["order"].update_one({"_id": order["_id"]}, {"$set": update})


def find_own_order(db, order_id: str, user_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id), "user_id": user_id})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def render_order(db, order: dict, fields=("name", "images")) -> dict:
    out = serialize_doc(order)
    out["items"] = populate_products(db, order.get("items", []), fields)
    return out


@router.get("")
def get_user_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    current: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    query = {"user_id": current["id"]}
    if status:
        query["status"] = status
    total = db["order"].count_documents(query)
    cursor = paginate(db["order"].find(query).sort([("created_at", -1)]), page, limit)
    orders = [render_order(db, o) for o in cursor]
    return success(results=len(orders), orders=orders, pagination=pagination_info(page, limit, total))


@router.get("/{order_id}")
def get_order(order_id: str, current: dict = Depends(get_current_user), db=Depends(get_db)):
    order = find_own_order(db, order_id, current["id"])
    return success(order=render_order(db, order, ("name", "images", "brand", "category")))


@router.post("", status_code=201)
def create_order(body: OrderCreateBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    if body.coupon_code and usable_coupon(db, body.coupon_code) is None:
        raise HTTPException(status_code=400, detail="Invalid coupon code")
    order = place_order(db, current["id"], body.model_dump())
    return success(order=render_order(db, order))


@router.patch("/{order_id}/cancel")
def cancel_order(order_id: str, body: ReasonBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    order = find_own_order(db, order_id, current["id"])
    if order["status"] not in CANCELLABLE:
        raise HTTPException(status_code=400, detail="Order cannot be cancelled at this stage")

    record_status(order, "cancelled")
    order["cancellation_reason"] = body.reason
    save_order(db, order, "cancellation_reason")
    inventory.apply_order_items(db, order["items"], 1)
    logger.info("Order %s cancelled by user %s", order["order_number"], current["id"])
    return success(order=render_order(db, order))


@router.patch("/{order_id}/return")
def request_return(order_id: str, body: ReasonBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    order = find_own_order(db, order_id, current["id"])
    if order["status"] != "delivered":
        raise HTTPException(status_code=400, detail="Only delivered orders can be returned")
    if now_utc() > order["updated_at"] + timedelta(days=RETURN_WINDOW_DAYS):
        raise HTTPException(status_code=400, detail=f"Return period ({RETURN_WINDOW_DAYS} days) has expired")

    record_status(order, "return_requested")
    order["return_reason"] = body.reason
    save_order(db, order, "return_reason")
    body_out = success(order=render_order(db, order))
    body_out["data"]["message"] = "Return request submitted successfully"
    return body_out


@router.get("/{order_id}/invoice")
def download_invoice(order_id: str, current: dict = Depends(get_current_user), db=Depends(get_db)):
    order = find_own_order(db, order_id, current["id"])
    lines = populate_products(db, order["items"], ("name",))
    invoice = {
        "order_number": order["order_number"],
        "date": order["created_at"].isoformat(),
        "customer": current["username"],
        "shipping_address": order.get("shipping_address"),
        "items": [
            {
                "product": (line["product"] or {}).get("name"),
                "variant": line.get("variant"),
                "quantity": line["quantity"],
                "price": line["price"],
                "total": line["total"],
            }
            for line in lines
        ],
        "subtotal": order.get("subtotal"),
        "shipping": order.get("shipping"),
        "tax": order.get("tax"),
        "discount": order.get("discount"),
        "total": order["total_amount"],
    }
    return success(invoice=invoice)


def apply_status_update(db, order_id: str, body: StatusUpdateBody) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    record_status(order, body.status, body.note)
    extra = []
    if body.tracking_number:
        order["tracking_number"] = body.tracking_number
        extra.append("tracking_number")
    if body.shipping_provider:
        order["shipping_provider"] = body.shipping_provider
        extra.append("shipping_provider")
    save_order(db, order, *extra)
    logger.info("Order %s moved to %s", order["order_number"], body.status)
    return order


@router.patch("/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdateBody, db=Depends(get_db), admin: dict = Depends(require_admin)):
    order = apply_status_update(db, order_id, body)
    return success(order=render_order(db, order))


def order_with_user(db, order: dict) -> dict:
    out = render_order(db, order, ("name", "images", "brand"))
    user = db["user"].find_one({"_id": to_object_id(order["user_id"])}) if order.get("user_id") else None
    out["user"] = public_user(user) if user else None
    return out
