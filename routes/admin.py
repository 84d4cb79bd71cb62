"""
Back-office endpoints. Every route here requires an admin user.

Analytics are plain aggregation pipelines; anything a pipeline stage would
only format (labels, rounding, set sizes) is finished in Python.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import List, Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, EmailStr, Field

import inventory
from database import (
    create_document,
    get_db,
    now_utc,
    pagination_info,
    paginate,
    parse_sort,
    populate,
    serialize_doc,
    to_object_id,
)
from routes import success
from routes.coupons import CouponUpdateBody, create_coupon_doc, list_coupons, update_coupon_doc
from routes.orders import StatusUpdateBody, apply_status_update, order_with_user, render_order
from routes.products import (
    ProductUpdateBody,
    create_product_with_inventory,
    soft_delete_product,
    update_product_doc,
)
from routes.reviews import ModerateBody, moderate, pending_reviews, with_product
from schemas import (
    Admin as AdminSchema,
    Brand as BrandSchema,
    Category as CategorySchema,
    Coupon as CouponSchema,
    Product as ProductSchema,
    Profile,
)
from security import get_password_hash, public_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

USER_SORT_FIELDS = {"created_at", "username", "updated_at"}
ORDER_SORT_FIELDS = {"created_at", "total_amount", "status", "order_number", "updated_at"}

PERIOD_FORMATS = {
    "day": ("%Y-%m-%d %H:00", ("year", "month", "day", "hour")),
    "week": ("%Y-%m-%d", ("year", "month", "day")),
    "month": ("%Y-%m-%d", ("year", "month", "day")),
    "year": ("%Y-%m", ("year", "month")),
}
DATE_PARTS = {
    "year": "$year",
    "month": "$month",
    "day": "$dayOfMonth",
    "hour": "$hour",
}


class AdminUserUpdateBody(BaseModel):
    role: Optional[Literal["user", "admin"]] = None
    email: Optional[EmailStr] = None
    profile: Optional[Profile] = None
    is_active: Optional[bool] = None


class InventoryUpdateBody(BaseModel):
    quantity: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)


class CategoryUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: Optional[bool] = None


class AdminCreateBody(BaseModel):
    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["admin", "super_admin", "moderator"] = "admin"
    profile: Optional[Profile] = None
    permissions: List[str] = Field(default_factory=list)


# Analytics

def _revenue(db, match: dict) -> float:
    rows = list(db["order"].aggregate([
        {"$match": match},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]))
    return rows[0]["total"] if rows else 0


def _bucket_label(key: dict, fmt: str) -> str:
    stamp = datetime(key["year"], key.get("month", 1), key.get("day", 1), key.get("hour", 0))
    return stamp.strftime(fmt)


def _month_start(year: int, month: int) -> datetime:
    return datetime(year + (month - 1) // 12, (month - 1) % 12 + 1, 1)


def top_products(db, limit: int = 5) -> list:
    rows = list(db["order"].aggregate([
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "total_sold": {"$sum": "$items.quantity"},
            "total_revenue": {"$sum": "$items.total"},
        }},
        {"$sort": {"total_sold": -1}},
        {"$limit": limit},
    ]))
    out = []
    for row in rows:
        product = db["product"].find_one({"_id": ObjectId(row["_id"])}) if ObjectId.is_valid(row["_id"]) else None
        if not product:
            continue
        images = product.get("images") or []
        out.append({
            "id": row["_id"],
            "name": product.get("name"),
            "total_sold": row["total_sold"],
            "total_revenue": row["total_revenue"],
            "image": images[0].get("url") if images else None,
        })
    return out


@router.get("/dashboard")
def get_dashboard_stats(db=Depends(get_db)):
    now = now_utc()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = start_of_today - timedelta(days=7)
    start_of_month = start_of_today.replace(day=1)
    start_of_year = start_of_today.replace(month=1, day=1)
    delivered = {"status": "delivered"}

    stats = {
        "total_users": db["user"].count_documents({}),
        "total_products": db["product"].count_documents({}),
        "total_orders": db["order"].count_documents({}),
        "total_revenue": _revenue(db, delivered),
        "today_orders": db["order"].count_documents({"created_at": {"$gte": start_of_today}}),
        "today_revenue": _revenue(db, {**delivered, "created_at": {"$gte": start_of_today}}),
        "weekly_revenue": _revenue(db, {**delivered, "created_at": {"$gte": start_of_week}}),
        "monthly_revenue": _revenue(db, {**delivered, "created_at": {"$gte": start_of_month}}),
        "yearly_revenue": _revenue(db, {**delivered, "created_at": {"$gte": start_of_year}}),
        "low_stock_products": db["inventory"].count_documents({"is_low_stock": True}),
        "pending_reviews": db["review"].count_documents({"is_approved": False}),
    }

    status_stats = [
        {"status": row["_id"], "count": row["count"], "revenue": row["revenue"]}
        for row in db["order"].aggregate([
            {"$group": {"_id": "$status", "count": {"$sum": 1}, "revenue": {"$sum": "$total_amount"}}},
        ])
    ]

    recent = [serialize_doc(o) for o in db["order"].find().sort([("created_at", -1)]).limit(5)]
    populate(db, recent, "user_id", "user", ("username",), "user")

    return success(
        stats=stats,
        order_status_stats=status_stats,
        top_products=top_products(db),
        recent_orders=recent,
    )


@router.get("/analytics/sales")
def get_sales_analytics(
    period: Literal["day", "week", "month", "year"] = "month",
    year: Optional[int] = Query(None, ge=1970, le=9999),
    db=Depends(get_db),
):
    now = now_utc()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    match = {"status": "delivered"}
    if period == "day":
        match["created_at"] = {"$gte": start_of_today}
    elif period == "week":
        match["created_at"] = {"$gte": now - timedelta(days=7)}
    elif period == "month":
        match["created_at"] = {"$gte": start_of_today.replace(day=1)}
    else:
        year = year or now.year
        match["created_at"] = {"$gte": datetime(year, 1, 1), "$lt": datetime(year + 1, 1, 1)}

    fmt, parts = PERIOD_FORMATS[period]
    rows = db["order"].aggregate([
        {"$match": match},
        {"$group": {
            "_id": {part: {DATE_PARTS[part]: "$created_at"} for part in parts},
            "revenue": {"$sum": "$total_amount"},
            "orders": {"$sum": 1},
            "average_order_value": {"$avg": "$total_amount"},
            "customers": {"$addToSet": "$user_id"},
        }},
    ])
    sales = sorted(
        (
            {
                "date": _bucket_label(row["_id"], fmt),
                "revenue": row["revenue"],
                "orders": row["orders"],
                "average_order_value": round(row["average_order_value"] or 0, 2),
                "unique_customers": len(row["customers"]),
            }
            for row in rows
        ),
        key=lambda r: r["date"],
    )

    comparison = None
    if period == "month":
        this_month = start_of_today.replace(day=1)
        last_month = _month_start(this_month.year, this_month.month - 1)
        prev = list(db["order"].aggregate([
            {"$match": {"status": "delivered", "created_at": {"$gte": last_month, "$lt": this_month}}},
            {"$group": {"_id": None, "revenue": {"$sum": "$total_amount"}, "orders": {"$sum": 1}}},
        ]))
        if prev:
            comparison = {"revenue": prev[0]["revenue"], "orders": prev[0]["orders"]}

    return success(period=period, sales_data=sales, comparison=comparison)


@router.get("/analytics/customers")
def get_customer_analytics(db=Depends(get_db)):
    growth_rows = db["user"].aggregate([
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "new_customers": {"$sum": 1},
        }},
    ])
    growth = sorted(
        ({"month": _bucket_label(r["_id"], "%Y-%m"), "new_customers": r["new_customers"]} for r in growth_rows),
        key=lambda r: r["month"],
    )[-12:]

    top = list(db["order"].aggregate([
        {"$match": {"status": "delivered"}},
        {"$group": {"_id": "$user_id", "total_spent": {"$sum": "$total_amount"}, "order_count": {"$sum": 1}}},
        {"$sort": {"total_spent": -1}},
        {"$limit": 10},
    ]))
    top_customers = []
    for row in top:
        user = db["user"].find_one({"_id": ObjectId(row["_id"])}) if ObjectId.is_valid(row["_id"] or "") else None
        if not user:
            continue
        top_customers.append({
            "id": row["_id"],
            "username": user.get("username"),
            "total_spent": row["total_spent"],
            "order_count": row["order_count"],
            "joined": user.get("created_at").isoformat() if user.get("created_at") else None,
        })

    total_customers = db["user"].count_documents({})
    repeat_customers = len(list(db["order"].aggregate([
        {"$group": {"_id": "$user_id", "order_count": {"$sum": 1}}},
        {"$match": {"order_count": {"$gt": 1}}},
    ])))
    rate = round(repeat_customers / total_customers * 100, 2) if total_customers else 0

    return success(
        customer_growth=growth,
        top_customers=top_customers,
        retention={
            "total_customers": total_customers,
            "repeat_customers": repeat_customers,
            "retention_rate": rate,
        },
    )


# Users

@router.get("/users")
def get_all_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    sort: str = "-created_at",
    db=Depends(get_db),
):
    query = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [
            {"username": pattern},
            {"profile.first_name": pattern},
            {"profile.last_name": pattern},
        ]
    total = db["user"].count_documents(query)
    cursor = paginate(db["user"].find(query).sort(parse_sort(sort, USER_SORT_FIELDS)), page, limit)
    users = [public_user(u) for u in cursor]
    return success(results=len(users), users=users, pagination=pagination_info(page, limit, total))


@router.get("/users/{user_id}")
def get_user_details(user_id: str, db=Depends(get_db)):
    user = db["user"].find_one({"_id": to_object_id(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    orders = [serialize_doc(o) for o in db["order"].find({"user_id": user_id}).sort([("created_at", -1)]).limit(10)]
    reviews = with_product(db, list(db["review"].find({"user_id": user_id}).sort([("created_at", -1)]).limit(10)))
    return success(user=public_user(user), orders=orders, reviews=reviews)


@router.patch("/users/{user_id}")
def update_user(user_id: str, body: AdminUserUpdateBody, db=Depends(get_db)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    res = db["user"].update_one({"_id": to_object_id(user_id)}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return success(user=public_user(db["user"].find_one({"_id": to_object_id(user_id)})))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, db=Depends(get_db)):
    res = db["user"].delete_one({"_id": to_object_id(user_id)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s deleted", user_id)
    return Response(status_code=204)


# Products

@router.get("/products")
def get_all_products_admin(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    brand: Optional[str] = None,
    status: Optional[Literal["active", "inactive"]] = None,
    search: Optional[str] = None,
    db=Depends(get_db),
):
    query = {}
    if category:
        query["category"] = category
    if brand:
        query["brand"] = brand
    if status:
        query["is_active"] = status == "active"
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"description": pattern}]
    total = db["product"].count_documents(query)
    cursor = paginate(db["product"].find(query).sort([("created_at", -1)]), page, limit)
    products = [serialize_doc(p) for p in cursor]
    return success(results=len(products), products=products, pagination=pagination_info(page, limit, total))


@router.get("/products/{product_id}")
def get_product_details(product_id: str, db=Depends(get_db)):
    product = db["product"].find_one({"_id": to_object_id(product_id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return success(product=serialize_doc(product))


@router.post("/products", status_code=201)
def create_product(body: ProductSchema, db=Depends(get_db)):
    return success(product=serialize_doc(create_product_with_inventory(db, body)))


@router.patch("/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, db=Depends(get_db)):
    return success(product=serialize_doc(update_product_doc(db, product_id, body)))


@router.delete("/products/{product_id}")
def delete_product(product_id: str, db=Depends(get_db)):
    return success(product=serialize_doc(soft_delete_product(db, product_id)))


# Orders

@router.get("/orders")
def get_all_orders_admin(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = "-created_at",
    db=Depends(get_db),
):
    query = {}
    if status:
        query["status"] = status
    if search:
        query["order_number"] = {"$regex": re.escape(search), "$options": "i"}
    total = db["order"].count_documents(query)
    cursor = paginate(db["order"].find(query).sort(parse_sort(sort, ORDER_SORT_FIELDS)), page, limit)
    orders = [serialize_doc(o) for o in cursor]
    populate(db, orders, "user_id", "user", ("username",), "user")
    return success(results=len(orders), orders=orders, pagination=pagination_info(page, limit, total))


@router.get("/orders/{order_id}")
def get_order_details(order_id: str, db=Depends(get_db)):
    order = db["order"].find_one({"_id": to_object_id(order_id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return success(order=order_with_user(db, order))


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdateBody, db=Depends(get_db)):
    return success(order=render_order(db, apply_status_update(db, order_id, body)))


# Inventory

@router.get("/inventory")
def get_inventory(
    low_stock: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db=Depends(get_db),
):
    query = {"is_low_stock": True} if low_stock else {}
    total = db["inventory"].count_documents(query)
    cursor = paginate(db["inventory"].find(query).sort([("quantity", 1)]), page, limit)
    rows = [serialize_doc(r) for r in cursor]
    populate(db, rows, "product_id", "product", ("name", "images"), "product")
    return success(results=len(rows), inventory=rows, pagination=pagination_info(page, limit, total))


@router.patch("/inventory/{inventory_id}")
def update_inventory(inventory_id: str, body: InventoryUpdateBody, db=Depends(get_db)):
    row = db["inventory"].find_one({"_id": to_object_id(inventory_id)})
    if not row:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    update = body.model_dump(exclude_none=True)
    row.update(update)
    update["last_restocked"] = now_utc()
    update["updated_at"] = update["last_restocked"]
    update["is_low_stock"] = inventory.is_low_stock(row["quantity"], row["low_stock_threshold"])
    db["inventory"].update_one({"_id": row["_id"]}, {"$set": update})
    out = serialize_doc(db["inventory"].find_one({"_id": row["_id"]}))
    populate(db, [out], "product_id", "product", ("name", "images"), "product")
    return success(inventory=out)


# Categories and brands

@router.get("/categories")
def get_all_categories(db=Depends(get_db)):
    return success(categories=[serialize_doc(c) for c in db["category"].find().sort([("name", 1)])])


@router.post("/categories", status_code=201)
def create_category(body: CategorySchema, db=Depends(get_db)):
    cid = create_document(db, "category", body)
    return success(category=serialize_doc(db["category"].find_one({"_id": ObjectId(cid)})))


@router.patch("/categories/{category_id}")
def update_category(category_id: str, body: CategoryUpdateBody, db=Depends(get_db)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    res = db["category"].update_one({"_id": to_object_id(category_id)}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    return success(category=serialize_doc(db["category"].find_one({"_id": to_object_id(category_id)})))


@router.post("/brands", status_code=201)
def create_brand(body: BrandSchema, db=Depends(get_db)):
    bid = create_document(db, "brand", body)
    return success(brand=serialize_doc(db["brand"].find_one({"_id": ObjectId(bid)})))


# Reviews

@router.get("/reviews/pending")
def get_pending_reviews(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), db=Depends(get_db)):
    reviews, pagination = pending_reviews(db, page, limit)
    return success(results=len(reviews), reviews=reviews, pagination=pagination)


@router.patch("/reviews/{review_id}/moderate")
def moderate_review(review_id: str, body: ModerateBody, admin: dict = Depends(require_admin), db=Depends(get_db)):
    return success(review=serialize_doc(moderate(db, review_id, body, admin)))


# Coupons

@router.get("/coupons")
def get_all_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    active: Optional[bool] = None,
    db=Depends(get_db),
):
    query = {} if active is None else {"is_active": active}
    coupons, pagination = list_coupons(db, query, page, limit)
    return success(results=len(coupons), coupons=coupons, pagination=pagination)


@router.post("/coupons", status_code=201)
def create_coupon(body: CouponSchema, db=Depends(get_db)):
    return success(coupon=serialize_doc(create_coupon_doc(db, body)))


@router.patch("/coupons/{coupon_id}")
def update_coupon(coupon_id: str, body: CouponUpdateBody, db=Depends(get_db)):
    return success(coupon=serialize_doc(update_coupon_doc(db, coupon_id, body)))


# Staff accounts

@router.get("/admins")
def get_admins(db=Depends(get_db)):
    return success(admins=[public_user(a) for a in db["admin"].find()])


@router.post("/admins", status_code=201)
def create_admin(body: AdminCreateBody, db=Depends(get_db)):
    if db["admin"].find_one({"username": body.username}):
        raise HTTPException(status_code=400, detail="Username already exists")
    admin = AdminSchema(
        username=body.username,
        email=body.email,
        password_hash=get_password_hash(body.password),
        role=body.role,
        profile=body.profile or Profile(),
        permissions=body.permissions,
    )
    aid = create_document(db, "admin", admin)
    logger.info("Admin account %s created", body.username)
    return success(admin={
        "id": aid,
        "username": admin.username,
        "email": admin.email,
        "role": admin.role,
        "profile": admin.profile.model_dump(),
    })
