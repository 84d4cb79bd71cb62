import logging
from typing import Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

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
from schemas import Review as ReviewSchema
from security import get_current_user, public_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])

REVIEW_SORT_FIELDS = {"created_at", "rating", "helpful_count"}


class ReviewCreateBody(BaseModel):
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = Field(None, max_length=1000)


class ModerateBody(BaseModel):
    action: Optional[Literal["approve", "reject"]] = None
    response: Optional[str] = None


def update_product_rating(db, product_id: str):
    """Recompute rating.average/count on the product from approved reviews."""
    stats = list(db["review"].aggregate([
        {"$match": {"product_id": product_id, "is_approved": True}},
        {"$group": {"_id": "$product_id", "average": {"$avg": "$rating"}, "count": {"$sum": 1}}},
    ]))
    average, count = (round(stats[0]["average"], 1), stats[0]["count"]) if stats else (0, 0)
    if ObjectId.is_valid(product_id):
        db["product"].update_one(
            {"_id": ObjectId(product_id)},
            {"$set": {"rating.average": average, "rating.count": count}},
        )


def rating_summary(db, product_id: str) -> dict:
    summary = {"average": 0, "count": 0, "1": 0, "2": 0, "3": 0, "4": 0, "5": 0}
    buckets = db["review"].aggregate([
        {"$match": {"product_id": product_id, "is_approved": True}},
        {"$group": {"_id": "$rating", "count": {"$sum": 1}}},
    ])
    weighted = 0
    for bucket in buckets:
        summary[str(bucket["_id"])] = bucket["count"]
        summary["count"] += bucket["count"]
        weighted += bucket["_id"] * bucket["count"]
    if summary["count"]:
        summary["average"] = round(weighted / summary["count"], 1)
    return summary


def with_user(db, reviews: list) -> list:
    return populate(db, [serialize_doc(r) for r in reviews], "user_id", "user", ("username", "profile"), "user")


def with_product(db, reviews: list) -> list:
    return populate(db, [serialize_doc(r) for r in reviews], "product_id", "product", ("name", "images"), "product")


def pending_reviews(db, page: int, limit: int):
    query = {"is_approved": False}
    total = db["review"].count_documents(query)
    cursor = paginate(db["review"].find(query).sort([("created_at", 1)]), page, limit)
    reviews = with_product(db, list(cursor))
    populate(db, reviews, "user_id", "user", ("username",), "user")
    return reviews, pagination_info(page, limit, total)


def moderate(db, review_id: str, body: ModerateBody, admin: dict) -> dict:
    review = db["review"].find_one({"_id": to_object_id(review_id)})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    update = {"updated_at": now_utc()}
    if body.action == "approve":
        update["is_approved"] = True
    elif body.action == "reject":
        update["is_approved"] = False
    if body.response:
        update["admin_response"] = {
            "comment": body.response,
            "responded_at": now_utc(),
            "responded_by": admin["id"],
        }
    db["review"].update_one({"_id": review["_id"]}, {"$set": update})
    update_product_rating(db, review["product_id"])
    logger.info("Review %s moderated: %s", review_id, body.action)
    return db["review"].find_one({"_id": review["_id"]})


@router.get("/product/{product_id}")
def get_product_reviews(
    product_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "-created_at",
    db=Depends(get_db),
):
    query = {"product_id": product_id, "is_approved": True}
    total = db["review"].count_documents(query)
    cursor = paginate(db["review"].find(query).sort(parse_sort(sort, REVIEW_SORT_FIELDS)), page, limit)
    return success(
        reviews=with_user(db, list(cursor)),
        rating_summary=rating_summary(db, product_id),
        pagination=pagination_info(page, limit, total),
    )


@router.get("/my-reviews")
def get_user_reviews(current: dict = Depends(get_current_user), db=Depends(get_db)):
    reviews = with_product(db, list(db["review"].find({"user_id": current["id"]}).sort([("created_at", -1)])))
    return success(results=len(reviews), reviews=reviews)


@router.post("", status_code=201)
def create_review(body: ReviewCreateBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    order = db["order"].find_one({
        "_id": to_object_id(body.order_id),
        "user_id": current["id"],
        "status": "delivered",
    })
    if not order:
        raise HTTPException(status_code=400, detail="Order not found or not delivered")
    if not any(item["product_id"] == body.product_id for item in order.get("items", [])):
        raise HTTPException(status_code=400, detail="Product not found in this order")

    duplicate_msg = "You have already reviewed this product for this order"
    if db["review"].find_one({"user_id": current["id"], "product_id": body.product_id, "order_id": body.order_id}):
        raise HTTPException(status_code=400, detail=duplicate_msg)

    review = ReviewSchema(
        user_id=current["id"],
        product_id=body.product_id,
        order_id=body.order_id,
        rating=body.rating,
        title=body.title.strip() if body.title else None,
        comment=body.comment.strip() if body.comment else None,
        is_verified=True,
    )
    try:
        rid = create_document(db, "review", review)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail=duplicate_msg)
    update_product_rating(db, body.product_id)

    doc = db["review"].find_one({"_id": ObjectId(rid)})
    out = serialize_doc(doc)
    out["user"] = {"id": current["id"], "username": current.get("username"), "profile": public_user(current).get("profile")}
    return success(review=out)


@router.patch("/{review_id}/helpful")
def mark_helpful(review_id: str, current: dict = Depends(get_current_user), db=Depends(get_db)):
    review = db["review"].find_one({"_id": to_object_id(review_id)})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")

    helpful = review.get("helpful", [])
    already = current["id"] in helpful
    if already:
        helpful = [u for u in helpful if u != current["id"]]
    else:
        helpful = helpful + [current["id"]]
    count = max(0, review.get("helpful_count", 0) + (-1 if already else 1))

    db["review"].update_one(
        {"_id": review["_id"]},
        {"$set": {"helpful": helpful, "helpful_count": count, "updated_at": now_utc()}},
    )
    review = db["review"].find_one({"_id": review["_id"]})
    return success(review=serialize_doc(review), action="removed" if already else "added")


# Admin
@router.get("/admin/pending")
def get_pending_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db=Depends(get_db),
    admin: dict = Depends(require_admin),
):
    reviews, pagination = pending_reviews(db, page, limit)
    return success(results=len(reviews), reviews=reviews, pagination=pagination)


@router.patch("/admin/{review_id}/moderate")
def moderate_review(review_id: str, body: ModerateBody, db=Depends(get_db), admin: dict = Depends(require_admin)):
    return success(review=serialize_doc(moderate(db, review_id, body, admin)))
