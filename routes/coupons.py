import logging
from datetime import datetime
from typing import Literal, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, now_utc, pagination_info, paginate, serialize_doc, to_object_id
from pricing import calculate_discount, coupon_is_valid
from routes import success
from schemas import Coupon as CouponSchema, naive_utc
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


class ValidateCouponBody(BaseModel):
    code: str
    total_amount: float = Field(..., ge=0)


class CouponUpdateBody(BaseModel):
    description: Optional[str] = None
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[float] = Field(None, gt=0)
    minimum_amount: Optional[float] = Field(None, ge=0)
    maximum_discount: Optional[float] = Field(None, gt=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


def find_active_coupon(db, code: Optional[str]):
    if not code:
        return None
    return db["coupon"].find_one({"code": code.strip().upper(), "is_active": True})


def usable_coupon(db, code: Optional[str]):
    coupon = find_active_coupon(db, code)
    if coupon is None or not coupon_is_valid(coupon):
        return None
    return coupon


def consume_coupon(db, code: Optional[str]) -> bool:
    """
    Count one use of a coupon once an order is actually placed.
    The increment never takes used_count past usage_limit.
    """
    if not code:
        return False
    coupon = usable_coupon(db, code)
    if coupon is None:
        logger.warning("Coupon %s not consumed: no longer valid", code)
        return False
    query = {"_id": coupon["_id"]}
    if coupon.get("usage_limit") is not None:
        query["used_count"] = {"$lt": coupon["usage_limit"]}
    res = db["coupon"].update_one(query, {"$inc": {"used_count": 1}})
    if res.modified_count == 0:
        logger.warning("Coupon %s not consumed: usage limit reached", code)
        return False
    logger.info("Coupon %s used", coupon["code"])
    return True


def create_coupon_doc(db, body: CouponSchema) -> dict:
    body.code = body.code.strip().upper()
    body.used_count = 0
    if db["coupon"].find_one({"code": body.code}):
        raise HTTPException(status_code=400, detail=f"Coupon code {body.code} already exists")
    try:
        cid = create_document(db, "coupon", body)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail=f"Coupon code {body.code} already exists")
    return db["coupon"].find_one({"_id": ObjectId(cid)})


def update_coupon_doc(db, coupon_id: str, body: CouponUpdateBody) -> dict:
    update = body.model_dump(exclude_none=True)
    for key in ("valid_from", "valid_until"):
        if key in update:
            update[key] = naive_utc(update[key])
    update["updated_at"] = now_utc()
    res = db["coupon"].update_one({"_id": to_object_id(coupon_id)}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return db["coupon"].find_one({"_id": to_object_id(coupon_id)})


def list_coupons(db, query: dict, page: int, limit: int):
    total = db["coupon"].count_documents(query)
    cursor = paginate(db["coupon"].find(query).sort([("created_at", -1)]), page, limit)
    return [serialize_doc(c) for c in cursor], pagination_info(page, limit, total)


@router.post("/validate")
def validate_coupon(body: ValidateCouponBody, db=Depends(get_db)):
    coupon = find_active_coupon(db, body.code)
    if not coupon:
        raise HTTPException(status_code=400, detail="Invalid coupon code")
    if not coupon_is_valid(coupon):
        raise HTTPException(status_code=400, detail="Coupon is expired or no longer valid")
    minimum = coupon.get("minimum_amount", 0)
    if body.total_amount < minimum:
        raise HTTPException(status_code=400, detail=f"Minimum order amount of {minimum} required")

    return success(coupon={
        "code": coupon["code"],
        "description": coupon.get("description"),
        "discount_type": coupon.get("discount_type"),
        "discount_value": coupon.get("discount_value"),
        "discount_amount": calculate_discount(coupon, body.total_amount),
        "minimum_amount": minimum,
    })


@router.get("")
def get_all_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db=Depends(get_db),
    admin: dict = Depends(require_admin),
):
    coupons, pagination = list_coupons(db, {"is_active": True}, page, limit)
    return success(results=len(coupons), coupons=coupons, pagination=pagination)


@router.post("", status_code=201)
def create_coupon(body: CouponSchema, db=Depends(get_db), admin: dict = Depends(require_admin)):
    return success(coupon=serialize_doc(create_coupon_doc(db, body)))


@router.patch("/{coupon_id}")
def update_coupon(coupon_id: str, body: CouponUpdateBody, db=Depends(get_db), admin: dict = Depends(require_admin)):
    return success(coupon=serialize_doc(update_coupon_doc(db, coupon_id, body)))


@router.delete("/{coupon_id}", status_code=204)
def delete_coupon(coupon_id: str, db=Depends(get_db), admin: dict = Depends(require_admin)):
    res = db["coupon"].update_one(
        {"_id": to_object_id(coupon_id)}, {"$set": {"is_active": False, "updated_at": now_utc()}}
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return Response(status_code=204)
