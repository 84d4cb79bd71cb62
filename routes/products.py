import logging
import re
from typing import List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

import inventory
from database import create_document, get_db, get_documents, now_utc, pagination_info, paginate, parse_sort, serialize_doc, to_object_id
from routes import success
from security import require_admin
from schemas import Brand as BrandSchema, Category as CategorySchema, Product as ProductSchema, ProductImage, Variant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

PRODUCT_SORT_FIELDS = {"created_at", "base_price", "name", "rating.average", "updated_at"}


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = None
    brand: Optional[str] = None
    images: Optional[List[ProductImage]] = None
    variants: Optional[List[Variant]] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


def create_product_with_inventory(db, body: ProductSchema) -> dict:
    product_id = create_document(db, "product", body)
    created = inventory.create_for_product(db, product_id, [v.model_dump() for v in body.variants])
    logger.info("Product %s created with %d inventory rows", product_id, created)
    return db["product"].find_one({"_id": ObjectId(product_id)})


def update_product_doc(db, product_id: str, body: ProductUpdateBody) -> dict:
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    res = db["product"].update_one({"_id": to_object_id(product_id)}, {"$set": update})
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return db["product"].find_one({"_id": to_object_id(product_id)})


def soft_delete_product(db, product_id: str) -> dict:
    res = db["product"].update_one(
        {"_id": to_object_id(product_id)}, {"$set": {"is_active": False, "updated_at": now_utc()}}
    )
    if res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return db["product"].find_one({"_id": to_object_id(product_id)})


def resolve_brand(db, brand) -> dict:
    """Brands are stored as plain names; older rows may hold a brand id."""
    if isinstance(brand, str) and not ObjectId.is_valid(brand):
        return {"name": brand}
    if brand:
        doc = db["brand"].find_one({"_id": ObjectId(str(brand))})
        if doc:
            return {"name": doc.get("name")}
    return {"name": "Unknown Brand"}


@router.get("")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "-created_at",
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    search: Optional[str] = None,
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    featured: Optional[bool] = None,
    db=Depends(get_db),
):
    conditions = [{"is_active": True}]
    if brand and brand != "undefined":
        names = [b.strip() for b in brand.split(",") if b.strip()]
        if names:
            conditions.append({"$or": [{"brand": {"$regex": re.escape(n), "$options": "i"}} for n in names]})
    if category:
        conditions.append({"category": category})
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        conditions.append({"base_price": price_filter})
    if min_rating is not None:
        conditions.append({"rating.average": {"$gte": min_rating}})
    if search:
        pattern = re.escape(search)
        conditions.append({
            "$or": [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        })
    if featured is not None:
        conditions.append({"is_featured": featured})

    filter_q = {"$and": conditions} if len(conditions) > 1 else conditions[0]
    total = db["product"].count_documents(filter_q)
    cursor = paginate(db["product"].find(filter_q).sort(parse_sort(sort, PRODUCT_SORT_FIELDS)), page, limit)

    products = []
    for doc in cursor:
        item = serialize_doc(doc)
        item["brand"] = resolve_brand(db, doc.get("brand"))
        products.append(item)

    return success(
        results=len(products),
        products=products,
        pagination=pagination_info(page, limit, total),
    )


@router.get("/categories")
def list_categories(db=Depends(get_db)):
    cats = [serialize_doc(c) for c in get_documents(db, "category", {"is_active": True})]
    return success(results=len(cats), categories=cats)


@router.get("/brands")
def list_brands(db=Depends(get_db)):
    brands = [serialize_doc(b) for b in get_documents(db, "brand", {"is_active": True})]
    return success(results=len(brands), brands=brands)


@router.get("/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    prod = db["product"].find_one({"_id": to_object_id(product_id)})
    if not prod:
        raise HTTPException(status_code=404, detail="Product not found")
    item = serialize_doc(prod)
    item["brand"] = resolve_brand(db, prod.get("brand"))
    return success(product=item)


# Admin
@router.post("", status_code=201)
def create_product(body: ProductSchema, db=Depends(get_db), admin: dict = Depends(require_admin)):
    return success(product=serialize_doc(create_product_with_inventory(db, body)))


@router.patch("/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, db=Depends(get_db), admin: dict = Depends(require_admin)):
    return success(product=serialize_doc(update_product_doc(db, product_id, body)))


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: str, db=Depends(get_db), admin: dict = Depends(require_admin)):
    soft_delete_product(db, product_id)
    return Response(status_code=204)


@router.post("/categories", status_code=201)
def create_category(body: CategorySchema, db=Depends(get_db), admin: dict = Depends(require_admin)):
    cid = create_document(db, "category", body)
    return success(category=serialize_doc(db["category"].find_one({"_id": ObjectId(cid)})))


@router.post("/brands", status_code=201)
def create_brand(body: BrandSchema, db=Depends(get_db), admin: dict = Depends(require_admin)):
    bid = create_document(db, "brand", body)
    return success(brand=serialize_doc(db["brand"].find_one({"_id": ObjectId(bid)})))
