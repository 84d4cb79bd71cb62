"""
MongoDB access for the storefront API.

`db` is None until DATABASE_URL and DATABASE_NAME are both set. Routes never
import `db` directly; they take it through the `get_db` dependency so the
database can be swapped out (tests use mongomock).
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the active database handle."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    # naive UTC, the same shape pymongo hands back for stored dates
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(database, collection_name: str, data) -> str:
    """Insert a pydantic model or dict, stamping created_at/updated_at."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    stamp = now_utc()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None):
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid id: {value}")
    return ObjectId(value)


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc):
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = _serialize_value(v)
        else:
            out[k] = _serialize_value(v)
    return out


def paginate(cursor, page: int, limit: int):
    return cursor.skip((page - 1) * limit).limit(limit)


def pagination_info(page: int, limit: int, total: int) -> dict:
    pages = (total + limit - 1) // limit if limit else 0
    return {"current": page, "pages": pages, "total": total}


def parse_sort(sort: Optional[str], allowed: set, default=None):
    """
    Turn "-created_at,base_price" into a pymongo sort spec.
    Fields outside `allowed` are dropped.
    """
    spec = []
    for part in (sort or "").split(","):
        part = part.strip()
        if not part:
            continue
        direction = -1 if part.startswith("-") else 1
        field = part.lstrip("-+")
        if field in allowed:
            spec.append((field, direction))
    return spec or default or [("created_at", -1)]


def ensure_indexes(database):
    database["user"].create_index([("username", ASCENDING)], unique=True)
    database["order"].create_index([("order_number", ASCENDING)], unique=True)
    database["coupon"].create_index([("code", ASCENDING)], unique=True)
    database["admin"].create_index([("username", ASCENDING)], unique=True)
    database["review"].create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING), ("order_id", ASCENDING)], unique=True
    )
    database["inventory"].create_index([("product_id", ASCENDING), ("variant.sku", ASCENDING)])
    logger.info("Database indexes ensured")


def populate(database, rows: list, ref_field: str, collection_name: str, fields, as_field: str) -> list:
    """Attach the referenced document (only `fields`) to each serialized row under `as_field`."""
    ids = {r.get(ref_field) for r in rows if isinstance(r.get(ref_field), str) and ObjectId.is_valid(r.get(ref_field))}
    projection = {f: 1 for f in fields}
    found = {
        str(d["_id"]): serialize_doc(d)
        for d in database[collection_name].find({"_id": {"$in": [ObjectId(i) for i in ids]}}, projection)
    }
    for row in rows:
        row[as_field] = found.get(row.get(ref_field))
    return rows
