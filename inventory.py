import logging
from typing import Optional

from pymongo import ReturnDocument

from database import now_utc
from schemas import Inventory

logger = logging.getLogger(__name__)


def is_low_stock(quantity: int, threshold: int) -> bool:
    return quantity <= threshold


def create_for_product(db, product_id: str, variants: list) -> int:
    """One inventory row per variant, seeded from the variant's stock."""
    created = 0
    for variant in variants:
        quantity = variant.get("stock", 0) or 0
        row = Inventory(
            product_id=product_id,
            variant={"size": variant.get("size"), "color": variant.get("color"), "sku": variant["sku"]},
            quantity=quantity,
        )
        doc = row.model_dump()
        doc["is_low_stock"] = is_low_stock(doc["quantity"], doc["low_stock_threshold"])
        stamp = now_utc()
        doc["created_at"] = stamp
        doc["updated_at"] = stamp
        db["inventory"].insert_one(doc)
        created += 1
    return created


def find_stock(db, product_id: str, sku: Optional[str]):
    return db["inventory"].find_one({"product_id": product_id, "variant.sku": sku})


def available_quantity(db, product_id: str, sku: Optional[str]) -> int:
    row = find_stock(db, product_id, sku)
    return row["quantity"] if row else 0


def refresh_low_stock(db, row: dict) -> dict:
    flag = is_low_stock(row.get("quantity", 0), row.get("low_stock_threshold", 10))
    if flag != row.get("is_low_stock"):
        db["inventory"].update_one({"_id": row["_id"]}, {"$set": {"is_low_stock": flag}})
        row["is_low_stock"] = flag
        if flag:
            logger.warning(
                "Inventory low for product %s sku %s: %s left",
                row.get("product_id"), row.get("variant", {}).get("sku"), row.get("quantity"),
            )
    return row


def adjust_stock(db, product_id: str, sku: Optional[str], delta: int):
    """Atomically add `delta` to a variant's stock. Returns the updated row or None."""
    row = db["inventory"].find_one_and_update(
        {"product_id": product_id, "variant.sku": sku},
        {"$inc": {"quantity": delta}, "$set": {"updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if row is None:
        logger.warning("No inventory row for product %s sku %s", product_id, sku)
        return None
    return refresh_low_stock(db, row)


def apply_order_items(db, items: list, sign: int):
    """sign=-1 takes stock for an order, sign=1 puts it back."""
    for item in items:
        adjust_stock(db, item["product_id"], (item.get("variant") or {}).get("sku"), sign * item["quantity"])
