from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

import inventory
from database import get_db, now_utc, populate, serialize_doc, to_object_id
from routes import success
from schemas import Cart as CartSchema, VariantRef
from security import get_current_user

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddToCartBody(BaseModel):
    product_id: str
    variant: VariantRef
    quantity: int = Field(1, ge=1)


class UpdateCartItemBody(BaseModel):
    quantity: int = Field(..., ge=0)


def cart_totals(items: list) -> dict:
    return {
        "total_items": sum(i["quantity"] for i in items),
        "total_price": round(sum(i["quantity"] * i["price"] for i in items), 2),
    }


def get_or_create_cart(db, user_id: str) -> dict:
    cart = db["cart"].find_one({"user_id": user_id})
    if cart is None:
        doc = CartSchema(user_id=user_id).model_dump()
        stamp = now_utc()
        doc["created_at"] = stamp
        doc["updated_at"] = stamp
        db["cart"].insert_one(doc)
        cart = db["cart"].find_one({"user_id": user_id})
    return cart


def find_cart(db, user_id: str) -> dict:
    cart = db["cart"].find_one({"user_id": user_id})
    if cart is None:
        raise HTTPException(status_code=404, detail="Cart not found")
    return cart


def save_cart(db, cart: dict) -> dict:
    """Persist items and recompute the cart totals."""
    cart.update(cart_totals(cart["items"]))
    cart["updated_at"] = now_utc()
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {
            "items": cart["items"],
            "total_items": cart["total_items"],
            "total_price": cart["total_price"],
            "updated_at": cart["updated_at"],
        }},
    )
    return cart


def populate_products(db, items: list, fields=("name", "images")) -> list:
    return populate(db, [serialize_doc(i) for i in items], "product_id", "product", fields, "product")


def render_cart(db, cart: dict) -> dict:
    out = serialize_doc(cart)
    out["items"] = populate_products(db, cart.get("items", []))
    return out


@router.get("")
def get_cart(current: dict = Depends(get_current_user), db=Depends(get_db)):
    cart = get_or_create_cart(db, current["id"])
    return success(cart=render_cart(db, cart))


@router.post("/add")
def add_to_cart(body: AddToCartBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    product = db["product"].find_one({"_id": to_object_id(body.product_id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    stock = inventory.available_quantity(db, body.product_id, body.variant.sku)
    if stock < body.quantity:
        raise HTTPException(status_code=400, detail="Insufficient stock")

    cart = get_or_create_cart(db, current["id"])
    existing = next(
        (i for i in cart["items"] if i["product_id"] == body.product_id and i["variant"].get("sku") == body.variant.sku),
        None,
    )
    if existing is not None:
        new_quantity = existing["quantity"] + body.quantity
        if stock < new_quantity:
            raise HTTPException(status_code=400, detail="Insufficient stock for requested quantity")
        existing["quantity"] = new_quantity
    else:
        variant = next((v for v in product.get("variants", []) if v.get("sku") == body.variant.sku), None)
        if variant is None:
            raise HTTPException(status_code=404, detail="Variant not found")
        cart["items"].append({
            "id": str(ObjectId()),
            "product_id": body.product_id,
            "variant": body.variant.model_dump(),
            "quantity": body.quantity,
            "price": variant["price"],
        })

    save_cart(db, cart)
    return success(cart=render_cart(db, cart))


@router.patch("/items/{item_id}")
def update_cart_item(item_id: str, body: UpdateCartItemBody, current: dict = Depends(get_current_user), db=Depends(get_db)):
    cart = find_cart(db, current["id"])
    item = next((i for i in cart["items"] if i["id"] == item_id), None)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found in cart")

    stock = inventory.available_quantity(db, item["product_id"], item["variant"].get("sku"))
    if stock < body.quantity:
        raise HTTPException(status_code=400, detail="Insufficient stock")

    if body.quantity == 0:
        cart["items"] = [i for i in cart["items"] if i["id"] != item_id]
    else:
        item["quantity"] = body.quantity

    save_cart(db, cart)
    return success(cart=render_cart(db, cart))


@router.delete("/items/{item_id}")
def remove_from_cart(item_id: str, current: dict = Depends(get_current_user), db=Depends(get_db)):
    cart = find_cart(db, current["id"])
    cart["items"] = [i for i in cart["items"] if i["id"] != item_id]
    save_cart(db, cart)
    return success(cart=render_cart(db, cart))


@router.delete("/clear")
def clear_cart(current: dict = Depends(get_current_user), db=Depends(get_db)):
    cart = find_cart(db, current["id"])
    cart["items"] = []
    save_cart(db, cart)
    return success(cart=render_cart(db, cart))
