import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from routes.products import create_product_with_inventory
from schemas import Product, User
from security import create_access_token, get_password_hash

PASSWORD = "secret123"


@pytest.fixture
def db():
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, username, role="user", **extra):
    user = User(username=username, password_hash=get_password_hash(PASSWORD), role=role, **extra)
    return create_document(db, "user", user)


def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.fixture
def user(db):
    uid = make_user(
        db,
        "alice",
        addresses=[{
            "id": "addr1",
            "full_name": "Alice Doe",
            "street": "1 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "zip_code": "560001",
            "phone": "9999999999",
            "is_default": True,
        }],
    )
    return {"id": uid, "headers": auth_headers(uid)}


@pytest.fixture
def admin(db):
    uid = make_user(db, "boss", role="admin")
    return {"id": uid, "headers": auth_headers(uid)}


@pytest.fixture
def product(db):
    body = Product(
        name="Classic Tee",
        description="Cotton crew neck",
        base_price=500,
        category="tshirts",
        brand="Acme",
        images=[{"url": "/tee.jpg", "is_primary": True}],
        variants=[
            {"size": "M", "color": "Black", "sku": "TEE-M-BLK", "price": 500, "stock": 20},
            {"size": "L", "color": "White", "sku": "TEE-L-WHT", "price": 550, "stock": 3},
        ],
        tags=["cotton"],
    )
    doc = create_product_with_inventory(db, body)
    return {"id": str(doc["_id"]), "doc": doc}


def add_to_cart(client, headers, product_id, sku="TEE-M-BLK", quantity=1):
    return client.post(
        "/api/cart/add",
        json={"product_id": product_id, "variant": {"sku": sku}, "quantity": quantity},
        headers=headers,
    )
