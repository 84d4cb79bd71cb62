from datetime import timedelta

from conftest import add_to_cart, auth_headers, make_user
from database import now_utc


def make_coupon(db, **overrides):
    coupon = {
        "code": "SAVE10",
        "discount_type": "percentage",
        "discount_value": 10,
        "minimum_amount": 0,
        "maximum_discount": None,
        "usage_limit": None,
        "used_count": 0,
        "valid_from": None,
        "valid_until": None,
        "is_active": True,
    }
    coupon.update(overrides)
    db["coupon"].insert_one(coupon)
    return coupon


def test_calculate_empty_cart(client, user):
    resp = client.post("/api/checkout/calculate", json={}, headers=user["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cart is empty"


def test_calculate_requires_address(client, db, product):
    uid = make_user(db, "nomad")
    headers = auth_headers(uid)
    add_to_cart(client, headers, product["id"])
    resp = client.post("/api/checkout/calculate", json={}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "No shipping address found"


def test_calculate_with_coupon(client, user, product, db):
    make_coupon(db)
    add_to_cart(client, user["headers"], product["id"], quantity=2)

    resp = client.post("/api/checkout/calculate", json={"coupon_code": "save10"}, headers=user["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["checkout_summary"] == {
        "subtotal": 1000.0,
        "shipping": 0,
        "tax": 180.0,
        "discount": 100.0,
        "total": 1080.0,
    }
    assert data["applied_coupon"] == {"code": "SAVE10", "discount": 100.0}
    assert data["shipping_address"]["id"] == "addr1"
    assert data["cart_items"][0]["product"]["name"] == "Classic Tee"
    # calculating does not spend the coupon
    assert db["coupon"].find_one({"code": "SAVE10"})["used_count"] == 0


def test_calculate_ignores_expired_coupon(client, user, product, db):
    make_coupon(db, valid_until=now_utc() - timedelta(days=1))
    add_to_cart(client, user["headers"], product["id"])
    data = client.post("/api/checkout/calculate", json={"coupon_code": "SAVE10"}, headers=user["headers"]).json()["data"]
    assert data["checkout_summary"]["discount"] == 0
    assert data["applied_coupon"] is None


def test_validate_coupon(client, db):
    make_coupon(db, minimum_amount=500, maximum_discount=30)

    ok = client.post("/api/coupons/validate", json={"code": "save10", "total_amount": 800})
    assert ok.status_code == 200
    assert ok.json()["data"]["coupon"]["discount_amount"] == 30

    low = client.post("/api/coupons/validate", json={"code": "SAVE10", "total_amount": 100})
    assert low.status_code == 400
    assert low.json()["message"].startswith("Minimum order amount of 500")

    bad = client.post("/api/coupons/validate", json={"code": "NOPE", "total_amount": 100})
    assert bad.json()["message"] == "Invalid coupon code"


def test_validate_used_up_coupon(client, db):
    make_coupon(db, usage_limit=1, used_count=1)
    resp = client.post("/api/coupons/validate", json={"code": "SAVE10", "total_amount": 800})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Coupon is expired or no longer valid"


def test_coupon_admin_crud(client, admin, db):
    created = client.post(
        "/api/coupons",
        json={"code": " fest20 ", "discount_type": "fixed", "discount_value": 200},
        headers=admin["headers"],
    )
    assert created.status_code == 201
    coupon = created.json()["data"]["coupon"]
    assert coupon["code"] == "FEST20"

    dup = client.post(
        "/api/coupons", json={"code": "FEST20", "discount_value": 5}, headers=admin["headers"]
    )
    assert dup.status_code == 400
    assert dup.json()["message"] == "Coupon code FEST20 already exists"

    patched = client.patch(f"/api/coupons/{coupon['id']}", json={"discount_value": 250}, headers=admin["headers"])
    assert patched.json()["data"]["coupon"]["discount_value"] == 250

    assert client.delete(f"/api/coupons/{coupon['id']}", headers=admin["headers"]).status_code == 204
    listing = client.get("/api/coupons", headers=admin["headers"]).json()
    assert listing["results"] == 0
