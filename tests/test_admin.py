from datetime import timedelta

from conftest import make_user
from database import now_utc


def seed_order(db, user_id, product_id, total, status="delivered", days_ago=0, quantity=1):
    stamp = now_utc() - timedelta(days=days_ago)
    db["order"].insert_one({
        "order_number": f"ORD-TEST-{db['order'].count_documents({}) + 1:04d}",
        "user_id": user_id,
        "items": [{"product_id": product_id, "variant": {"sku": "TEE-M-BLK"}, "quantity": quantity,
                   "price": total / quantity, "total": total}],
        "total_amount": total,
        "status": status,
        "status_history": [],
        "created_at": stamp,
        "updated_at": stamp,
    })


def test_dashboard(client, admin, user, product, db):
    seed_order(db, user["id"], product["id"], 1000, quantity=2)
    seed_order(db, user["id"], product["id"], 500, status="pending")
    seed_order(db, user["id"], product["id"], 700, days_ago=400)

    data = client.get("/api/admin/dashboard", headers=admin["headers"]).json()["data"]
    stats = data["stats"]
    assert stats["total_users"] == 2
    assert stats["total_orders"] == 3
    assert stats["total_revenue"] == 1700
    assert stats["today_revenue"] == 1000
    assert stats["today_orders"] == 2
    assert stats["low_stock_products"] == 1

    by_status = {s["status"]: s["count"] for s in data["order_status_stats"]}
    assert by_status == {"delivered": 2, "pending": 1}

    assert data["top_products"][0]["name"] == "Classic Tee"
    assert data["top_products"][0]["total_sold"] == 4
    assert data["top_products"][0]["image"] == "/tee.jpg"

    assert len(data["recent_orders"]) == 3
    assert data["recent_orders"][0]["user"]["username"] == "alice"


def test_sales_analytics(client, admin, user, product, db):
    seed_order(db, user["id"], product["id"], 1000)
    seed_order(db, user["id"], product["id"], 500)
    other = make_user(db, "bob")
    seed_order(db, other, product["id"], 300)

    data = client.get("/api/admin/analytics/sales", params={"period": "day"}, headers=admin["headers"]).json()["data"]
    assert data["period"] == "day"
    assert len(data["sales_data"]) == 1
    bucket = data["sales_data"][0]
    assert bucket["revenue"] == 1800
    assert bucket["orders"] == 3
    assert bucket["average_order_value"] == 600
    assert bucket["unique_customers"] == 2

    yearly = client.get(
        "/api/admin/analytics/sales", params={"period": "year", "year": 2001}, headers=admin["headers"]
    ).json()["data"]
    assert yearly["sales_data"] == []


def test_customer_analytics(client, admin, user, product, db):
    seed_order(db, user["id"], product["id"], 1000)
    seed_order(db, user["id"], product["id"], 200)

    data = client.get("/api/admin/analytics/customers", headers=admin["headers"]).json()["data"]
    assert data["top_customers"][0]["username"] == "alice"
    assert data["top_customers"][0]["total_spent"] == 1200
    assert data["retention"] == {"total_customers": 2, "repeat_customers": 1, "retention_rate": 50.0}
    assert sum(m["new_customers"] for m in data["customer_growth"]) == 2


def test_user_management(client, admin, user, db):
    listing = client.get("/api/admin/users", params={"search": "ali"}, headers=admin["headers"]).json()
    assert listing["results"] == 1
    assert "password_hash" not in listing["data"]["users"][0]

    detail = client.get(f"/api/admin/users/{user['id']}", headers=admin["headers"]).json()["data"]
    assert detail["user"]["username"] == "alice"
    assert detail["orders"] == []

    patched = client.patch(f"/api/admin/users/{user['id']}", json={"is_active": False}, headers=admin["headers"])
    assert patched.json()["data"]["user"]["is_active"] is False

    assert client.delete(f"/api/admin/users/{user['id']}", headers=admin["headers"]).status_code == 204
    assert client.get(f"/api/admin/users/{user['id']}", headers=admin["headers"]).status_code == 404


def test_admin_products_and_orders(client, admin, user, product, db):
    listing = client.get("/api/admin/products", params={"status": "active"}, headers=admin["headers"]).json()
    assert listing["results"] == 1

    deleted = client.delete(f"/api/admin/products/{product['id']}", headers=admin["headers"])
    assert deleted.json()["data"]["product"]["is_active"] is False
    inactive = client.get("/api/admin/products", params={"status": "inactive"}, headers=admin["headers"]).json()
    assert inactive["results"] == 1

    seed_order(db, user["id"], product["id"], 1000, status="pending")
    orders = client.get("/api/admin/orders", params={"search": "test-0001"}, headers=admin["headers"]).json()
    assert orders["results"] == 1
    order_id = orders["data"]["orders"][0]["id"]
    assert orders["data"]["orders"][0]["user"]["username"] == "alice"

    detail = client.get(f"/api/admin/orders/{order_id}", headers=admin["headers"]).json()["data"]["order"]
    assert detail["user"]["username"] == "alice"

    shipped = client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "shipped"}, headers=admin["headers"])
    assert shipped.json()["data"]["order"]["status"] == "shipped"


def test_categories_brands_and_coupons(client, admin):
    created = client.post("/api/admin/categories", json={"name": "Shirts"}, headers=admin["headers"])
    assert created.status_code == 201
    cid = created.json()["data"]["category"]["id"]
    client.patch(f"/api/admin/categories/{cid}", json={"is_active": False}, headers=admin["headers"])
    cats = client.get("/api/admin/categories", headers=admin["headers"]).json()["data"]["categories"]
    assert cats[0]["is_active"] is False

    assert client.post("/api/admin/brands", json={"name": "Acme"}, headers=admin["headers"]).status_code == 201

    client.post("/api/admin/coupons", json={"code": "x1", "discount_value": 5}, headers=admin["headers"])
    client.post("/api/admin/coupons", json={"code": "x2", "discount_value": 5, "is_active": False}, headers=admin["headers"])
    assert client.get("/api/admin/coupons", headers=admin["headers"]).json()["results"] == 2
    assert client.get("/api/admin/coupons", params={"active": "false"}, headers=admin["headers"]).json()["results"] == 1


def test_staff_accounts(client, admin):
    resp = client.post(
        "/api/admin/admins",
        json={"username": "support", "email": "support@example.com", "password": "pass1234", "role": "moderator"},
        headers=admin["headers"],
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["admin"]["role"] == "moderator"

    dup = client.post(
        "/api/admin/admins",
        json={"username": "support", "email": "s2@example.com", "password": "pass1234"},
        headers=admin["headers"],
    )
    assert dup.status_code == 400

    admins = client.get("/api/admin/admins", headers=admin["headers"]).json()["data"]["admins"]
    assert [a["username"] for a in admins] == ["support"]
    assert "password_hash" not in admins[0]


def test_month_sales_compare_with_last_month(client, admin, user, product, db):
    seed_order(db, user["id"], product["id"], 900)
    # the last day of the previous month
    seed_order(db, user["id"], product["id"], 400, days_ago=now_utc().day)
    seed_order(db, user["id"], product["id"], 250, status="cancelled", days_ago=now_utc().day)

    data = client.get("/api/admin/analytics/sales", params={"period": "month"}, headers=admin["headers"]).json()["data"]
    assert data["comparison"] == {"revenue": 400, "orders": 1}

    daily = client.get("/api/admin/analytics/sales", params={"period": "day"}, headers=admin["headers"]).json()["data"]
    assert daily["comparison"] is None
