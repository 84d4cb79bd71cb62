import inventory


def test_adjust_stock_flags_low(db, product):
    row = inventory.adjust_stock(db, product["id"], "TEE-M-BLK", -12)
    assert row["quantity"] == 8
    assert row["is_low_stock"] is True

    row = inventory.adjust_stock(db, product["id"], "TEE-M-BLK", 10)
    assert row["quantity"] == 18
    assert row["is_low_stock"] is False


def test_adjust_missing_row(db):
    assert inventory.adjust_stock(db, "64b7f0f0f0f0f0f0f0f0f0f0", "NOPE", 1) is None


def test_apply_order_items_round_trip(db, product):
    items = [
        {"product_id": product["id"], "variant": {"sku": "TEE-M-BLK"}, "quantity": 2},
        {"product_id": product["id"], "variant": {"sku": "TEE-L-WHT"}, "quantity": 1},
    ]
    inventory.apply_order_items(db, items, -1)
    assert inventory.available_quantity(db, product["id"], "TEE-M-BLK") == 18
    assert inventory.available_quantity(db, product["id"], "TEE-L-WHT") == 2

    inventory.apply_order_items(db, items, 1)
    assert inventory.available_quantity(db, product["id"], "TEE-L-WHT") == 3


def test_admin_inventory_listing_and_update(client, admin, product, db):
    resp = client.get("/api/admin/inventory", params={"low_stock": "true"}, headers=admin["headers"])
    rows = resp.json()["data"]["inventory"]
    assert [r["variant"]["sku"] for r in rows] == ["TEE-L-WHT"]
    assert rows[0]["product"]["name"] == "Classic Tee"

    updated = client.patch(
        f"/api/admin/inventory/{rows[0]['id']}",
        json={"quantity": 40},
        headers=admin["headers"],
    ).json()["data"]["inventory"]
    assert updated["quantity"] == 40
    assert updated["is_low_stock"] is False
    assert updated["last_restocked"]

    missing = client.patch(
        "/api/admin/inventory/64b7f0f0f0f0f0f0f0f0f0f0", json={"quantity": 1}, headers=admin["headers"]
    )
    assert missing.status_code == 404
