"""
HTTP surface tests through the Flask test client.

Each request runs in its own app context (and session), so assertions on
stored state go through populate_existing reads.
"""

from stockroom.extensions import db
from stockroom.models import Product


def _create_product(client, **overrides):
    body = {
        "sku": "API-1",
        "name": "Api Widget",
        "price_cents": 1500,
        "cost_price_cents": 600,
        "stock": 10,
        "min_stock": 5,
    }
    body.update(overrides)
    return client.post("/api/products", json=body, headers={"X-User-Id": "7"})


def test_health(client, db_session):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json["checks"]["database"]["status"] == "healthy"


def test_create_product_and_read_it_back(client, db_session):
    resp = _create_product(client)

    assert resp.status_code == 201
    product = resp.json
    assert product["stock"] == 10
    assert product["status"] == "ACTIVE"

    detail = client.get(f"/api/products/{product['id']}").json
    assert detail["recent_movements"][0]["reference"] == "Initial Stock"
    assert detail["recent_movements"][0]["user_id"] == 7

    by_sku = client.get("/api/products/by-sku/API-1")
    assert by_sku.status_code == 200
    assert by_sku.json["id"] == product["id"]


def test_create_product_validation_errors(client, db_session):
    missing = client.post("/api/products", json={"sku": "X"})
    negative_price = _create_product(client, price_cents=0)
    bad_type = _create_product(client, stock="ten")

    assert missing.status_code == 400
    assert missing.json["code"] == "validation_error"
    assert negative_price.status_code == 400
    assert bad_type.status_code == 400


def test_duplicate_sku_conflict(client, db_session):
    _create_product(client)

    resp = _create_product(client)

    assert resp.status_code == 409
    assert resp.json["code"] == "constraint_violation"
    assert resp.json["retryable"] is False


def test_patch_rejects_stock(client, db_session):
    product_id = _create_product(client).json["id"]

    resp = client.patch(f"/api/products/{product_id}", json={"stock": 99})
    ok = client.patch(f"/api/products/{product_id}", json={"name": "Renamed"})

    assert resp.status_code == 400
    assert ok.status_code == 200
    assert ok.json["name"] == "Renamed"
    assert ok.json["stock"] == 10


def test_delete_product(client, db_session):
    unused_id = _create_product(client, sku="API-EMPTY", stock=0).json["id"]
    stocked_id = _create_product(client, sku="API-STOCKED").json["id"]

    deleted = client.delete(f"/api/products/{unused_id}")
    gone = client.get(f"/api/products/{unused_id}")
    in_use = client.delete(f"/api/products/{stocked_id}")
    unknown = client.delete("/api/products/999")

    assert deleted.status_code == 200
    assert gone.status_code == 404
    assert in_use.status_code == 409
    assert in_use.json["code"] == "invalid_state"
    assert in_use.json["details"]["stock_movements"] == 1
    assert unknown.status_code == 404


def test_adjust_stock_and_low_stock_listing(client, db_session):
    product_id = _create_product(client).json["id"]

    resp = client.post(
        f"/api/products/{product_id}/adjust-stock",
        json={"type": "decrease", "quantity": 7, "reason": "Damaged"},
        headers={"X-User-Id": "3"},
    )

    assert resp.status_code == 200
    assert resp.json["product"]["stock"] == 3
    assert resp.json["adjustment"]["adjustment_type"] == "DECREASE"
    assert resp.json["movement"]["user_id"] == 3

    low = client.get("/api/products/low-stock").json["data"]
    assert [p["id"] for p in low] == [product_id]

    adjustments = client.get(f"/api/products/{product_id}/adjustments").json["data"]
    assert len(adjustments) == 1


def test_adjust_stock_insufficient(client, db_session):
    product_id = _create_product(client).json["id"]

    resp = client.post(
        f"/api/products/{product_id}/adjust-stock",
        json={"type": "DECREASE", "quantity": 11, "reason": "Lost"},
    )

    assert resp.status_code == 409
    assert resp.json["code"] == "insufficient_stock"
    assert resp.json["details"] == {
        "product_id": product_id,
        "product_name": "Api Widget",
        "available": 10,
        "requested": 11,
    }


def test_bad_actor_header(client, db_session):
    resp = _create_product(client)
    product_id = resp.json["id"]

    bad = client.post(
        f"/api/products/{product_id}/adjust-stock",
        json={"type": "INCREASE", "quantity": 1, "reason": "x"},
        headers={"X-User-Id": "abc"},
    )

    assert bad.status_code == 400


def test_order_lifecycle_over_http(client, db_session):
    product_id = _create_product(client).json["id"]

    created = client.post(
        "/api/orders",
        json={"items": [{"product_id": product_id, "quantity": 4}], "tax_cents": 100},
        headers={"X-User-Id": "5"},
    )
    assert created.status_code == 201
    order = created.json
    assert order["final_amount_cents"] == 4 * 1500 + 100
    assert order["created_by_user_id"] == 5

    paid = client.post(f"/api/orders/{order['id']}/payments", json={"amount_cents": 6100, "payment_method": "credit_card"})
    assert paid.status_code == 201
    assert paid.json["summary"]["is_paid"] is True

    detail = client.get(f"/api/orders/{order['id']}").json
    assert detail["status"] == "PROCESSING"
    assert detail["payment_summary"]["remaining_amount_cents"] == 0
    assert detail["payments"][0]["payment_method"] == "CREDIT_CARD"

    cancelled = client.post(f"/api/orders/{order['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json["order"]["status"] == "CANCELLED"

    again = client.post(f"/api/orders/{order['id']}/cancel")
    assert again.status_code == 409
    assert again.json["code"] == "invalid_state"
    assert again.json["details"]["current"] == "CANCELLED"

    movements = client.get(f"/api/ledger/stock-movements?productId={product_id}").json
    assert movements["meta"]["total"] == 3
    assert [m["movement_type"] for m in movements["data"]] == ["IN", "OUT", "IN"]

    verify = client.get(f"/api/ledger/products/{product_id}/verify").json
    assert verify["reconciles"] is True


def test_order_errors_over_http(client, db_session):
    product_id = _create_product(client).json["id"]

    too_many = client.post("/api/orders", json={"items": [{"product_id": product_id, "quantity": 11}]})
    empty = client.post("/api/orders", json={"items": []})
    missing = client.get("/api/orders/999")

    assert too_many.status_code == 409
    assert too_many.json["code"] == "insufficient_stock"
    assert empty.status_code == 400
    assert missing.status_code == 404
    assert missing.json["details"] == {"entity": "Order", "id": 999}
    assert db.session.get(Product, product_id, populate_existing=True).stock == 10


def test_overpayment_over_http(client, db_session):
    product_id = _create_product(client).json["id"]
    order_id = client.post("/api/orders", json={"items": [{"product_id": product_id, "quantity": 1}]}).json["id"]

    resp = client.post(f"/api/orders/{order_id}/payments", json={"amount_cents": 1501})

    assert resp.status_code == 409
    assert resp.json["code"] == "over_payment"
    assert resp.json["details"]["remaining_cents"] == 1500
    assert client.get(f"/api/orders/{order_id}/payments").json["data"] == []


def test_status_patch(client, db_session):
    product_id = _create_product(client).json["id"]
    order_id = client.post("/api/orders", json={"items": [{"product_id": product_id, "quantity": 1}]}).json["id"]

    via_patch = client.patch(f"/api/orders/{order_id}/status", json={"status": "CANCELLED"})
    refunded = client.patch(f"/api/orders/{order_id}/status", json={"status": "refunded"})
    listing = client.get("/api/orders?status=REFUNDED").json

    assert via_patch.status_code == 409
    assert refunded.status_code == 200
    assert refunded.json["status"] == "REFUNDED"
    assert [o["id"] for o in listing["data"]] == [order_id]
