"""
Order API tests.

Exercises the HTTP surface end to end: creation, item edits, status
updates, error payloads, and invoice download.
"""

import pytest

from posoffice.services import invoice_service, stock_ledger


class StubRenderer:
    def render(self, payload):
        return b"%PDF-1.4 route"


@pytest.fixture
def product(make_product):
    return make_product("B1", name="lamp", mrp_cents=1000, stock=5)


def _create(client, headers, product, quantity=2, price="9.50"):
    return client.post("/api/orders", json={
        "items": [{"product_id": product.id, "quantity": quantity, "selling_price": price}],
        "customer_name": "Ann",
    }, headers=headers)


def test_create_and_get(client, db_session, operator_headers, product):
    resp = _create(client, operator_headers, product)
    assert resp.status_code == 201
    assert resp.json["total_amount_cents"] == 1900
    assert resp.json["items"][0]["product_name"] == "lamp"

    order_id = resp.json["id"]
    resp = client.get(f"/api/orders/{order_id}", headers=operator_headers)
    assert resp.status_code == 200
    assert resp.json["customer_name"] == "ann"

    resp = client.get(f"/api/orders/{order_id}/items", headers=operator_headers)
    assert resp.json["count"] == 1


def test_insufficient_stock_payload(client, db_session, operator_headers, product):
    resp = _create(client, operator_headers, product, quantity=6)
    assert resp.status_code == 409
    assert resp.json["error"] == "Insufficient stock"
    assert resp.json["details"]["items"] == [{"product_id": product.id, "requested": 6, "available": 5}]
    assert stock_ledger.get_quantity(product.id) == 5


def test_empty_items_rejected(client, db_session, operator_headers):
    resp = client.post("/api/orders", json={"items": []}, headers=operator_headers)
    assert resp.status_code == 400


def test_item_lifecycle(client, db_session, operator_headers, product):
    order_id = _create(client, operator_headers, product, quantity=1).json["id"]

    resp = client.post(f"/api/orders/{order_id}/items", json={
        "product_id": product.id, "quantity": 2, "selling_price": "10",
    }, headers=operator_headers)
    assert resp.status_code == 201
    item_id = resp.json["items"][-1]["id"]
    assert stock_ledger.get_quantity(product.id) == 2

    resp = client.put(f"/api/orders/{order_id}/items/{item_id}", json={
        "quantity": 5, "selling_price": "10",
    }, headers=operator_headers)
    assert resp.status_code == 409
    assert stock_ledger.get_quantity(product.id) == 2

    resp = client.delete(f"/api/orders/{order_id}/items/{item_id}", headers=operator_headers)
    assert resp.status_code == 200
    assert resp.json["total_amount_cents"] == 950
    assert stock_ledger.get_quantity(product.id) == 4


def test_status_update_and_lock(client, db_session, operator_headers, product):
    order = _create(client, operator_headers, product).json

    resp = client.put(f"/api/orders/{order['id']}", json={"status": "CANCELLED"}, headers=operator_headers)
    assert resp.status_code == 200
    assert resp.json["status"] == "CANCELLED"

    resp = client.put(f"/api/orders/{order['id']}", json={"status": "INVOICED"}, headers=operator_headers)
    assert resp.status_code == 409
    assert resp.json["details"]["from"] == "CANCELLED"

    resp = client.delete(f"/api/orders/{order['id']}/items/{order['items'][0]['id']}", headers=operator_headers)
    assert resp.status_code == 409


def test_cancel_with_status_only_body_keeps_customer(client, db_session, operator_headers, product):
    order = _create(client, operator_headers, product).json

    resp = client.put(f"/api/orders/{order['id']}", json={"status": "CANCELLED"}, headers=operator_headers)

    assert resp.status_code == 200
    assert resp.json["customer_name"] == "ann"


def test_list_orders_filters(client, db_session, operator_headers, product):
    _create(client, operator_headers, product, quantity=1)
    resp = client.get("/api/orders?status=CREATED&per_page=1", headers=operator_headers)
    assert resp.status_code == 200
    assert resp.json["pagination"]["per_page"] == 1

    resp = client.get("/api/orders?start_date=2024-02-02&end_date=2024-01-01", headers=operator_headers)
    assert resp.status_code == 400


def test_invoice_generate_and_download(client, db_session, operator_headers, product, monkeypatch):
    monkeypatch.setattr(invoice_service, "renderer_from_config", lambda config: StubRenderer())
    order_id = _create(client, operator_headers, product).json["id"]

    resp = client.post(f"/api/orders/{order_id}/invoice", headers=operator_headers)
    assert resp.status_code == 201

    resp = client.get(f"/api/orders/{order_id}/invoice", headers=operator_headers)
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data == b"%PDF-1.4 route"

    resp = client.get(f"/api/orders/{order_id}", headers=operator_headers)
    assert resp.json["status"] == "INVOICED"
