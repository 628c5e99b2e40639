"""
Order edit, delete and manual-paid tests.

Payment regeneration: a WhatsApp order that is not PAID and has no
deliveries gets a new Snap link whenever items, total or shipping change.
"""

from foodops.extensions import db
from foodops.models import Order, OrderItem
from foodops.services import delivery_service

from conftest import add_stock, whatsapp_order_payload


def _create(client, product, **overrides):
    resp = client.post("/api/orders", json=whatsapp_order_payload(product, **overrides))
    assert resp.status_code == 201
    return resp.get_json()


def test_item_change_regenerates_payment_link(client, db_session, gateway, hok_l, hok_r):
    order = _create(client, hok_l)

    resp = client.put(f"/api/orders/{order['id']}", json={
        "items": [
            {"productId": hok_l.id, "quantity": 1},
            {"productId": hok_r.id, "quantity": 2},
        ],
    })

    assert resp.status_code == 200
    body = resp.get_json()
    # (10000 + 14000) * 0.9 + 5000
    assert body["total_amount"] == 26600
    assert len(gateway.calls) == 2
    assert gateway.calls[1]["gross_amount"] == 26600
    assert body["payment_link"].endswith("/tok-2")
    assert {i["product_id"]: i["quantity"] for i in body["items"]} == {hok_l.id: 1, hok_r.id: 2}


def test_header_only_change_keeps_payment_link(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)

    resp = client.put(f"/api/orders/{order['id']}", json={"customer": "Budi Santoso"})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["customer"] == "Budi Santoso"
    assert body["payment_order_id"] == order["payment_order_id"]
    assert len(gateway.calls) == 1


def test_shipping_change_regenerates_payment_link(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)

    resp = client.put(f"/api/orders/{order['id']}", json={"ongkirPlan": 8000})

    assert resp.status_code == 200
    assert resp.get_json()["total_amount"] == 26000
    assert len(gateway.calls) == 2


def test_paid_order_is_not_regenerated(client, db_session, gateway, hok_l):
    order = _create(client, hok_l, status="PAID")

    resp = client.put(f"/api/orders/{order['id']}", json={
        "items": [{"productId": hok_l.id, "quantity": 5}],
    })

    assert resp.status_code == 200
    assert resp.get_json()["total_amount"] == 50000
    assert len(gateway.calls) == 1


def test_moving_off_whatsapp_clears_payment_refs(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)

    resp = client.put(f"/api/orders/{order['id']}", json={"outlet": "Cafe"})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["outlet"] == "Cafe"
    assert body["payment_link"] is None
    assert body["payment_order_id"] is None
    # Shipping only counts for WhatsApp
    assert body["total_amount"] == 18000
    assert len(gateway.calls) == 1


def test_regeneration_failure_keeps_committed_edit(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)
    gateway.fail = True

    resp = client.put(f"/api/orders/{order['id']}", json={
        "items": [{"productId": hok_l.id, "quantity": 3}],
    })

    assert resp.status_code == 500
    assert "regenerated" in resp.get_json()["error"]

    db.session.expire_all()
    saved = db.session.get(Order, order["id"])
    assert saved.items[0].quantity == 3
    assert saved.total_amount == 32000


def test_whatsapp_update_requires_ongkir(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)

    resp = client.put(f"/api/orders/{order['id']}", json={"ongkirPlan": 0})

    assert resp.status_code == 400
    assert "ongkirPlan" in resp.get_json()["error"]


def test_delivered_order_items_are_frozen(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 2)
    delivery_service.create_delivery(
        order_id=order["id"],
        delivery_date="2025-01-06T03:00:00Z",
        items=[{"barcode": code} for code in barcodes],
        ongkir_plan=5000,
        ongkir_actual=6000,
    )

    resp = client.put(f"/api/orders/{order['id']}", json={
        "items": [{"productId": hok_l.id, "quantity": 3}],
    })
    assert resp.status_code == 400

    resp = client.put(f"/api/orders/{order['id']}", json={"discount": 20, "customer": "Ani"})
    assert resp.status_code == 200
    body = resp.get_json()
    # Frozen lines: 20000 * 0.8 + 5000
    assert body["total_amount"] == 21000
    assert body["customer"] == "Ani"
    assert len(gateway.calls) == 1


def test_update_missing_order(client, db_session, gateway):
    resp = client.put("/api/orders/999", json={"customer": "x"})
    assert resp.status_code == 404


def test_delete_order_without_deliveries(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)

    resp = client.delete(f"/api/orders/{order['id']}")

    assert resp.status_code == 200
    assert db.session.query(Order).count() == 0
    assert db.session.query(OrderItem).count() == 0


def test_delete_order_with_delivery_refused(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 1)
    delivery_service.create_delivery(
        order_id=order["id"],
        items=[{"barcode": barcodes[0]}],
        ongkir_plan=5000,
        ongkir_actual=5000,
    )

    resp = client.delete(f"/api/orders/{order['id']}")

    assert resp.status_code == 400
    assert db.session.query(Order).count() == 1


def test_manual_paid_clears_gateway_refs(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)

    resp = client.patch(f"/api/orders/{order['id']}", json={"action": "manual-paid", "actPayout": 22500})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "PAID"
    assert body["act_payout"] == 22500
    assert body["payment_link"] is None
    assert body["payment_order_id"] is None
    assert body["payment_transaction_id"] is None


def test_patch_rejects_unknown_action(client, db_session, gateway, hok_l):
    order = _create(client, hok_l)
    resp = client.patch(f"/api/orders/{order['id']}", json={"action": "refund"})
    assert resp.status_code == 400
