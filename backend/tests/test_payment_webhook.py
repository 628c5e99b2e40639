"""
Payment notification tests.

Scenario: a WhatsApp order (2 x 10000, 10% off, ongkir 5000 -> 23000) is
settled through QRIS; net payout = 23000 - round(0.7% of 23000) = 22839.
"""

from foodops.extensions import db
from foodops.models import Delivery, DeliveryItem, InventoryItem, Order, OrderItem
from foodops.services import delivery_service, order_service

from conftest import add_stock, sign_notification, whatsapp_order_payload


def _order(gateway, product) -> Order:
    return order_service.create_order(whatsapp_order_payload(product), gateway=gateway)


def _notification(order_id: str, transaction_status: str, *, status_code="200", gross="23000.00", **extra) -> dict:
    payload = {
        "order_id": order_id,
        "transaction_status": transaction_status,
        "status_code": status_code,
        "gross_amount": gross,
        "signature_key": sign_notification(order_id, status_code, gross),
        "transaction_id": "9aed5972-5b6a-401e-894b-a32c91ed1a3a",
        "payment_type": "qris",
    }
    payload.update(extra)
    return payload


def test_settlement_marks_order_paid_with_estimated_payout(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)

    resp = client.post("/api/payments/callback", json=_notification(order.payment_order_id, "settlement"))

    assert resp.status_code == 200
    assert resp.get_json()["success"] is True

    db.session.expire_all()
    paid = db.session.get(Order, order.id)
    assert paid.status == "PAID"
    assert paid.act_payout == 22839
    assert paid.payment_transaction_id == "9aed5972-5b6a-401e-894b-a32c91ed1a3a"


def test_settlement_amount_from_gateway_wins(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)

    client.post("/api/payments/callback", json=_notification(
        order.payment_order_id, "settlement", settlement_amount="22500.00",
    ))

    db.session.expire_all()
    assert db.session.get(Order, order.id).act_payout == 22500


def test_merchant_fee_from_gateway_is_subtracted(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)

    client.post("/api/payments/callback", json=_notification(
        order.payment_order_id, "capture", merchant_fee="1000",
    ))

    db.session.expire_all()
    assert db.session.get(Order, order.id).act_payout == 22000


def test_repeated_settlement_is_a_noop(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)
    payload = _notification(order.payment_order_id, "settlement")

    first = client.post("/api/payments/callback", json=payload)
    db.session.get(Order, order.id).act_payout = 1
    db.session.commit()
    second = client.post("/api/payments/callback", json=payload)

    assert first.get_json()["action"] == "paid"
    assert second.get_json()["action"] == "unchanged"
    db.session.expire_all()
    assert db.session.get(Order, order.id).act_payout == 1


def test_invalid_signature_is_rejected(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)
    payload = _notification(order.payment_order_id, "settlement")
    payload["gross_amount"] = "1.00"

    resp = client.post("/api/payments/callback", json=payload)

    assert resp.status_code == 401
    db.session.expire_all()
    assert db.session.get(Order, order.id).status == "NOT PAID"


def test_missing_fields_are_rejected(client, db_session, gateway):
    resp = client.post("/api/payments/callback", json={"order_id": "WA-1-1", "transaction_status": "settlement"})
    assert resp.status_code == 401
    assert "signature_key" in resp.get_json()["details"]["missing"]


def test_unknown_order_is_404(client, db_session, gateway):
    resp = client.post("/api/payments/callback", json=_notification("WA-999-1736046000000", "settlement"))
    assert resp.status_code == 404


def test_pending_is_acknowledged_without_change(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)

    resp = client.post("/api/payments/callback", json=_notification(
        order.payment_order_id, "pending", status_code="201",
    ))

    assert resp.status_code == 200
    assert resp.get_json()["action"] == "ignored"
    db.session.expire_all()
    assert db.session.get(Order, order.id).status == "NOT PAID"


def test_expire_deletes_order_and_releases_units(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 2)
    delivery_service.create_delivery(
        order_id=order.id,
        delivery_date="2025-01-06T03:00:00Z",
        items=[{"barcode": code} for code in barcodes],
        ongkir_plan=5000,
        ongkir_actual=5000,
    )
    order_id = order.id

    resp = client.post("/api/payments/callback", json=_notification(
        order.payment_order_id, "expire", status_code="407",
    ))

    assert resp.status_code == 200
    assert resp.get_json()["deleted"] is True

    db.session.expire_all()
    assert db.session.get(Order, order_id) is None
    assert db.session.query(OrderItem).count() == 0
    assert db.session.query(Delivery).count() == 0
    assert db.session.query(DeliveryItem).count() == 0
    assert {u.status for u in db.session.query(InventoryItem)} == {"READY"}
    assert client.get(f"/api/orders/{order_id}").status_code == 404


def test_first_settlement_of_order_created_as_paid(client, db_session, gateway, hok_l):
    # A missing status defaults to PAID; the link is still issued for WhatsApp
    payload = whatsapp_order_payload(hok_l)
    payload.pop("status")
    order = order_service.create_order(payload, gateway=gateway)
    assert order.status == "PAID"
    notification = _notification(order.payment_order_id, "settlement")
    notification.pop("transaction_id")

    first = client.post("/api/payments/callback", json=notification)
    second = client.post("/api/payments/callback", json=notification)

    assert first.get_json()["action"] == "paid"
    assert second.get_json()["action"] == "unchanged"
    db.session.expire_all()
    assert db.session.get(Order, order.id).act_payout == 22839


def test_settlement_with_new_transaction_id_updates_paid_order(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)
    client.post("/api/payments/callback", json=_notification(order.payment_order_id, "settlement"))

    resp = client.post("/api/payments/callback", json=_notification(
        order.payment_order_id, "settlement", transaction_id="second-txn", settlement_amount="22700",
    ))

    assert resp.get_json()["action"] == "paid"
    db.session.expire_all()
    paid = db.session.get(Order, order.id)
    assert paid.act_payout == 22700
    assert paid.payment_transaction_id == "second-txn"


def test_settlement_without_transaction_id_still_pays(client, db_session, gateway, hok_l):
    order = _order(gateway, hok_l)
    notification = _notification(order.payment_order_id, "settlement")
    notification["transaction_id"] = ""

    resp = client.post("/api/payments/callback", json=notification)

    assert resp.get_json()["action"] == "paid"
    db.session.expire_all()
    paid = db.session.get(Order, order.id)
    assert paid.act_payout == 22839
    assert paid.payment_transaction_id is None
