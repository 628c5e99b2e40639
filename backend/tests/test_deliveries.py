"""
Delivery allocation tests.

Scenario: a Cafe order in Bandung for 2 x HOK-L, stock labeled 100-HOK-L,
101-HOK-L, ... A dated delivery sells the units; an undated one only
reserves them.
"""

import pytest

from foodops.errors import ValidationError
from foodops.extensions import db
from foodops.models import Delivery, DeliveryItem, InventoryItem
from foodops.services import delivery_service, inventory_service, order_service

from conftest import add_stock, whatsapp_order_payload


def _cafe_order(client, product, quantity=2, location="Bandung") -> dict:
    resp = client.post("/api/orders", json={
        "outlet": "Cafe",
        "customer": "Sari",
        "location": location,
        "orderDate": "2025-01-05T03:00:00Z",
        "items": [{"productId": product.id, "quantity": quantity}],
    })
    assert resp.status_code == 201
    return resp.get_json()


def _deliver(client, order_id, barcodes, **extra):
    body = {"orderId": order_id, "items": [{"barcode": code} for code in barcodes]}
    body.update(extra)
    return client.post("/api/deliveries", json=body)


def _status(barcode: str) -> str:
    db.session.expire_all()
    return db.session.get(InventoryItem, barcode).status


# =============================================================================
# CREATE
# =============================================================================

def test_dated_delivery_sells_units(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 3)

    resp = _deliver(client, order["id"], barcodes[:2], deliveryDate="2025-01-06T03:00:00Z")

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "delivered"
    assert [i["barcode"] for i in body["items"]] == ["100-HOK-L", "101-HOK-L"]
    assert all(i["price"] == 10000 for i in body["items"])
    assert _status("100-HOK-L") == "SOLD"
    assert _status("101-HOK-L") == "SOLD"
    assert _status("102-HOK-L") == "READY"

    pending = client.get("/api/orders/pending").get_json()
    assert pending["items"] == []


def test_undated_delivery_reserves_units(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 3)

    resp = _deliver(client, order["id"], barcodes[:1])

    assert resp.status_code == 201
    assert resp.get_json()["status"] == "pending"
    assert _status("100-HOK-L") == "READY"

    overview = client.get("/api/inventory/overview").get_json()
    row = overview["byLocation"]["Bandung"]["Hokkaido Large (HOK-L)"]
    assert row == {"total": 3, "reserved": 1, "available": 2}
    assert overview["all"]["Hokkaido Large (HOK-L)"]["available"] == 2

    pending = client.get("/api/orders/pending").get_json()["items"]
    assert [o["id"] for o in pending] == [order["id"]]
    assert pending[0]["items"][0]["allocated"] == 1
    assert pending[0]["items"][0]["remaining"] == 1


def test_whatsapp_delivery_requires_shipping_costs(client, db_session, gateway, hok_l):
    order = client.post("/api/orders", json=whatsapp_order_payload(hok_l)).get_json()
    barcodes = add_stock(hok_l, "Bandung", 2)

    missing = _deliver(client, order["id"], barcodes, ongkirPlan=5000)
    assert missing.status_code == 400
    assert "ongkirActual" in missing.get_json()["error"]

    ok = _deliver(client, order["id"], barcodes, ongkirPlan=5000, ongkirActual=6000)
    assert ok.status_code == 201
    assert ok.get_json()["ongkir_actual"] == 6000


def test_shipping_costs_ignored_for_other_outlets(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 1)

    resp = _deliver(client, order["id"], barcodes, ongkirPlan=5000, ongkirActual=6000)

    assert resp.status_code == 201
    assert resp.get_json()["ongkir_plan"] is None


def test_delivery_date_before_order_date_is_rejected(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 1)

    resp = _deliver(client, order["id"], barcodes, deliveryDate="2025-01-04T03:00:00Z")

    assert resp.status_code == 400
    assert db.session.query(Delivery).count() == 0


def test_unknown_order_is_404(client, db_session, gateway, hok_l):
    barcodes = add_stock(hok_l, "Bandung", 1)
    assert _deliver(client, 999, barcodes).status_code == 404


# =============================================================================
# SCAN RULES
# =============================================================================

def test_over_allocation_is_rejected(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 3)

    resp = _deliver(client, order["id"], barcodes)

    assert resp.status_code == 400
    over = resp.get_json()["details"]["over_allocated"]
    assert over == [{"product_id": hok_l.id, "ordered": 2, "allocated": 3}]
    assert _status("100-HOK-L") == "READY"


def test_over_allocation_counts_earlier_deliveries(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 3)

    assert _deliver(client, order["id"], barcodes[:1]).status_code == 201
    resp = _deliver(client, order["id"], barcodes[1:])

    assert resp.status_code == 400
    assert "over_allocated" in resp.get_json()["details"]


def test_unit_at_other_location_is_rejected(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Jakarta", 1)

    resp = _deliver(client, order["id"], barcodes)

    assert resp.status_code == 400
    rejected = resp.get_json()["details"]["rejected"]
    assert rejected[0]["barcode"] == "100-HOK-L"
    assert rejected[0]["location"] == "Jakarta"


def test_duplicate_scans_are_rejected(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    add_stock(hok_l, "Bandung", 1)

    resp = _deliver(client, order["id"], ["100-HOK-L", " 100-hok-l "])

    assert resp.status_code == 400
    assert resp.get_json()["details"]["duplicates"] == ["100-HOK-L"]


def test_unit_allocated_to_another_order_is_rejected(client, db_session, gateway, hok_l):
    first = _cafe_order(client, hok_l)
    second = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 1)

    assert _deliver(client, first["id"], barcodes).status_code == 201
    resp = _deliver(client, second["id"], barcodes)

    assert resp.status_code == 400
    assert resp.get_json()["details"]["rejected"][0]["reason"] == "already allocated to a delivery"


def test_product_not_on_order_is_rejected(client, db_session, gateway, hok_l, brw):
    order = _cafe_order(client, hok_l)
    add_stock(brw, "Bandung", 1)

    resp = _deliver(client, order["id"], ["100-BRW"])

    assert resp.status_code == 400
    assert resp.get_json()["details"]["rejected"][0]["reason"] == "product not in order"


def test_unknown_barcode_is_rejected(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)

    resp = _deliver(client, order["id"], ["999-HOK-L"])

    assert resp.status_code == 400
    assert resp.get_json()["details"]["rejected"][0]["reason"] == "not found"


def test_validate_scans_endpoint(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    add_stock(hok_l, "Bandung", 3)

    ok = client.post("/api/deliveries/validate-scans", json={"orderId": order["id"], "items": ["100-HOK-L"]})
    assert ok.status_code == 200
    assert ok.get_json() == {
        "valid": True,
        "items": [{"barcode": "100-HOK-L", "product_id": hok_l.id, "price": 10000}],
    }

    bad = client.post("/api/deliveries/validate-scans", json={
        "orderId": order["id"],
        "items": ["100-HOK-L", "101-HOK-L", "102-HOK-L"],
    })
    assert bad.status_code == 400
    assert bad.get_json()["valid"] is False

    assert db.session.query(DeliveryItem).count() == 0


# =============================================================================
# COMPLETE / CANCEL
# =============================================================================

def test_complete_pending_delivery_sells_units(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 2)
    delivery = _deliver(client, order["id"], barcodes).get_json()

    resp = client.post(f"/api/deliveries/{delivery['id']}/complete", json={"deliveryDate": "2025-01-07T03:00:00Z"})

    assert resp.status_code == 200
    assert resp.get_json()["status"] == "delivered"
    assert resp.get_json()["delivery_date"] == "2025-01-07T03:00:00Z"
    assert _status("100-HOK-L") == "SOLD"

    again = client.post(f"/api/deliveries/{delivery['id']}/complete", json={})
    assert again.status_code == 400


def test_cancel_releases_units_and_reopens_order(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 2)
    delivery = _deliver(client, order["id"], barcodes, deliveryDate="2025-01-06T03:00:00Z").get_json()

    resp = client.post(f"/api/deliveries/{delivery['id']}/cancel")

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "order_id": order["id"]}
    assert _status("100-HOK-L") == "READY"
    assert db.session.query(Delivery).count() == 0
    assert db.session.query(DeliveryItem).count() == 0

    pending = client.get("/api/orders/pending").get_json()["items"]
    assert [o["id"] for o in pending] == [order["id"]]

    # The barcodes are free to allocate again
    assert _deliver(client, order["id"], barcodes).status_code == 201


def test_cancel_unknown_delivery_is_404(client, db_session):
    assert client.post("/api/deliveries/42/cancel").status_code == 404


# =============================================================================
# QUERIES
# =============================================================================

def test_list_deliveries_filters_by_location(client, db_session, gateway, hok_l):
    bandung = _cafe_order(client, hok_l)
    jakarta = _cafe_order(client, hok_l, location="Jakarta")
    _deliver(client, bandung["id"], add_stock(hok_l, "Bandung", 1))
    _deliver(client, jakarta["id"], add_stock(hok_l, "Jakarta", 1, start=200))

    resp = client.get("/api/deliveries?location=Jakarta")

    body = resp.get_json()
    assert body["pagination"]["total"] == 1
    assert body["items"][0]["order"]["id"] == jakarta["id"]


def test_negative_availability_raises_alert(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l)
    barcodes = add_stock(hok_l, "Bandung", 1)
    _deliver(client, order["id"], barcodes)

    # Out-of-band correction: the reserved unit is no longer READY
    db.session.get(InventoryItem, barcodes[0]).status = "SOLD"
    db.session.commit()

    overview = inventory_service.get_overview()

    assert overview["byLocation"]["Bandung"]["Hokkaido Large (HOK-L)"]["available"] == -1
    assert overview["alerts"] == [
        {"location": "Bandung", "product": "Hokkaido Large (HOK-L)", "available": -1},
    ]


@pytest.mark.parametrize("items", [None, [], "100-HOK-L", [{"barcode": ""}]])
def test_malformed_scan_lists_are_rejected(db_session, gateway, hok_l, items):
    order = order_service.create_order({
        "outlet": "Cafe",
        "location": "Bandung",
        "orderDate": "2025-01-05T03:00:00Z",
        "items": [{"productId": hok_l.id, "quantity": 1}],
    }, gateway=gateway)

    with pytest.raises(ValidationError):
        delivery_service.validate_scans(order.id, items)


def test_complete_refuses_unit_outside_order_location(client, db_session, gateway, hok_l):
    order = _cafe_order(client, hok_l, quantity=1)
    barcodes = add_stock(hok_l, "Bandung", 1)
    delivery = _deliver(client, order["id"], barcodes).get_json()

    # Out-of-band relocation of the reserved unit
    db.session.get(InventoryItem, barcodes[0]).location = "Jakarta"
    db.session.commit()

    resp = client.post(f"/api/deliveries/{delivery['id']}/complete", json={"deliveryDate": "2025-01-07T03:00:00Z"})

    assert resp.status_code == 409
    assert _status(barcodes[0]) == "READY"
    assert db.session.get(Delivery, delivery["id"]).status == "pending"
