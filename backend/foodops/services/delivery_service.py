# Overview: Service-layer operations for deliveries; allocates scanned units to orders.

# backend/foodops/services/delivery_service.py

"""
Delivery Allocation Service

Allocation rules (checked for every submission):
- Barcodes are trimmed and uppercased; blanks and in-submission duplicates
  are rejected.
- Each barcode must exist, be READY at the order's location and not be
  bound to any delivery yet.
- Its product must be on the order (and equal an explicitly submitted
  productId).
- Per product: units already on this order's deliveries + units in this
  submission <= ordered quantity.

Status model:
- With a delivery date the delivery is "delivered" and its units flip
  READY -> SOLD in the same transaction (conditional UPDATE; a unit that
  is no longer READY aborts the whole delivery).
- Without one it is "pending": units stay READY but are reserved.

Guards against double allocation:
- UNIQUE(delivery_items.barcode); a losing concurrent insert surfaces as
  ConflictError.
- UPDATE ... WHERE status = 'READY' AND location = <order location> with a
  rowcount check.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime

from sqlalchemy import and_, func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Delivery, DeliveryItem, InventoryItem, Order
from ..models.deliveries import DELIVERY_STATUS_DELIVERED, DELIVERY_STATUS_PENDING
from ..models.inventory import INVENTORY_STATUS_READY, INVENTORY_STATUS_SOLD
from ..models.orders import OUTLET_WHATSAPP
from ..time_utils import jakarta_date, utcnow
from ..validation import coerce_datetime, coerce_int
from .barcode_service import normalize_barcode
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# PENDING ORDERS
# =============================================================================

def _delivered_exists():
    return (
        db.session.query(Delivery.id)
        .filter(and_(Delivery.order_id == Order.id, Delivery.status == DELIVERY_STATUS_DELIVERED))
        .exists()
    )


def _search_filter(query, search: str | None):
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            func.lower(func.coalesce(Order.customer, "")).like(pattern)
            | func.lower(Order.outlet).like(pattern)
        )
    return query


def _paginate(query, page: int, page_size: int, order_by) -> tuple[list, dict]:
    page_size = min(max(page_size or 10, 1), 100)
    page = max(page or 1, 1)

    total = run_with_retry(query.count)
    total_pages = (total + page_size - 1) // page_size if total > 0 else 0
    rows = run_with_retry(
        lambda: query.order_by(*order_by).offset((page - 1) * page_size).limit(page_size).all()
    )
    return rows, {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def allocated_counts(order_id: int) -> Counter:
    """product_id -> units already bound to this order's deliveries."""
    rows = (
        db.session.query(DeliveryItem.product_id, func.count(DeliveryItem.id))
        .join(Delivery, Delivery.id == DeliveryItem.delivery_id)
        .filter(Delivery.order_id == order_id)
        .group_by(DeliveryItem.product_id)
        .all()
    )
    return Counter({product_id: count for product_id, count in rows})


def list_pending_orders(*, location=None, search=None, page: int = 1, page_size: int = 10) -> dict:
    """Orders with no delivered delivery, earliest delivery date first (undated last)."""
    query = db.session.query(Order).filter(~_delivered_exists())
    if location and location != "all":
        query = query.filter(Order.location == location)
    query = _search_filter(query, search)

    orders, pagination = _paginate(
        query,
        page,
        page_size,
        (Order.delivery_date.is_(None), Order.delivery_date.asc(), Order.order_date.asc(), Order.id.asc()),
    )

    items = []
    for order in orders:
        data = order.to_dict()
        allocated = allocated_counts(order.id)
        for line in data["items"]:
            line["allocated"] = allocated.get(line["product_id"], 0)
            line["remaining"] = line["quantity"] - line["allocated"]
        items.append(data)

    return {"items": items, "pagination": pagination}


# =============================================================================
# SCAN VALIDATION
# =============================================================================

def _validate_scans(order: Order, raw_items) -> list[dict]:
    """
    Check a scan submission against an order inside the current session.

    Returns one {barcode, product_id, price} dict per scan.

    Raises:
        ValidationError: with details naming every rejected barcode
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("at least one scanned item is required")

    scans: list[tuple[str, int | None]] = []
    seen: set[str] = set()
    duplicates: list[str] = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, str):
            raw = {"barcode": raw}
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        barcode = normalize_barcode(raw.get("barcode"))
        if not barcode:
            raise ValidationError(f"items[{idx}].barcode is required")
        if barcode in seen:
            duplicates.append(barcode)
            continue
        seen.add(barcode)
        product_id = coerce_int(raw.get("productId"), f"items[{idx}].productId", minimum=1, allow_none=True)
        scans.append((barcode, product_id))

    if duplicates:
        raise ValidationError("Duplicate barcodes in submission", details={"duplicates": duplicates})

    barcodes = [code for code, _ in scans]
    units = {
        unit.barcode: unit
        for unit in db.session.query(InventoryItem).filter(InventoryItem.barcode.in_(barcodes))
    }
    allocated_elsewhere = {
        row.barcode
        for row in db.session.query(DeliveryItem.barcode).filter(DeliveryItem.barcode.in_(barcodes))
    }

    ordered: Counter = Counter()
    prices: dict[int, int] = {}
    for item in order.items:
        ordered[item.product_id] += item.quantity
        prices.setdefault(item.product_id, item.price)

    rejected: list[dict] = []
    validated: list[dict] = []
    for barcode, product_id in scans:
        unit = units.get(barcode)
        if unit is None:
            rejected.append({"barcode": barcode, "reason": "not found"})
            continue
        if unit.status != INVENTORY_STATUS_READY or unit.location != order.location:
            rejected.append({
                "barcode": barcode,
                "reason": f"not READY at {order.location}",
                "status": unit.status,
                "location": unit.location,
            })
            continue
        if barcode in allocated_elsewhere:
            rejected.append({"barcode": barcode, "reason": "already allocated to a delivery"})
            continue
        if product_id is not None and product_id != unit.product_id:
            rejected.append({"barcode": barcode, "reason": "product mismatch"})
            continue
        if unit.product_id not in ordered:
            rejected.append({"barcode": barcode, "reason": "product not in order"})
            continue
        validated.append({"barcode": barcode, "product_id": unit.product_id, "price": prices[unit.product_id]})

    if rejected:
        raise ValidationError("Some barcodes cannot be allocated", details={"rejected": rejected})

    counts = allocated_counts(order.id)
    counts.update(scan["product_id"] for scan in validated)
    over = [
        {"product_id": pid, "ordered": ordered[pid], "allocated": count}
        for pid, count in sorted(counts.items())
        if count > ordered[pid]
    ]
    if over:
        raise ValidationError("Scanned quantity exceeds ordered quantity", details={"over_allocated": over})

    return validated


def validate_scans(order_id: int, items) -> list[dict]:
    """Dry-run of the allocation checks; nothing is written."""
    def _op():
        order = db.session.query(Order).filter_by(id=order_id).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return _validate_scans(order, items)

    return run_with_retry(_op)


# =============================================================================
# CREATE / COMPLETE / CANCEL
# =============================================================================

def _mark_sold(barcodes: list[str], location: str) -> None:
    result = db.session.execute(
        update(InventoryItem)
        .where(
            InventoryItem.barcode.in_(barcodes),
            InventoryItem.status == INVENTORY_STATUS_READY,
            InventoryItem.location == location,
        )
        .values(status=INVENTORY_STATUS_SOLD, updated_at=utcnow())
    )
    if result.rowcount != len(barcodes):
        raise ConflictError(f"Some barcodes are no longer READY at {location}", details={"barcodes": barcodes})


def _check_delivery_date(order: Order, delivery_date: datetime | None) -> None:
    if delivery_date is not None and jakarta_date(delivery_date) < jakarta_date(order.order_date):
        raise ValidationError("deliveryDate cannot be before the order date")


def create_delivery(*, order_id, delivery_date=None, items=None, ongkir_plan=None, ongkir_actual=None) -> Delivery:
    """
    Allocate scanned units to an order.

    Raises:
        NotFoundError: order absent
        ValidationError: scan rules, ongkir rules or date rules violated
        ConflictError: a unit was allocated or sold concurrently
    """
    order_id = coerce_int(order_id, "orderId", minimum=1)
    delivery_date = coerce_datetime(delivery_date, "deliveryDate")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        _check_delivery_date(order, delivery_date)
        scans = _validate_scans(order, items)

        plan = actual = None
        if order.outlet == OUTLET_WHATSAPP:
            plan = coerce_int(ongkir_plan, "ongkirPlan", minimum=1)
            actual = coerce_int(ongkir_actual, "ongkirActual", minimum=1)

        status = DELIVERY_STATUS_DELIVERED if delivery_date else DELIVERY_STATUS_PENDING
        delivery = Delivery(
            order=order,
            status=status,
            delivery_date=delivery_date,
            ongkir_plan=plan,
            ongkir_actual=actual,
        )
        delivery.items = [
            DeliveryItem(product_id=scan["product_id"], barcode=scan["barcode"], price=scan["price"])
            for scan in scans
        ]

        try:
            db.session.add(delivery)
            db.session.flush()
            if status == DELIVERY_STATUS_DELIVERED:
                _mark_sold([scan["barcode"] for scan in scans], order.location)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("One or more barcodes were allocated by another delivery")
        return delivery.id

    delivery_id = run_with_retry(_op)
    return get_delivery(delivery_id)


def complete_delivery(delivery_id: int, delivery_date=None) -> Delivery:
    """Turn a pending delivery into a delivered one; its units become SOLD."""
    delivery_date = coerce_datetime(delivery_date, "deliveryDate") or utcnow()

    def _op():
        delivery = lock_for_update(db.session.query(Delivery).filter_by(id=delivery_id)).first()
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found")
        if delivery.status == DELIVERY_STATUS_DELIVERED:
            raise StateError("Delivery is already delivered")
        _check_delivery_date(delivery.order, delivery_date)

        _mark_sold([item.barcode for item in delivery.items], delivery.order.location)
        delivery.status = DELIVERY_STATUS_DELIVERED
        delivery.delivery_date = delivery_date
        db.session.commit()
        return delivery

    return run_with_retry(_op)


def cancel_delivery(delivery_id: int) -> int:
    """
    Undo a delivery: units back to READY, items and delivery deleted.

    Returns the order id, which is pending again afterwards.
    """
    def _op():
        delivery = lock_for_update(db.session.query(Delivery).filter_by(id=delivery_id)).first()
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found")

        order_id = delivery.order_id
        barcodes = [item.barcode for item in delivery.items]
        if barcodes:
            db.session.execute(
                update(InventoryItem)
                .where(InventoryItem.barcode.in_(barcodes))
                .values(status=INVENTORY_STATUS_READY, updated_at=utcnow())
            )
        db.session.delete(delivery)
        db.session.commit()
        return order_id

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_delivery(delivery_id: int) -> Delivery:
    delivery = run_with_retry(lambda: db.session.query(Delivery).filter_by(id=delivery_id).first())
    if delivery is None:
        raise NotFoundError(f"Delivery {delivery_id} not found")
    return delivery


def list_deliveries(*, location=None, search=None, page: int = 1, page_size: int = 10) -> dict:
    query = db.session.query(Delivery).join(Order, Order.id == Delivery.order_id)
    if location and location != "all":
        query = query.filter(Order.location == location)
    query = _search_filter(query, search)

    deliveries, pagination = _paginate(query, page, page_size, (Delivery.id.desc(),))
    return {
        "items": [d.to_dict(include_order=True) for d in deliveries],
        "pagination": pagination,
    }
