# Overview: Service-layer operations for orders; pricing, persistence and gateway payment requests.

# backend/foodops/services/order_service.py

"""
Order Service

Pricing model:
- OrderItem.price is a snapshot of Product.price taken when the line is
  written. Once an order has a delivery its lines are frozen.
- total_amount = round_half_up(subtotal * (100 - discount) / 100) + ongkir
  where ongkir only counts for WhatsApp orders that are not self-pickup.

Payment model:
- WhatsApp orders are paid through a Snap checkout link. The link is
  requested after the order transaction commits, never inside a retry.
- Create: if the gateway call fails, the order is deleted again and the
  gateway error is re-raised. No half-created WhatsApp order survives.
- Update: the link is regenerated when the payable content changed. A
  failed regeneration is reported but the committed edit stays.
"""

from __future__ import annotations

import re
from typing import Iterable, NamedTuple

from flask import current_app
from sqlalchemy import update

from ..errors import ExternalDependencyError, NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import InventoryItem, Order, OrderItem
from ..models.inventory import INVENTORY_STATUS_READY
from ..models.orders import (
    ORDER_STATUS_NOT_PAID,
    ORDER_STATUS_PAID,
    OUTLET_WHATSAPP,
    VALID_OUTLETS,
)
from ..time_utils import jakarta_date, utcnow
from ..validation import (
    clean_text,
    coerce_bool,
    coerce_datetime,
    coerce_int,
    coerce_percent,
    require_fields,
    validate_location,
)
from .concurrency import lock_for_update, run_with_retry
from .payment_gateway import SnapItem, build_gateway_order_id
from .payout_fees import round_half_up
from .products_service import resolve_products


DISCOUNT_ITEM_ID = "DISCOUNT"
SHIPPING_ITEM_ID = "SHIPPING"


class OrderTotals(NamedTuple):
    subtotal: int
    discounted: int
    ongkir: int
    total: int


# =============================================================================
# NORMALIZATION & PRICING
# =============================================================================

def normalize_order_status(raw) -> str:
    """
    Canonical order status.

    "not paid", "NOT_PAID", " Not  Paid " -> "NOT PAID"; everything else,
    including missing values, is "PAID".
    """
    if not isinstance(raw, str):
        return ORDER_STATUS_PAID
    normalized = re.sub(r"[\s_]+", " ", raw.strip().upper())
    if normalized == ORDER_STATUS_NOT_PAID:
        return ORDER_STATUS_NOT_PAID
    return ORDER_STATUS_PAID


def normalize_outlet(raw) -> str:
    text = clean_text(raw)
    if not text:
        raise ValidationError("outlet is required")
    for outlet in VALID_OUTLETS:
        if outlet.lower() == text.lower():
            return outlet
    raise ValidationError(f"Invalid outlet: {text}. Must be one of {VALID_OUTLETS}")


def ongkir_value_for(outlet: str, self_pickup: bool, ongkir_plan: int | None) -> int:
    if outlet == OUTLET_WHATSAPP and not self_pickup:
        return ongkir_plan or 0
    return 0


def compute_order_totals(lines: Iterable[tuple[int, int]], discount: float | None, ongkir_value: int) -> OrderTotals:
    """
    Pure pricing for (price, quantity) lines.

    Discount is applied to the subtotal and rounded half-up before
    shipping is added.
    """
    subtotal = sum(price * quantity for price, quantity in lines)
    pct = discount or 0
    discounted = round_half_up(subtotal * (100 - pct) / 100) if pct else subtotal
    ongkir = ongkir_value or 0
    return OrderTotals(subtotal=subtotal, discounted=discounted, ongkir=ongkir, total=discounted + ongkir)


def _normalize_items(raw_items) -> dict[int, int]:
    """productId -> summed quantity, in first-seen order."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("at least one item is required")

    quantities: dict[int, int] = {}
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = coerce_int(raw.get("productId"), f"items[{idx}].productId", minimum=1)
        quantity = coerce_int(raw.get("quantity"), f"items[{idx}].quantity", minimum=1)
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return quantities


def _resolve_ongkir(outlet: str, self_pickup: bool, raw) -> int | None:
    if outlet == OUTLET_WHATSAPP and not self_pickup:
        if raw in (None, "", 0):
            raise ValidationError("ongkirPlan is required for WhatsApp orders without self-pickup")
        return coerce_int(raw, "ongkirPlan", minimum=1)
    return coerce_int(raw, "ongkirPlan", minimum=0, allow_none=True)


def _check_dates(order_date, delivery_date) -> None:
    if delivery_date is not None and jakarta_date(delivery_date) < jakarta_date(order_date):
        raise ValidationError("deliveryDate cannot be before orderDate")


def _item_signature(quantities: dict[int, int]) -> str:
    return ",".join(f"{pid}:{qty}" for pid, qty in sorted(quantities.items()))


# =============================================================================
# PAYMENT REQUESTS
# =============================================================================

def build_snap_items(order: Order) -> list[SnapItem]:
    """
    Gateway line items for an order.

    Lines sum to total_amount: product lines, then a negative DISCOUNT line
    and a SHIPPING line when they apply.
    """
    items = [
        SnapItem(
            id=item.product.code if item.product else str(item.product_id),
            price=item.price,
            quantity=item.quantity,
            name=item.product.name if item.product else f"Product {item.product_id}",
        )
        for item in order.items
    ]
    totals = compute_order_totals(
        [(item.price, item.quantity) for item in order.items],
        order.discount,
        order.ongkir_value,
    )
    if totals.discounted != totals.subtotal:
        items.append(SnapItem(
            id=DISCOUNT_ITEM_ID,
            price=-(totals.subtotal - totals.discounted),
            quantity=1,
            name=f"Discount {order.discount:g}%",
        ))
    if totals.ongkir > 0:
        items.append(SnapItem(id=SHIPPING_ITEM_ID, price=totals.ongkir, quantity=1, name="Ongkir"))
    return items


def request_payment(order_id: int, *, gateway) -> Order:
    """
    Request a fresh Snap transaction for an order and store its references.

    The gateway call runs outside any retry policy; only the read before
    and the write after are retried.

    Raises:
        ExternalDependencyError: gateway failure (nothing is stored)
    """
    order = get_order(order_id)
    gateway_order_id = build_gateway_order_id(order.outlet, order.id)

    transaction = gateway.create_transaction(
        order_id=gateway_order_id,
        gross_amount=order.total_amount,
        customer=order.customer,
        items=build_snap_items(order),
    )

    def _store():
        locked = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if locked is None:
            raise NotFoundError(f"Order {order_id} not found")
        locked.payment_link = transaction.redirect_url
        locked.payment_token = transaction.token
        locked.payment_order_id = transaction.order_id
        locked.payment_transaction_id = None
        db.session.commit()
        return locked

    return run_with_retry(_store)


def _clear_payment_refs(order: Order) -> None:
    order.payment_link = None
    order.payment_token = None
    order.payment_order_id = None
    order.payment_transaction_id = None


def purge_order(order: Order) -> None:
    """
    Delete an order with everything that hangs off it.

    Allocated units go back to READY first; deliveries, delivery items
    and order items go with the order through the relationship cascades.
    Runs inside the caller's transaction; the caller commits.
    """
    barcodes = [item.barcode for delivery in order.deliveries for item in delivery.items]
    if barcodes:
        db.session.execute(
            update(InventoryItem)
            .where(InventoryItem.barcode.in_(barcodes))
            .values(status=INVENTORY_STATUS_READY, updated_at=utcnow())
        )
    db.session.delete(order)


def _purge_order_by_id(order_id: int) -> None:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        return
    purge_order(order)
    db.session.commit()


# =============================================================================
# CREATE / UPDATE / DELETE
# =============================================================================

def create_order(payload, *, gateway) -> Order:
    """
    Create an order with its lines and, for WhatsApp, a payment link.

    Raises:
        ValidationError: invalid fields or unknown product ids
        ExternalDependencyError: gateway failure (the order is removed again)
    """
    payload = require_fields(payload, ["outlet", "location"])

    outlet = normalize_outlet(payload.get("outlet"))
    location = validate_location(payload.get("location"))
    order_date = coerce_datetime(payload.get("orderDate"), "orderDate") or utcnow()
    delivery_date = coerce_datetime(payload.get("deliveryDate"), "deliveryDate")
    _check_dates(order_date, delivery_date)

    discount = coerce_percent(payload.get("discount"), "discount")
    act_payout = coerce_int(payload.get("actPayout"), "actPayout", minimum=0, allow_none=True)
    self_pickup = coerce_bool(payload.get("selfPickup"))
    ongkir_plan = _resolve_ongkir(outlet, self_pickup, payload.get("ongkirPlan"))
    quantities = _normalize_items(payload.get("items"))

    def _op():
        products = resolve_products(quantities.keys())
        lines = [(products[pid].price, qty) for pid, qty in quantities.items()]
        totals = compute_order_totals(lines, discount, ongkir_value_for(outlet, self_pickup, ongkir_plan))

        order = Order(
            outlet=outlet,
            customer=clean_text(payload.get("customer")),
            status=normalize_order_status(payload.get("status")),
            order_date=order_date,
            delivery_date=delivery_date,
            location=location,
            discount=discount,
            total_amount=totals.total,
            act_payout=act_payout,
            ongkir_plan=ongkir_plan,
            self_pickup=self_pickup,
        )
        order.items = [
            OrderItem(product_id=pid, quantity=qty, price=products[pid].price)
            for pid, qty in quantities.items()
        ]
        db.session.add(order)
        db.session.commit()
        return order.id

    order_id = run_with_retry(_op)

    if outlet == OUTLET_WHATSAPP:
        try:
            return request_payment(order_id, gateway=gateway)
        except Exception:
            current_app.logger.warning(
                "Payment request failed for new order %s; removing the order", order_id
            )
            run_with_retry(lambda: _purge_order_by_id(order_id))
            raise

    return get_order(order_id)


def update_order(order_id: int, payload, *, gateway) -> Order:
    """
    Edit an order.

    Without deliveries: outlet, location and the item set may change; the
    lines are replaced with freshly priced ones. With deliveries: only
    header fields change and totals are recomputed from the frozen lines.

    Raises:
        NotFoundError: order absent
        StateError: item/outlet/location change on a delivered order
        ValidationError: invalid fields
        ExternalDependencyError: payment regeneration failed (edit kept)
    """
    payload = require_fields(payload, [])

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        has_deliveries = bool(order.deliveries)
        old_quantities = {item.product_id: item.quantity for item in order.items}
        old_total = order.total_amount
        old_ongkir = order.ongkir_value
        was_whatsapp = order.outlet == OUTLET_WHATSAPP

        if "customer" in payload:
            order.customer = clean_text(payload.get("customer"))
        if "status" in payload:
            order.status = normalize_order_status(payload.get("status"))
        if "orderDate" in payload:
            order.order_date = coerce_datetime(payload.get("orderDate"), "orderDate") or order.order_date
        if "deliveryDate" in payload:
            order.delivery_date = coerce_datetime(payload.get("deliveryDate"), "deliveryDate")
        if "discount" in payload:
            order.discount = coerce_percent(payload.get("discount"), "discount")
        if "actPayout" in payload:
            order.act_payout = coerce_int(payload.get("actPayout"), "actPayout", minimum=0, allow_none=True)
        if "selfPickup" in payload:
            order.self_pickup = coerce_bool(payload.get("selfPickup"))
        _check_dates(order.order_date, order.delivery_date)

        new_outlet = normalize_outlet(payload["outlet"]) if payload.get("outlet") else order.outlet
        new_location = validate_location(payload["location"]) if payload.get("location") else order.location
        new_quantities = _normalize_items(payload["items"]) if "items" in payload else old_quantities

        if has_deliveries:
            if new_outlet != order.outlet or new_location != order.location:
                raise StateError("Outlet and location cannot change once the order has deliveries")
            if new_quantities != old_quantities:
                raise StateError("Items cannot change once the order has deliveries")
            lines = [(item.price, item.quantity) for item in order.items]
        else:
            order.outlet = new_outlet
            order.location = new_location
            if "items" in payload:
                products = resolve_products(new_quantities.keys())
                # Replaced lines are deleted as orphans on flush
                order.items = [
                    OrderItem(product_id=pid, quantity=qty, price=products[pid].price)
                    for pid, qty in new_quantities.items()
                ]
                lines = [(products[pid].price, qty) for pid, qty in new_quantities.items()]
            else:
                lines = [(item.price, item.quantity) for item in order.items]

        raw_ongkir = payload.get("ongkirPlan") if "ongkirPlan" in payload else order.ongkir_plan
        order.ongkir_plan = _resolve_ongkir(order.outlet, order.self_pickup, raw_ongkir)

        totals = compute_order_totals(lines, order.discount, order.ongkir_value)
        order.total_amount = totals.total

        if was_whatsapp and order.outlet != OUTLET_WHATSAPP:
            _clear_payment_refs(order)

        needs_payment = (
            order.outlet == OUTLET_WHATSAPP
            and not has_deliveries
            and order.status != ORDER_STATUS_PAID
            and (
                _item_signature(new_quantities) != _item_signature(old_quantities)
                or totals.total != old_total
                or totals.ongkir != old_ongkir
                or not order.payment_order_id
            )
        )

        db.session.commit()
        return needs_payment

    needs_payment = run_with_retry(_op)

    if needs_payment:
        try:
            return request_payment(order_id, gateway=gateway)
        except ExternalDependencyError:
            current_app.logger.warning(
                "Payment link regeneration failed for order %s; edit was kept", order_id
            )
            raise

    return get_order(order_id)


def delete_order(order_id: int) -> None:
    """
    Raises:
        NotFoundError: order absent
        StateError: order already has deliveries
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.deliveries:
            raise StateError("Cannot delete an order that already has deliveries")
        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)


def mark_order_paid(order_id: int, act_payout=None) -> Order:
    """Manual-paid: force PAID and drop the gateway references."""
    act_payout = coerce_int(act_payout, "actPayout", minimum=0, allow_none=True)

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        order.status = ORDER_STATUS_PAID
        if act_payout is not None:
            order.act_payout = act_payout
        _clear_payment_refs(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = run_with_retry(lambda: db.session.query(Order).filter_by(id=order_id).first())
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders(*, page: int = 1, page_size: int = 10, date_from=None, date_to=None) -> dict:
    query = db.session.query(Order)

    start = coerce_datetime(date_from, "from") if date_from else None
    end = coerce_datetime(date_to, "to") if date_to else None
    if start is not None:
        query = query.filter(Order.order_date >= start)
    if end is not None:
        query = query.filter(Order.order_date <= end)

    page_size = min(max(page_size or 10, 1), 100)
    page = max(page or 1, 1)

    total = run_with_retry(query.count)
    total_pages = (total + page_size - 1) // page_size if total > 0 else 0
    orders = run_with_retry(
        lambda: query.order_by(Order.order_date.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return {
        "items": [o.to_dict() for o in orders],
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
