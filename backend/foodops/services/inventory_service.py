# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/foodops/services/inventory_service.py

"""
Inventory Item Store

Inventory model:
- Stock is the set of InventoryItem rows, one per physical unit, keyed by
  a globally unique barcode. There is no mutable quantity field.
- A unit is READY (sellable) or SOLD (allocated to a delivered delivery).

Business invariants:
- Barcode uniqueness is enforced by the primary key. A duplicate scan-in
  at the same location is a conflict; at a different location it is an
  implicit move of the READY unit.
- Units referenced by a pending delivery stay READY but count as
  reserved; available = READY - reserved and may go negative. Negative
  availability is reported, never corrected here.
- Reserved and sold units never change location; moves are refused
  while a delivery references the barcode.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Delivery, DeliveryItem, InventoryItem, Product
from ..models.deliveries import DELIVERY_STATUS_PENDING
from ..models.inventory import INVENTORY_STATUS_READY, INVENTORY_STATUS_SOLD
from ..validation import coerce_int, validate_location
from .barcode_service import normalize_barcode, parse_barcode, synthesize_barcode
from .concurrency import lock_for_update, run_with_retry
from .products_service import get_product_by_code


VALID_INVENTORY_STATUSES = [INVENTORY_STATUS_READY, INVENTORY_STATUS_SOLD]

# Manual receipts are capped so a typo cannot create thousands of rows
MAX_MANUAL_RECEIPT = 500


# =============================================================================
# SCAN-IN / RECEIPT
# =============================================================================

def _ensure_unallocated(barcode: str) -> None:
    """Units bound to a delivery keep their location until the delivery is cancelled."""
    allocated = db.session.query(DeliveryItem.id).filter_by(barcode=barcode).first()
    if allocated is not None:
        raise StateError(
            "Barcode is allocated to a delivery; cancel the delivery first",
            details={"barcode": barcode},
        )


def scan_in(*, barcode, location) -> tuple[InventoryItem, bool]:
    """
    Register a scanned unit at a location.

    Returns:
        (item, moved) where moved is True when an existing READY unit was
        relocated instead of inserted.

    Raises:
        ValidationError: unparseable barcode or unknown location
        NotFoundError: master code does not map to a product
        ConflictError: barcode already at this location, or already SOLD
        StateError: READY unit elsewhere that a delivery has reserved
    """
    location = validate_location(location)
    parsed = parse_barcode(barcode)
    if parsed is None:
        raise ValidationError("Invalid barcode format", details={"barcode": normalize_barcode(barcode)})

    product = get_product_by_code(parsed.master_code)

    def _op():
        existing = lock_for_update(
            db.session.query(InventoryItem).filter_by(barcode=parsed.raw)
        ).first()

        if existing is not None:
            if existing.location == location:
                raise ConflictError(
                    "Barcode already exists in inventory",
                    details={"barcode": parsed.raw, "location": location},
                )
            if existing.status != INVENTORY_STATUS_READY:
                raise ConflictError(
                    f"Barcode {parsed.raw} is {existing.status} and cannot be moved",
                    details={"barcode": parsed.raw, "status": existing.status},
                )
            _ensure_unallocated(parsed.raw)
            existing.location = location
            db.session.commit()
            return existing, True

        item = InventoryItem(
            barcode=parsed.raw,
            product_id=product.id,
            location=location,
            status=INVENTORY_STATUS_READY,
        )
        db.session.add(item)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Barcode already exists in inventory", details={"barcode": parsed.raw})
        return item, False

    item, moved = run_with_retry(_op)
    if moved:
        current_app.logger.info("Barcode %s implicitly moved to %s on scan-in", item.barcode, location)
    return item, moved


def receive_manual(*, product_code, quantity, location) -> list[InventoryItem]:
    """
    Receive unlabeled units: one synthetic AUTO-... barcode per unit.

    Raises:
        ValidationError: bad quantity or location
        NotFoundError: unknown product code
    """
    location = validate_location(location)
    quantity = coerce_int(quantity, "quantity", minimum=1)
    if quantity > MAX_MANUAL_RECEIPT:
        raise ValidationError(f"quantity cannot exceed {MAX_MANUAL_RECEIPT} per receipt")

    product = get_product_by_code(product_code)

    def _op():
        items = [
            InventoryItem(
                barcode=synthesize_barcode(product.code),
                product_id=product.id,
                location=location,
                status=INVENTORY_STATUS_READY,
            )
            for _ in range(quantity)
        ]
        db.session.add_all(items)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Generated barcode collided with an existing unit; retry the receipt")
        return items

    return run_with_retry(_op)


def set_stock(*, product_id, location, quantity) -> dict:
    """
    Stock correction: replace a product's free READY units at a location
    with exactly `quantity` fresh AUTO-... units.

    Units bound to a delivery are kept and not counted; SOLD units are
    never touched.

    Raises:
        ValidationError: bad product id, quantity or location
        NotFoundError: unknown product
    """
    product_id = coerce_int(product_id, "productId", minimum=1)
    location = validate_location(location)
    quantity = coerce_int(quantity, "quantity", minimum=0)
    if quantity > MAX_MANUAL_RECEIPT:
        raise ValidationError(f"quantity cannot exceed {MAX_MANUAL_RECEIPT} per correction")

    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        allocated = select(DeliveryItem.barcode)
        removed = (
            db.session.query(InventoryItem)
            .filter(
                InventoryItem.product_id == product.id,
                InventoryItem.location == location,
                InventoryItem.status == INVENTORY_STATUS_READY,
                InventoryItem.barcode.not_in(allocated),
            )
            .delete(synchronize_session=False)
        )

        db.session.add_all([
            InventoryItem(
                barcode=synthesize_barcode(product.code),
                product_id=product.id,
                location=location,
                status=INVENTORY_STATUS_READY,
            )
            for _ in range(quantity)
        ])
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Generated barcode collided with an existing unit; retry the correction")
        return {
            "productId": product.id,
            "location": location,
            "quantity": quantity,
            "removed": removed,
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Stock set for product %s at %s: %s removed, %s created",
        result["productId"], location, result["removed"], quantity,
    )
    return result


# =============================================================================
# MOVE / DELETE
# =============================================================================

def move_item(*, barcode, to_location) -> InventoryItem:
    """
    Raises:
        NotFoundError: barcode absent
        StateError: barcode is bound to a delivery
    """
    to_location = validate_location(to_location)
    code = normalize_barcode(barcode)
    if not code:
        raise ValidationError("barcode is required")

    def _op():
        item = lock_for_update(db.session.query(InventoryItem).filter_by(barcode=code)).first()
        if item is None:
            raise NotFoundError("Barcode not found", details={"barcode": code})
        _ensure_unallocated(code)
        item.location = to_location
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_item(barcode) -> None:
    """
    Hard-delete a unit (admin correction).

    Raises:
        NotFoundError: barcode absent
        StateError: barcode is bound to a delivery
    """
    code = normalize_barcode(barcode)
    if not code:
        raise ValidationError("barcode is required")

    def _op():
        item = lock_for_update(db.session.query(InventoryItem).filter_by(barcode=code)).first()
        if item is None:
            raise NotFoundError("Barcode not found", details={"barcode": code})
        _ensure_unallocated(code)
        db.session.delete(item)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_item(barcode) -> InventoryItem:
    code = normalize_barcode(barcode)
    item = run_with_retry(lambda: db.session.query(InventoryItem).filter_by(barcode=code).first())
    if item is None:
        raise NotFoundError("Barcode not found", details={"barcode": code})
    return item


def list_items(
    *,
    location: str | None = None,
    product_code: str | None = None,
    search: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """Newest-first listing with pagination metadata."""
    query = db.session.query(InventoryItem)

    if location and location != "all":
        query = query.filter(InventoryItem.location == location)
    if product_code:
        query = query.join(Product, Product.id == InventoryItem.product_id).filter(
            Product.code == product_code.strip().upper()
        )
    if search:
        query = query.filter(InventoryItem.barcode.contains(normalize_barcode(search)))
    if status:
        status = status.strip().upper()
        if status not in VALID_INVENTORY_STATUSES:
            raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_INVENTORY_STATUSES}")
        query = query.filter(InventoryItem.status == status)

    limit = min(max(limit or 10, 1), 200)
    page = max(page or 1, 1)

    total = run_with_retry(query.count)
    total_pages = (total + limit - 1) // limit if total > 0 else 0
    items = run_with_retry(
        lambda: query.order_by(InventoryItem.created_at.desc(), InventoryItem.barcode.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "items": [item.to_dict() for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total_count": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_overview() -> dict:
    """
    Stock overview per product, by location and across all locations.

    For each product key ("Name (CODE)"):
        total     = READY units
        reserved  = READY units referenced by pending deliveries
        available = total - reserved   (negative values are surfaced as-is)
    """
    def _op():
        products = db.session.query(Product).order_by(Product.name.asc()).all()

        ready_rows = (
            db.session.query(InventoryItem.location, InventoryItem.product_id, func.count(InventoryItem.barcode))
            .filter(InventoryItem.status == INVENTORY_STATUS_READY)
            .group_by(InventoryItem.location, InventoryItem.product_id)
            .all()
        )

        reserved_rows = (
            db.session.query(InventoryItem.location, DeliveryItem.product_id, func.count(DeliveryItem.id))
            .join(Delivery, Delivery.id == DeliveryItem.delivery_id)
            .join(InventoryItem, InventoryItem.barcode == DeliveryItem.barcode)
            .filter(Delivery.status == DELIVERY_STATUS_PENDING)
            .group_by(InventoryItem.location, DeliveryItem.product_id)
            .all()
        )
        return products, ready_rows, reserved_rows

    products, ready_rows, reserved_rows = run_with_retry(_op)

    locations = list(current_app.config["LOCATIONS"])
    for location, _, _ in list(ready_rows) + list(reserved_rows):
        if location not in locations:
            locations.append(location)

    key_by_id = {p.id: p.display_key for p in products}

    def _empty() -> dict:
        return {key: {"total": 0, "reserved": 0, "available": 0} for key in key_by_id.values()}

    by_location = {location: _empty() for location in locations}
    overall = _empty()

    for location, product_id, count in ready_rows:
        key = key_by_id.get(product_id)
        if key is None:
            continue
        by_location[location][key]["total"] += count
        overall[key]["total"] += count

    for location, product_id, count in reserved_rows:
        key = key_by_id.get(product_id)
        if key is None:
            continue
        by_location[location][key]["reserved"] += count
        overall[key]["reserved"] += count

    alerts = []
    for bucket_name, bucket in [("all", overall)] + list(by_location.items()):
        for key, row in bucket.items():
            row["available"] = row["total"] - row["reserved"]
            if row["available"] < 0 and bucket_name != "all":
                alerts.append({"location": bucket_name, "product": key, "available": row["available"]})

    return {"byLocation": by_location, "all": overall, "alerts": alerts}
