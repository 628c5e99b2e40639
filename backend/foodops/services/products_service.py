# backend/foodops/services/products_service.py
"""
Catalog service.

Products are routine master data; the fulfillment pipeline only needs to
resolve them by id (order pricing) and by master code (barcode scan-in).
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import clean_text, coerce_int
from .concurrency import run_with_retry


def normalize_code(value) -> str:
    return str(value or "").strip().upper()


def list_products(page: int | None = None, per_page: int | None = None) -> dict:
    """
    Product listing with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = run_with_retry(base_query.all)
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = run_with_retry(base_query.count)
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = run_with_retry(lambda: base_query.offset((page - 1) * per_page).limit(per_page).all())

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, code, name, price) -> Product:
    """
    Create a product.

    Raises:
        ValidationError: blank code/name or invalid price
        ConflictError: code already exists
    """
    code = normalize_code(code)
    name = clean_text(name)
    if not code or not name:
        raise ValidationError("code and name are required")
    price = coerce_int(price, "price", minimum=0)

    def _op():
        if db.session.query(Product).filter_by(code=code).first():
            raise ConflictError("Product code already exists")

        product = Product(code=code, name=name, price=price)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Product code already exists")
        return product

    return run_with_retry(_op)


def get_product_by_code(code) -> Product:
    code = normalize_code(code)
    product = run_with_retry(lambda: db.session.query(Product).filter_by(code=code).first())
    if product is None:
        raise NotFoundError(f"Product {code} not found")
    return product


def resolve_products(product_ids) -> dict[int, Product]:
    """
    Load products by id for pricing.

    Raises:
        ValidationError: listing every id that does not exist
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    products = db.session.query(Product).filter(Product.id.in_(ids)).all()
    found = {p.id: p for p in products}
    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise ValidationError(
            f"Product with id {missing[0]} not found",
            details={"missing_product_ids": missing},
        )
    return found
