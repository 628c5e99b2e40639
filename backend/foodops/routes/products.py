# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/foodops/routes/products.py
"""
Catalog routes.

Products are master data for orders (pricing) and inventory (barcode
master codes).
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import FoodOpsError
from ..services import products_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with optional pagination.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    try:
        return jsonify(products_service.list_products(page=page, per_page=per_page))
    except Exception as e:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Failed to list products", "details": {"message": str(e)}}), 500


@products_bp.post("")
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "code": "HOK-L",
        "name": "Hokkaido Large",
        "price": 45000
    }

    Returns:
        201: Product created
        400: Missing or invalid fields
        409: Code already exists
    """
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.create_product(
            code=payload.get("code"),
            name=payload.get("name"),
            price=payload.get("price"),
        )
        return jsonify(product.to_dict()), 201
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Failed to create product", "details": {"message": str(e)}}), 500
