# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/foodops/routes/inventory.py
"""
Inventory routes.

Every physical unit is one barcode. Scan-in registers a labeled unit;
manual receipt creates AUTO-... units for unlabeled stock.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import FoodOpsError
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/in")
def inventory_in_route():
    """
    Receive stock.

    Request body, scan:
    {"barcode": "212-HOK-L", "location": "Bandung"}

    Request body, manual receipt:
    {"productCode": "BRW", "quantity": 12, "location": "Jakarta"}

    Returns:
        201: Unit(s) created
        200: Existing READY unit moved to this location
        400: Invalid barcode, quantity or location
        404: Product not found
        409: Barcode already at this location, or SOLD
    """
    payload = request.get_json(silent=True) or {}

    try:
        if payload.get("barcode"):
            item, moved = inventory_service.scan_in(
                barcode=payload.get("barcode"),
                location=payload.get("location"),
            )
            return jsonify({"item": item.to_dict(), "moved": moved}), (200 if moved else 201)

        items = inventory_service.receive_manual(
            product_code=payload.get("productCode"),
            quantity=payload.get("quantity"),
            location=payload.get("location"),
        )
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 201
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to receive inventory")
        return jsonify({"error": "Failed to receive inventory", "details": {"message": str(e)}}), 500


@inventory_bp.post("/set")
def inventory_set_route():
    """
    Stock correction.

    Request body:
    {"productId": 3, "location": "Bandung", "quantity": 12}

    Returns:
        200: {"success": true, "productId", "location", "quantity", "removed"}
        400: Invalid product id, quantity or location
        404: Product not found
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = inventory_service.set_stock(
            product_id=payload.get("productId"),
            location=payload.get("location"),
            quantity=payload.get("quantity"),
        )
        return jsonify({"success": True, **result})
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to set inventory stock")
        return jsonify({"error": "Failed to set stock", "details": {"message": str(e)}}), 500


@inventory_bp.post("/move")
def inventory_move_route():
    """{"barcode": "212-HOK-L", "toLocation": "Jakarta"}"""
    payload = request.get_json(silent=True) or {}

    try:
        item = inventory_service.move_item(
            barcode=payload.get("barcode"),
            to_location=payload.get("toLocation"),
        )
        return jsonify(item.to_dict())
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to move inventory item")
        return jsonify({"error": "Failed to move item", "details": {"message": str(e)}}), 500


@inventory_bp.get("/item")
def inventory_item_route():
    try:
        item = inventory_service.get_item(request.args.get("barcode"))
        return jsonify(item.to_dict())
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to get inventory item")
        return jsonify({"error": "Failed to get item", "details": {"message": str(e)}}), 500


@inventory_bp.delete("/item")
def inventory_delete_route():
    """Admin correction. Barcode from ?barcode= or the JSON body."""
    payload = request.get_json(silent=True) or {}
    barcode = request.args.get("barcode") or payload.get("barcode")

    try:
        inventory_service.delete_item(barcode)
        return jsonify({"success": True})
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Failed to delete item", "details": {"message": str(e)}}), 500


@inventory_bp.get("/list")
def inventory_list_route():
    """
    Query params:
    - location: exact location or "all"
    - productCode, search (barcode substring), status (READY/SOLD)
    - page, limit (default 1, 10)
    """
    try:
        result = inventory_service.list_items(
            location=request.args.get("location"),
            product_code=request.args.get("productCode"),
            search=request.args.get("search"),
            status=request.args.get("status"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
        return jsonify(result)
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Failed to list inventory", "details": {"message": str(e)}}), 500


@inventory_bp.get("/overview")
def inventory_overview_route():
    try:
        return jsonify(inventory_service.get_overview())
    except Exception as e:
        current_app.logger.exception("Failed to build inventory overview")
        return jsonify({"error": "Failed to build overview", "details": {"message": str(e)}}), 500
