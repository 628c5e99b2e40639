# Overview: Flask API routes for deliveries operations; parses input and returns JSON responses.

# backend/foodops/routes/deliveries.py
"""
Delivery routes.

A delivery binds scanned barcodes to an order. With a deliveryDate it is
delivered immediately (units SOLD); without one it stays pending and only
reserves the units.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import FoodOpsError
from ..services import delivery_service


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.get("")
def list_deliveries_route():
    try:
        result = delivery_service.list_deliveries(
            location=request.args.get("location"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("pageSize", 10, type=int),
        )
        return jsonify(result)
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list deliveries")
        return jsonify({"error": "Failed to list deliveries", "details": {"message": str(e)}}), 500


@deliveries_bp.get("/<int:delivery_id>")
def get_delivery_route(delivery_id: int):
    try:
        return jsonify(delivery_service.get_delivery(delivery_id).to_dict(include_order=True))
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to get delivery %s", delivery_id)
        return jsonify({"error": "Failed to get delivery", "details": {"message": str(e)}}), 500


@deliveries_bp.post("")
def create_delivery_route():
    """
    Request body:
    {
        "orderId": 12,
        "deliveryDate": "2025-01-06T03:00:00Z",   (optional; omitted -> pending)
        "ongkirPlan": 5000,                       (WhatsApp only)
        "ongkirActual": 6000,                     (WhatsApp only)
        "items": [{"barcode": "212-HOK-L", "productId": 1}]
    }

    Returns:
        201: Delivery created
        400: Scan, ongkir or date rules violated
        404: Order not found
        409: A unit was allocated concurrently
    """
    payload = request.get_json(silent=True) or {}

    try:
        delivery = delivery_service.create_delivery(
            order_id=payload.get("orderId"),
            delivery_date=payload.get("deliveryDate"),
            items=payload.get("items"),
            ongkir_plan=payload.get("ongkirPlan"),
            ongkir_actual=payload.get("ongkirActual"),
        )
        return jsonify(delivery.to_dict()), 201
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create delivery")
        return jsonify({"error": "Failed to create delivery", "details": {"message": str(e)}}), 500


@deliveries_bp.post("/validate-scans")
def validate_scans_route():
    """Dry-run allocation check: {"orderId": 12, "items": [...]}"""
    payload = request.get_json(silent=True) or {}

    try:
        order_id = payload.get("orderId")
        if not isinstance(order_id, int) or isinstance(order_id, bool):
            return jsonify({"error": "orderId is required"}), 400
        scans = delivery_service.validate_scans(order_id, payload.get("items"))
        return jsonify({"valid": True, "items": scans})
    except FoodOpsError as e:
        return jsonify({"valid": False, **e.to_dict()}), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to validate scans")
        return jsonify({"error": "Failed to validate scans", "details": {"message": str(e)}}), 500


@deliveries_bp.post("/<int:delivery_id>/complete")
def complete_delivery_route(delivery_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        delivery = delivery_service.complete_delivery(delivery_id, payload.get("deliveryDate"))
        return jsonify(delivery.to_dict())
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to complete delivery %s", delivery_id)
        return jsonify({"error": "Failed to complete delivery", "details": {"message": str(e)}}), 500


@deliveries_bp.post("/<int:delivery_id>/cancel")
def cancel_delivery_route(delivery_id: int):
    try:
        order_id = delivery_service.cancel_delivery(delivery_id)
        return jsonify({"success": True, "order_id": order_id})
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to cancel delivery %s", delivery_id)
        return jsonify({"error": "Failed to cancel delivery", "details": {"message": str(e)}}), 500
