# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/foodops/routes/orders.py
"""
Order API Routes

WHY: Orders from every outlet are captured here. WhatsApp orders also get
a Snap payment link in the response.

DESIGN:
- The payment gateway is taken from app.extensions and passed to the
  service explicitly.
- Gateway failure on create answers 500 and the order is not kept.
- Gateway failure on edit answers 500 but the edit is kept.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import ExternalDependencyError, FoodOpsError
from ..services import delivery_service, order_service
from ..services.payment_gateway import current_gateway


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("")
def list_orders_route():
    """
    Query params:
    - page, pageSize: pagination (default 1, 10)
    - from, to: ISO-8601 bounds on order date
    """
    try:
        result = order_service.list_orders(
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("pageSize", 10, type=int),
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
        )
        return jsonify(result)
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Failed to list orders", "details": {"message": str(e)}}), 500


@orders_bp.get("/pending")
def list_pending_orders_route():
    """Orders waiting for delivery, with per-line allocated/remaining counts."""
    try:
        result = delivery_service.list_pending_orders(
            location=request.args.get("location"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            page_size=request.args.get("pageSize", 10, type=int),
        )
        return jsonify(result)
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to list pending orders")
        return jsonify({"error": "Failed to list pending orders", "details": {"message": str(e)}}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify(order.to_dict())
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to get order %s", order_id)
        return jsonify({"error": "Failed to get order", "details": {"message": str(e)}}), 500


# =============================================================================
# MUTATIONS
# =============================================================================

@orders_bp.post("")
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "outlet": "WhatsApp",
        "customer": "Budi",
        "status": "NOT PAID",
        "orderDate": "2025-01-05T03:00:00Z",
        "deliveryDate": "2025-01-06T03:00:00Z",   (optional)
        "location": "Bandung",
        "discount": 10,                           (percent, optional)
        "ongkirPlan": 5000,                       (WhatsApp without self-pickup)
        "selfPickup": false,
        "items": [{"productId": 1, "quantity": 2}]
    }

    Returns:
        201: Order created (WhatsApp orders carry payment_link)
        400: Invalid input
        500: Payment gateway failed; nothing was saved
    """
    payload = request.get_json(silent=True)

    try:
        order = order_service.create_order(payload, gateway=current_gateway())
        return jsonify(order.to_dict()), 201
    except ExternalDependencyError as e:
        return jsonify({
            "error": "Failed to create payment link; the order was rolled back",
            "details": {"message": e.message, **e.details},
        }), e.status_code
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Failed to create order", "details": {"message": str(e)}}), 500


@orders_bp.put("/<int:order_id>")
def update_order_route(order_id: int):
    """
    Edit an order. Same body as create; omitted fields keep their value.

    Returns:
        200: Updated order (payment_link may have been regenerated)
        400: Invalid input, or item change on a delivered order
        404: Order not found
        500: Payment link regeneration failed; the edit was saved
    """
    payload = request.get_json(silent=True)

    try:
        order = order_service.update_order(order_id, payload, gateway=current_gateway())
        return jsonify(order.to_dict())
    except ExternalDependencyError as e:
        return jsonify({
            "error": "Order saved but the payment link could not be regenerated",
            "details": {"message": e.message, **e.details},
        }), e.status_code
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"error": "Failed to update order", "details": {"message": str(e)}}), 500


@orders_bp.delete("/<int:order_id>")
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
        return jsonify({"success": True})
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return jsonify({"error": "Failed to delete order", "details": {"message": str(e)}}), 500


@orders_bp.patch("/<int:order_id>")
def patch_order_route(order_id: int):
    """
    Order actions.

    Request body:
    {"action": "manual-paid", "actPayout": 23000}
    """
    payload = request.get_json(silent=True) or {}
    action = payload.get("action")

    if action != "manual-paid":
        return jsonify({"error": f"Unsupported action: {action}"}), 400

    try:
        order = order_service.mark_order_paid(order_id, act_payout=payload.get("actPayout"))
        return jsonify(order.to_dict())
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to mark order %s paid", order_id)
        return jsonify({"error": "Failed to update order", "details": {"message": str(e)}}), 500
