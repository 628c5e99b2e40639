# Overview: Flask API routes for payments operations; receives Midtrans notifications.

# backend/foodops/routes/payments.py
"""
Payment notification endpoint.

Midtrans posts here on every transaction status change. Only 2xx answers
stop the gateway from redelivering, so expected rejections (bad signature,
unknown order) are answered with their own 4xx code and logged.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import FoodOpsError
from ..extensions import PAYOUT_FEES_KEY
from ..services import payment_webhook_service
from ..services.payment_gateway import current_gateway


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/callback")
def midtrans_callback_route():
    """
    Returns:
        200: {"success": true} (+ "deleted": true on expire/cancel)
        401: Missing fields or invalid signature
        404: No order carries this gateway order id
    """
    payload = request.get_json(silent=True)

    try:
        result = payment_webhook_service.handle_notification(
            payload,
            gateway=current_gateway(),
            fee_schedule=current_app.extensions[PAYOUT_FEES_KEY],
        )
        body = {"success": True, "action": result.action}
        if result.action == payment_webhook_service.ACTION_DELETED:
            body["deleted"] = True
        return jsonify(body)
    except FoodOpsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to process payment notification")
        return jsonify({"error": "Failed to process notification", "details": {"message": str(e)}}), 500
