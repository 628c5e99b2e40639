# Overview: Handles Midtrans payment notifications; verifies, then settles or removes the order.

"""
Payment Webhook Handler

Notification lifecycle:
- capture / settlement -> order becomes PAID; act_payout is reconciled
- expire / cancel      -> order and everything attached to it is deleted;
                          allocated units are returned to READY
- pending / other      -> acknowledged, nothing changes

Net payout precedence (first positive value wins):
  settlement_amount, gross - merchant_fee, fee-schedule estimate,
  raw paid amount, the order's previous total.

Notifications are delivered at least once. Handling is idempotent: a
repeated settlement for an already settled PAID order is a no-op, and a
repeated expire for an order that is already gone answers 404 without
side effects. An order created as PAID still takes its first settlement.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, NamedTuple

from flask import current_app

from ..errors import AuthenticationError, NotFoundError
from ..extensions import db
from ..models import Order
from ..models.orders import ORDER_STATUS_PAID
from .concurrency import lock_for_update, run_with_retry
from .order_service import purge_order
from .payout_fees import derive_payment_method, round_half_up


REQUIRED_FIELDS = ["order_id", "transaction_status", "status_code", "gross_amount", "signature_key"]

PAID_STATUSES = {"capture", "settlement"}
REMOVE_STATUSES = {"expire", "cancel"}

ACTION_PAID = "paid"
ACTION_DELETED = "deleted"
ACTION_IGNORED = "ignored"
ACTION_UNCHANGED = "unchanged"


class NotificationResult(NamedTuple):
    action: str
    order_id: int | None


def _amount(value: Any) -> int | None:
    """Gateway amounts arrive as strings like "23000.00"."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return round_half_up(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None


def resolve_net_payout(payload: Mapping[str, Any], *, fee_schedule, fallback: int | None) -> int | None:
    paid = _amount(payload.get("gross_amount"))

    settlement = _amount(payload.get("settlement_amount"))
    if settlement and settlement > 0:
        return settlement

    merchant_fee = _amount(payload.get("merchant_fee"))
    if paid and merchant_fee and merchant_fee > 0:
        return max(0, paid - merchant_fee)

    if paid and paid > 0:
        estimate = fee_schedule.calculate_net_payout(paid, derive_payment_method(payload))
        if estimate.net > 0:
            return estimate.net
        return paid

    return fallback


def _already_settled(order: Order, transaction_id: str | None) -> bool:
    """
    A PAID order counts as settled when the notification repeats its stored
    transaction id, or carries none and the payout is already recorded.
    """
    if order.status != ORDER_STATUS_PAID:
        return False
    if transaction_id:
        return order.payment_transaction_id == transaction_id
    return order.act_payout is not None


def handle_notification(payload, *, gateway, fee_schedule) -> NotificationResult:
    """
    Verify and apply one gateway notification.

    Raises:
        AuthenticationError: required fields missing or signature mismatch
        NotFoundError: no order carries this gateway order id
    """
    if not isinstance(payload, dict):
        raise AuthenticationError("Invalid notification payload")

    missing = [f for f in REQUIRED_FIELDS if payload.get(f) in (None, "")]
    if missing:
        current_app.logger.warning("Rejected payment notification: missing %s", ", ".join(missing))
        raise AuthenticationError("Missing notification fields", details={"missing": missing})

    gateway_order_id = str(payload["order_id"])
    verified = gateway.verify_signature(
        order_id=gateway_order_id,
        status_code=str(payload["status_code"]),
        gross_amount=str(payload["gross_amount"]),
        signature_key=str(payload["signature_key"]),
    )
    if not verified:
        current_app.logger.warning("Rejected payment notification for %s: invalid signature", gateway_order_id)
        raise AuthenticationError("Invalid signature")

    transaction_status = str(payload["transaction_status"]).strip().lower()
    transaction_id = str(payload.get("transaction_id") or "").strip() or None

    def _op():
        order = lock_for_update(
            db.session.query(Order).filter_by(payment_order_id=gateway_order_id)
        ).first()
        if order is None:
            raise NotFoundError(f"Order for {gateway_order_id} not found")

        if transaction_status in PAID_STATUSES:
            if _already_settled(order, transaction_id):
                return NotificationResult(ACTION_UNCHANGED, order.id)
            order.status = ORDER_STATUS_PAID
            order.act_payout = resolve_net_payout(
                payload, fee_schedule=fee_schedule, fallback=order.total_amount
            )
            order.payment_transaction_id = transaction_id or order.payment_transaction_id
            db.session.commit()
            return NotificationResult(ACTION_PAID, order.id)

        if transaction_status in REMOVE_STATUSES:
            order_id = order.id
            purge_order(order)
            db.session.commit()
            return NotificationResult(ACTION_DELETED, order_id)

        return NotificationResult(ACTION_IGNORED, order.id)

    result = run_with_retry(_op)

    if result.action in (ACTION_PAID, ACTION_DELETED):
        current_app.logger.info(
            "Payment notification %s for %s: order %s %s",
            transaction_status, gateway_order_id, result.order_id, result.action,
        )
    return result
