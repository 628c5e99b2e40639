# Overview: Midtrans Snap adapter; creates hosted-checkout transactions and verifies webhook signatures.

"""
Payment Gateway Adapter (Midtrans Snap)

WHY: WhatsApp orders are paid through a hosted checkout link. This module
is the only place that talks to the gateway.

DESIGN:
- MidtransClient is built once by the app factory from GatewaySettings and
  stored on app.extensions; services receive it as an argument.
- create_transaction is NOT idempotent on the gateway side. Callers must
  never retry it automatically.
- Gateway order ids are "{prefix}-{internal id}-{epoch millis}", so every
  (re)generation produces a fresh id the gateway has not seen.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import httpx
from flask import current_app

from ..errors import ExternalDependencyError
from ..extensions import PAYMENT_GATEWAY_KEY
from ..models.orders import (
    OUTLET_CAFE,
    OUTLET_FREE,
    OUTLET_SHOPEE,
    OUTLET_TOKOPEDIA,
    OUTLET_WHATSAPP,
    OUTLET_WHOLESALE,
)
from ..time_utils import utcnow, utcnow_millis


# Snap rejects item names longer than 50 characters
MAX_ITEM_NAME_LENGTH = 50

OUTLET_PREFIXES = {
    OUTLET_WHATSAPP: "WA",
    OUTLET_TOKOPEDIA: "TKP",
    OUTLET_SHOPEE: "SHP",
    OUTLET_CAFE: "CAFE",
    OUTLET_WHOLESALE: "WHS",
    OUTLET_FREE: "FREE",
}

_TIMESTAMP_SEGMENT = re.compile(r"^\d{6,}$")


@dataclass(frozen=True)
class SnapItem:
    id: str
    price: int
    quantity: int
    name: str

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "price": self.price,
            "quantity": self.quantity,
            "name": self.name[:MAX_ITEM_NAME_LENGTH],
        }


@dataclass(frozen=True)
class SnapTransaction:
    token: str
    redirect_url: str
    order_id: str
    expiry_at: datetime


@dataclass(frozen=True)
class GatewaySettings:
    server_key: str | None
    base_url: str = "https://app.midtrans.com"
    finish_url: str | None = None
    pending_url: str | None = None
    error_url: str | None = None
    expiry_minutes: int = 60
    enabled_payments: list[str] | None = None
    timeout_seconds: float = 15.0
    gopay_callback_url: str | None = None

    @classmethod
    def from_config(cls, config) -> "GatewaySettings":
        app_base = (config.get("MIDTRANS_APP_BASE_URL") or "").strip().rstrip("/")

        def _callback(explicit, path):
            if explicit and explicit.strip():
                return explicit.strip()
            if app_base:
                return f"{app_base}{path}"
            return None

        return cls(
            server_key=config.get("MIDTRANS_SERVER_KEY") or None,
            base_url=(config.get("MIDTRANS_BASE_URL") or "https://app.midtrans.com").rstrip("/"),
            finish_url=_callback(config.get("MIDTRANS_FINISH_URL"), "/midtrans/finish"),
            pending_url=_callback(config.get("MIDTRANS_PENDING_URL"), "/midtrans/pending"),
            error_url=_callback(config.get("MIDTRANS_ERROR_URL"), "/midtrans/error"),
            expiry_minutes=int(config.get("MIDTRANS_EXPIRY_MINUTES") or 60),
            enabled_payments=parse_enabled_payments(config.get("MIDTRANS_ENABLED_PAYMENTS")),
            timeout_seconds=float(config.get("MIDTRANS_TIMEOUT_SECONDS") or 15.0),
            gopay_callback_url=config.get("MIDTRANS_GOPAY_CALLBACK_URL") or None,
        )


def parse_enabled_payments(raw: str | None) -> list[str] | None:
    """Accept a JSON list or a comma-separated list; blanks and duplicates are dropped."""
    if not raw or not raw.strip():
        return None

    values: list = []
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            values = parsed
    except ValueError:
        pass
    if not values:
        values = raw.split(",")

    cleaned: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        value = value.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned or None


# =============================================================================
# ORDER IDS
# =============================================================================

def build_gateway_order_id(outlet: str, order_id: int, *, timestamp_ms: int | None = None) -> str:
    prefix = OUTLET_PREFIXES.get(outlet) or re.sub(r"[^A-Z0-9]", "", (outlet or "ORD").upper()) or "ORD"
    stamp = timestamp_ms if timestamp_ms is not None else utcnow_millis()
    return f"{prefix}-{order_id}-{stamp}"


def format_gateway_order_id(value: str | None) -> str | None:
    """Human-meaningful part of a gateway order id (timestamp suffix removed)."""
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    parts = trimmed.split("-")
    if len(parts) >= 3 and _TIMESTAMP_SEGMENT.match(parts[-1]):
        return "-".join(parts[:-1])
    return trimmed


# =============================================================================
# CLIENT
# =============================================================================

@dataclass
class MidtransClient:
    settings: GatewaySettings
    transport: httpx.BaseTransport | None = field(default=None, repr=False)

    def _require_server_key(self) -> str:
        if not self.settings.server_key:
            raise ExternalDependencyError("MIDTRANS_SERVER_KEY is not set")
        return self.settings.server_key

    def build_request_body(
        self,
        *,
        order_id: str,
        gross_amount: int,
        customer: str | None,
        items: list[SnapItem],
        expiry_minutes: int,
    ) -> dict:
        s = self.settings
        body: dict = {
            "transaction_details": {"order_id": order_id, "gross_amount": gross_amount},
            "customer_details": {"first_name": customer or "Customer"},
            "item_details": [item.to_payload() for item in items],
            "expiry": {"unit": "minutes", "duration": expiry_minutes},
        }

        callbacks = {}
        if s.finish_url:
            callbacks["finish"] = s.finish_url
        if s.pending_url:
            callbacks["unfinish"] = s.pending_url
        if s.error_url:
            callbacks["error"] = s.error_url
        if callbacks:
            body["callbacks"] = callbacks

        if s.enabled_payments:
            body["enabled_payments"] = list(s.enabled_payments)
            body["payment_option_priorities"] = list(s.enabled_payments)

        if not s.enabled_payments or "gopay" in s.enabled_payments:
            callback_url = s.gopay_callback_url or s.finish_url or s.pending_url or s.error_url
            body["gopay"] = {"enable_callback": bool(callback_url)}
            if callback_url:
                body["gopay"]["callback_url"] = callback_url

        return body

    def create_transaction(
        self,
        *,
        order_id: str,
        gross_amount: int,
        customer: str | None,
        items: list[SnapItem],
        expiry_minutes: int | None = None,
    ) -> SnapTransaction:
        """
        Create a Snap transaction.

        Raises:
            ExternalDependencyError: missing server key, transport failure,
                non-2xx answer, or an answer without a token.
        """
        server_key = self._require_server_key()
        expiry = expiry_minutes or self.settings.expiry_minutes
        body = self.build_request_body(
            order_id=order_id,
            gross_amount=gross_amount,
            customer=customer,
            items=items,
            expiry_minutes=expiry,
        )

        url = f"{self.settings.base_url}/snap/v1/transactions"
        try:
            with httpx.Client(
                timeout=self.settings.timeout_seconds,
                transport=self.transport,
                auth=(server_key, ""),
            ) as client:
                response = client.post(url, json=body, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise ExternalDependencyError(f"Midtrans Snap unreachable: {exc}") from exc

        if not response.is_success:
            raise ExternalDependencyError(
                f"Midtrans Snap error: {response.status_code} {response.reason_phrase} - {response.text}",
                details={"status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalDependencyError("Midtrans Snap returned a non-JSON response") from exc

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise ExternalDependencyError("Midtrans Snap response is missing a token")

        return SnapTransaction(
            token=token,
            redirect_url=data.get("redirect_url") or "",
            order_id=order_id,
            expiry_at=utcnow() + timedelta(minutes=expiry),
        )

    def signature_for(self, *, order_id: str, status_code: str, gross_amount: str) -> str:
        server_key = self._require_server_key()
        raw = f"{order_id}{status_code}{gross_amount}{server_key}"
        return hashlib.sha512(raw.encode("utf-8")).hexdigest()

    def verify_signature(self, *, order_id: str, status_code: str, gross_amount: str, signature_key: str) -> bool:
        """sha512(order_id + status_code + gross_amount + server_key), compared in constant time."""
        if not self.settings.server_key or not signature_key:
            return False
        expected = self.signature_for(order_id=order_id, status_code=status_code, gross_amount=gross_amount)
        return hmac.compare_digest(expected.encode("utf-8"), str(signature_key).encode("utf-8"))


def current_gateway():
    """Gateway registered on the running app."""
    return current_app.extensions[PAYMENT_GATEWAY_KEY]
