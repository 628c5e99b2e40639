# backend/foodops/config.py
from __future__ import annotations
import os


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///foodops.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock locations orders and inventory may reference
    LOCATIONS = _csv(os.environ.get("FOODOPS_LOCATIONS", "Bandung,Jakarta"))

    # Midtrans Snap gateway
    MIDTRANS_SERVER_KEY = os.environ.get("MIDTRANS_SERVER_KEY")
    MIDTRANS_BASE_URL = os.environ.get("MIDTRANS_BASE_URL", "https://app.midtrans.com")
    MIDTRANS_APP_BASE_URL = (
        os.environ.get("MIDTRANS_APP_BASE_URL")
        or os.environ.get("APP_BASE_URL")
    )
    MIDTRANS_FINISH_URL = os.environ.get("MIDTRANS_FINISH_URL")
    MIDTRANS_PENDING_URL = os.environ.get("MIDTRANS_PENDING_URL")
    MIDTRANS_ERROR_URL = os.environ.get("MIDTRANS_ERROR_URL")
    MIDTRANS_EXPIRY_MINUTES = int(os.environ.get("MIDTRANS_EXPIRY_MINUTES", "60"))
    MIDTRANS_ENABLED_PAYMENTS = os.environ.get("MIDTRANS_ENABLED_PAYMENTS")
    MIDTRANS_TIMEOUT_SECONDS = float(os.environ.get("MIDTRANS_TIMEOUT_SECONDS", "15"))
    MIDTRANS_GOPAY_CALLBACK_URL = os.environ.get("MIDTRANS_GOPAY_CALLBACK_URL")

    # JSON object, e.g. {"qris": {"percent": 0.7}, "bca_va": 4000}
    MIDTRANS_PAYOUT_FEES = os.environ.get("MIDTRANS_PAYOUT_FEES")

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = _csv(
        os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
