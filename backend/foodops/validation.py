from __future__ import annotations
from datetime import datetime
from typing import Any

from flask import current_app

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Largest rupiah amount accepted on any money field
MAX_AMOUNT = 999_999_999


def require_fields(payload: Any, fields: list[str]) -> dict:
    """Ensure payload is a JSON object carrying every field in `fields` (non-empty)."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def coerce_int(value: Any, field: str, *, minimum: int | None = None, allow_none: bool = False) -> int | None:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain digit strings. Rejects bools, floats with a
    fractional part, decimals in strings and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    return result


def coerce_percent(value: Any, field: str) -> float | None:
    """Percent in [0, 100]; None/blank/0 means no discount."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        pct = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if pct != pct or pct in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a finite number")
    if pct < 0 or pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return pct or None


def coerce_datetime(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def clean_text(value: Any, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]


def validate_location(value: Any) -> str:
    """Location must be one of the configured stock locations (case-insensitive)."""
    text = clean_text(value)
    if not text:
        raise ValidationError("location is required")
    for known in current_app.config["LOCATIONS"]:
        if known.lower() == text.lower():
            return known
    raise ValidationError(
        f"Unknown location: {text}",
        details={"allowed": list(current_app.config["LOCATIONS"])},
    )
