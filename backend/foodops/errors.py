# Overview: Error taxonomy shared by services and routes; each error carries its HTTP status.

from __future__ import annotations


class FoodOpsError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(FoodOpsError):
    """400-level input problem (missing fields, bad quantities, unknown product)."""

    status_code = 400


class StateError(FoodOpsError):
    """400-level lifecycle violation (editing or deleting a delivered order)."""

    status_code = 400


class AuthenticationError(FoodOpsError):
    """401: webhook payload could not be authenticated."""

    status_code = 401


class NotFoundError(FoodOpsError):
    status_code = 404


class ConflictError(FoodOpsError):
    """409-level uniqueness conflict (e.g., duplicate barcode at the same location)."""

    status_code = 409


class ExternalDependencyError(FoodOpsError):
    """
    Payment gateway unreachable or answered non-2xx.

    On the order-create path this triggers compensating cleanup.
    """

    status_code = 500
