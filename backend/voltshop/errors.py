# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class DomainError(Exception):
    """Base for errors reported to the caller as a structured response."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DomainError, ValueError):
    """Missing or malformed input. Nothing was mutated."""
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ForbiddenError(DomainError):
    """Actor lacks ownership or role."""
    status_code = 403


class InvalidTransitionError(DomainError):
    """Action attempted from a status that does not allow it."""
    status_code = 400


class InsufficientStockError(DomainError):
    status_code = 400

    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ConcurrencyConflict(Exception):
    """A concurrent writer won a race; the unit of work is safe to retry."""


class ImmutableRecordError(Exception):
    """Raised when an append-only audit row is updated or deleted."""


class ConflictError(DomainError):
    """Business rule conflict, e.g. a duplicate SKU."""
    status_code = 409
