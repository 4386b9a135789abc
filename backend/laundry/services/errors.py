# Overview: Error taxonomy for the order/inventory engine; routes map these to HTTP responses.

from __future__ import annotations


class OrderEngineError(Exception):
    """Base class for errors surfaced to API callers."""
    kind = "ORDER_ENGINE_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class ValidationError(OrderEngineError):
    """Malformed or missing input. Rejected before any write."""
    kind = "VALIDATION_ERROR"
    http_status = 400


class NotFound(OrderEngineError):
    kind = "NOT_FOUND"
    http_status = 404


class InsufficientStock(OrderEngineError):
    """A stock change would take current_stock below zero."""
    kind = "INSUFFICIENT_STOCK"
    http_status = 400


class InvalidTransition(OrderEngineError):
    kind = "INVALID_TRANSITION"
    http_status = 400


class ConflictError(OrderEngineError):
    """
    Concurrent modification detected by the database.

    The service layer never retries this; HTTP callers may retry once.
    """
    kind = "CONFLICT"
    http_status = 409


class TransactionAbortError(OrderEngineError):
    """A unit of work failed for a non-domain reason and was rolled back."""
    kind = "TRANSACTION_ABORTED"
    http_status = 503
