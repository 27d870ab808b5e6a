# Overview: Domain exception taxonomy shared by services and routes.

"""
Ledger error types.

Services raise these; routes translate them with ``error_response`` into a
JSON body ``{"error": code, "message": ..., "details": ...}`` and the
status code carried by the class.
"""
from __future__ import annotations

from typing import Any

from flask import jsonify


class LedgerError(Exception):
    """Base class for every expected business failure."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """400-level input problem."""

    code = "validation_error"
    status_code = 400


class InvalidBatchError(ValidationError):
    """Batch with non-positive quantity or unit cost."""

    code = "invalid_batch"


class NotFoundError(LedgerError):
    code = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g., duplicate SKU, sold product delete)."""

    code = "conflict"
    status_code = 409


class InsufficientStockError(LedgerError):
    """
    A location cannot cover the requested quantity.

    ``details`` is a list of ``{"product_id", "name", "location", "available",
    "requested"}`` entries, one per short line.
    """

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, shortages: list[dict]):
        parts = [
            f"{s['name']} (available {s['available']}, requested {s['requested']})"
            for s in shortages
        ]
        super().__init__("Insufficient stock: " + ", ".join(parts), details=shortages)
        self.shortages = shortages


class InvalidTransitionError(LedgerError):
    """Transfer status change that is not pending -> completed/cancelled."""

    code = "invalid_transition"
    status_code = 409


class UnauthorizedError(LedgerError):
    code = "unauthorized"
    status_code = 401


class ForbiddenError(LedgerError):
    code = "forbidden"
    status_code = 403


class StockDriftError(LedgerError):
    """Stored location counters disagree with the transaction log replay."""

    code = "stock_drift"
    status_code = 409


def error_response(exc: LedgerError):
    return jsonify(exc.to_dict()), exc.status_code
