"""
Custom exceptions for the inventory ledger.

BusinessException is the base for every rule violation raised by the ledger
and the shipment workflow. StorageException is kept separate so callers can
tell infrastructure faults from business errors.
"""

from typing import Dict, Any


class BusinessException(Exception):
    """Base exception for business logic errors."""

    def __init__(self, message: str, code: str = "BUSINESS_ERROR", details: Dict[str, Any] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(BusinessException):
    """Raised when command data validation fails."""

    def __init__(self, message: str, field_errors: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", field_errors or {})


class UnknownSKUException(BusinessException):
    """Raised when a SKU is not registered or has been deactivated."""

    def __init__(self, sku: str):
        super().__init__(f"SKU {sku} not found in inventory", "UNKNOWN_SKU", {"sku": sku})


class InsufficientStockException(BusinessException):
    """Raised when available quantity cannot cover a request."""

    def __init__(self, sku: str, requested_qty: int, available_qty: int):
        message = f"Insufficient stock for SKU {sku}: requested {requested_qty}, available {available_qty}"
        super().__init__(message, "INSUFFICIENT_STOCK", {
            "sku": sku,
            "requested_quantity": requested_qty,
            "available_quantity": available_qty,
        })


class NegativeQuantityException(BusinessException):
    """Raised when an adjustment would drive a quantity below zero."""

    def __init__(self, sku: str, field: str, current_qty: int, delta: int):
        message = f"Adjustment of {delta} on {field} for SKU {sku} would leave {current_qty + delta} (current {current_qty})"
        super().__init__(message, "NEGATIVE_QUANTITY", {
            "sku": sku,
            "field": field,
            "current_quantity": current_qty,
            "delta": delta,
        })


class StorageException(Exception):
    """Raised when the persistence layer fails (connection loss, lock timeout, ...)."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, operation: str = ""):
        self.message = message
        self.operation = operation
        self.details = {"operation": operation} if operation else {}
        super().__init__(message)
