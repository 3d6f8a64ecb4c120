"""
Custom exceptions for the shipment workflow and distribution engine.

The base classes live with the stock ledger so both apps share one error
envelope.
"""

from typing import Optional

from inventory.exceptions import BusinessException, ValidationException

__all__ = [
    'BusinessException', 'ValidationException',
    'ShipmentNotFoundException', 'InvalidBoxIndexException', 'EmptyShipmentException',
    'InvalidTransitionException', 'DimensionMismatchException', 'UnknownBoxSKUException',
    'StaleShipmentException',
]


class ShipmentNotFoundException(BusinessException):
    """Raised when no shipment matches the given id or number."""

    def __init__(self, identifier: str):
        super().__init__(f"Shipment {identifier} not found", "SHIPMENT_NOT_FOUND", {
            "shipment": str(identifier)
        })


class InvalidBoxIndexException(BusinessException):
    """Raised when a box index is outside the shipment's box list."""

    def __init__(self, box_index, box_count: int):
        message = f"Invalid box index {box_index}: shipment has {box_count} box(es)"
        super().__init__(message, "INVALID_BOX_INDEX", {
            "box_index": box_index,
            "box_count": box_count
        })


class EmptyShipmentException(BusinessException):
    """Raised when finalizing a shipment without boxes."""

    def __init__(self, shipment_number: str):
        super().__init__(f"Shipment {shipment_number} has no boxes", "EMPTY_SHIPMENT", {
            "shipment_number": shipment_number
        })


class InvalidTransitionException(BusinessException):
    """Raised when attempting an invalid workflow transition or a draft-only edit."""

    def __init__(self, current_status: str, attempted_status: Optional[str] = None,
                 entity_type: str = "Shipment", operation: Optional[str] = None):
        if attempted_status:
            message = f"Invalid transition for {entity_type}: cannot move from {current_status} to {attempted_status}"
        else:
            message = f"Cannot {operation or 'modify'} {entity_type} in status {current_status}"
        super().__init__(message, "INVALID_TRANSITION", {
            "current_status": current_status,
            "attempted_status": attempted_status,
            "operation": operation,
            "entity_type": entity_type
        })


class DimensionMismatchException(BusinessException):
    """Raised when a SKU's box quantity row does not match the number of boxes."""

    def __init__(self, sku: str, expected: int, actual: int):
        message = f"SKU {sku} has {actual} box quantities but the shipment has {expected} box(es)"
        super().__init__(message, "DIMENSION_MISMATCH", {
            "sku": sku,
            "expected": expected,
            "actual": actual
        })


class UnknownBoxSKUException(BusinessException):
    """Raised when a distribution edit would introduce a SKU into a box that does not hold it."""

    def __init__(self, sku: str, box_index: int):
        message = f"SKU {sku} is not in box {box_index + 1}; use add_item to add new lines"
        super().__init__(message, "UNKNOWN_BOX_SKU", {
            "sku": sku,
            "box_index": box_index
        })


class StaleShipmentException(BusinessException):
    """Raised when a shipment changed since the caller's snapshot."""

    def __init__(self, shipment_number: str, expected_version: int, current_version: Optional[int]):
        message = (
            f"Shipment {shipment_number} was modified concurrently "
            f"(expected version {expected_version}, current {current_version})"
        )
        super().__init__(message, "STALE_SHIPMENT", {
            "shipment_number": shipment_number,
            "expected_version": expected_version,
            "current_version": current_version
        })
