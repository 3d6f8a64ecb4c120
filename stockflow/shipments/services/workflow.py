"""
Workflow rules for shipments.

Manages allowed state transitions and the draft-only editing rule.
"""

from ..exceptions import InvalidTransitionException
from ..models import Shipment, ShipmentStatus


class ShipmentWorkflow:
    """Workflow rules for Shipment state transitions."""

    ALLOWED_TRANSITIONS = {
        ShipmentStatus.DRAFT: [ShipmentStatus.READY, ShipmentStatus.CANCELLED],
        ShipmentStatus.READY: [ShipmentStatus.SHIPPED, ShipmentStatus.CANCELLED],
        ShipmentStatus.SHIPPED: [ShipmentStatus.DELIVERED],
        ShipmentStatus.DELIVERED: [],  # Final state
        ShipmentStatus.CANCELLED: [],  # Final state
    }

    @classmethod
    def validate_transition(cls, shipment: Shipment, new_status: str) -> None:
        """
        Validate if a status transition is allowed.

        Repeating the current status is rejected too, so a second finalize or
        cancel can never reserve or release stock twice.

        Raises:
            InvalidTransitionException: If transition is not allowed
        """
        allowed_transitions = cls.ALLOWED_TRANSITIONS.get(shipment.status, [])

        if new_status not in allowed_transitions:
            raise InvalidTransitionException(
                current_status=shipment.status,
                attempted_status=new_status,
                entity_type="Shipment"
            )

    @classmethod
    def require_draft(cls, shipment: Shipment, operation: str) -> None:
        """
        Raises:
            InvalidTransitionException: If the shipment is not a draft
        """
        if not shipment.is_draft:
            raise InvalidTransitionException(
                current_status=shipment.status,
                entity_type="Shipment",
                operation=operation
            )

    @classmethod
    def available_transitions(cls, shipment: Shipment):
        return [str(status) for status in cls.ALLOWED_TRANSITIONS.get(shipment.status, [])]
