"""
Shipment services
"""

from .workflow import ShipmentWorkflow
from .shipment_service import ShipmentService
from .pack_group_service import PackGroupService

__all__ = [
    'ShipmentWorkflow',
    'ShipmentService',
    'PackGroupService',
]
