"""
Shipment models
"""

from .shipment import Shipment, ShipmentStatus, DestinationType
from .sequence import ShipmentSequence
from .audit import AuditLog

__all__ = [
    'Shipment', 'ShipmentStatus', 'DestinationType',
    'ShipmentSequence',
    'AuditLog',
]
