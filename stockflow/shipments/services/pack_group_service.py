"""
Pack group service.

Works on shipments through the SKU x box matrix view: read a shipment as a
matrix, create a draft from one, or re-distribute quantities across the
existing boxes.
"""

import logging
from typing import Dict, Any, List, Optional
from django.db import transaction

from inventory.conf import get_setting
from inventory.exceptions import InsufficientStockException
from inventory.utils import normalize_sku
from ..adapters.stock_adapter import StockLedgerInterface
from ..exceptions import ValidationException
from ..models import Shipment
from .distribution import apply_matrix_edit, build_from_matrix, project_to_matrix
from .shipment_service import ShipmentService
from .totals import to_quantity
from .workflow import ShipmentWorkflow

logger = logging.getLogger(__name__)


class PackGroupService:
    """Service class for pack group (matrix) operations."""

    def __init__(self, ledger: StockLedgerInterface = None, shipment_service: ShipmentService = None):
        self.shipments = shipment_service or ShipmentService(ledger)
        self.ledger = self.shipments.ledger

    def get_pack_group_data(self, shipment_id) -> Dict[str, Any]:
        """
        Project a shipment onto its SKU x box matrix.

        Returns:
            Shipment header (number, pack group, FBA id, destination, status,
            version, totals) plus 'boxes' and 'skus' from project_to_matrix
        """
        shipment = self.shipments.get_shipment(shipment_id)
        matrix = project_to_matrix(shipment.boxes)
        return {
            'shipment_id': str(shipment.id),
            'shipment_number': shipment.shipment_number,
            'pack_group': shipment.pack_group or get_setting('DEFAULT_PACK_GROUP'),
            'fba_shipment_id': shipment.fba_shipment_id,
            'destination': shipment.destination,
            'status': shipment.status,
            'version': shipment.version,
            'total_skus': shipment.total_skus,
            'total_items': shipment.total_items,
            'total_boxes': shipment.total_boxes,
            'total_weight': shipment.total_weight,
            'boxes': matrix['boxes'],
            'skus': matrix['skus'],
        }

    def create_from_pack_group(self, data: Dict[str, Any], user) -> Shipment:
        """
        Create a draft shipment from a matrix.

        Every SKU is resolved once through the ledger and every resulting line
        is pre-checked like add_box. Nothing is reserved.

        Args:
            data: pack_group, fba_shipment_id, destination, boxes (box
                descriptors) and skus (rows with box_quantities)
            user: User creating the shipment

        Raises:
            ValidationException: If no boxes are given or a row is malformed
            DimensionMismatchException: If a row length differs from the box count
            UnknownSKUException: If a SKU is unknown or inactive
            InsufficientStockException: If a line's qty exceeds available stock
        """
        box_specs = data.get('boxes') or []
        if not box_specs:
            raise ValidationException("A pack group needs at least one box", {'boxes': 'This field is required.'})

        pack_group = str(data.get('pack_group') or get_setting('DEFAULT_PACK_GROUP'))
        catalog = {}

        def resolve(sku):
            catalog[sku] = self.ledger.lookup(sku)
            return catalog[sku]

        boxes = build_from_matrix(box_specs, data.get('skus') or [], resolve, pack_group)

        for box in boxes:
            for item in box['items']:
                available = catalog[item['sku']]['available_qty']
                if available < item['qty']:
                    raise InsufficientStockException(item['sku'], item['qty'], available)

        header = {key: data.get(key) for key in ('fba_shipment_id', 'destination', 'destination_type', 'notes')}
        header['pack_group'] = pack_group
        shipment = self.shipments.create_with_boxes(header, boxes, user, action='created_from_pack_group')

        logger.info(
            f"Shipment {shipment.shipment_number} created from pack group {pack_group} "
            f"with {shipment.total_boxes} box(es) and {shipment.total_skus} SKU(s)"
        )
        return shipment

    def update_box_distribution(self, shipment_id, edits: List[Dict[str, Any]], user,
                                expected_version: Optional[int] = None) -> Shipment:
        """
        Re-distribute SKU quantities across the boxes of a draft shipment.

        Args:
            edits: Rows of {'sku', 'box_quantities'}; 0 removes the SKU from a
                box, a positive number overwrites its qty

        Raises:
            InvalidTransitionException: If the shipment is not a draft
            DimensionMismatchException: If a row length differs from the box count
            UnknownBoxSKUException: If an edit would add a SKU to a box without it
            InsufficientStockException: If an overwritten qty exceeds available stock
        """
        with transaction.atomic():
            shipment = self.shipments.lock(shipment_id, expected_version)
            ShipmentWorkflow.require_draft(shipment, 'edit the distribution of')

            boxes = apply_matrix_edit(shipment.boxes, edits)

            for edit in edits:
                quantities = [to_quantity(qty, 'box_quantities', allow_zero=True) for qty in edit['box_quantities']]
                if not any(quantities):
                    continue
                sku = normalize_sku(edit['sku'])
                available = self.ledger.lookup(sku)['available_qty']
                for qty in quantities:
                    if qty > available:
                        raise InsufficientStockException(sku, qty, available)

            self.shipments.commit_boxes(
                shipment, boxes, user, 'distribution_updated',
                notes=f"Distribution updated for {len(edits)} SKU(s)",
                metadata={'edits': edits}
            )

        logger.info(f"Box distribution of shipment {shipment.shipment_number} updated for {len(edits)} SKU(s)")
        return shipment
