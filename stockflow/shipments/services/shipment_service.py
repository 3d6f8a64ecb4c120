"""
Shipment workflow service.

Handles the shipment lifecycle (draft -> ready -> shipped -> delivered, or
cancelled) and keeps the stock ledger consistent with it: stock is only
pre-checked while a shipment is a draft, reserved when it is finalized and
released again when a ready shipment is cancelled.
"""

import copy
import logging
from decimal import Decimal
from typing import Dict, Any, Optional
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone

from inventory.conf import get_setting
from inventory.exceptions import InsufficientStockException
from inventory.utils import normalize_sku
from ..adapters.stock_adapter import StockLedgerInterface, get_stock_adapter
from ..exceptions import (
    EmptyShipmentException, InvalidBoxIndexException, InvalidTransitionException,
    ShipmentNotFoundException, StaleShipmentException, ValidationException
)
from ..models import AuditLog, DestinationType, Shipment, ShipmentStatus
from .totals import (
    box_from_input, iter_box_lines, normalize_box, normalize_item,
    recalculate_totals, to_decimal
)
from .workflow import ShipmentWorkflow

logger = logging.getLogger(__name__)


DETAIL_FIELDS = (
    'pack_group', 'fba_shipment_id', 'destination', 'destination_type',
    'carrier', 'tracking_number', 'shipping_cost', 'notes',
)
DUPLICATE_OVERRIDE_FIELDS = ('box_no', 'box_name', 'box_weight', 'dimensions', 'notes')
CATALOG_TEXT_FIELDS = ('product_id', 'asin', 'fnsku', 'condition', 'prep_type')


class ShipmentService:
    """
    Service class for shipment workflow operations.

    Every mutation locks the shipment row, checks the caller's
    expected_version when one is given, and saves through the version
    compare-and-swap on Shipment.save_versioned().
    """

    def __init__(self, ledger: StockLedgerInterface = None):
        self.ledger = ledger or get_stock_adapter()

    # Loading and saving

    def get_shipment(self, shipment_id) -> Shipment:
        """
        Raises:
            ShipmentNotFoundException: If no shipment has this id
        """
        try:
            return Shipment.objects.select_related('created_by', 'updated_by').get(id=shipment_id)
        except (Shipment.DoesNotExist, DjangoValidationError, ValueError):
            raise ShipmentNotFoundException(str(shipment_id))

    def get_by_number(self, shipment_number: str) -> Shipment:
        number = (shipment_number or '').strip().upper()
        try:
            return Shipment.objects.select_related('created_by', 'updated_by').get(shipment_number=number)
        except Shipment.DoesNotExist:
            raise ShipmentNotFoundException(number)

    def lock(self, shipment_id, expected_version: Optional[int] = None) -> Shipment:
        """
        Load a shipment with a row lock. Must be called inside transaction.atomic().

        Raises:
            ShipmentNotFoundException: If no shipment has this id
            StaleShipmentException: If expected_version is given and differs
        """
        try:
            shipment = Shipment.objects.select_for_update().get(id=shipment_id)
        except (Shipment.DoesNotExist, DjangoValidationError, ValueError):
            raise ShipmentNotFoundException(str(shipment_id))

        if expected_version is not None and shipment.version != expected_version:
            raise StaleShipmentException(shipment.shipment_number, expected_version, shipment.version)
        return shipment

    @staticmethod
    def apply_boxes(shipment: Shipment, boxes) -> None:
        """Replace the box list and recompute the cached totals."""
        normalized, totals = recalculate_totals(boxes)
        shipment.boxes = normalized
        for field, value in totals.items():
            setattr(shipment, field, value)

    def commit_boxes(self, shipment: Shipment, boxes, user, action: str,
                     notes: str = "", metadata: Dict[str, Any] = None) -> Shipment:
        """Save a new box list for a locked draft shipment and audit it."""
        old_totals = self._totals_snapshot(shipment)
        self.apply_boxes(shipment, boxes)
        shipment.updated_by = user
        shipment.save_versioned()

        AuditLog.record(
            shipment, action, user=user,
            before=old_totals,
            after=self._totals_snapshot(shipment),
            notes=notes,
            metadata=metadata
        )
        return shipment

    @staticmethod
    def _totals_snapshot(shipment: Shipment) -> Dict[str, Any]:
        return {
            'total_boxes': shipment.total_boxes,
            'total_items': shipment.total_items,
            'total_skus': shipment.total_skus,
            'total_weight': shipment.total_weight,
        }

    # Line validation

    def validate_line(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Look a line's SKU up and pre-check it against available stock.

        Missing product data (name, unit weight, identifiers) is filled from
        the stock ledger. Nothing is reserved.

        Raises:
            UnknownSKUException: If the SKU is unknown or inactive
            InsufficientStockException: If available quantity < line qty
        """
        line = normalize_item(item)
        catalog = self.ledger.lookup(line['sku'])

        if catalog['available_qty'] < line['qty']:
            raise InsufficientStockException(line['sku'], line['qty'], catalog['available_qty'])

        line['product_name'] = line['product_name'] or catalog.get('name', '')
        if not to_decimal(line['unit_weight']):
            line['unit_weight'] = catalog.get('unit_weight') or Decimal('0')
        for field in CATALOG_TEXT_FIELDS:
            line[field] = line[field] or catalog.get(field, '')
        return normalize_item(line)

    # Commands

    def create_shipment(self, data: Dict[str, Any], user) -> Shipment:
        """
        Create a draft shipment with no boxes.

        Args:
            data: Header fields (destination, destination_type, pack_group,
                fba_shipment_id, carrier, shipping_cost, notes)
            user: User creating the shipment

        Returns:
            Created Shipment with a freshly allocated shipment number

        Raises:
            ValidationException: If boxes are supplied; use add_box instead
        """
        if data.get('boxes'):
            raise ValidationException(
                "Boxes cannot be supplied on create; add them with add_box",
                {'boxes': 'Not allowed on create.'}
            )
        return self.create_with_boxes(data, [], user)

    def create_with_boxes(self, data: Dict[str, Any], boxes, user, action: str = 'created') -> Shipment:
        """Create a draft shipment from already validated boxes."""
        with transaction.atomic():
            shipment = Shipment(
                pack_group=str(data.get('pack_group') or get_setting('DEFAULT_PACK_GROUP')),
                fba_shipment_id=(data.get('fba_shipment_id') or '').strip().upper(),
                destination=data.get('destination') or '',
                destination_type=data.get('destination_type') or DestinationType.FBA,
                carrier=data.get('carrier') or '',
                tracking_number=data.get('tracking_number') or '',
                shipping_cost=to_decimal(data.get('shipping_cost'), '0.00'),
                notes=data.get('notes') or '',
                status=ShipmentStatus.DRAFT,
                created_by=user,
                updated_by=user,
            )
            self.apply_boxes(shipment, boxes)
            shipment.save()

            AuditLog.record(
                shipment, action, user=user,
                after={
                    'shipment_number': shipment.shipment_number,
                    'destination': shipment.destination,
                    **self._totals_snapshot(shipment),
                }
            )

        logger.info(f"Shipment {shipment.shipment_number} created with {shipment.total_boxes} box(es)")
        return shipment

    def update_details(self, shipment_id, data: Dict[str, Any], user,
                       expected_version: Optional[int] = None) -> Shipment:
        """
        Edit header fields of a shipment.

        Boxes are never edited here: supplying them on a non-draft shipment
        is an invalid transition, on a draft a validation error.

        Raises:
            InvalidTransitionException: On boxes for a non-draft shipment, or
                any edit of a delivered or cancelled shipment
            ValidationException: On boxes for a draft or an unknown field
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)

            if 'boxes' in data:
                ShipmentWorkflow.require_draft(shipment, 'modify boxes of')
                raise ValidationException(
                    "Boxes are changed through the box operations",
                    {'boxes': 'Not editable here.'}
                )
            if shipment.is_terminal:
                raise InvalidTransitionException(
                    current_status=shipment.status, operation='update'
                )

            unknown = sorted(set(data) - set(DETAIL_FIELDS))
            if unknown:
                raise ValidationException(
                    f"Fields cannot be updated: {', '.join(unknown)}",
                    {field: 'Not editable.' for field in unknown}
                )

            old_values = {}
            new_values = {}
            for field in DETAIL_FIELDS:
                if field not in data:
                    continue
                value = data[field]
                if field == 'shipping_cost':
                    value = to_decimal(value, '0.00')
                elif field == 'fba_shipment_id':
                    value = (value or '').strip().upper()
                elif value is None:
                    value = ''
                if getattr(shipment, field) != value:
                    old_values[field] = getattr(shipment, field)
                    new_values[field] = value
                    setattr(shipment, field, value)

            shipment.updated_by = user
            shipment.save_versioned()

            AuditLog.record(shipment, 'updated', user=user, before=old_values, after=new_values)

        logger.info(f"Shipment {shipment.shipment_number} details updated: {', '.join(new_values) or 'no changes'}")
        return shipment

    def add_box(self, shipment_id, box_data: Dict[str, Any], user,
                expected_version: Optional[int] = None) -> Shipment:
        """
        Append a box to a draft shipment.

        Each line is looked up and pre-checked on its own; lines for the same
        SKU within the box are merged first. Nothing is reserved.

        Args:
            shipment_id: Shipment UUID
            box_data: box_no, box_name, items, box_weight (declared, 0 = compute
                from items), dimensions, notes
            user: User adding the box
            expected_version: Reject the command if the shipment moved on

        Returns:
            Updated Shipment instance

        Raises:
            InvalidTransitionException: If the shipment is not a draft
            UnknownSKUException: If a line's SKU is unknown or inactive
            InsufficientStockException: If a line's qty exceeds available stock
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.require_draft(shipment, 'add boxes to')

            box = box_from_input(box_data, len(shipment.boxes))
            box['items'] = [self.validate_line(item) for item in box['items']]

            self.commit_boxes(
                shipment, shipment.boxes + [box], user, 'box_added',
                notes=f"Box {box['box_no']} added with {len(box['items'])} line(s)"
            )

        logger.info(f"Box {box['box_no']} added to shipment {shipment.shipment_number}")
        return shipment

    def add_item_to_box(self, shipment_id, box_index: int, item: Dict[str, Any], user,
                        expected_version: Optional[int] = None) -> Shipment:
        """
        Add a line to an existing box of a draft shipment.

        A line for a SKU already in the box increases that line's qty; the
        pre-check uses the added quantity.

        Raises:
            InvalidTransitionException: If the shipment is not a draft
            InvalidBoxIndexException: If box_index is out of range
            UnknownSKUException: If the SKU is unknown or inactive
            InsufficientStockException: If the added qty exceeds available stock
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.require_draft(shipment, 'add items to')
            self._check_box_index(shipment, box_index)

            line = self.validate_line(item)
            boxes = copy.deepcopy(shipment.boxes)
            items = boxes[box_index]['items']
            existing = next((entry for entry in items if normalize_sku(entry['sku']) == line['sku']), None)
            if existing is not None:
                existing['qty'] += line['qty']
            else:
                items.append(line)

            self.commit_boxes(
                shipment, boxes, user, 'item_added',
                notes=f"{line['qty']} x {line['sku']} added to box {box_index + 1}",
                metadata={'box_index': box_index, 'sku': line['sku'], 'qty': line['qty']}
            )

        logger.info(f"{line['qty']} x {line['sku']} added to box {box_index + 1} of shipment {shipment.shipment_number}")
        return shipment

    def duplicate_box(self, shipment_id, box_index: int, overrides: Dict[str, Any] = None, user=None,
                      expected_version: Optional[int] = None) -> Shipment:
        """
        Append a copy of an existing box.

        Items are copied and re-validated against stock; overrides only touch
        box metadata (box_no, box_name, box_weight, dimensions, notes). The
        source box is left as it was.

        Raises:
            InvalidTransitionException: If the shipment is not a draft
            InvalidBoxIndexException: If box_index is out of range
            ValidationException: If overrides name anything besides box metadata
        """
        overrides = overrides or {}
        unknown = sorted(set(overrides) - set(DUPLICATE_OVERRIDE_FIELDS))
        if unknown:
            raise ValidationException(
                f"Only box metadata can be overridden, got: {', '.join(unknown)}",
                {field: 'Not allowed.' for field in unknown}
            )

        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.require_draft(shipment, 'add boxes to')
            self._check_box_index(shipment, box_index)

            source = shipment.boxes[box_index]
            position = len(shipment.boxes)
            new_box = normalize_box({
                'box_no': overrides.get('box_no') or f"BOX{position + 1}",
                'box_name': overrides.get('box_name') or source.get('box_name'),
                'items': [self.validate_line(item) for item in copy.deepcopy(source.get('items', []))],
                'declared_weight': overrides['box_weight'] if 'box_weight' in overrides else source.get('declared_weight'),
                'dimensions': overrides.get('dimensions') or source.get('dimensions'),
                'notes': overrides.get('notes') or source.get('notes'),
            }, position)

            self.commit_boxes(
                shipment, shipment.boxes + [new_box], user, 'box_duplicated',
                notes=f"Box {box_index + 1} duplicated as {new_box['box_no']}",
                metadata={'source_index': box_index}
            )

        logger.info(f"Box {box_index + 1} of shipment {shipment.shipment_number} duplicated as {new_box['box_no']}")
        return shipment

    def finalize(self, shipment_id, user, expected_version: Optional[int] = None) -> Shipment:
        """
        Move a draft shipment to ready and reserve its stock.

        Lines are aggregated per SKU and reserved all or nothing.

        Raises:
            InvalidTransitionException: If the shipment is not a draft
            EmptyShipmentException: If the shipment has no boxes
            UnknownSKUException / InsufficientStockException: From the ledger;
                the shipment stays a draft and no stock is reserved
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.validate_transition(shipment, ShipmentStatus.READY)

            if not shipment.boxes:
                raise EmptyShipmentException(shipment.shipment_number)

            lines = list(iter_box_lines(shipment.boxes))
            reserved = self.ledger.reserve_lines(lines, reference=shipment.shipment_number, user=user)

            old_status = shipment.status
            self.apply_boxes(shipment, shipment.boxes)
            shipment.status = ShipmentStatus.READY
            shipment.updated_by = user
            try:
                shipment.save_versioned()
            except StaleShipmentException:
                self.ledger.release_lines(lines, reference=shipment.shipment_number, user=user)
                raise

            AuditLog.record_transition(
                shipment,
                old_status,
                user=user,
                notes=f"Reserved {sum(reserved.values())} unit(s) across {len(reserved)} SKU(s)",
                metadata={'reserved': reserved}
            )

        logger.info(f"Shipment {shipment.shipment_number} finalized, stock reserved for {len(reserved)} SKU(s)")
        return shipment

    def mark_as_shipped(self, shipment_id, shipment_date=None, tracking_number: str = None,
                        carrier: str = None, user=None, expected_version: Optional[int] = None) -> Shipment:
        """
        Move a ready shipment to shipped. No ledger interaction.

        Args:
            shipment_date: Defaults to now
            tracking_number: Replaces the stored tracking number when given
            carrier: Replaces the stored carrier when given

        Raises:
            InvalidTransitionException: If the shipment is not ready
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.validate_transition(shipment, ShipmentStatus.SHIPPED)

            old_status = shipment.status
            shipment.status = ShipmentStatus.SHIPPED
            shipment.shipment_date = shipment_date or timezone.now()
            if tracking_number:
                shipment.tracking_number = tracking_number
            if carrier:
                shipment.carrier = carrier
            shipment.updated_by = user
            shipment.save_versioned()

            AuditLog.record_transition(
                shipment,
                old_status,
                user=user,
                metadata={'tracking_number': shipment.tracking_number, 'carrier': shipment.carrier}
            )

        logger.info(f"Shipment {shipment.shipment_number} shipped via {shipment.carrier or 'unknown carrier'}")
        return shipment

    def mark_as_delivered(self, shipment_id, delivery_date=None, user=None,
                          expected_version: Optional[int] = None) -> Shipment:
        """
        Raises:
            InvalidTransitionException: If the shipment is not shipped
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.validate_transition(shipment, ShipmentStatus.DELIVERED)

            old_status = shipment.status
            shipment.status = ShipmentStatus.DELIVERED
            shipment.delivery_date = delivery_date or timezone.now()
            shipment.updated_by = user
            shipment.save_versioned()

            AuditLog.record_transition(shipment, old_status, user=user)

        logger.info(f"Shipment {shipment.shipment_number} delivered")
        return shipment

    def cancel(self, shipment_id, user=None, expected_version: Optional[int] = None) -> Shipment:
        """
        Cancel a draft or ready shipment.

        A ready shipment returns every reserved line to stock; a draft never
        reserved anything so the ledger is not touched.

        Raises:
            InvalidTransitionException: If shipped, delivered or already cancelled
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.validate_transition(shipment, ShipmentStatus.CANCELLED)

            old_status = shipment.status
            released = {}
            if old_status == ShipmentStatus.READY:
                released = self.ledger.release_lines(
                    list(iter_box_lines(shipment.boxes)), reference=shipment.shipment_number, user=user
                )

            shipment.status = ShipmentStatus.CANCELLED
            shipment.updated_by = user
            shipment.save_versioned()

            AuditLog.record_transition(
                shipment,
                old_status,
                user=user,
                metadata={'released': released}
            )

        logger.info(f"Shipment {shipment.shipment_number} cancelled from {old_status}, released {len(released)} SKU(s)")
        return shipment

    def delete(self, shipment_id, user=None, expected_version: Optional[int] = None) -> None:
        """
        Delete a draft shipment. Its number is not reused.

        Raises:
            InvalidTransitionException: If the shipment is not a draft
        """
        with transaction.atomic():
            shipment = self.lock(shipment_id, expected_version)
            ShipmentWorkflow.require_draft(shipment, 'delete')

            AuditLog.record(
                shipment, 'deleted', user=user,
                before={'shipment_number': shipment.shipment_number, **self._totals_snapshot(shipment)}
            )
            deleted, _ = Shipment.objects.filter(pk=shipment.pk, version=shipment.version).delete()
            if not deleted:
                raise StaleShipmentException(shipment.shipment_number, shipment.version, None)

        logger.info(f"Draft shipment {shipment.shipment_number} deleted")

    # Queries

    @staticmethod
    def get_statistics():
        """Shipment counts and totals grouped by status."""
        rows = (
            Shipment.objects.values('status')
            .annotate(
                count=Count('id'),
                total_boxes=Sum('total_boxes'),
                total_items=Sum('total_items'),
                total_weight=Sum('total_weight'),
                total_cost=Sum('shipping_cost'),
            )
            .order_by('status')
        )
        return list(rows)

    @staticmethod
    def _check_box_index(shipment: Shipment, box_index) -> None:
        count = len(shipment.boxes)
        if isinstance(box_index, bool) or not isinstance(box_index, int) or not 0 <= box_index < count:
            raise InvalidBoxIndexException(box_index, count)
