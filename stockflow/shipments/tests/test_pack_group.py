"""
Tests for pack group (matrix) operations on shipments.
"""

from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from inventory.exceptions import InsufficientStockException, UnknownSKUException
from inventory.models import StockUnit
from inventory.services.stock_ledger import StockLedger

from ..adapters.stock_adapter import StockLedgerAdapter
from ..exceptions import (
    DimensionMismatchException, InvalidTransitionException, UnknownBoxSKUException, ValidationException
)
from ..models import Shipment, ShipmentStatus
from ..services import PackGroupService, ShipmentService


class PackGroupTest(TestCase):

    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username='planner',
            email='planner@example.com',
            password='testpass123'
        )
        ledger = StockLedger()
        ledger.register({'sku': 'A-1', 'name': 'Alpha', 'available_qty': 20, 'unit_weight': Decimal('0.500')}, self.user)
        ledger.register({'sku': 'B-1', 'name': 'Beta', 'available_qty': 5, 'unit_weight': Decimal('1.000')}, self.user)

        self.service = PackGroupService()
        self.data = {
            'pack_group': '3',
            'fba_shipment_id': 'FBA15ABC',
            'destination': 'FBA LTN4',
            'boxes': [{'length': 40, 'width': 30, 'height': 20}, {'box_no': 'LAST'}],
            'skus': [
                {'sku': 'A-1', 'box_quantities': [10, 6]},
                {'sku': 'b-1', 'box_quantities': [0, 5]},
            ],
        }

    def test_create_from_pack_group(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)

        self.assertEqual(shipment.status, ShipmentStatus.DRAFT)
        self.assertEqual(shipment.pack_group, '3')
        self.assertEqual(shipment.total_boxes, 2)
        self.assertEqual(shipment.total_items, 21)
        self.assertEqual(shipment.total_skus, 2)
        self.assertEqual([box['box_name'] for box in shipment.boxes], ['P3-B1', 'P3-B2'])
        self.assertEqual([box['box_no'] for box in shipment.boxes], ['BOX1', 'LAST'])
        self.assertEqual(shipment.boxes[0]['dimensions']['length'], '40')
        # Nothing is reserved until finalize
        self.assertEqual(StockUnit.objects.get(sku='A-1').available_qty, 20)

    def test_each_sku_looked_up_once(self):
        adapter = StockLedgerAdapter()
        service = PackGroupService(ledger=adapter)
        with mock.patch.object(adapter, 'lookup', wraps=adapter.lookup) as lookup:
            service.create_from_pack_group(self.data, self.user)

        self.assertEqual(sorted(call.args[0] for call in lookup.call_args_list), ['A-1', 'B-1'])

    def test_create_rejects_unknown_sku(self):
        self.data['skus'].append({'sku': 'NOPE', 'box_quantities': [1, 0]})
        with self.assertRaises(UnknownSKUException):
            self.service.create_from_pack_group(self.data, self.user)
        self.assertFalse(Shipment.objects.exists())

    def test_create_prechecks_each_line(self):
        self.data['skus'][1]['box_quantities'] = [0, 6]
        with self.assertRaises(InsufficientStockException):
            self.service.create_from_pack_group(self.data, self.user)
        self.assertFalse(Shipment.objects.exists())

    def test_create_requires_boxes(self):
        self.data['boxes'] = []
        with self.assertRaises(ValidationException):
            self.service.create_from_pack_group(self.data, self.user)

    def test_create_dimension_mismatch(self):
        self.data['skus'][0]['box_quantities'] = [10]
        with self.assertRaises(DimensionMismatchException):
            self.service.create_from_pack_group(self.data, self.user)

    def test_get_pack_group_data(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)
        data = self.service.get_pack_group_data(shipment.id)

        self.assertEqual(data['shipment_number'], shipment.shipment_number)
        self.assertEqual(data['pack_group'], '3')
        self.assertEqual(data['total_items'], 21)
        self.assertEqual(
            {row['sku']: row['box_quantities'] for row in data['skus']},
            {'A-1': [10, 6], 'B-1': [0, 5]}
        )
        self.assertEqual([box['box_no'] for box in data['boxes']], ['BOX1', 'LAST'])

    def test_update_box_distribution(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)
        updated = self.service.update_box_distribution(
            shipment.id, [{'sku': 'A-1', 'box_quantities': [12, 0]}], self.user,
            expected_version=shipment.version
        )

        self.assertEqual([item['sku'] for item in updated.boxes[1]['items']], ['B-1'])
        self.assertEqual(updated.boxes[0]['items'][0]['qty'], 12)
        self.assertEqual(updated.boxes[0]['items'][0]['total_weight'], '6.000')
        self.assertEqual(updated.total_items, 17)
        self.assertEqual(updated.version, shipment.version + 1)

    def test_update_keeps_expected_qty_at_sku_total(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)
        updated = self.service.update_box_distribution(
            shipment.id, [{'sku': 'A-1', 'box_quantities': [2, 3]}], self.user
        )

        lines = [item for box in updated.boxes for item in box['items'] if item['sku'] == 'A-1']
        self.assertEqual([line['qty'] for line in lines], [2, 3])
        self.assertEqual([line['expected_qty'] for line in lines], [5, 5])

        stored = Shipment.objects.get(id=shipment.id)
        matrix = self.service.get_pack_group_data(stored.id)
        row = next(row for row in matrix['skus'] if row['sku'] == 'A-1')
        self.assertEqual(row['expected_qty'], sum(row['box_quantities']))

    def test_update_rejects_new_sku_in_box(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)
        with self.assertRaises(UnknownBoxSKUException):
            self.service.update_box_distribution(shipment.id, [{'sku': 'B-1', 'box_quantities': [1, 5]}], self.user)

        self.assertEqual(Shipment.objects.get(id=shipment.id).boxes, shipment.boxes)

    def test_update_prechecks_overwritten_quantities(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)
        with self.assertRaises(InsufficientStockException):
            self.service.update_box_distribution(shipment.id, [{'sku': 'A-1', 'box_quantities': [21, 6]}], self.user)

    def test_update_requires_draft(self):
        shipment = self.service.create_from_pack_group(self.data, self.user)
        ShipmentService().finalize(shipment.id, self.user)

        with self.assertRaises(InvalidTransitionException):
            self.service.update_box_distribution(shipment.id, [{'sku': 'A-1', 'box_quantities': [1, 1]}], self.user)
