"""
Tests for the stock ledger.
"""

from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError
from django.test import TestCase

from ..exceptions import (
    BusinessException,
    InsufficientStockException,
    NegativeQuantityException,
    StorageException,
    UnknownSKUException,
    ValidationException,
)
from ..models import MovementType, StockMovement, StockUnit
from ..services.stock_ledger import StockLedger, aggregate_lines


class StockLedgerTestCase(TestCase):
    """Shared fixtures for ledger tests."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username='warehouse',
            email='warehouse@example.com',
            password='testpass123'
        )
        self.ledger = StockLedger()
        self.widget = self.ledger.register({
            'sku': 'widget-1',
            'name': 'Widget',
            'available_qty': 10,
            'unit_weight': Decimal('0.250'),
        }, self.user)
        self.gadget = self.ledger.register({
            'sku': 'GADGET-1',
            'name': 'Gadget',
            'available_qty': 3,
            'low_stock_threshold': 5,
        }, self.user)

    def available(self, sku):
        return StockUnit.objects.get(sku=sku).available_qty


class RegisterTest(StockLedgerTestCase):

    def test_register_normalizes_sku_and_records_opening_balance(self):
        self.assertEqual(self.widget.sku, 'WIDGET-1')
        self.assertEqual(self.widget.available_qty, 10)
        self.assertIsNotNone(self.widget.last_restocked)

        movement = StockMovement.objects.get(sku='WIDGET-1')
        self.assertEqual(movement.movement_type, MovementType.REGISTER)
        self.assertEqual(movement.quantity_delta, 10)
        self.assertEqual(movement.user, self.user)

    def test_register_duplicate_sku(self):
        with self.assertRaises(BusinessException) as ctx:
            self.ledger.register({'sku': ' Widget-1 ', 'name': 'Other widget'}, self.user)
        self.assertEqual(ctx.exception.code, 'DUPLICATE_SKU')

    def test_register_requires_name(self):
        with self.assertRaises(ValidationException):
            self.ledger.register({'sku': 'NEW-1'}, self.user)

    def test_opening_balance_movement_per_quantity(self):
        self.ledger.register({"sku": "SPARE-1", "name": "Spare", "faulty_qty": 4}, self.user)

        movements = StockMovement.objects.filter(sku="SPARE-1")
        self.assertEqual(list(movements.values_list("field", "quantity_delta")), [("faulty_qty", 4)])

        self.ledger.register({"sku": "SPARE-2", "name": "Spare", "available_qty": 2, "faulty_qty": 1}, self.user)
        deltas = dict(StockMovement.objects.filter(sku="SPARE-2").values_list("field", "quantity_delta"))
        self.assertEqual(deltas, {"available_qty": 2, "faulty_qty": 1})

    def test_default_low_stock_threshold(self):
        self.assertEqual(self.widget.low_stock_threshold, 10)
        self.assertTrue(self.widget.is_low_stock)


class ReserveReleaseTest(StockLedgerTestCase):

    def test_reserve_decrements_available(self):
        unit = self.ledger.reserve('widget-1', 4, reference='SHP2026-0001', user=self.user)

        self.assertEqual(unit.available_qty, 6)
        movement = StockMovement.objects.filter(movement_type=MovementType.RESERVE).get()
        self.assertEqual(movement.quantity_delta, -4)
        self.assertEqual(movement.available_after, 6)
        self.assertEqual(movement.reference, 'SHP2026-0001')

    def test_reserve_insufficient_leaves_quantity_unchanged(self):
        with self.assertRaises(InsufficientStockException) as ctx:
            self.ledger.reserve('WIDGET-1', 11)

        self.assertEqual(ctx.exception.code, 'INSUFFICIENT_STOCK')
        self.assertEqual(ctx.exception.details['requested_quantity'], 11)
        self.assertEqual(ctx.exception.details['available_quantity'], 10)
        self.assertEqual(self.available('WIDGET-1'), 10)
        self.assertFalse(StockMovement.objects.filter(movement_type=MovementType.RESERVE).exists())

    def test_reserve_exact_available_quantity(self):
        unit = self.ledger.reserve('WIDGET-1', 10)
        self.assertEqual(unit.available_qty, 0)

    def test_reserve_unknown_sku(self):
        with self.assertRaises(UnknownSKUException) as ctx:
            self.ledger.reserve('NOPE', 1)
        self.assertEqual(ctx.exception.details['sku'], 'NOPE')

    def test_reserve_rejects_non_positive_quantity(self):
        with self.assertRaises(ValidationException):
            self.ledger.reserve('WIDGET-1', 0)
        with self.assertRaises(ValidationException):
            self.ledger.reserve('WIDGET-1', -2)

    def test_release_has_no_upper_bound(self):
        unit = self.ledger.release('WIDGET-1', 25)
        self.assertEqual(unit.available_qty, 35)

    def test_release_on_deactivated_sku(self):
        self.ledger.deactivate('WIDGET-1', self.user)
        unit = self.ledger.release('WIDGET-1', 2)
        self.assertEqual(unit.available_qty, 12)

    def test_quantities_never_negative_across_sequence(self):
        operations = [
            ('reserve', 7), ('release', 2), ('reserve', 5), ('reserve', 1),
            ('adjust', -1), ('release', 4), ('adjust', -10), ('reserve', 3),
        ]
        for name, qty in operations:
            try:
                if name == 'reserve':
                    self.ledger.reserve('WIDGET-1', qty)
                elif name == 'release':
                    self.ledger.release('WIDGET-1', qty)
                else:
                    self.ledger.adjust('WIDGET-1', qty)
            except BusinessException:
                pass
            unit = StockUnit.objects.get(sku='WIDGET-1')
            self.assertGreaterEqual(unit.available_qty, 0)
            self.assertGreaterEqual(unit.faulty_qty, 0)

        self.assertEqual(self.available('WIDGET-1'), 1)


class AdjustTest(StockLedgerTestCase):

    def test_adjust_below_zero(self):
        with self.assertRaises(NegativeQuantityException) as ctx:
            self.ledger.adjust('GADGET-1', -4, user=self.user)

        self.assertEqual(ctx.exception.details['current_quantity'], 3)
        self.assertEqual(ctx.exception.details['delta'], -4)
        self.assertEqual(self.available('GADGET-1'), 3)

    def test_adjust_faulty_quantity(self):
        unit = self.ledger.adjust('GADGET-1', 2, faulty=True)
        self.assertEqual(unit.faulty_qty, 2)
        self.assertEqual(unit.available_qty, 3)

        with self.assertRaises(NegativeQuantityException):
            self.ledger.adjust('GADGET-1', -3, faulty=True)

    def test_positive_adjustment_stamps_last_restocked(self):
        before = StockUnit.objects.get(sku='GADGET-1').last_restocked
        unit = self.ledger.adjust('GADGET-1', 5, user=self.user, notes='found in aisle 3')

        self.assertEqual(unit.available_qty, 8)
        self.assertGreaterEqual(unit.last_restocked, before)
        self.assertEqual(unit.updated_by, self.user)

    def test_zero_adjustment_rejected(self):
        with self.assertRaises(ValidationException):
            self.ledger.adjust('GADGET-1', 0)


class MultiLineReservationTest(StockLedgerTestCase):

    def test_aggregate_lines_sums_per_sku(self):
        totals = aggregate_lines([
            {'sku': 'widget-1', 'qty': 3},
            {'sku': 'GADGET-1', 'qty': 1},
            {'sku': 'WIDGET-1', 'qty': 4},
        ])
        self.assertEqual(totals, {'GADGET-1': 1, 'WIDGET-1': 7})

    def test_check_availability_does_not_mutate(self):
        with self.assertRaises(InsufficientStockException):
            self.ledger.check_availability({'WIDGET-1': 5, 'GADGET-1': 4})

        with self.assertRaises(UnknownSKUException):
            self.ledger.check_availability({'WIDGET-1': 5, 'MISSING': 1})

        self.assertEqual(self.available('WIDGET-1'), 10)
        self.assertEqual(self.available('GADGET-1'), 3)

    def test_reserve_lines_aggregates_before_checking(self):
        with self.assertRaises(InsufficientStockException) as ctx:
            self.ledger.reserve_lines([
                {'sku': 'WIDGET-1', 'qty': 6},
                {'sku': 'WIDGET-1', 'qty': 6},
            ], reference='SHP2026-0001')

        self.assertEqual(ctx.exception.details['requested_quantity'], 12)
        self.assertEqual(self.available('WIDGET-1'), 10)

    def test_reserve_lines_is_all_or_nothing(self):
        with self.assertRaises(InsufficientStockException):
            self.ledger.reserve_lines([
                {'sku': 'WIDGET-1', 'qty': 2},
                {'sku': 'GADGET-1', 'qty': 9},
            ])

        self.assertEqual(self.available('WIDGET-1'), 10)
        self.assertEqual(self.available('GADGET-1'), 3)

        reserved = self.ledger.reserve_lines([
            {'sku': 'WIDGET-1', 'qty': 2},
            {'sku': 'GADGET-1', 'qty': 3},
        ], reference='SHP2026-0002', user=self.user)

        self.assertEqual(reserved, {'GADGET-1': 3, 'WIDGET-1': 2})
        self.assertEqual(self.available('WIDGET-1'), 8)
        self.assertEqual(self.available('GADGET-1'), 0)

    def test_reserve_lines_compensates_applied_lines(self):
        failure = InsufficientStockException('WIDGET-1', 2, 0)
        with mock.patch.object(self.ledger, 'reserve', side_effect=[self.gadget, failure]) as reserve, \
                mock.patch.object(self.ledger, 'release') as release:
            with self.assertRaises(InsufficientStockException):
                self.ledger.reserve_lines([
                    {'sku': 'WIDGET-1', 'qty': 2},
                    {'sku': 'GADGET-1', 'qty': 1},
                ], reference='SHP2026-0003')

        self.assertEqual(reserve.call_count, 2)
        release.assert_called_once_with(
            'GADGET-1', 1, reference='SHP2026-0003', user=None, notes='Compensating release'
        )

    def test_release_lines(self):
        self.ledger.reserve_lines([{'sku': 'WIDGET-1', 'qty': 4}])
        released = self.ledger.release_lines([
            {'sku': 'WIDGET-1', 'qty': 1},
            {'sku': 'WIDGET-1', 'qty': 3},
        ])

        self.assertEqual(released, {'WIDGET-1': 4})
        self.assertEqual(self.available('WIDGET-1'), 10)


class MaintenanceTest(StockLedgerTestCase):

    def test_restock(self):
        unit = self.ledger.restock('GADGET-1', 7, self.user)
        self.assertEqual(unit.available_qty, 10)
        self.assertEqual(unit.movements.first().movement_type, MovementType.RESTOCK)

    def test_set_stock_overwrites_and_records_difference(self):
        unit = self.ledger.set_stock('WIDGET-1', 4, faulty_qty=2, user=self.user)

        self.assertEqual(unit.available_qty, 4)
        self.assertEqual(unit.faulty_qty, 2)
        deltas = set(StockMovement.objects.filter(movement_type=MovementType.SET).values_list('quantity_delta', flat=True))
        self.assertEqual(deltas, {-6, 2})

    def test_set_stock_rejects_negative(self):
        with self.assertRaises(ValidationException):
            self.ledger.set_stock('WIDGET-1', -1)

    def test_defects(self):
        self.ledger.report_defect('WIDGET-1', 3)
        unit = self.ledger.clear_defect('WIDGET-1', 5)

        self.assertEqual(unit.faulty_qty, 0)
        self.assertEqual(unit.available_qty, 10)

    def test_deactivated_sku_is_unknown(self):
        self.ledger.deactivate('WIDGET-1', self.user)

        with self.assertRaises(UnknownSKUException):
            self.ledger.lookup('WIDGET-1')
        with self.assertRaises(UnknownSKUException):
            self.ledger.reserve('WIDGET-1', 1)
        self.assertFalse(self.ledger.lookup('WIDGET-1', include_inactive=True).is_active)

    def test_low_stock(self):
        skus = list(self.ledger.low_stock().values_list('sku', flat=True))
        self.assertEqual(skus, ['GADGET-1', 'WIDGET-1'])

        self.ledger.restock('WIDGET-1', 1)
        skus = list(self.ledger.low_stock().values_list('sku', flat=True))
        self.assertEqual(skus, ['GADGET-1'])

    def test_database_fault_becomes_storage_error(self):
        with mock.patch.object(StockUnit.objects, 'all', side_effect=OperationalError('database is locked')):
            with self.assertRaises(StorageException) as ctx:
                self.ledger.lookup('WIDGET-1')

        self.assertEqual(ctx.exception.code, 'STORAGE_ERROR')
        self.assertEqual(ctx.exception.operation, 'lookup')

    def test_update_catalog(self):
        unit = self.ledger.update_catalog(
            "widget-1", {"name": "Widget v2", "unit_cost": Decimal("1.50"), "asin": "b0widget"}, self.user
        )

        self.assertEqual(unit.name, "Widget v2")
        self.assertEqual(unit.asin, "B0WIDGET")
        self.assertEqual(StockUnit.objects.get(sku="WIDGET-1").unit_cost, Decimal("1.50"))
        self.assertEqual(unit.updated_by, self.user)

    def test_update_catalog_rejects_quantities(self):
        with self.assertRaises(ValidationException):
            self.ledger.update_catalog("WIDGET-1", {"available_qty": 99})
        with self.assertRaises(ValidationException):
            self.ledger.update_catalog("WIDGET-1", {"name": ""})
        self.assertEqual(self.available("WIDGET-1"), 10)

    def test_statistics(self):
        self.ledger.update_catalog("WIDGET-1", {"unit_cost": Decimal("1.50")})
        self.ledger.report_defect("GADGET-1", 2)

        stats = self.ledger.get_statistics()
        self.assertEqual(stats["total_products"], 2)
        self.assertEqual(stats["total_available_qty"], 13)
        self.assertEqual(stats["total_faulty_qty"], 2)
        self.assertEqual(stats["total_value"], Decimal("15.00"))
        self.assertEqual(stats["low_stock_count"], 2)

        self.ledger.deactivate("GADGET-1")
        self.ledger.restock("WIDGET-1", 5)
        stats = self.ledger.get_statistics()
        self.assertEqual(stats["total_products"], 1)
        self.assertEqual(stats["low_stock_count"], 0)

    def test_statistics_without_units(self):
        StockMovement.objects.all().delete()
        StockUnit.objects.all().delete()
        stats = self.ledger.get_statistics()
        self.assertEqual(stats["total_products"], 0)
        self.assertEqual(stats["total_available_qty"], 0)
        self.assertEqual(stats["total_value"], Decimal("0"))
