"""
Tests for box normalization and totals.
"""

from decimal import Decimal

from django.test import SimpleTestCase

from ..exceptions import ValidationException
from ..services.totals import box_from_input, normalize_item, recalculate_totals, to_quantity


class TotalsTest(SimpleTestCase):

    def setUp(self):
        self.boxes = [
            {
                'box_no': 'BOX1',
                'items': [
                    {'sku': 'a-1', 'qty': 3, 'unit_weight': '0.5'},
                    {'sku': 'B-1', 'qty': 2, 'unit_weight': '1.25'},
                ],
                'declared_weight': None,
            },
            {
                'box_no': 'BOX2',
                'items': [{'sku': 'A-1', 'qty': 1, 'unit_weight': '0.5'}],
                'declared_weight': '4',
            },
        ]

    def test_recalculate_totals(self):
        boxes, totals = recalculate_totals(self.boxes)

        self.assertEqual(totals, {
            'total_boxes': 2,
            'total_items': 6,
            'total_skus': 2,
            'total_weight': Decimal('8.000'),
        })
        self.assertEqual(boxes[0]['box_weight'], '4.000')
        self.assertEqual(boxes[0]['items'][1]['total_weight'], '2.500')
        self.assertEqual(boxes[1]['box_weight'], '4.000')

    def test_expected_qty_is_sku_total_across_boxes(self):
        self.boxes[1]['items'][0]['expected_qty'] = 9
        boxes, _ = recalculate_totals(self.boxes)

        self.assertEqual(boxes[0]['items'][0]['expected_qty'], 4)
        self.assertEqual(boxes[1]['items'][0]['expected_qty'], 4)
        self.assertEqual(boxes[0]['items'][1]['expected_qty'], 2)

    def test_input_is_not_modified(self):
        recalculate_totals(self.boxes)
        self.assertNotIn('total_weight', self.boxes[0]['items'][0])
        self.assertEqual(self.boxes[0]['items'][0]['sku'], 'a-1')

    def test_recalculate_is_stable(self):
        boxes, totals = recalculate_totals(self.boxes)
        again, totals_again = recalculate_totals(boxes)
        self.assertEqual(again, boxes)
        self.assertEqual(totals_again, totals)

    def test_zero_declared_weight_means_not_supplied(self):
        self.boxes[1]['declared_weight'] = 0
        boxes, totals = recalculate_totals(self.boxes)
        self.assertIsNone(boxes[1]['declared_weight'])
        self.assertEqual(boxes[1]['box_weight'], '0.500')
        self.assertEqual(totals['total_weight'], Decimal('4.500'))

    def test_empty(self):
        boxes, totals = recalculate_totals([])
        self.assertEqual(boxes, [])
        self.assertEqual(totals['total_boxes'], 0)
        self.assertEqual(totals['total_weight'], Decimal('0.000'))

    def test_box_from_input_merges_lines_and_defaults_box_no(self):
        box = box_from_input({
            'items': [{'sku': 'a-1', 'qty': 2}, {'sku': 'A-1', 'qty': 3}],
            'box_weight': '1.5',
        }, 2)

        self.assertEqual(box['box_no'], 'BOX3')
        self.assertEqual(box['declared_weight'], '1.500')
        self.assertEqual(len(box['items']), 1)
        self.assertEqual(box['items'][0]['qty'], 5)
        self.assertEqual(box['items'][0]['expected_qty'], 5)

    def test_item_validation(self):
        with self.assertRaises(ValidationException):
            normalize_item({'sku': '', 'qty': 1})
        with self.assertRaises(ValidationException):
            normalize_item({'sku': 'A-1', 'qty': 0})
        with self.assertRaises(ValidationException):
            normalize_item({'sku': 'A-1', 'qty': 1, 'unit_weight': '-1'})
        with self.assertRaises(ValidationException):
            to_quantity(2.5)
        self.assertEqual(to_quantity('4'), 4)
