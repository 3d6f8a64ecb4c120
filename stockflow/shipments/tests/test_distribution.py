"""
Tests for the SKU x box distribution engine.
"""

from decimal import Decimal

from django.test import SimpleTestCase

from inventory.exceptions import UnknownSKUException
from ..exceptions import DimensionMismatchException, UnknownBoxSKUException, ValidationException
from ..services.distribution import apply_matrix_edit, build_from_matrix, project_to_matrix


CATALOG = {
    'A-1': {'name': 'Alpha', 'unit_weight': Decimal('0.500'), 'asin': 'B0ALPHA', 'available_qty': 100},
    'B-1': {'name': 'Beta', 'unit_weight': Decimal('1.000'), 'asin': 'B0BETA', 'available_qty': 100},
}


class DistributionTest(SimpleTestCase):

    def setUp(self):
        self.resolved = []

        def resolve(sku):
            self.resolved.append(sku)
            if sku not in CATALOG:
                raise UnknownSKUException(sku)
            return CATALOG[sku]

        self.resolve = resolve
        self.box_specs = [{}, {'box_name': 'heavy', 'box_weight': '12'}, {}]
        self.matrix = [
            {'sku': 'a-1', 'box_quantities': [5, 0, 2]},
            {'sku': 'B-1', 'product_name': 'Beta (blue)', 'box_quantities': [1, 3, 0]},
        ]

    def build(self):
        return build_from_matrix(self.box_specs, self.matrix, self.resolve, '2')

    def test_build_from_matrix(self):
        boxes = self.build()

        self.assertEqual(len(boxes), 3)
        self.assertEqual([box['box_no'] for box in boxes], ['BOX1', 'BOX2', 'BOX3'])
        self.assertEqual([box['box_name'] for box in boxes], ['P2-B1', 'heavy', 'P2-B3'])
        self.assertEqual([[item['sku'] for item in box['items']] for box in boxes], [['A-1', 'B-1'], ['B-1'], ['A-1']])

        alpha = boxes[0]['items'][0]
        self.assertEqual(alpha['product_name'], 'Alpha')
        self.assertEqual(alpha['asin'], 'B0ALPHA')
        self.assertEqual(alpha['expected_qty'], 7)
        self.assertEqual(boxes[0]['items'][1]['product_name'], 'Beta (blue)')
        self.assertEqual(boxes[1]['box_weight'], '12.000')
        self.assertEqual(boxes[0]['box_weight'], '3.500')

    def test_each_sku_resolved_once(self):
        self.build()
        self.assertEqual(sorted(self.resolved), ['A-1', 'B-1'])

    def test_round_trip(self):
        matrix = project_to_matrix(self.build())

        quantities = {row['sku']: row['box_quantities'] for row in matrix['skus']}
        self.assertEqual(quantities, {'A-1': [5, 0, 2], 'B-1': [1, 3, 0]})
        self.assertEqual([row['expected_qty'] for row in matrix['skus']], [7, 4])
        self.assertEqual([box['box_index'] for box in matrix['boxes']], [0, 1, 2])

    def test_dimension_mismatch(self):
        self.matrix[1]['box_quantities'] = [1, 3]
        with self.assertRaises(DimensionMismatchException) as ctx:
            self.build()

        self.assertEqual(ctx.exception.details, {'sku': 'B-1', 'expected': 3, 'actual': 2})
        self.assertEqual(self.resolved, [])

    def test_unknown_sku(self):
        self.matrix.append({'sku': 'ZZZ', 'box_quantities': [1, 0, 0]})
        with self.assertRaises(UnknownSKUException):
            self.build()

    def test_duplicate_rows(self):
        self.matrix.append({'sku': 'A-1', 'box_quantities': [1, 0, 0]})
        with self.assertRaises(ValidationException):
            self.build()

    def test_project_empty(self):
        self.assertEqual(project_to_matrix([]), {'boxes': [], 'skus': []})


class MatrixEditTest(SimpleTestCase):

    def setUp(self):
        self.boxes = build_from_matrix(
            [{}, {}],
            [
                {'sku': 'A-1', 'box_quantities': [4, 6]},
                {'sku': 'B-1', 'box_quantities': [2, 0]},
            ],
            lambda sku: CATALOG[sku],
            '1'
        )

    def test_zero_removes_only_that_line(self):
        updated = apply_matrix_edit(self.boxes, [{'sku': 'A-1', 'box_quantities': [0, 6]}])

        self.assertEqual([item['sku'] for item in updated[0]['items']], ['B-1'])
        self.assertEqual(updated[1]['items'][0]['qty'], 6)
        self.assertEqual(len(updated), 2)

    def test_positive_overwrites_quantity(self):
        updated = apply_matrix_edit(self.boxes, [{'sku': 'a-1', 'box_quantities': [1, 9]}])
        self.assertEqual([box['items'][0]['qty'] for box in updated], [1, 9])

    def test_input_untouched(self):
        apply_matrix_edit(self.boxes, [{'sku': 'A-1', 'box_quantities': [0, 0]}])
        self.assertEqual(self.boxes[0]['items'][0]['qty'], 4)

    def test_cannot_introduce_sku(self):
        with self.assertRaises(UnknownBoxSKUException) as ctx:
            apply_matrix_edit(self.boxes, [
                {'sku': 'A-1', 'box_quantities': [1, 1]},
                {'sku': 'B-1', 'box_quantities': [2, 5]},
            ])

        self.assertEqual(ctx.exception.details, {'sku': 'B-1', 'box_index': 1})
        self.assertEqual(self.boxes[0]['items'][0]['qty'], 4)

    def test_row_length_must_match(self):
        with self.assertRaises(DimensionMismatchException):
            apply_matrix_edit(self.boxes, [{'sku': 'A-1', 'box_quantities': [1, 1, 1]}])

    def test_zero_for_absent_sku_is_ignored(self):
        updated = apply_matrix_edit(self.boxes, [{'sku': 'B-1', 'box_quantities': [2, 0]}])
        self.assertEqual(updated, self.boxes)
