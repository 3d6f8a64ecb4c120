"""
Distribution engine: SKU x box quantity matrices.

A shipment's boxes can be viewed as a matrix with one row per SKU and one
column per box. These functions convert between the two views and apply
matrix edits. They are pure: no database access, inputs are never modified.
"""

import copy
from typing import Any, Callable, Dict, List

from inventory.utils import normalize_sku

from ..exceptions import DimensionMismatchException, UnknownBoxSKUException, ValidationException
from .totals import normalize_box, to_decimal, to_quantity

ITEM_METADATA_FIELDS = ('product_name', 'product_id', 'asin', 'fnsku', 'condition', 'prep_type', 'unit_weight')


def describe_box(box: dict, index: int) -> Dict[str, Any]:
    dimensions = box.get('dimensions') or {}
    return {
        'box_index': index,
        'box_no': box.get('box_no') or f"BOX{index + 1}",
        'box_name': box.get('box_name') or box.get('box_no') or '',
        'box_weight': box.get('box_weight') or '0',
        'length': dimensions.get('length', '0'),
        'width': dimensions.get('width', '0'),
        'height': dimensions.get('height', '0'),
        'notes': box.get('notes') or '',
    }


def project_to_matrix(boxes: List[dict]) -> Dict[str, Any]:
    """
    Project boxes onto a SKU x box matrix.

    Rows appear in the order their SKU is first met. Metadata comes from the
    first line seen for each SKU.

    Returns:
        Dict with 'boxes' (box descriptors in position order) and 'skus'
        (rows with box_quantities aligned to the boxes and expected_qty)
    """
    boxes = boxes or []
    rows = {}
    for index, box in enumerate(boxes):
        for item in box.get('items', []):
            sku = normalize_sku(item.get('sku'))
            if sku not in rows:
                row = {'sku': sku}
                for field in ITEM_METADATA_FIELDS:
                    row[field] = item.get(field, '')
                row['box_quantities'] = [0] * len(boxes)
                rows[sku] = row
            rows[sku]['box_quantities'][index] += item.get('qty', 0)

    for row in rows.values():
        row['expected_qty'] = sum(row['box_quantities'])

    return {
        'boxes': [describe_box(box, index) for index, box in enumerate(boxes)],
        'skus': list(rows.values()),
    }


def _row_quantities(row: dict, box_count: int) -> List[int]:
    sku = normalize_sku(row.get('sku'))
    quantities = row.get('box_quantities')
    if not isinstance(quantities, (list, tuple)):
        raise ValidationException(f"box_quantities for SKU {sku} must be a list", {'sku': sku})
    if len(quantities) != box_count:
        raise DimensionMismatchException(sku, box_count, len(quantities))
    return [to_quantity(qty, 'box_quantities', allow_zero=True) for qty in quantities]


def _box_dimensions(descriptor: dict) -> dict:
    dimensions = descriptor.get('dimensions') or {}
    return {key: dimensions.get(key, descriptor.get(key)) for key in ('length', 'width', 'height')}


def build_from_matrix(box_specs: List[dict], sku_matrix: List[dict],
                      resolve_sku: Callable[[str], dict], pack_group: str) -> List[dict]:
    """
    Build boxes from box descriptors and SKU rows.

    Args:
        box_specs: Box descriptors (box_no, box_name, box_weight, dimensions or
            length/width/height, notes) in position order
        sku_matrix: Rows with 'sku' and 'box_quantities'; optional product_name
        resolve_sku: Returns catalog data for a SKU; called once per SKU
        pack_group: Used for default box names P{group}-B{n}

    Returns:
        List of normalized boxes; zero quantities produce no line

    Raises:
        DimensionMismatchException: If a row length differs from the box count
        ValidationException: If a SKU appears in more than one row
    """
    box_count = len(box_specs)
    rows = []
    seen = set()
    for row in sku_matrix:
        sku = normalize_sku(row.get('sku'))
        if not sku:
            raise ValidationException("Every matrix row needs a SKU", {'sku': 'This field is required.'})
        if sku in seen:
            raise ValidationException(f"SKU {sku} appears in more than one row", {'sku': sku})
        seen.add(sku)
        rows.append((sku, row, _row_quantities(row, box_count)))

    catalog = {sku: resolve_sku(sku) for sku, _, _ in rows}

    boxes = []
    for index, descriptor in enumerate(box_specs):
        items = []
        for sku, row, quantities in rows:
            qty = quantities[index]
            if not qty:
                continue
            entry = catalog[sku]
            items.append({
                'sku': sku,
                'product_name': row.get('product_name') or entry.get('name', ''),
                'product_id': entry.get('product_id') or row.get('product_id', ''),
                'asin': entry.get('asin') or row.get('asin', ''),
                'fnsku': entry.get('fnsku') or row.get('fnsku', ''),
                'condition': entry.get('condition') or row.get('condition', ''),
                'prep_type': entry.get('prep_type') or row.get('prep_type', ''),
                'qty': qty,
                'expected_qty': sum(quantities),
                'unit_weight': entry.get('unit_weight', to_decimal(row.get('unit_weight'))),
            })

        boxes.append(normalize_box({
            'box_no': descriptor.get('box_no') or f"BOX{index + 1}",
            'box_name': descriptor.get('box_name') or f"P{pack_group}-B{index + 1}",
            'items': items,
            'declared_weight': descriptor.get('box_weight'),
            'dimensions': _box_dimensions(descriptor),
            'notes': descriptor.get('notes'),
        }, index))

    return boxes


def apply_matrix_edit(boxes: List[dict], edits: List[dict]) -> List[dict]:
    """
    Apply per-SKU box quantities to existing boxes.

    A quantity of 0 removes the SKU's line from that box, a positive quantity
    overwrites the line's qty. Edits cannot introduce a SKU into a box that
    does not already hold it.

    Returns:
        New box list; the input is left untouched, also when an edit fails

    Raises:
        DimensionMismatchException: If a row length differs from the box count
        UnknownBoxSKUException: If a positive quantity targets a box without that SKU
    """
    updated = copy.deepcopy(boxes or [])
    box_count = len(updated)

    for edit in edits:
        sku = normalize_sku(edit.get('sku'))
        quantities = _row_quantities(edit, box_count)

        for index, qty in enumerate(quantities):
            items = updated[index].setdefault('items', [])
            position = next(
                (pos for pos, item in enumerate(items) if normalize_sku(item.get('sku')) == sku),
                None
            )
            if qty > 0:
                if position is None:
                    raise UnknownBoxSKUException(sku, index)
                items[position]['qty'] = qty
            elif position is not None:
                del items[position]

    return updated
