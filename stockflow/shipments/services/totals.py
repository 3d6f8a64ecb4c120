"""
Box normalization and shipment totals.

Pure functions over plain box dicts. Weights are kept as strings inside the
JSON box list and handled as Decimal here.
"""

import copy
from decimal import Decimal, InvalidOperation

from inventory.utils import normalize_sku

from ..exceptions import ValidationException

WEIGHT_PLACES = Decimal('0.001')

ITEM_TEXT_FIELDS = ('product_name', 'product_id', 'asin', 'fnsku', 'condition', 'prep_type')
DIMENSION_KEYS = ('length', 'width', 'height')


def to_decimal(value, default='0') -> Decimal:
    if value is None or value == '':
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationException(f"Invalid number {value!r}", {'value': str(value)})


def format_weight(value) -> str:
    return str(to_decimal(value).quantize(WEIGHT_PLACES))


def to_quantity(value, field='qty', allow_zero=False) -> int:
    if isinstance(value, bool):
        raise ValidationException(f"{field} must be an integer", {field: value})
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise ValidationException(f"{field} must be an integer", {field: value})
    if qty != value and str(qty) != str(value).strip():
        raise ValidationException(f"{field} must be a whole number", {field: value})
    minimum = 0 if allow_zero else 1
    if qty < minimum:
        raise ValidationException(f"{field} must be at least {minimum}", {field: value})
    return qty


def normalize_item(item: dict) -> dict:
    """Return a clean copy of one box line with total_weight = qty x unit_weight."""
    sku = normalize_sku(item.get('sku'))
    if not sku:
        raise ValidationException("Box item requires a SKU", {'sku': 'This field is required.'})
    qty = to_quantity(item.get('qty'))
    unit_weight = to_decimal(item.get('unit_weight'))
    if unit_weight < 0:
        raise ValidationException(f"Unit weight for {sku} cannot be negative", {'unit_weight': str(unit_weight)})

    line = {'sku': sku}
    for field in ITEM_TEXT_FIELDS:
        line[field] = item.get(field) or ''
    line['qty'] = qty
    line['expected_qty'] = to_quantity(item['expected_qty'], 'expected_qty', allow_zero=True) \
        if item.get('expected_qty') is not None else qty
    line['unit_weight'] = format_weight(unit_weight)
    line['total_weight'] = format_weight(unit_weight * qty)
    return line


def normalize_dimensions(dimensions) -> dict:
    dimensions = dimensions or {}
    return {key: str(to_decimal(dimensions.get(key))) for key in DIMENSION_KEYS}


def normalize_box(box: dict, index: int) -> dict:
    """
    Return a clean copy of a stored box.

    A declared weight of None or 0 means "not supplied" and the effective
    box_weight falls back to the sum of the item weights.
    """
    items = [normalize_item(item) for item in box.get('items', [])]
    declared = to_decimal(box.get('declared_weight'))
    if declared < 0:
        raise ValidationException("Box weight cannot be negative", {'box_weight': str(declared)})
    items_weight = sum((to_decimal(item['total_weight']) for item in items), Decimal('0'))

    normalized = {
        'box_no': box.get('box_no') or f"BOX{index + 1}",
        'box_name': box.get('box_name') or '',
        'items': items,
        'declared_weight': format_weight(declared) if declared else None,
        'box_weight': format_weight(declared if declared else items_weight),
        'dimensions': normalize_dimensions(box.get('dimensions')),
        'notes': box.get('notes') or '',
    }
    return normalized


def box_from_input(data: dict, index: int) -> dict:
    """
    Build a box from caller input, where 'box_weight' is the declared weight.

    Lines for the same SKU are merged into one line.
    """
    merged = {}
    for raw in data.get('items') or []:
        item = normalize_item(raw)
        if item['sku'] in merged:
            existing = merged[item['sku']]
            existing['qty'] += item['qty']
            existing['expected_qty'] = existing['qty']
        else:
            merged[item['sku']] = item

    declared = data.get('box_weight', data.get('declared_weight'))
    return normalize_box({
        'box_no': data.get('box_no'),
        'box_name': data.get('box_name'),
        'items': list(merged.values()),
        'declared_weight': declared,
        'dimensions': data.get('dimensions'),
        'notes': data.get('notes'),
    }, index)


def recalculate_totals(boxes):
    """
    Recompute box weights, per-SKU expected quantities and shipment totals.

    Every line's expected_qty becomes its SKU's quantity summed over all
    boxes, whichever operation produced the line.

    Args:
        boxes: List of box dicts (not modified)

    Returns:
        Tuple of (normalized box list, totals dict with total_boxes,
        total_items, total_skus and total_weight)
    """
    normalized = [normalize_box(copy.deepcopy(box), index) for index, box in enumerate(boxes or [])]

    sku_totals = {}
    total_weight = Decimal('0')
    for box in normalized:
        for item in box['items']:
            sku_totals[item['sku']] = sku_totals.get(item['sku'], 0) + item['qty']
        total_weight += to_decimal(box['box_weight'])

    for item in iter_box_lines(normalized):
        item['expected_qty'] = sku_totals[item['sku']]

    totals = {
        'total_boxes': len(normalized),
        'total_items': sum(sku_totals.values()),
        'total_skus': len(sku_totals),
        'total_weight': total_weight.quantize(WEIGHT_PLACES),
    }
    return normalized, totals


def iter_box_lines(boxes):
    """Yield every item line of every box."""
    for box in boxes or []:
        for item in box.get('items', []):
            yield item
