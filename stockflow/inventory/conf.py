"""
Domain configuration lookups.

Reads the STOCKFLOW settings dict, falling back to DEFAULTS for any key the
project does not define.
"""

from django.conf import settings

DEFAULTS = {
    "SHIPMENT_NUMBER_PREFIX": "SHP",
    "SHIPMENT_NUMBER_PADDING": 4,
    "DEFAULT_LOW_STOCK_THRESHOLD": 10,
    "DEFAULT_PACK_GROUP": "1",
}


def get_setting(name):
    overrides = getattr(settings, "STOCKFLOW", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
