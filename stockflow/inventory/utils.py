def normalize_sku(sku):
    """SKUs are case-insensitive keys; store and compare them upper-cased."""
    if sku is None:
        return ""
    return str(sku).strip().upper()
