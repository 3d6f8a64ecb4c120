"""
Stock ledger adapter for the shipment workflow.

The workflow only talks to the ledger through this interface, so a different
ledger can be passed to ShipmentService at construction.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable

from inventory.services.stock_ledger import StockLedger


class StockLedgerInterface(ABC):
    """
    Contract the shipment workflow needs from the stock ledger.

    Lines are dicts with at least 'sku' and 'qty' keys; box items qualify.
    """

    @abstractmethod
    def lookup(self, sku: str) -> Dict[str, Any]:
        """
        Return catalog data for an active SKU.

        Returns:
            Dict with sku, name, product_id, asin, fnsku, condition,
            prep_type, unit_weight, unit_cost and available_qty

        Raises:
            UnknownSKUException: If the SKU is unknown or inactive
        """

    @abstractmethod
    def reserve_lines(self, lines: Iterable[Dict[str, Any]], reference: str, user=None) -> Dict[str, int]:
        """Reserve every line or none of them. Returns SKU -> reserved quantity."""

    @abstractmethod
    def release_lines(self, lines: Iterable[Dict[str, Any]], reference: str, user=None) -> Dict[str, int]:
        """Release every line. Returns SKU -> released quantity."""


class StockLedgerAdapter(StockLedgerInterface):
    """Adapter over the Django-backed inventory ledger."""

    def __init__(self, ledger: StockLedger = None):
        self.ledger = ledger or StockLedger()

    def lookup(self, sku: str) -> Dict[str, Any]:
        return self.ledger.lookup(sku).as_catalog_entry()

    def reserve_lines(self, lines, reference, user=None):
        return self.ledger.reserve_lines(lines, reference=reference, user=user)

    def release_lines(self, lines, reference, user=None):
        return self.ledger.release_lines(lines, reference=reference, user=user)


# Module level adapter; replace with set_stock_adapter() to plug in another ledger.
stock_adapter = StockLedgerAdapter()


def get_stock_adapter() -> StockLedgerInterface:
    return stock_adapter


def set_stock_adapter(adapter: StockLedgerInterface):
    global stock_adapter
    stock_adapter = adapter
