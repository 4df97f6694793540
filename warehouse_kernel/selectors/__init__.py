"""Read-only selectors for inventory and transfer bills."""

from warehouse_kernel.selectors.inventory_selector import InventorySelector, StockAudit
from warehouse_kernel.selectors.transfer_bill_selector import TransferBillSelector

__all__ = [
    "InventorySelector",
    "StockAudit",
    "TransferBillSelector",
]
