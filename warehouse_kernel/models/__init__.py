"""ORM models for the warehouse kernel."""

from warehouse_kernel.models.inventory import InventoryRecord
from warehouse_kernel.models.stock_movement import StockMovement
from warehouse_kernel.models.transfer_bill import (
    TERMINAL_STATUSES,
    TransferBill,
    TransferBillItem,
)

__all__ = [
    "InventoryRecord",
    "StockMovement",
    "TransferBill",
    "TransferBillItem",
    "TERMINAL_STATUSES",
]
