"""Services for the warehouse kernel (write side)."""

from warehouse_kernel.services.reconciliation_service import ReconciliationService
from warehouse_kernel.services.sequence_service import SequenceService
from warehouse_kernel.services.stock_ledger import StockLedger
from warehouse_kernel.services.transfer_bill_service import TransferBillService
from warehouse_kernel.services.transfer_coordinator import TransferCoordinator

__all__ = [
    "ReconciliationService",
    "SequenceService",
    "StockLedger",
    "TransferBillService",
    "TransferCoordinator",
]
