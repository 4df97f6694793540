"""
TransferCoordinator -- the cross-location transfer protocol.

Responsibility:
    Completes exit bills and materializes their paired entry bill, and
    completes verified entry bills by booking received quantities into
    franchise stock.

Architecture position:
    Kernel > Services -- imperative shell.  Composes TransferBillService,
    ReconciliationService and StockLedger over one session, so the ledger
    effects and the status change of a completion share one transaction.

Invariants enforced:
    - One exit bill yields exactly one entry bill, paired both ways through
      related_bill_id; the pairing is never rewritten.
    - Entry lines are seeded 1:1 from the exit lines with
      expected_quantity = quantity and received_quantity = NULL.
    - Entry completion requires status verified and credits only lines with
      received_quantity > 0.  Missing units are never charged back to the
      company automatically.
    - SINGLE_APPLICATION: completion is guarded by the bill's state under a
      row lock; a second completion is AlreadyCompletedError and applies
      nothing.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from warehouse_kernel.domain.clock import Clock
from warehouse_kernel.domain.dtos import (
    BillStatus,
    BillType,
    MovementKind,
    VerificationStatus,
)
from warehouse_kernel.domain.values import BillNumbering, Location
from warehouse_kernel.domain.workflow import resolve_transition
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.transfer_bill import TransferBill
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.reconciliation_service import ReconciliationService
from warehouse_kernel.services.stock_ledger import StockLedger
from warehouse_kernel.services.transfer_bill_service import (
    ENTRY_BILL_REFERENCE,
    TransferBillService,
)

logger = get_logger("services.transfer_coordinator")


class TransferCoordinator(BaseService):
    """
    Orchestrates bill completion across the company and the franchise.

    Contract:
        Methods return the bill they acted on.  Nothing is committed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        numbering: BillNumbering | None = None,
    ):
        super().__init__(session, clock)
        self.ledger = StockLedger(session, self.clock)
        self.bills = TransferBillService(
            session, self.clock, ledger=self.ledger, numbering=numbering
        )
        self.reconciliation = ReconciliationService(session, self.clock, bills=self.bills)

    def complete_exit_bill(self, bill_id: UUID, actor_id: UUID) -> TransferBill:
        """
        Complete an exit bill and emit its draft entry bill.

        Returns the completed exit bill; ``related_bill_id`` names the new
        entry bill.
        """
        exit_bill = self.bills.complete_exit_bill(bill_id, actor_id)
        entry_bill = self.materialize_entry_bill(exit_bill, actor_id)
        logger.info(
            "transfer_dispatched",
            extra={
                "bill_id": str(exit_bill.id),
                "exit_bill_number": exit_bill.bill_number,
                "entry_bill_id": str(entry_bill.id),
                "entry_bill_number": entry_bill.bill_number,
                "franchise_id": exit_bill.franchise_id,
            },
        )
        return exit_bill

    def materialize_entry_bill(self, exit_bill: TransferBill, actor_id: UUID) -> TransferBill:
        """Create the draft entry bill mirroring a completed exit bill."""
        assert exit_bill.bill_type == BillType.EXIT.value
        assert exit_bill.status == BillStatus.COMPLETED.value
        assert exit_bill.related_bill_id is None, "exit bill is already paired"

        entry_bill = self.bills.new_bill(
            BillType.ENTRY,
            exit_bill.company_id,
            exit_bill.franchise_id,
            actor_id,
            notes=f"Transfer from {exit_bill.bill_number}",
        )
        entry_bill.verification_status = VerificationStatus.PENDING.value
        entry_bill.related_bill_id = exit_bill.id
        for exit_item in exit_bill.items:
            self.bills.new_item(
                entry_bill,
                exit_item.product_variant_id,
                exit_item.quantity,
                exit_item.unit_price,
                expected_quantity=exit_item.quantity,
                received_quantity=None,
            )
        entry_bill.recompute_total()
        self.session.flush()

        exit_bill.related_bill_id = entry_bill.id
        self.session.flush()

        logger.info(
            "entry_bill_materialized",
            extra={
                "bill_id": str(entry_bill.id),
                "bill_number": entry_bill.bill_number,
                "related_bill_id": str(exit_bill.id),
                "item_count": len(entry_bill.items),
            },
        )
        return entry_bill

    def complete_entry_bill(self, bill_id: UUID, actor_id: UUID) -> TransferBill:
        """
        Book received quantities into franchise stock and complete the bill.

        Franchise records are created on first stocking and reactivated if
        retired.  Lines received as 0 produce no movement.
        """
        bill = self.bills.lock(bill_id)
        self.bills.require_type(bill, BillType.ENTRY, "complete")
        resolve_transition(
            bill.bill_type, bill.status, "complete",
            bill_id=str(bill.id), bill_number=bill.bill_number,
        )

        franchise = Location.franchise(bill.franchise_id)
        credited = 0
        for item in sorted(bill.items, key=lambda i: i.product_variant_id):
            if not item.received_quantity:
                continue
            record = self.ledger.get_or_create_for_update(
                item.product_variant_id, franchise, actor_id
            )
            self.ledger.adjust_record(
                record,
                item.received_quantity,
                actor_id,
                notes=f"Transfer in on {bill.bill_number}",
                kind=MovementKind.TRANSFER_IN,
                reference_type=ENTRY_BILL_REFERENCE,
                reference_id=str(bill.id),
            )
            credited += item.received_quantity

        bill.status = BillStatus.COMPLETED.value
        bill.completed_at = self.clock.now()
        bill.completed_by_id = actor_id
        bill.updated_by_id = actor_id
        self.session.flush()

        summary = self.reconciliation.summarize(bill)
        logger.info(
            "entry_bill_completed",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "units_credited": credited,
                "verification_status": bill.verification_status,
                "missing_count": summary.missing_count,
                "mismatch_count": summary.mismatch_count,
                "extra_count": summary.extra_count,
            },
        )
        return bill

    def cancel_bill(self, bill_id: UUID, actor_id: UUID) -> TransferBill:
        return self.bills.cancel_bill(bill_id, actor_id)
