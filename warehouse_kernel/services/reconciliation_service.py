"""
ReconciliationService -- verification of entry bills.

Responsibility:
    Records what a franchise actually received against an entry bill,
    classifies every line through the pure reconciliation core and
    produces the discrepancy summary shown before completion.

Architecture position:
    Kernel > Services -- imperative shell over
    ``warehouse_kernel.domain.reconciliation``.

Invariants enforced:
    - Verification performs NO ledger mutation; it only records facts.
    - discrepancy_type is always derived from (expected, received); callers
      never set it.
    - Expected variants missing from the receipts count as received 0.
    - Variants received but never billed become extra lines
      (expected_quantity = 0) through the same path as
      ``append_verification_item``.
    - The summary is recomputed from stored item state on every call.

Failure modes:
    - BillNotFoundError, InvalidReceiptError, InvalidStateTransitionError.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from warehouse_kernel.domain.clock import Clock
from warehouse_kernel.domain.dtos import (
    BillStatus,
    BillType,
    DiscrepancyType,
    ItemReceipt,
    VerificationStatus,
)
from warehouse_kernel.domain.reconciliation import (
    DiscrepancySummary,
    ExpectedLine,
    classify_discrepancy,
    reconcile,
    summarize_discrepancies,
)
from warehouse_kernel.domain.workflow import resolve_transition
from warehouse_kernel.exceptions import BillNotFoundError, InvalidReceiptError
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.transfer_bill import TransferBill, TransferBillItem
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.transfer_bill_service import TransferBillService

logger = get_logger("services.reconciliation")


def _is_non_negative_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_receipts(receipts: Sequence[ItemReceipt]) -> list[str]:
    errors: list[str] = []
    seen: set[int] = set()
    for position, receipt in enumerate(receipts, start=1):
        variant = receipt.product_variant_id
        if isinstance(variant, bool) or not isinstance(variant, int) or variant <= 0:
            errors.append(f"receipt {position}: product_variant_id must be a positive integer")
        elif variant in seen:
            errors.append(f"receipt {position}: variant {variant} appears more than once")
        else:
            seen.add(variant)
        if not _is_non_negative_int(receipt.received_quantity):
            errors.append(f"receipt {position}: received_quantity must be a non-negative integer")
    return errors


def expected_lines(bill: TransferBill) -> list[tuple[ExpectedLine, int | None]]:
    return [
        (
            ExpectedLine(
                product_variant_id=item.product_variant_id,
                expected_quantity=item.expected_quantity or 0,
                item_id=item.id,
            ),
            item.received_quantity,
        )
        for item in bill.items
    ]


class ReconciliationService(BaseService):
    """
    Verification of entry bills.

    Contract:
        ``verify_entry_bill`` moves a draft entry bill to verified and
        stamps every line.  ``append_verification_item`` adds one extra line
        to a draft entry bill.  ``summarize_discrepancies`` is read-only.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        bills: TransferBillService | None = None,
    ):
        super().__init__(session, clock)
        self.bills = bills or TransferBillService(session, self.clock)

    def _lock_entry(self, bill_id: UUID, action: str) -> TransferBill:
        bill = self.bills.lock(bill_id)
        self.bills.require_type(bill, BillType.ENTRY, action)
        resolve_transition(
            bill.bill_type, bill.status, action,
            bill_id=str(bill.id), bill_number=bill.bill_number,
        )
        return bill

    def _add_extra(
        self,
        bill: TransferBill,
        product_variant_id: int,
        received_quantity: int,
        unit_price: Decimal = Decimal("0"),
        notes: str | None = None,
    ) -> TransferBillItem:
        return self.bills.new_item(
            bill,
            product_variant_id,
            0,
            unit_price,
            expected_quantity=0,
            received_quantity=received_quantity,
            discrepancy_type=DiscrepancyType.EXTRA.value,
            discrepancy_notes=notes,
        )

    def append_verification_item(
        self,
        bill_id: UUID,
        product_variant_id: int,
        received_quantity: int,
        actor_id: UUID,
        unit_price: Decimal = Decimal("0"),
        notes: str | None = None,
    ) -> TransferBill:
        """
        Append a line for units received but never billed.

        Raises:
            InvalidReceiptError: the variant is already on the bill,
                received_quantity is not a positive integer, or unit_price
                is not a non-negative number.
        """
        bill = self._lock_entry(bill_id, "append_item")

        errors = []
        try:
            if not isinstance(unit_price, Decimal):
                unit_price = Decimal(str(unit_price))
            price_ok = unit_price.is_finite() and unit_price >= 0
        except InvalidOperation:
            price_ok = False
        if not price_ok:
            errors.append("unit_price must be >= 0")
        if isinstance(product_variant_id, bool) or not isinstance(product_variant_id, int) or product_variant_id <= 0:
            errors.append("product_variant_id must be a positive integer")
        elif bill.item_for_variant(product_variant_id) is not None:
            errors.append(f"variant {product_variant_id} is already on the bill")
        if not _is_non_negative_int(received_quantity) or received_quantity == 0:
            errors.append("received_quantity must be a positive integer for an extra item")
        if errors:
            logger.warning(
                "verification_item_rejected",
                extra={"bill_id": str(bill.id), "errors": errors},
            )
            raise InvalidReceiptError(str(bill.id), errors)

        item = self._add_extra(bill, product_variant_id, received_quantity, unit_price, notes)
        bill.recompute_total()
        bill.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "verification_item_appended",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "product_variant_id": product_variant_id,
                "received_quantity": received_quantity,
                "line_number": item.line_number,
            },
        )
        return bill

    def verify_entry_bill(
        self,
        bill_id: UUID,
        receipts: Sequence[ItemReceipt],
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransferBill:
        """
        Record received quantities and classify every line.

        Lines already appended as extras keep their received quantity unless
        a receipt names them again.
        """
        bill = self._lock_entry(bill_id, "verify")

        errors = validate_receipts(receipts)
        if errors:
            logger.warning(
                "verification_rejected",
                extra={"bill_id": str(bill.id), "errors": errors},
            )
            raise InvalidReceiptError(str(bill.id), errors)

        received: dict[int, int] = {
            item.product_variant_id: item.received_quantity
            for item in bill.items
            if item.is_extra and item.received_quantity is not None
        }
        received.update({r.product_variant_id: r.received_quantity for r in receipts})
        receipt_notes = {r.product_variant_id: r.notes for r in receipts if r.notes}

        lines = [line for line, _ in expected_lines(bill)]
        for result in reconcile(lines, received):
            item = bill.item_for_variant(result.product_variant_id)
            if item is None:
                if result.received_quantity == 0:
                    continue
                self._add_extra(
                    bill,
                    result.product_variant_id,
                    result.received_quantity,
                    notes=receipt_notes.get(result.product_variant_id),
                )
                continue
            item.received_quantity = result.received_quantity
            item.discrepancy_type = result.discrepancy_type.value
            if result.product_variant_id in receipt_notes:
                item.discrepancy_notes = receipt_notes[result.product_variant_id]

        has_discrepancies = any(
            classify_discrepancy(item.expected_quantity or 0, item.received_quantity)
            is not DiscrepancyType.NONE
            for item in bill.items
        )

        bill.recompute_total()
        bill.verification_status = (
            VerificationStatus.DISCREPANCIES_FOUND.value
            if has_discrepancies
            else VerificationStatus.VERIFIED.value
        )
        bill.status = BillStatus.VERIFIED.value
        bill.verified_at = self.clock.now()
        bill.verified_by_id = actor_id
        bill.updated_by_id = actor_id
        if notes is not None:
            bill.verification_notes = notes
        self.session.flush()

        summary = self.summarize(bill)
        logger.info(
            "entry_bill_verified",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "verification_status": bill.verification_status,
                "missing_count": summary.missing_count,
                "mismatch_count": summary.mismatch_count,
                "extra_count": summary.extra_count,
            },
        )
        return bill

    @staticmethod
    def summarize(bill: TransferBill) -> DiscrepancySummary:
        return summarize_discrepancies(expected_lines(bill))

    def summarize_discrepancies(self, bill_id: UUID) -> DiscrepancySummary:
        """Recompute the pre-completion summary from stored item state."""
        bill = self.session.get(TransferBill, bill_id)
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        self.bills.require_type(bill, BillType.ENTRY, "summarize")
        return self.summarize(bill)
