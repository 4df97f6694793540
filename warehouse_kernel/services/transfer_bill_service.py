"""
TransferBillService -- exit and entry bill lifecycle.

Responsibility:
    Creates exit bills from a cart of lines, replaces their lines while
    draft, completes them against company stock, cancels drafts, and
    builds bill rows (numbering, line totals) for the coordinator.

Architecture position:
    Kernel > Services -- imperative shell.  Depends on StockLedger for the
    stock effects of exit completion and on SequenceService for numbers.
    Entry bill materialization and completion live in TransferCoordinator;
    verification lives in ReconciliationService.

Invariants enforced:
    - Every action is resolved against the bill's workflow before anything
      is written (domain/workflow.py).
    - ATOMIC_COMPLETION: exit completion is all-or-nothing.  Every line is
      checked against the company's available stock first, and
      InsufficientStockError lists EVERY short line before any record is
      touched.
    - Company records are locked in ascending variant order, so two
      completions sharing variants cannot deadlock.
    - BILL_NUMBER_SEQUENCE: bill_number comes from the company's locked
      counter row.

Failure modes:
    - BillNotFoundError, InvalidBillItemsError, InsufficientStockError,
      InvalidStateTransitionError, AlreadyCompletedError.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from warehouse_kernel.domain.clock import Clock
from warehouse_kernel.domain.dtos import (
    BillItemRequest,
    BillStatus,
    BillType,
    MovementKind,
)
from warehouse_kernel.domain.values import BillNumbering, Location
from warehouse_kernel.domain.workflow import resolve_transition
from warehouse_kernel.exceptions import (
    BillNotFoundError,
    InsufficientStockError,
    InvalidBillItemsError,
    InvalidStateTransitionError,
    StockShortfall,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.transfer_bill import TransferBill, TransferBillItem
from warehouse_kernel.services.base import BaseService
from warehouse_kernel.services.sequence_service import SequenceService
from warehouse_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.transfer_bill")

EXIT_BILL_REFERENCE = "exit_bill"
ENTRY_BILL_REFERENCE = "entry_bill"


def validate_bill_items(items: Sequence[BillItemRequest]) -> list[str]:
    """Return every problem with a cart of exit lines (empty if valid)."""
    errors: list[str] = []
    if not items:
        return ["a bill needs at least one item"]

    seen: set[int] = set()
    for position, item in enumerate(items, start=1):
        variant = item.product_variant_id
        if isinstance(variant, bool) or not isinstance(variant, int) or variant <= 0:
            errors.append(f"item {position}: product_variant_id must be a positive integer")
        elif variant in seen:
            errors.append(f"item {position}: variant {variant} appears more than once")
        else:
            seen.add(variant)

        quantity = item.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f"item {position}: quantity must be a positive integer")

        try:
            price_ok = item.unit_price.is_finite() and item.unit_price >= 0
        except (AttributeError, InvalidOperation):
            price_ok = False
        if not price_ok:
            errors.append(f"item {position}: unit_price must be >= 0")
    return errors


class TransferBillService(BaseService):
    """
    Write side of exit bills, plus the row builders shared with the
    coordinator.

    Non-goals:
        - Does NOT commit.
        - Does NOT check that company and franchise ids belong together;
          the directory collaborator owns that.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: StockLedger | None = None,
        numbering: BillNumbering | None = None,
    ):
        super().__init__(session, clock)
        self.ledger = ledger or StockLedger(session, self.clock)
        self.numbering = numbering or BillNumbering()
        self._sequences = SequenceService(session)

    # =========================================================================
    # Loading
    # =========================================================================

    def lock(self, bill_id: UUID) -> TransferBill:
        """Load and lock a bill.  Raises BillNotFoundError."""
        bill = self.session.execute(
            select(TransferBill)
            .where(TransferBill.id == bill_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        return bill

    @staticmethod
    def require_type(bill: TransferBill, bill_type: BillType, action: str) -> None:
        if bill.bill_type != bill_type.value:
            raise InvalidStateTransitionError(
                bill_id=str(bill.id),
                current_status=bill.status,
                action=action,
                reason=f"{bill.bill_type} bills do not support '{action}'",
            )

    # =========================================================================
    # Row builders
    # =========================================================================

    def new_bill(
        self,
        bill_type: BillType,
        company_id: int,
        franchise_id: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransferBill:
        """Build and add a numbered draft bill with no lines."""
        sequence = self._sequences.next_value(BillNumbering.sequence_name(company_id))
        bill = TransferBill(
            bill_number=self.numbering.format(bill_type.value, company_id, sequence),
            bill_type=bill_type.value,
            status=BillStatus.DRAFT.value,
            company_id=company_id,
            franchise_id=franchise_id,
            total_amount=Decimal("0"),
            notes=notes,
            created_by_id=actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(bill)
        return bill

    @staticmethod
    def new_item(
        bill: TransferBill,
        product_variant_id: int,
        quantity: int,
        unit_price: Decimal,
        **fields,
    ) -> TransferBillItem:
        """Append a line to ``bill`` with the next line number and its total."""
        item = TransferBillItem(
            line_number=bill.next_line_number(),
            product_variant_id=product_variant_id,
            quantity=quantity,
            unit_price=unit_price,
            line_total=unit_price * quantity,
            **fields,
        )
        bill.items.append(item)
        return item

    # =========================================================================
    # Exit bills
    # =========================================================================

    def create_exit_bill(
        self,
        company_id: int,
        franchise_id: int,
        items: Sequence[BillItemRequest],
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransferBill:
        """
        Create a draft exit bill.  Does NOT touch the ledger: stock is only
        checked and moved at completion.
        """
        errors = []
        for label, value in (("company_id", company_id), ("franchise_id", franchise_id)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                errors.append(f"{label} must be a positive integer")
        errors.extend(validate_bill_items(items))
        if errors:
            logger.warning("exit_bill_rejected", extra={"errors": errors})
            raise InvalidBillItemsError(errors)

        bill = self.new_bill(BillType.EXIT, company_id, franchise_id, actor_id, notes)
        for request in items:
            self.new_item(bill, request.product_variant_id, request.quantity, request.unit_price)
        bill.recompute_total()
        self.session.flush()

        logger.info(
            "exit_bill_created",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "company_id": company_id,
                "franchise_id": franchise_id,
                "item_count": len(bill.items),
                "total_amount": bill.total_amount,
            },
        )
        return bill

    def update_exit_bill_items(
        self,
        bill_id: UUID,
        items: Sequence[BillItemRequest],
        actor_id: UUID,
        change_reason: str | None = None,
    ) -> TransferBill:
        """Replace the lines of a draft exit bill and recompute its total."""
        bill = self.lock(bill_id)
        self.require_type(bill, BillType.EXIT, "update_items")
        resolve_transition(
            bill.bill_type, bill.status, "update_items",
            bill_id=str(bill.id), bill_number=bill.bill_number,
        )

        errors = validate_bill_items(items)
        if errors:
            logger.warning(
                "exit_bill_update_rejected",
                extra={"bill_id": str(bill.id), "errors": errors},
            )
            raise InvalidBillItemsError(errors)

        previous_total = bill.total_amount
        bill.items.clear()
        # Old lines must be gone before new ones reuse their line numbers.
        self.session.flush()

        for request in items:
            self.new_item(bill, request.product_variant_id, request.quantity, request.unit_price)
        bill.recompute_total()
        bill.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "exit_bill_items_updated",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "item_count": len(bill.items),
                "previous_total": previous_total,
                "total_amount": bill.total_amount,
                "change_reason": change_reason,
            },
        )
        return bill

    def complete_exit_bill(self, bill_id: UUID, actor_id: UUID) -> TransferBill:
        """
        Move every line out of company stock and mark the bill completed.

        Raises:
            InsufficientStockError: one or more lines exceed the company's
                available stock.  Nothing has been written; the bill stays
                draft and can be retried after a correction.
            AlreadyCompletedError: the bill was completed before.
        """
        bill = self.lock(bill_id)
        self.require_type(bill, BillType.EXIT, "complete")
        resolve_transition(
            bill.bill_type, bill.status, "complete",
            bill_id=str(bill.id), bill_number=bill.bill_number,
        )

        company = Location.company(bill.company_id)
        lines = sorted(bill.items, key=lambda item: item.product_variant_id)

        locked = []
        shortfalls: list[StockShortfall] = []
        for item in lines:
            record = self.ledger.lock_at(item.product_variant_id, company)
            available = record.available_stock if record is not None and record.is_active else 0
            if item.quantity > available:
                shortfalls.append(
                    StockShortfall(
                        product_variant_id=item.product_variant_id,
                        required=item.quantity,
                        available=available,
                        inventory_id=str(record.id) if record is not None else None,
                    )
                )
            locked.append((item, record))

        if shortfalls:
            logger.warning(
                "exit_bill_completion_rejected",
                extra={
                    "bill_id": str(bill.id),
                    "bill_number": bill.bill_number,
                    "shortfalls": [s.to_dict() for s in shortfalls],
                },
            )
            raise InsufficientStockError(str(bill.id), shortfalls)

        for item, record in locked:
            self.ledger.adjust_record(
                record,
                -item.quantity,
                actor_id,
                notes=f"Transfer out on {bill.bill_number}",
                kind=MovementKind.TRANSFER_OUT,
                reference_type=EXIT_BILL_REFERENCE,
                reference_id=str(bill.id),
            )

        now = self.clock.now()
        bill.status = BillStatus.COMPLETED.value
        bill.completed_at = now
        bill.completed_by_id = actor_id
        bill.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "exit_bill_completed",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "item_count": len(lines),
                "units": sum(item.quantity for item in lines),
            },
        )
        return bill

    # =========================================================================
    # Both types
    # =========================================================================

    def cancel_bill(self, bill_id: UUID, actor_id: UUID) -> TransferBill:
        """Cancel a draft.  Drafts never touched the ledger, so no effect."""
        bill = self.lock(bill_id)
        resolve_transition(
            bill.bill_type, bill.status, "cancel",
            bill_id=str(bill.id), bill_number=bill.bill_number,
        )
        bill.status = BillStatus.CANCELLED.value
        bill.cancelled_at = self.clock.now()
        bill.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "bill_cancelled",
            extra={
                "bill_id": str(bill.id),
                "bill_number": bill.bill_number,
                "bill_type": bill.bill_type,
            },
        )
        return bill
