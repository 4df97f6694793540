"""
Module: warehouse_kernel.models.transfer_bill
Responsibility: ORM persistence for exit and entry transfer bills and their
    line items.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain layer.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - bill_number is unique (uq_transfer_bill_number).
    - related_bill_id pairs one exit bill with at most one entry bill; it is
      unique and, once set, never changes.
    - Items are an owned collection (cascade delete-orphan) ordered by
      line_number; line numbers are unique per bill.
    - line_total = quantity * unit_price, written with the line.
    - Completed and cancelled bills and their items are frozen
      (db/immutability.py).  Bills are never deleted.

Failure modes:
    - IntegrityError on duplicate bill_number, duplicate pairing or
      duplicate line_number.
    - ImmutabilityViolationError on a change to a terminal bill.

Audit relevance:
    A bill records who created, verified and completed it and when, and is
    the reference carried by every movement it produced.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from warehouse_kernel.db.base import Base, TrackedBase, UUIDString
from warehouse_kernel.domain.dtos import (
    BillItemSnapshot,
    BillSnapshot,
    BillStatus,
    BillType,
    DiscrepancyType,
    VerificationStatus,
)

TERMINAL_STATUSES = frozenset({BillStatus.COMPLETED.value, BillStatus.CANCELLED.value})


class TransferBill(TrackedBase):
    """
    One exit or entry bill.

    Contract:
        Status moves only through the workflows in domain/workflow.py, driven
        by TransferBillService and TransferCoordinator.

    Guarantees:
        - verification_status is NULL for exit bills and set for entry bills.
        - total_amount is the sum of the items' line totals.
    """

    __tablename__ = "transfer_bills"

    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_transfer_bill_number"),
        UniqueConstraint("related_bill_id", name="uq_transfer_bill_related"),
        CheckConstraint("bill_type IN ('exit', 'entry')", name="ck_transfer_bill_type"),
        Index("idx_transfer_bill_company", "company_id", "bill_type"),
        Index("idx_transfer_bill_franchise", "franchise_id", "bill_type"),
        Index("idx_transfer_bill_status", "status"),
        Index("idx_transfer_bill_created", "created_at"),
    )

    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bill_type: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BillStatus.DRAFT.value
    )

    company_id: Mapped[int] = mapped_column(nullable=False)
    franchise_id: Mapped[int] = mapped_column(nullable=False)

    # Exit bill -> its entry bill, and entry bill -> its exit bill
    related_bill_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_bills.id"),
        nullable=True,
    )

    verification_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verified_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    items: Mapped[list["TransferBillItem"]] = relationship(
        "TransferBillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="TransferBillItem.line_number",
        lazy="selectin",
    )

    @property
    def is_exit(self) -> bool:
        return self.bill_type == BillType.EXIT.value

    @property
    def is_entry(self) -> bool:
        return self.bill_type == BillType.ENTRY.value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def item_for_variant(self, product_variant_id: int) -> TransferBillItem | None:
        for item in self.items:
            if item.product_variant_id == product_variant_id:
                return item
        return None

    def next_line_number(self) -> int:
        return max((item.line_number for item in self.items), default=0) + 1

    def recompute_total(self) -> Decimal:
        self.total_amount = sum((item.line_total for item in self.items), Decimal("0"))
        return self.total_amount

    def to_snapshot(self) -> BillSnapshot:
        return BillSnapshot(
            id=self.id,
            bill_number=self.bill_number,
            bill_type=BillType(self.bill_type),
            status=BillStatus(self.status),
            company_id=self.company_id,
            franchise_id=self.franchise_id,
            related_bill_id=self.related_bill_id,
            verification_status=(
                VerificationStatus(self.verification_status)
                if self.verification_status
                else None
            ),
            total_amount=self.total_amount,
            notes=self.notes,
            verification_notes=self.verification_notes,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            verified_at=self.verified_at,
            verified_by_id=self.verified_by_id,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            items=tuple(item.to_snapshot() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<TransferBill {self.bill_number}: {self.bill_type} {self.status}>"


class TransferBillItem(Base):
    """
    One line of a bill.

    Exit lines use ``quantity``.  Entry lines carry ``expected_quantity``
    (copied from the exit line, 0 for extra lines appended at verification),
    ``received_quantity`` (NULL until verified) and the derived
    ``discrepancy_type``.  ``quantity`` mirrors ``expected_quantity`` on
    entry lines so line totals value what was billed.
    """

    __tablename__ = "transfer_bill_items"

    __table_args__ = (
        UniqueConstraint("bill_id", "line_number", name="uq_bill_item_line"),
        UniqueConstraint("bill_id", "product_variant_id", name="uq_bill_item_variant"),
        CheckConstraint("quantity >= 0", name="ck_bill_item_quantity_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_bill_item_price_nonneg"),
        CheckConstraint(
            "received_quantity IS NULL OR received_quantity >= 0",
            name="ck_bill_item_received_nonneg",
        ),
        Index("idx_bill_item_bill", "bill_id"),
    )

    bill_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_bills.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    product_variant_id: Mapped[int] = mapped_column(nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    expected_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    received_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    discrepancy_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    discrepancy_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    bill: Mapped["TransferBill"] = relationship(
        "TransferBill",
        back_populates="items",
    )

    @property
    def is_extra(self) -> bool:
        return self.expected_quantity == 0

    def to_snapshot(self) -> BillItemSnapshot:
        return BillItemSnapshot(
            id=self.id,
            line_number=self.line_number,
            product_variant_id=self.product_variant_id,
            quantity=self.quantity,
            expected_quantity=self.expected_quantity,
            received_quantity=self.received_quantity,
            unit_price=self.unit_price,
            line_total=self.line_total,
            discrepancy_type=(
                DiscrepancyType(self.discrepancy_type) if self.discrepancy_type else None
            ),
            discrepancy_notes=self.discrepancy_notes,
        )

    def __repr__(self) -> str:
        return (
            f"<TransferBillItem #{self.line_number} variant={self.product_variant_id} "
            f"qty={self.quantity} received={self.received_quantity}>"
        )
