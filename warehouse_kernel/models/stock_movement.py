"""
Module: warehouse_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock movement history.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain layer.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - MOVEMENT_IMMUTABILITY: rows are never updated or deleted
      (ORM listeners in db/immutability.py).
    - One movement per successful mutation: record_version is the inventory
      record's version after the mutation, unique per inventory record.
    - Before/after figures: previous_* and new_* capture both stock and
      reserved_stock, so the history replays to the current figures.

Failure modes:
    - IntegrityError on a second movement for the same (inventory, version).
    - ImmutabilityViolationError on any UPDATE or DELETE attempt.

Audit relevance:
    Movements are the audit trail for every stock change.  reference_type /
    reference_id link a movement to the bill (or sale, or manual action)
    that caused it.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import Base, UUIDString
from warehouse_kernel.domain.dtos import MovementKind, MovementSnapshot


class StockMovement(Base):
    """
    One immutable change to an inventory record.

    ``delta`` is signed: positive adds to the figure the kind touches
    (stock for stock kinds, reserved_stock for reservation kinds).
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint(
            "inventory_id", "record_version", name="uq_movement_inventory_version"
        ),
        Index("idx_movement_inventory_version", "inventory_id", "record_version"),
        Index("idx_movement_kind", "kind"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_created_at", "created_at"),
    )

    inventory_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_records.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_reserved: Mapped[int] = mapped_column(Integer, nullable=False)
    new_reserved: Mapped[int] = mapped_column(Integer, nullable=False)

    record_version: Mapped[int] = mapped_column(Integer, nullable=False)

    # "exit_bill", "entry_bill", "sale", "manual", ...
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def movement_kind(self) -> MovementKind:
        return MovementKind(self.kind)

    def to_snapshot(self) -> MovementSnapshot:
        return MovementSnapshot(
            id=self.id,
            inventory_id=self.inventory_id,
            kind=MovementKind(self.kind),
            delta=self.delta,
            previous_stock=self.previous_stock,
            new_stock=self.new_stock,
            previous_reserved=self.previous_reserved,
            new_reserved=self.new_reserved,
            record_version=self.record_version,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            notes=self.notes,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.kind} {self.delta:+d} "
            f"inventory={self.inventory_id} v{self.record_version}>"
        )
