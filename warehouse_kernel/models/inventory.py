"""
Module: warehouse_kernel.models.inventory
Responsibility: ORM persistence for per-(variant, location) stock figures.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain layer.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - SINGLE_LOCATION: exactly one of company_id / franchise_id is set
      (ck_inventory_single_location).
    - Reservation cover: 0 <= reserved_stock <= stock
      (ck_inventory_reserved_nonneg, ck_inventory_reserved_le_stock).  The
      ledger checks this before flush; the constraints are the backstop.
    - One record per (product_variant_id, location_key).
    - available_stock has no column.  It is a hybrid property computed from
      stock and reserved_stock, usable both on instances and in queries.
    - version is the SQLAlchemy version_id_col: every UPDATE is guarded by
      the version read, so a lost update surfaces as StaleDataError.

Failure modes:
    - IntegrityError on duplicate (variant, location) or on constraint breach.
    - StaleDataError on a concurrent write (translated to OptimisticLockError
      by StockLedger).

Audit relevance:
    Records are never deleted; is_active=False retires them so their movement
    history stays attached.
"""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from warehouse_kernel.db.base import TrackedBase
from warehouse_kernel.domain.dtos import InventorySnapshot
from warehouse_kernel.domain.values import Location


class InventoryRecord(TrackedBase):
    """
    Stock figures for one product variant at one location.

    Contract:
        Mutated only through StockLedger, which locks the row, validates,
        writes the new figures and appends exactly one StockMovement.

    Guarantees:
        - available_stock == stock - reserved_stock, always recomputed.
        - location is derived from the (company_id, franchise_id) pair.

    Non-goals:
        - Does NOT validate mutations itself; see StockLedger.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint(
            "product_variant_id", "location_key", name="uq_inventory_variant_location"
        ),
        CheckConstraint(
            "(company_id IS NULL AND franchise_id IS NOT NULL) OR "
            "(company_id IS NOT NULL AND franchise_id IS NULL)",
            name="ck_inventory_single_location",
        ),
        CheckConstraint("reserved_stock >= 0", name="ck_inventory_reserved_nonneg"),
        CheckConstraint("reserved_stock <= stock", name="ck_inventory_reserved_le_stock"),
        Index("idx_inventory_company", "company_id"),
        Index("idx_inventory_franchise", "franchise_id"),
        Index("idx_inventory_variant", "product_variant_id"),
    )

    product_variant_id: Mapped[int] = mapped_column(nullable=False)

    company_id: Mapped[int | None] = mapped_column(nullable=True)
    franchise_id: Mapped[int | None] = mapped_column(nullable=True)

    # "company:<id>" or "franchise:<id>"
    location_key: Mapped[str] = mapped_column(String(64), nullable=False)

    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reorder_point: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def available_stock(self) -> int:
        return self.stock - self.reserved_stock

    @property
    def location(self) -> Location:
        return Location.from_ids(self.company_id, self.franchise_id)

    @classmethod
    def new(
        cls,
        product_variant_id: int,
        location: Location,
        created_by_id,
        reorder_point: int | None = None,
    ) -> InventoryRecord:
        """Build an empty active record at ``location``."""
        return cls(
            product_variant_id=product_variant_id,
            company_id=location.company_id,
            franchise_id=location.franchise_id,
            location_key=location.key,
            stock=0,
            reserved_stock=0,
            reorder_point=reorder_point,
            is_active=True,
            created_by_id=created_by_id,
        )

    def to_snapshot(self) -> InventorySnapshot:
        return InventorySnapshot(
            id=self.id,
            product_variant_id=self.product_variant_id,
            company_id=self.company_id,
            franchise_id=self.franchise_id,
            stock=self.stock,
            reserved_stock=self.reserved_stock,
            reorder_point=self.reorder_point,
            is_active=self.is_active,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord {self.id}: variant={self.product_variant_id} "
            f"at {self.location_key} stock={self.stock} reserved={self.reserved_stock}>"
        )
