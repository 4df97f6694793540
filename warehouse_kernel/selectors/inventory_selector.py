"""
Module: warehouse_kernel.selectors.inventory_selector
Responsibility: Read-only access to inventory records and their movement
    history, plus the stock audit check.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Movement history is ordered newest first by record_version, which is
      total per record, so pages are stable and restartable.
    - available_stock in filters is the hybrid SQL expression
      (stock - reserved_stock), never a stored column.

Failure modes:
    - InventoryNotFoundError from get(), get_movements() and audit() for an
      unknown id.  find() returns None.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from warehouse_kernel.domain.dtos import (
    STOCK_MOVEMENT_KINDS,
    InventorySnapshot,
    MovementFilter,
    MovementKind,
    MovementSnapshot,
    Page,
)
from warehouse_kernel.domain.values import Location
from warehouse_kernel.exceptions import InventoryNotFoundError
from warehouse_kernel.models.inventory import InventoryRecord
from warehouse_kernel.models.stock_movement import StockMovement
from warehouse_kernel.selectors.base import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    BaseSelector,
)

DEFAULT_LOW_STOCK_THRESHOLD = 10

_STOCK_KINDS = tuple(kind.value for kind in STOCK_MOVEMENT_KINDS)


@dataclass(frozen=True)
class StockAudit:
    """Movement history replayed against the stored figures."""

    inventory_id: UUID
    stock: int
    reserved_stock: int
    movement_stock_total: int
    movement_reserved_total: int
    movement_count: int

    @property
    def is_consistent(self) -> bool:
        return (
            self.stock == self.movement_stock_total
            and self.reserved_stock == self.movement_reserved_total
        )


class InventorySelector(BaseSelector):
    """
    Selector for inventory queries.

    Guarantees:
        - Listings return ``Page[InventorySnapshot]`` ordered by variant id.
        - Inactive records are excluded from listings unless asked for.
    """

    def __init__(
        self,
        session: Session,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ):
        super().__init__(session, default_page_size, max_page_size)
        self.low_stock_threshold = low_stock_threshold

    def _record(self, inventory_id: UUID) -> InventoryRecord:
        record = self.session.get(InventoryRecord, inventory_id)
        if record is None:
            raise InventoryNotFoundError(str(inventory_id))
        return record

    def get(self, inventory_id: UUID) -> InventorySnapshot:
        return self._record(inventory_id).to_snapshot()

    def find(self, product_variant_id: int, location: Location) -> InventorySnapshot | None:
        record = self.session.execute(
            select(InventoryRecord).where(
                InventoryRecord.product_variant_id == product_variant_id,
                InventoryRecord.location_key == location.key,
            )
        ).scalar_one_or_none()
        return record.to_snapshot() if record is not None else None

    def list_for_location(
        self,
        location: Location,
        page: int = 1,
        limit: int | None = None,
        include_inactive: bool = False,
    ) -> Page[InventorySnapshot]:
        """All records at a company or franchise."""
        page, limit = self._page_bounds(page, limit)
        stmt = select(InventoryRecord).where(InventoryRecord.location_key == location.key)
        if not include_inactive:
            stmt = stmt.where(InventoryRecord.is_active.is_(True))
        stmt = stmt.order_by(InventoryRecord.product_variant_id)

        rows, total = self._paginate(stmt, page, limit)
        return Page(
            items=tuple(r.to_snapshot() for r in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def low_stock(
        self,
        location: Location,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[InventorySnapshot]:
        """
        Active records at or below their reorder point.

        Records without a reorder point use the configured threshold.
        Lowest availability first.
        """
        page, limit = self._page_bounds(page, limit)
        available = InventoryRecord.available_stock
        stmt = (
            select(InventoryRecord)
            .where(
                InventoryRecord.location_key == location.key,
                InventoryRecord.is_active.is_(True),
                or_(
                    and_(
                        InventoryRecord.reorder_point.is_not(None),
                        available <= InventoryRecord.reorder_point,
                    ),
                    and_(
                        InventoryRecord.reorder_point.is_(None),
                        available <= self.low_stock_threshold,
                    ),
                ),
            )
            .order_by(available, InventoryRecord.product_variant_id)
        )

        rows, total = self._paginate(stmt, page, limit)
        return Page(
            items=tuple(r.to_snapshot() for r in rows),
            total=total,
            page=page,
            limit=limit,
        )

    # =========================================================================
    # Movements
    # =========================================================================

    def get_movements(
        self,
        inventory_id: UUID,
        movement_filter: MovementFilter | None = None,
    ) -> Page[MovementSnapshot]:
        """Movement history, newest first, optionally by kind and date range."""
        self._record(inventory_id)
        movement_filter = movement_filter or MovementFilter()
        page, limit = self._page_bounds(movement_filter.page, movement_filter.limit)

        stmt = select(StockMovement).where(StockMovement.inventory_id == inventory_id)
        if movement_filter.kind is not None:
            stmt = stmt.where(StockMovement.kind == MovementKind(movement_filter.kind).value)
        if movement_filter.start is not None:
            stmt = stmt.where(StockMovement.created_at >= movement_filter.start)
        if movement_filter.end is not None:
            stmt = stmt.where(StockMovement.created_at <= movement_filter.end)
        stmt = stmt.order_by(StockMovement.record_version.desc())

        rows, total = self._paginate(stmt, page, limit)
        return Page(
            items=tuple(m.to_snapshot() for m in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def iter_movements(self, inventory_id: UUID) -> Iterator[MovementSnapshot]:
        """Full history, oldest first."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.inventory_id == inventory_id)
            .order_by(StockMovement.record_version)
        ).scalars()
        for movement in rows:
            yield movement.to_snapshot()

    def audit(self, inventory_id: UUID) -> StockAudit:
        """
        Replay the movement deltas: stock kinds must sum to ``stock`` and
        reservation kinds to ``reserved_stock``.
        """
        record = self._record(inventory_id)
        stock_total, reserved_total, count = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((StockMovement.kind.in_(_STOCK_KINDS), StockMovement.delta), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(case((StockMovement.kind.in_(_STOCK_KINDS), 0), else_=StockMovement.delta)),
                    0,
                ),
                func.count(StockMovement.id),
            ).where(StockMovement.inventory_id == inventory_id)
        ).one()
        return StockAudit(
            inventory_id=record.id,
            stock=record.stock,
            reserved_stock=record.reserved_stock,
            movement_stock_total=int(stock_total),
            movement_reserved_total=int(reserved_total),
            movement_count=int(count),
        )
