"""
StockLedger -- per-location stock figures and their movement history.

Responsibility:
    Owns every write to InventoryRecord: explicit creation, stock
    adjustments (manual, sale, refund, transfer in/out), reservations and
    releases, absolute stock updates, reorder points and (de)activation.
    Each figure change is paired with exactly one StockMovement in the
    caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Leaf service: it has no
    knowledge of transfer bills beyond the opaque reference_type /
    reference_id it stamps on movements.

Invariants enforced:
    RESERVATION_COVER     -- 0 <= reserved_stock <= stock, checked before
                             every write.  Negative stock is rejected: an
                             adjustment that would leave stock below
                             reserved_stock raises InvalidAdjustmentError.
    DERIVED_AVAILABILITY  -- available_stock is never written; it is
                             derived on the model.
    MOVEMENT_PER_MUTATION -- one movement per mutation, stamped with the
                             record version the mutation produced.
    Serialized read-modify-write: every mutation locks the record first
    (SELECT ... FOR UPDATE on PostgreSQL; the BEGIN IMMEDIATE write lock on
    SQLite) and the version column rejects lost updates.

Failure modes:
    - InventoryNotFoundError for an unknown id.
    - InvalidAdjustmentError, InsufficientAvailableStockError,
      InsufficientReservedStockError, InventoryInactiveError,
      DuplicateInventoryError.
    - OptimisticLockError when the version check fails at flush.

Audit relevance:
    Every accepted and every rejected mutation is logged with the record
    id, the requested quantity and the figures involved.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from warehouse_kernel.domain.clock import Clock
from warehouse_kernel.domain.dtos import STOCK_MOVEMENT_KINDS, MovementKind
from warehouse_kernel.domain.values import Location
from warehouse_kernel.exceptions import (
    DuplicateInventoryError,
    InsufficientAvailableStockError,
    InsufficientReservedStockError,
    InvalidAdjustmentError,
    InventoryInactiveError,
    InventoryNotFoundError,
    OptimisticLockError,
)
from warehouse_kernel.logging_config import get_logger
from warehouse_kernel.models.inventory import InventoryRecord
from warehouse_kernel.models.stock_movement import StockMovement
from warehouse_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class StockLedger(BaseService):
    """
    Write side of the stock ledger.

    Contract:
        Methods take the acting user's id and return the locked, updated
        InventoryRecord.  Nothing is committed; the caller owns the
        transaction.

    Non-goals:
        - Does NOT authorize callers; ids are trusted.
        - Does NOT paginate or list; see InventorySelector.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    # =========================================================================
    # Locking
    # =========================================================================

    def lock(self, inventory_id: UUID) -> InventoryRecord:
        """Load and lock a record.  Raises InventoryNotFoundError."""
        record = self.session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.id == inventory_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryNotFoundError(str(inventory_id))
        return record

    def lock_at(self, product_variant_id: int, location: Location) -> InventoryRecord | None:
        """Load and lock the record for a variant at a location, if any."""
        return self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.product_variant_id == product_variant_id,
                InventoryRecord.location_key == location.key,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _flush(self, record: InventoryRecord) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "inventory_version_conflict",
                extra={"inventory_id": str(record.id)},
            )
            raise OptimisticLockError("InventoryRecord", str(record.id)) from exc

    # =========================================================================
    # Creation and lifecycle
    # =========================================================================

    def create_inventory(
        self,
        product_variant_id: int,
        location: Location,
        actor_id: UUID,
        initial_stock: int = 0,
        reorder_point: int | None = None,
        notes: str | None = None,
    ) -> InventoryRecord:
        """
        Create the record for a variant at a location.

        A positive ``initial_stock`` is booked as one adjustment movement so
        the movement history always sums to ``stock``.
        """
        if not _is_int(initial_stock) or initial_stock < 0:
            raise InvalidAdjustmentError(
                "new", initial_stock, "initial stock must be a non-negative integer"
            )
        if reorder_point is not None and (not _is_int(reorder_point) or reorder_point < 0):
            raise InvalidAdjustmentError(
                "new", 0, "reorder point must be a non-negative integer"
            )

        existing = self.lock_at(product_variant_id, location)
        if existing is not None:
            raise DuplicateInventoryError(product_variant_id, location.key, str(existing.id))

        record = self._insert(product_variant_id, location, actor_id, reorder_point)
        if record is None:
            existing = self.lock_at(product_variant_id, location)
            raise DuplicateInventoryError(
                product_variant_id, location.key, str(existing.id) if existing else ""
            )

        logger.info(
            "inventory_created",
            extra={
                "inventory_id": str(record.id),
                "product_variant_id": product_variant_id,
                "location": location.key,
                "initial_stock": initial_stock,
            },
        )

        if initial_stock > 0:
            self.adjust_record(
                record,
                initial_stock,
                actor_id,
                notes=notes or "initial stock",
            )
        return record

    def _insert(
        self,
        product_variant_id: int,
        location: Location,
        actor_id: UUID,
        reorder_point: int | None = None,
    ) -> InventoryRecord | None:
        """Insert inside a savepoint; None if a concurrent insert won."""
        savepoint = self.session.begin_nested()
        try:
            record = InventoryRecord.new(
                product_variant_id, location, actor_id, reorder_point=reorder_point
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            return record
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "inventory_create_race",
                extra={"product_variant_id": product_variant_id, "location": location.key},
            )
            return None

    def get_or_create_for_update(
        self,
        product_variant_id: int,
        location: Location,
        actor_id: UUID,
    ) -> InventoryRecord:
        """
        Lock the record at ``location``, creating it (first-time stocking) or
        reactivating it when needed.
        """
        record = self.lock_at(product_variant_id, location)
        if record is None:
            record = self._insert(product_variant_id, location, actor_id)
            if record is None:
                record = self.lock_at(product_variant_id, location)
                if record is None:
                    raise InventoryNotFoundError(f"{product_variant_id}@{location.key}")
            else:
                logger.info(
                    "inventory_created",
                    extra={
                        "inventory_id": str(record.id),
                        "product_variant_id": product_variant_id,
                        "location": location.key,
                        "initial_stock": 0,
                    },
                )
        if not record.is_active:
            self._set_active(record, True, actor_id)
        return record

    def deactivate(self, inventory_id: UUID, actor_id: UUID) -> InventoryRecord:
        """Retire a record.  Its history stays attached; no movement."""
        return self._set_active(self.lock(inventory_id), False, actor_id)

    def reactivate(self, inventory_id: UUID, actor_id: UUID) -> InventoryRecord:
        return self._set_active(self.lock(inventory_id), True, actor_id)

    def _set_active(self, record: InventoryRecord, active: bool, actor_id: UUID) -> InventoryRecord:
        if record.is_active == active:
            return record
        record.is_active = active
        record.updated_by_id = actor_id
        self._flush(record)
        logger.info(
            "inventory_reactivated" if active else "inventory_deactivated",
            extra={"inventory_id": str(record.id)},
        )
        return record

    def set_reorder_point(
        self,
        inventory_id: UUID,
        reorder_point: int | None,
        actor_id: UUID,
    ) -> InventoryRecord:
        record = self.lock(inventory_id)
        if reorder_point is not None and (not _is_int(reorder_point) or reorder_point < 0):
            raise InvalidAdjustmentError(
                str(record.id), 0, "reorder point must be a non-negative integer"
            )
        record.reorder_point = reorder_point
        record.updated_by_id = actor_id
        self._flush(record)
        logger.info(
            "reorder_point_set",
            extra={"inventory_id": str(record.id), "reorder_point": reorder_point},
        )
        return record

    # =========================================================================
    # Stock mutations
    # =========================================================================

    def adjust_stock(
        self,
        inventory_id: UUID,
        delta: int,
        actor_id: UUID,
        notes: str | None = None,
        kind: MovementKind = MovementKind.ADJUSTMENT,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> InventoryRecord:
        """
        Apply a signed ``delta`` to ``stock``.

        Raises:
            InvalidAdjustmentError: delta is 0 or not an integer, ``kind`` is
                not a stock kind, or the result would fall below
                reserved_stock.
            InventoryInactiveError: the record is deactivated.
        """
        record = self.lock(inventory_id)
        return self.adjust_record(
            record,
            delta,
            actor_id,
            notes=notes,
            kind=kind,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    def set_stock(
        self,
        inventory_id: UUID,
        new_stock: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> InventoryRecord:
        """Absolute stock update, booked as an adjustment of the difference."""
        record = self.lock(inventory_id)
        if not _is_int(new_stock):
            raise InvalidAdjustmentError(str(record.id), 0, "stock must be an integer")
        return self.adjust_record(record, new_stock - record.stock, actor_id, notes=notes)

    def adjust_record(
        self,
        record: InventoryRecord,
        delta: int,
        actor_id: UUID,
        notes: str | None = None,
        kind: MovementKind = MovementKind.ADJUSTMENT,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> InventoryRecord:
        """Adjust a record the caller has already locked."""
        kind = MovementKind(kind)
        inventory_id = str(record.id)

        if kind not in STOCK_MOVEMENT_KINDS:
            raise InvalidAdjustmentError(
                inventory_id, delta, f"'{kind.value}' is not a stock movement kind"
            )
        if not _is_int(delta):
            raise InvalidAdjustmentError(inventory_id, delta, "delta must be an integer")
        if delta == 0:
            raise InvalidAdjustmentError(inventory_id, delta, "delta must not be zero")
        self._require_active(record)

        new_stock = record.stock + delta
        if new_stock < record.reserved_stock:
            reason = (
                "stock cannot go negative"
                if new_stock < 0
                else f"stock would fall below reserved stock ({record.reserved_stock})"
            )
            logger.warning(
                "stock_adjustment_rejected",
                extra={
                    "inventory_id": inventory_id,
                    "delta": delta,
                    "stock": record.stock,
                    "reserved_stock": record.reserved_stock,
                    "reason": reason,
                },
            )
            raise InvalidAdjustmentError(inventory_id, delta, reason)

        self._apply(
            record,
            kind,
            delta,
            new_stock=new_stock,
            new_reserved=record.reserved_stock,
            actor_id=actor_id,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        return record

    def reserve(
        self,
        inventory_id: UUID,
        quantity: int,
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> InventoryRecord:
        """
        Hold ``quantity`` units out of available stock.

        Raises:
            InsufficientAvailableStockError: quantity <= 0 or above
                available_stock.
        """
        record = self.lock(inventory_id)
        self._require_active(record)

        available = record.available_stock
        if not _is_int(quantity) or quantity <= 0 or quantity > available:
            logger.warning(
                "reservation_rejected",
                extra={
                    "inventory_id": str(record.id),
                    "requested": quantity,
                    "available_stock": available,
                },
            )
            raise InsufficientAvailableStockError(str(record.id), quantity, available)

        self._apply(
            record,
            MovementKind.RESERVATION,
            quantity,
            new_stock=record.stock,
            new_reserved=record.reserved_stock + quantity,
            actor_id=actor_id,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        return record

    def release(
        self,
        inventory_id: UUID,
        quantity: int,
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> InventoryRecord:
        """
        Return ``quantity`` reserved units to available stock.

        Raises:
            InsufficientReservedStockError: quantity <= 0 or above
                reserved_stock.
        """
        record = self.lock(inventory_id)
        self._require_active(record)

        reserved = record.reserved_stock
        if not _is_int(quantity) or quantity <= 0 or quantity > reserved:
            logger.warning(
                "release_rejected",
                extra={
                    "inventory_id": str(record.id),
                    "requested": quantity,
                    "reserved_stock": reserved,
                },
            )
            raise InsufficientReservedStockError(str(record.id), quantity, reserved)

        self._apply(
            record,
            MovementKind.RELEASE,
            -quantity,
            new_stock=record.stock,
            new_reserved=reserved - quantity,
            actor_id=actor_id,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        return record

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _require_active(record: InventoryRecord) -> None:
        if not record.is_active:
            raise InventoryInactiveError(str(record.id))

    def _apply(
        self,
        record: InventoryRecord,
        kind: MovementKind,
        delta: int,
        *,
        new_stock: int,
        new_reserved: int,
        actor_id: UUID,
        notes: str | None,
        reference_type: str | None,
        reference_id: str | None,
    ) -> StockMovement:
        """Write the new figures and the movement describing them."""
        assert 0 <= new_reserved <= new_stock, "reservation cover violated"

        previous_stock = record.stock
        previous_reserved = record.reserved_stock

        record.stock = new_stock
        record.reserved_stock = new_reserved
        record.updated_by_id = actor_id
        self._flush(record)

        movement = StockMovement(
            inventory_id=record.id,
            kind=kind.value,
            delta=delta,
            previous_stock=previous_stock,
            new_stock=new_stock,
            previous_reserved=previous_reserved,
            new_reserved=new_reserved,
            record_version=record.version,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            notes=notes,
            created_by_id=actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(movement)
        self._flush(record)

        logger.info(
            "stock_movement_recorded",
            extra={
                "inventory_id": str(record.id),
                "kind": kind.value,
                "delta": delta,
                "stock": new_stock,
                "reserved_stock": new_reserved,
                "available_stock": new_stock - new_reserved,
                "record_version": record.version,
                "reference_type": reference_type,
                "reference_id": movement.reference_id,
            },
        )
        return movement
