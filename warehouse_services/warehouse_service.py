"""
warehouse_services.warehouse_service -- transactional facade over the kernel.

Responsibility:
    The one entry point collaborators call (admin console API, POS flow).
    Each public method runs in its own session and transaction: it builds
    the kernel services over that session, performs the operation, returns
    frozen snapshots and commits.  Any exception rolls the whole call back
    and is re-raised unchanged.

Architecture position:
    Services -- sits above ``warehouse_kernel`` and ``warehouse_config``.
    This is the only layer that commits.

Invariants enforced:
    - One transaction per call: a ledger mutation and its movement, or a
      bill completion and all of its ledger effects, commit together or not
      at all.
    - Optimistic lock conflicts are retried by re-running the whole call in
      a fresh transaction, up to ``max_lock_retries`` extra attempts.
    - Every call is logged under a correlation id with the actor and the
      operation bound in LogContext.

Usage:
    service = build_warehouse_service()
    record = service.create_inventory(42, Location.company(1), actor_id, initial_stock=20)
    service.reserve(record.id, 5, actor_id, reference_type="sale", reference_id="S-1")
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from warehouse_config import get_active_settings
from warehouse_config.bridges import (
    bill_numbering_from_settings,
    init_engine_from_settings,
    selector_options_from_settings,
)
from warehouse_config.schema import WarehouseSettings
from warehouse_kernel.db.engine import create_tables, get_session_factory
from warehouse_kernel.db.immutability import register_immutability_listeners
from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.dtos import (
    BillFilter,
    BillItemRequest,
    BillSnapshot,
    InventorySnapshot,
    ItemReceipt,
    MovementFilter,
    MovementKind,
    MovementSnapshot,
    Page,
)
from warehouse_kernel.domain.reconciliation import DiscrepancySummary
from warehouse_kernel.domain.values import BillNumbering, Location
from warehouse_kernel.exceptions import OptimisticLockError
from warehouse_kernel.logging_config import LogContext, configure_logging, get_logger
from warehouse_kernel.selectors.inventory_selector import InventorySelector, StockAudit
from warehouse_kernel.selectors.transfer_bill_selector import TransferBillSelector
from warehouse_kernel.services.transfer_coordinator import TransferCoordinator

logger = get_logger("services.warehouse")

T = TypeVar("T")


class WarehouseService:
    """
    Transactional facade for the stock ledger and transfer engine.

    Contract:
        Receives a session factory and builds a fresh kernel context per
        call.  Returns snapshots only; ORM objects never leave a call.

    Non-goals:
        - Does NOT authorize actors; the directory collaborator does.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        numbering: BillNumbering | None = None,
        max_lock_retries: int = 3,
        default_page_size: int = 20,
        max_page_size: int = 100,
        low_stock_threshold: int = 10,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._numbering = numbering or BillNumbering()
        self._max_lock_retries = max_lock_retries
        self._selector_options = {
            "default_page_size": default_page_size,
            "max_page_size": max_page_size,
        }
        self._low_stock_threshold = low_stock_threshold

    @classmethod
    def from_settings(
        cls,
        settings: WarehouseSettings,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ) -> WarehouseService:
        return cls(
            session_factory,
            clock=clock,
            numbering=bill_numbering_from_settings(settings),
            max_lock_retries=settings.max_lock_retries,
            low_stock_threshold=settings.low_stock_threshold,
            **selector_options_from_settings(settings),
        )

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    def _coordinator(self, session: Session) -> TransferCoordinator:
        return TransferCoordinator(session, self._clock, numbering=self._numbering)

    def _inventory_selector(self, session: Session) -> InventorySelector:
        return InventorySelector(
            session,
            low_stock_threshold=self._low_stock_threshold,
            **self._selector_options,
        )

    def _bill_selector(self, session: Session) -> TransferBillSelector:
        return TransferBillSelector(session, **self._selector_options)

    def _write(
        self,
        operation: str,
        actor_id: UUID,
        work: Callable[[Session], T],
        **context: str,
    ) -> T:
        """Run ``work`` in its own transaction, retrying lock conflicts."""
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=str(actor_id),
            operation=operation,
            **context,
        ):
            attempt = 0
            while True:
                attempt += 1
                t0 = time.monotonic()
                session = self._session_factory()
                try:
                    result = work(session)
                    session.commit()
                    logger.info(
                        "operation_committed",
                        extra={
                            "attempt": attempt,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                    )
                    return result
                except (OptimisticLockError, StaleDataError) as exc:
                    session.rollback()
                    if attempt > self._max_lock_retries:
                        logger.error(
                            "operation_lock_retries_exhausted",
                            extra={"attempts": attempt},
                        )
                        if isinstance(exc, OptimisticLockError):
                            raise
                        raise OptimisticLockError("InventoryRecord", "unknown") from exc
                    logger.warning(
                        "operation_lock_conflict_retry",
                        extra={"attempt": attempt, "max_retries": self._max_lock_retries},
                    )
                except Exception as exc:
                    session.rollback()
                    logger.warning(
                        "operation_rolled_back",
                        extra={
                            "error_type": type(exc).__name__,
                            "error_code": getattr(exc, "code", None),
                        },
                    )
                    raise
                finally:
                    session.close()

    def _read(self, work: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            return work(session)
        finally:
            session.rollback()
            session.close()

    # =========================================================================
    # Stock ledger
    # =========================================================================

    def create_inventory(
        self,
        product_variant_id: int,
        location: Location,
        actor_id: UUID,
        initial_stock: int = 0,
        reorder_point: int | None = None,
        notes: str | None = None,
    ) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.create_inventory(
                product_variant_id,
                location,
                actor_id,
                initial_stock=initial_stock,
                reorder_point=reorder_point,
                notes=notes,
            ).to_snapshot()

        return self._write("create_inventory", actor_id, work)

    def adjust_stock(
        self,
        inventory_id: UUID,
        delta: int,
        actor_id: UUID,
        notes: str | None = None,
        kind: MovementKind = MovementKind.ADJUSTMENT,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.adjust_stock(
                inventory_id,
                delta,
                actor_id,
                notes=notes,
                kind=kind,
                reference_type=reference_type,
                reference_id=reference_id,
            ).to_snapshot()

        return self._write(
            "adjust_stock", actor_id, work, inventory_id=str(inventory_id)
        )

    def set_stock(
        self,
        inventory_id: UUID,
        new_stock: int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.set_stock(
                inventory_id, new_stock, actor_id, notes=notes
            ).to_snapshot()

        return self._write("set_stock", actor_id, work, inventory_id=str(inventory_id))

    def reserve(
        self,
        inventory_id: UUID,
        quantity: int,
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.reserve(
                inventory_id,
                quantity,
                actor_id,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
            ).to_snapshot()

        return self._write("reserve", actor_id, work, inventory_id=str(inventory_id))

    def release(
        self,
        inventory_id: UUID,
        quantity: int,
        actor_id: UUID,
        reference_type: str | None = None,
        reference_id: str | None = None,
        notes: str | None = None,
    ) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.release(
                inventory_id,
                quantity,
                actor_id,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
            ).to_snapshot()

        return self._write("release", actor_id, work, inventory_id=str(inventory_id))

    def set_reorder_point(
        self,
        inventory_id: UUID,
        reorder_point: int | None,
        actor_id: UUID,
    ) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.set_reorder_point(
                inventory_id, reorder_point, actor_id
            ).to_snapshot()

        return self._write(
            "set_reorder_point", actor_id, work, inventory_id=str(inventory_id)
        )

    def deactivate_inventory(self, inventory_id: UUID, actor_id: UUID) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.deactivate(inventory_id, actor_id).to_snapshot()

        return self._write("deactivate_inventory", actor_id, work, inventory_id=str(inventory_id))

    def reactivate_inventory(self, inventory_id: UUID, actor_id: UUID) -> InventorySnapshot:
        def work(session: Session) -> InventorySnapshot:
            return self._coordinator(session).ledger.reactivate(inventory_id, actor_id).to_snapshot()

        return self._write("reactivate_inventory", actor_id, work, inventory_id=str(inventory_id))

    def get_inventory(self, inventory_id: UUID) -> InventorySnapshot:
        return self._read(lambda s: self._inventory_selector(s).get(inventory_id))

    def find_inventory(self, product_variant_id: int, location: Location) -> InventorySnapshot | None:
        return self._read(lambda s: self._inventory_selector(s).find(product_variant_id, location))

    def list_inventory(
        self,
        location: Location,
        page: int = 1,
        limit: int | None = None,
        include_inactive: bool = False,
    ) -> Page[InventorySnapshot]:
        return self._read(
            lambda s: self._inventory_selector(s).list_for_location(
                location, page=page, limit=limit, include_inactive=include_inactive
            )
        )

    def low_stock(
        self,
        location: Location,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[InventorySnapshot]:
        return self._read(
            lambda s: self._inventory_selector(s).low_stock(location, page=page, limit=limit)
        )

    def get_movements(
        self,
        inventory_id: UUID,
        movement_filter: MovementFilter | None = None,
    ) -> Page[MovementSnapshot]:
        return self._read(
            lambda s: self._inventory_selector(s).get_movements(inventory_id, movement_filter)
        )

    def audit_stock(self, inventory_id: UUID) -> StockAudit:
        return self._read(lambda s: self._inventory_selector(s).audit(inventory_id))

    # =========================================================================
    # Transfer bills
    # =========================================================================

    def create_exit_bill(
        self,
        company_id: int,
        franchise_id: int,
        items: Sequence[BillItemRequest],
        actor_id: UUID,
        notes: str | None = None,
    ) -> BillSnapshot:
        def work(session: Session) -> BillSnapshot:
            return self._coordinator(session).bills.create_exit_bill(
                company_id, franchise_id, items, actor_id, notes=notes
            ).to_snapshot()

        return self._write("create_exit_bill", actor_id, work)

    def _require_scope(
        self,
        session: Session,
        bill_id: UUID,
        company_id: int | None,
        franchise_id: int | None,
    ) -> None:
        """Out-of-scope bills look exactly like unknown ones."""
        if company_id is None and franchise_id is None:
            return
        self._bill_selector(session).get(
            bill_id, company_id=company_id, franchise_id=franchise_id
        )

    def update_exit_bill_items(
        self,
        bill_id: UUID,
        items: Sequence[BillItemRequest],
        actor_id: UUID,
        change_reason: str | None = None,
        company_id: int | None = None,
    ) -> BillSnapshot:
        def work(session: Session) -> BillSnapshot:
            self._require_scope(session, bill_id, company_id, None)
            return self._coordinator(session).bills.update_exit_bill_items(
                bill_id, items, actor_id, change_reason=change_reason
            ).to_snapshot()

        return self._write("update_exit_bill_items", actor_id, work, bill_id=str(bill_id))

    def complete_exit_bill(
        self,
        bill_id: UUID,
        actor_id: UUID,
        company_id: int | None = None,
    ) -> BillSnapshot:
        """Complete an exit bill; the returned snapshot names the new entry bill."""

        def work(session: Session) -> BillSnapshot:
            self._require_scope(session, bill_id, company_id, None)
            return self._coordinator(session).complete_exit_bill(bill_id, actor_id).to_snapshot()

        return self._write("complete_exit_bill", actor_id, work, bill_id=str(bill_id))

    def cancel_bill(
        self,
        bill_id: UUID,
        actor_id: UUID,
        company_id: int | None = None,
        franchise_id: int | None = None,
    ) -> BillSnapshot:
        def work(session: Session) -> BillSnapshot:
            self._require_scope(session, bill_id, company_id, franchise_id)
            return self._coordinator(session).cancel_bill(bill_id, actor_id).to_snapshot()

        return self._write("cancel_bill", actor_id, work, bill_id=str(bill_id))

    def verify_entry_bill(
        self,
        bill_id: UUID,
        receipts: Sequence[ItemReceipt],
        actor_id: UUID,
        notes: str | None = None,
        franchise_id: int | None = None,
    ) -> BillSnapshot:
        def work(session: Session) -> BillSnapshot:
            self._require_scope(session, bill_id, None, franchise_id)
            return self._coordinator(session).reconciliation.verify_entry_bill(
                bill_id, receipts, actor_id, notes=notes
            ).to_snapshot()

        return self._write("verify_entry_bill", actor_id, work, bill_id=str(bill_id))

    def append_verification_item(
        self,
        bill_id: UUID,
        product_variant_id: int,
        received_quantity: int,
        actor_id: UUID,
        unit_price: Decimal = Decimal("0"),
        notes: str | None = None,
        franchise_id: int | None = None,
    ) -> BillSnapshot:
        def work(session: Session) -> BillSnapshot:
            self._require_scope(session, bill_id, None, franchise_id)
            return self._coordinator(session).reconciliation.append_verification_item(
                bill_id,
                product_variant_id,
                received_quantity,
                actor_id,
                unit_price=unit_price,
                notes=notes,
            ).to_snapshot()

        return self._write("append_verification_item", actor_id, work, bill_id=str(bill_id))

    def complete_entry_bill(
        self,
        bill_id: UUID,
        actor_id: UUID,
        franchise_id: int | None = None,
    ) -> BillSnapshot:
        def work(session: Session) -> BillSnapshot:
            self._require_scope(session, bill_id, None, franchise_id)
            return self._coordinator(session).complete_entry_bill(bill_id, actor_id).to_snapshot()

        return self._write("complete_entry_bill", actor_id, work, bill_id=str(bill_id))

    def summarize_discrepancies(
        self,
        bill_id: UUID,
        franchise_id: int | None = None,
    ) -> DiscrepancySummary:
        def work(session: Session) -> DiscrepancySummary:
            self._require_scope(session, bill_id, None, franchise_id)
            return self._coordinator(session).reconciliation.summarize_discrepancies(bill_id)

        return self._read(work)

    def get_bill(
        self,
        bill_id: UUID,
        company_id: int | None = None,
        franchise_id: int | None = None,
    ) -> BillSnapshot:
        return self._read(
            lambda s: self._bill_selector(s).get(
                bill_id, company_id=company_id, franchise_id=franchise_id
            )
        )

    def get_bill_by_number(self, bill_number: str) -> BillSnapshot | None:
        return self._read(lambda s: self._bill_selector(s).get_by_number(bill_number))

    def get_paired_bill(self, bill_id: UUID) -> BillSnapshot | None:
        return self._read(lambda s: self._bill_selector(s).get_paired(bill_id))

    def list_bills(self, bill_filter: BillFilter | None = None) -> Page[BillSnapshot]:
        return self._read(lambda s: self._bill_selector(s).list(bill_filter))


def build_warehouse_service(
    settings: WarehouseSettings | None = None,
    clock: Clock | None = None,
    create_schema: bool = False,
) -> WarehouseService:
    """
    Wire a WarehouseService from settings: logging, engine, append-only
    listeners and (optionally) the schema.
    """
    settings = settings or get_active_settings()
    configure_logging(level=settings.log_level)
    init_engine_from_settings(settings)
    register_immutability_listeners()
    if create_schema:
        create_tables()
    return WarehouseService.from_settings(settings, get_session_factory(), clock=clock)
