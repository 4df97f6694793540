"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the enums shared by the ledger and the transfer engine, the
    request objects callers hand to services (bill lines, receipts, query
    filters) and the frozen snapshots returned across the transaction
    boundary (inventory records, movements, bills, pages).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Snapshots are built by ``to_snapshot()`` on the ORM models; this module
    never imports the models.

Invariants enforced:
    - ``InventorySnapshot.available_stock`` is computed from stock and
      reserved_stock at construction; it cannot be passed in.
    - Request DTOs validate nothing beyond their types; business validation
      lives in the services, which raise typed errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


# =============================================================================
# Enums
# =============================================================================


class MovementKind(str, Enum):
    """Category of a stock movement.

    Stock kinds change ``stock``; reservation kinds change ``reserved_stock``.
    """

    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"
    RELEASE = "release"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    SALE = "sale"
    REFUND = "refund"

    @property
    def affects_stock(self) -> bool:
        return self in STOCK_MOVEMENT_KINDS


STOCK_MOVEMENT_KINDS: frozenset[MovementKind] = frozenset({
    MovementKind.ADJUSTMENT,
    MovementKind.TRANSFER_IN,
    MovementKind.TRANSFER_OUT,
    MovementKind.SALE,
    MovementKind.REFUND,
})

RESERVATION_MOVEMENT_KINDS: frozenset[MovementKind] = frozenset({
    MovementKind.RESERVATION,
    MovementKind.RELEASE,
})


class BillType(str, Enum):
    EXIT = "exit"
    ENTRY = "entry"


class BillStatus(str, Enum):
    """Lifecycle status of a transfer bill.

    Exit: draft -> completed | cancelled.
    Entry: draft -> verified -> completed, draft -> cancelled.
    """

    DRAFT = "draft"
    VERIFIED = "verified"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    DISCREPANCIES_FOUND = "discrepancies_found"


class DiscrepancyType(str, Enum):
    NONE = "none"
    MISSING = "missing"
    EXTRA = "extra"
    QUANTITY_MISMATCH = "quantity_mismatch"


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class BillItemRequest:
    """One cart line of an exit bill."""

    product_variant_id: int
    quantity: int
    unit_price: Decimal

    def __post_init__(self):
        if not isinstance(self.unit_price, Decimal):
            object.__setattr__(self, "unit_price", Decimal(str(self.unit_price)))


@dataclass(frozen=True)
class ItemReceipt:
    """Received quantity for one variant on an entry bill."""

    product_variant_id: int
    received_quantity: int
    notes: str | None = None


@dataclass(frozen=True)
class MovementFilter:
    """Movement history query: newest first, offset paginated."""

    kind: MovementKind | None = None
    start: datetime | None = None
    end: datetime | None = None
    page: int = 1
    limit: int | None = None


@dataclass(frozen=True)
class BillFilter:
    """Bill listing query."""

    company_id: int | None = None
    franchise_id: int | None = None
    bill_type: BillType | None = None
    status: BillStatus | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = 1
    limit: int | None = None


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class InventorySnapshot:
    id: UUID
    product_variant_id: int
    company_id: int | None
    franchise_id: int | None
    stock: int
    reserved_stock: int
    reorder_point: int | None
    is_active: bool
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    available_stock: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "available_stock", self.stock - self.reserved_stock)

    @property
    def location_key(self) -> str:
        if self.company_id is not None:
            return f"company:{self.company_id}"
        return f"franchise:{self.franchise_id}"


@dataclass(frozen=True)
class MovementSnapshot:
    id: UUID
    inventory_id: UUID
    kind: MovementKind
    delta: int
    previous_stock: int
    new_stock: int
    previous_reserved: int
    new_reserved: int
    record_version: int
    reference_type: str | None
    reference_id: str | None
    notes: str | None
    created_by_id: UUID
    created_at: datetime


@dataclass(frozen=True)
class BillItemSnapshot:
    id: UUID
    line_number: int
    product_variant_id: int
    quantity: int
    expected_quantity: int | None
    received_quantity: int | None
    unit_price: Decimal
    line_total: Decimal
    discrepancy_type: DiscrepancyType | None
    discrepancy_notes: str | None


@dataclass(frozen=True)
class BillSnapshot:
    id: UUID
    bill_number: str
    bill_type: BillType
    status: BillStatus
    company_id: int
    franchise_id: int
    related_bill_id: UUID | None
    verification_status: VerificationStatus | None
    total_amount: Decimal
    notes: str | None
    verification_notes: str | None
    created_by_id: UUID
    created_at: datetime | None
    verified_at: datetime | None
    verified_by_id: UUID | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    items: tuple[BillItemSnapshot, ...] = ()


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a finite, restartable listing (1-based page numbers)."""

    items: tuple[T, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages
