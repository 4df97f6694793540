"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the ledger,
the bill services and the immutability listeners. No setting may
override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across StockLedger, TransferBillService,
TransferCoordinator, the ORM check constraints and db.immutability.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    RESERVATION_COVER = "reservation_cover"
    """0 <= reserved_stock <= stock for every inventory record. Enforced by
    StockLedger before flush and by table check constraints."""

    DERIVED_AVAILABILITY = "derived_availability"
    """available_stock is always stock - reserved_stock. It has no column
    and is only exposed as a computed accessor on InventoryRecord."""

    MOVEMENT_PER_MUTATION = "movement_per_mutation"
    """Every change to stock or reserved_stock writes exactly one
    StockMovement, keyed by the record version it produced."""

    MOVEMENT_IMMUTABILITY = "movement_immutability"
    """Stock movements are append-only. Enforced by
    warehouse_kernel.db.immutability."""

    SINGLE_LOCATION = "single_location"
    """An inventory record belongs to exactly one of a company or a
    franchise. Enforced by a check constraint."""

    ATOMIC_COMPLETION = "atomic_completion"
    """A bill completion applies all of its ledger effects and its status
    change in one transaction, or none of them."""

    SINGLE_APPLICATION = "single_application"
    """A completed bill never applies ledger effects again. Enforced by the
    bill workflow state check under a row lock."""

    BILL_NUMBER_SEQUENCE = "bill_number_sequence"
    """Bill numbers come from a locked counter row per company."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "warehouse_services",
    "warehouse_config",
)
