"""
Typed Exception Hierarchy for the Warehouse Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger and of the transfer engine must react to errors
precisely: a shortfall during exit-bill completion is offered to the user as
an inline stock adjustment, a stale write is retried, a state violation is
shown as-is.  Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        coordinator.complete_exit_bill(bill_id, actor_id)
    except InsufficientStockError as e:
        return {"error": e.code, "issues": [s.to_dict() for s in e.shortfalls]}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WarehouseKernelError (base)
    |
    +-- NotFoundError
    |   +-- InventoryNotFoundError
    |   +-- BillNotFoundError
    |
    +-- LedgerError
    |   +-- InvalidAdjustmentError
    |   +-- InsufficientAvailableStockError
    |   +-- InsufficientReservedStockError
    |   +-- InventoryInactiveError
    |   +-- DuplicateInventoryError
    |
    +-- TransferError
    |   +-- InvalidBillItemsError
    |   +-- InvalidReceiptError
    |   +-- InsufficientStockError
    |   +-- InvalidStateTransitionError
    |   +-- AlreadyCompletedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Not found       | INVENTORY_NOT_FOUND           | Unknown inventory id / variant+location
                | BILL_NOT_FOUND                | Unknown bill id, or bill out of scope
----------------|-------------------------------|---------------------------------------
Ledger          | INVALID_ADJUSTMENT            | delta == 0 or stock would drop below
                |                               | reserved stock
                | INSUFFICIENT_AVAILABLE_STOCK  | reserve() beyond available stock
                | INSUFFICIENT_RESERVED_STOCK   | release() beyond reserved stock
                | INVENTORY_INACTIVE            | Mutation of a deactivated record
                | DUPLICATE_INVENTORY           | Record exists for variant + location
----------------|-------------------------------|---------------------------------------
Transfer        | INVALID_BILL_ITEMS            | Empty cart, bad quantity/price, dupes
                | INVALID_RECEIPT               | Negative or duplicate received lines
                | INSUFFICIENT_STOCK            | Exit completion shortfall (itemized)
                | INVALID_STATE_TRANSITION      | Action not allowed in bill status
                | ALREADY_COMPLETED             | Completing a completed bill
----------------|-------------------------------|---------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT      | Inventory record changed underneath
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Editing a movement or a closed bill

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain exceptions inherit from Exception, not ValueError, so they can be
   caught as a group without catching programming errors.

2. ``code`` is a class attribute: static per type, usable without an
   instance (API docs, static analysis).

3. All context is stored as attributes and exposed by ``to_dict()`` so the
   error survives logging and serialization intact.

===============================================================================
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


class WarehouseKernelError(Exception):
    """
    Base exception for all warehouse kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "WAREHOUSE_KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Serialize code, message and public attributes."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            payload[key] = value
        return payload


# Not-found exceptions


class NotFoundError(WarehouseKernelError):
    """Base exception for unknown ids."""

    code: str = "NOT_FOUND"


class InventoryNotFoundError(NotFoundError):
    """Inventory record with given ID (or variant + location) was not found."""

    code: str = "INVENTORY_NOT_FOUND"

    def __init__(self, inventory_id: str):
        self.inventory_id = inventory_id
        super().__init__(f"Inventory record not found: {inventory_id}")


class BillNotFoundError(NotFoundError):
    """Transfer bill with given ID was not found in the requested scope."""

    code: str = "BILL_NOT_FOUND"

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Transfer bill not found: {bill_id}")


# Ledger exceptions


class LedgerError(WarehouseKernelError):
    """Base exception for stock ledger errors."""

    code: str = "LEDGER_ERROR"


class InvalidAdjustmentError(LedgerError):
    """Stock adjustment is zero or would break the reservation cover."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(self, inventory_id: str, delta: int, reason: str):
        self.inventory_id = inventory_id
        self.delta = delta
        self.reason = reason
        super().__init__(
            f"Invalid adjustment of {delta} on inventory {inventory_id}: {reason}"
        )


class InsufficientAvailableStockError(LedgerError):
    """Reservation exceeds available stock."""

    code: str = "INSUFFICIENT_AVAILABLE_STOCK"

    def __init__(self, inventory_id: str, requested: int, available: int):
        self.inventory_id = inventory_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Cannot reserve {requested} on inventory {inventory_id}: "
            f"only {available} available"
        )


class InsufficientReservedStockError(LedgerError):
    """Release exceeds reserved stock."""

    code: str = "INSUFFICIENT_RESERVED_STOCK"

    def __init__(self, inventory_id: str, requested: int, reserved: int):
        self.inventory_id = inventory_id
        self.requested = requested
        self.reserved = reserved
        super().__init__(
            f"Cannot release {requested} on inventory {inventory_id}: "
            f"only {reserved} reserved"
        )


class InventoryInactiveError(LedgerError):
    """Inventory record is deactivated and cannot be mutated."""

    code: str = "INVENTORY_INACTIVE"

    def __init__(self, inventory_id: str):
        self.inventory_id = inventory_id
        super().__init__(f"Inventory record {inventory_id} is inactive")


class DuplicateInventoryError(LedgerError):
    """An inventory record already exists for the variant at the location."""

    code: str = "DUPLICATE_INVENTORY"

    def __init__(self, product_variant_id: int, location_key: str, inventory_id: str):
        self.product_variant_id = product_variant_id
        self.location_key = location_key
        self.inventory_id = inventory_id
        super().__init__(
            f"Inventory for variant {product_variant_id} at {location_key} "
            f"already exists: {inventory_id}"
        )


# Transfer exceptions


class TransferError(WarehouseKernelError):
    """Base exception for transfer bill errors."""

    code: str = "TRANSFER_ERROR"


class InvalidBillItemsError(TransferError):
    """Bill line items failed validation."""

    code: str = "INVALID_BILL_ITEMS"

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid bill items: {'; '.join(errors)}")


class InvalidReceiptError(TransferError):
    """Received quantities failed validation."""

    code: str = "INVALID_RECEIPT"

    def __init__(self, bill_id: str, errors: list[str]):
        self.bill_id = bill_id
        self.errors = errors
        super().__init__(f"Invalid receipt for bill {bill_id}: {'; '.join(errors)}")


@dataclass(frozen=True)
class StockShortfall:
    """One offending line of an exit-bill completion."""

    product_variant_id: int
    required: int
    available: int
    inventory_id: str | None = None

    @property
    def missing(self) -> int:
        return self.required - self.available

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["missing"] = self.missing
        return data


class InsufficientStockError(TransferError):
    """
    Exit-bill completion failed because one or more variants lack stock.

    Enumerates EVERY offending item so the caller can present the complete
    remediation list in one go.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, bill_id: str, shortfalls: list[StockShortfall]):
        self.bill_id = bill_id
        self.shortfalls = shortfalls
        variants = ", ".join(str(s.product_variant_id) for s in shortfalls)
        super().__init__(
            f"Insufficient stock to complete bill {bill_id}: "
            f"{len(shortfalls)} item(s) short (variants {variants})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": str(self),
            "bill_id": self.bill_id,
            "shortfalls": [s.to_dict() for s in self.shortfalls],
        }


class InvalidStateTransitionError(TransferError):
    """Action is not permitted for the bill in its current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, bill_id: str, current_status: str, action: str, reason: str | None = None):
        self.bill_id = bill_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = f"Cannot {action} bill {bill_id} in status '{current_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AlreadyCompletedError(TransferError):
    """Bill was already completed; ledger effects are never applied twice."""

    code: str = "ALREADY_COMPLETED"

    def __init__(self, bill_id: str, bill_number: str):
        self.bill_id = bill_id
        self.bill_number = bill_number
        super().__init__(f"Bill {bill_number} ({bill_id}) is already completed")


# Concurrency exceptions


class ConcurrencyError(WarehouseKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(WarehouseKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted modification of an append-only record.

    Stock movements are never updated or deleted; completed and cancelled
    bills are frozen together with their items.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
