"""
ORM-level append-only enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here check the audit rules of the warehouse kernel
and raise ImmutabilityViolationError, which aborts the flush; the database
is never modified.

Protected entities
------------------

Entity              | When immutable                       | Why
--------------------|--------------------------------------|------------------------------
StockMovement       | ALWAYS (from creation)               | The movement history is the audit trail
TransferBill        | After status = completed / cancelled | Terminal bills are historical records
TransferBill        | Never deletable                      | Cancellation is a status, not a delete
TransferBillItem    | When parent bill is terminal         | Lines are part of the bill

Two allowances on terminal bills:
    - updated_at / updated_by_id are audit metadata and may change.
    - related_bill_id may be set once (NULL -> id).  The coordinator pairs a
      completed exit bill with the entry bill it materializes.

The transition itself (draft -> completed, draft -> cancelled,
verified -> completed) is allowed: the check asks whether the bill WAS
terminal before this flush, read from attribute history.

Usage:
    from warehouse_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; idempotent

    unregister_immutability_listeners()  # TESTS ONLY
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from warehouse_kernel.exceptions import ImmutabilityViolationError
from warehouse_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _bill_was_terminal(bill) -> bool:
    """True if the bill was completed or cancelled before the current flush."""
    from warehouse_kernel.models.transfer_bill import TERMINAL_STATUSES

    status_history = get_history(bill, "status")
    if status_history.deleted:
        return status_history.deleted[0] in TERMINAL_STATUSES
    if status_history.added:
        # Pending object, or status set for the first time in this flush.
        return False
    return bill.status in TERMINAL_STATUSES


# =============================================================================
# StockMovement
# =============================================================================


def _check_movement_update(mapper, connection, target):
    _blocked(
        "StockMovement",
        target.id,
        "UPDATE",
        "Stock movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    _blocked(
        "StockMovement",
        target.id,
        "DELETE",
        "Stock movements are append-only and cannot be deleted",
    )


# =============================================================================
# TransferBill / TransferBillItem
# =============================================================================


def _check_bill_immutability(mapper, connection, target):
    if not _bill_was_terminal(target):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key == "related_bill_id" and all(v is None for v in hist.deleted):
            continue
        _blocked(
            "TransferBill",
            target.id,
            "UPDATE",
            f"Cannot modify field '{attr.key}' on a {target.status} bill",
            field=attr.key,
        )


def _check_bill_delete(mapper, connection, target):
    _blocked(
        "TransferBill",
        target.id,
        "DELETE",
        "Transfer bills are never deleted; cancel them instead",
    )


def _check_bill_item_immutability(mapper, connection, target):
    if target.bill is not None and _bill_was_terminal(target.bill):
        _blocked(
            "TransferBillItem",
            target.id,
            "UPDATE",
            f"Cannot modify an item of a {target.bill.status} bill",
        )


def _check_bill_item_delete(mapper, connection, target):
    if target.bill is not None and _bill_was_terminal(target.bill):
        _blocked(
            "TransferBillItem",
            target.id,
            "DELETE",
            f"Cannot delete an item of a {target.bill.status} bill",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from warehouse_kernel.models.stock_movement import StockMovement
    from warehouse_kernel.models.transfer_bill import TransferBill, TransferBillItem

    return (
        (StockMovement, "before_update", _check_movement_update),
        (StockMovement, "before_delete", _check_movement_delete),
        (TransferBill, "before_update", _check_bill_immutability),
        (TransferBill, "before_delete", _check_bill_delete),
        (TransferBillItem, "before_update", _check_bill_item_immutability),
        (TransferBillItem, "before_delete", _check_bill_item_delete),
    )


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Call after the models are importable and before any writes.  Calling it
    twice registers nothing new.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the enforcement listeners.

    WARNING: Only use this in tests that need to violate the rules on
    purpose.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
