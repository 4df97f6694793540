"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service in the kernel.  Services receive a SQLAlchemy
    ``Session`` and persist via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back.  The caller
      (WarehouseService or a test harness) owns commit/rollback, which is
      what makes a bill completion plus all of its stock movements one
      atomic unit.

Failure modes:
    - A subclass that commits on its own breaks bill-completion atomicity.
"""

from abc import ABC

from sqlalchemy.orm import Session

from warehouse_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a ``Session`` and an optional ``Clock`` from the caller.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide read-only listings; those live in
          ``warehouse_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
