"""
Module: warehouse_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure domain layer.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit() or session.flush().
    - DTO return convention: selectors return frozen snapshots or pages of
      them, never ORM instances.
    - Pagination is offset based and 1-based; limits are clamped to the
      configured maximum so every listing is finite.
"""

from abc import ABC

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(
        self,
        session: Session,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ):
        self.session = session
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def _page_bounds(self, page: int, limit: int | None) -> tuple[int, int]:
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if limit is None:
            limit = self.default_page_size
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        return page, min(limit, self.max_page_size)

    def _paginate(self, stmt: Select, page: int, limit: int) -> tuple[list, int]:
        """Run ``stmt`` for one page; return (rows, total matching rows)."""
        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.limit(limit).offset((page - 1) * limit)
        ).scalars().all()
        return list(rows), total
