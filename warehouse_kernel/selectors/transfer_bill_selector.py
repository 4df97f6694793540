"""
Module: warehouse_kernel.selectors.transfer_bill_selector
Responsibility: Read-only access to transfer bills: single lookups
    (optionally scoped to the owning company or franchise), filtered
    listings and the paired bill.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A scoped lookup outside its scope is indistinguishable from an
      unknown bill (BillNotFoundError), so scope never leaks existence.
    - Listings are ordered newest first (created_at, then bill_number).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from warehouse_kernel.domain.dtos import BillFilter, BillSnapshot, BillStatus, BillType, Page
from warehouse_kernel.exceptions import BillNotFoundError
from warehouse_kernel.models.transfer_bill import TransferBill
from warehouse_kernel.selectors.base import BaseSelector


class TransferBillSelector(BaseSelector):
    """Selector for transfer bill queries."""

    def get(
        self,
        bill_id: UUID,
        company_id: int | None = None,
        franchise_id: int | None = None,
    ) -> BillSnapshot:
        bill = self.session.get(TransferBill, bill_id)
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        if company_id is not None and bill.company_id != company_id:
            raise BillNotFoundError(str(bill_id))
        if franchise_id is not None and bill.franchise_id != franchise_id:
            raise BillNotFoundError(str(bill_id))
        return bill.to_snapshot()

    def get_by_number(self, bill_number: str) -> BillSnapshot | None:
        bill = self.session.execute(
            select(TransferBill).where(TransferBill.bill_number == bill_number)
        ).scalar_one_or_none()
        return bill.to_snapshot() if bill is not None else None

    def get_paired(self, bill_id: UUID) -> BillSnapshot | None:
        """The entry bill of an exit bill, or the exit bill of an entry bill."""
        bill = self.session.get(TransferBill, bill_id)
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        if bill.related_bill_id is None:
            return None
        related = self.session.get(TransferBill, bill.related_bill_id)
        return related.to_snapshot() if related is not None else None

    def list(self, bill_filter: BillFilter | None = None) -> Page[BillSnapshot]:
        bill_filter = bill_filter or BillFilter()
        page, limit = self._page_bounds(bill_filter.page, bill_filter.limit)

        stmt = select(TransferBill)
        if bill_filter.company_id is not None:
            stmt = stmt.where(TransferBill.company_id == bill_filter.company_id)
        if bill_filter.franchise_id is not None:
            stmt = stmt.where(TransferBill.franchise_id == bill_filter.franchise_id)
        if bill_filter.bill_type is not None:
            stmt = stmt.where(TransferBill.bill_type == BillType(bill_filter.bill_type).value)
        if bill_filter.status is not None:
            stmt = stmt.where(TransferBill.status == BillStatus(bill_filter.status).value)
        if bill_filter.date_from is not None:
            stmt = stmt.where(TransferBill.created_at >= bill_filter.date_from)
        if bill_filter.date_to is not None:
            stmt = stmt.where(TransferBill.created_at <= bill_filter.date_to)
        stmt = stmt.order_by(TransferBill.created_at.desc(), TransferBill.bill_number.desc())

        rows, total = self._paginate(stmt, page, limit)
        return Page(
            items=tuple(b.to_snapshot() for b in rows),
            total=total,
            page=page,
            limit=limit,
        )
