"""
Tests for locations, bill numbering and the snapshot DTOs.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from warehouse_kernel.domain.dtos import (
    BillItemRequest,
    InventorySnapshot,
    MovementKind,
    Page,
)
from warehouse_kernel.domain.values import BillNumbering, Location, LocationType


class TestLocation:

    def test_company_and_franchise_keys(self):
        assert Location.company(3).key == "company:3"
        assert Location.franchise(9).key == "franchise:9"

    def test_id_accessors(self):
        loc = Location.franchise(9)
        assert loc.franchise_id == 9
        assert loc.company_id is None
        assert loc.location_type is LocationType.FRANCHISE

    def test_from_ids_requires_exactly_one(self):
        assert Location.from_ids(1, None) == Location.company(1)
        assert Location.from_ids(None, 2) == Location.franchise(2)
        with pytest.raises(ValueError, match="exactly one"):
            Location.from_ids(1, 2)
        with pytest.raises(ValueError, match="exactly one"):
            Location.from_ids(None, None)

    def test_non_positive_id_rejected(self):
        with pytest.raises(ValueError):
            Location.company(0)

    def test_string_type_coerced(self):
        assert Location("company", 4) == Location.company(4)


class TestBillNumbering:

    def test_format(self):
        numbering = BillNumbering()
        assert numbering.format("exit", 1, 42) == "EXB-1-000042"
        assert numbering.format("entry", 12, 7) == "ENB-12-000007"

    def test_custom_width(self):
        assert BillNumbering(width=3).format("exit", 1, 5) == "EXB-1-005"

    def test_prefixes_must_differ(self):
        with pytest.raises(ValueError, match="differ"):
            BillNumbering(exit_prefix="TB", entry_prefix="TB")

    def test_sequence_is_per_company(self):
        assert BillNumbering.sequence_name(1) != BillNumbering.sequence_name(2)


class TestDTOs:

    def test_available_stock_is_derived(self):
        snap = InventorySnapshot(
            id=uuid4(),
            product_variant_id=101,
            company_id=1,
            franchise_id=None,
            stock=20,
            reserved_stock=5,
            reorder_point=None,
            is_active=True,
            version=3,
        )
        assert snap.available_stock == 15
        assert snap.location_key == "company:1"

    def test_available_stock_cannot_be_passed(self):
        with pytest.raises(TypeError):
            InventorySnapshot(
                id=uuid4(), product_variant_id=1, company_id=1, franchise_id=None,
                stock=1, reserved_stock=0, reorder_point=None, is_active=True,
                version=1, available_stock=99,
            )

    def test_item_request_coerces_price(self):
        request = BillItemRequest(101, 2, "2.50")
        assert request.unit_price == Decimal("2.50")

    def test_page_arithmetic(self):
        page = Page(items=(1, 2), total=5, page=1, limit=2)
        assert page.total_pages == 3
        assert page.has_next
        assert not Page(items=(), total=0, page=1, limit=20).has_next

    def test_movement_kind_partition(self):
        assert MovementKind.SALE.affects_stock
        assert MovementKind.TRANSFER_IN.affects_stock
        assert not MovementKind.RESERVATION.affects_stock
        assert not MovementKind.RELEASE.affects_stock
