"""
Tests for StockLedger.

Every figure change writes exactly one movement, reservations never exceed
available stock, and stock never falls below what is reserved.
"""

from uuid import uuid4

import pytest

from warehouse_kernel.domain.dtos import MovementKind
from warehouse_kernel.domain.values import Location
from warehouse_kernel.exceptions import (
    DuplicateInventoryError,
    InsufficientAvailableStockError,
    InsufficientReservedStockError,
    InvalidAdjustmentError,
    InventoryInactiveError,
    InventoryNotFoundError,
)


def _movements(inventory_selector, record):
    return list(inventory_selector.iter_movements(record.id))


class TestCreateInventory:

    def test_empty_record(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id)

        assert record.stock == 0
        assert record.reserved_stock == 0
        assert record.available_stock == 0
        assert record.is_active
        assert record.company_id == company.company_id
        assert record.franchise_id is None
        assert _movements(inventory_selector, record) == []

    def test_initial_stock_is_one_adjustment(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=40)

        moves = _movements(inventory_selector, record)
        assert record.stock == 40
        assert len(moves) == 1
        assert moves[0].kind is MovementKind.ADJUSTMENT
        assert moves[0].delta == 40
        assert moves[0].notes == "initial stock"

    def test_duplicate_rejected(self, ledger, company, test_actor_id):
        first = ledger.create_inventory(101, company, test_actor_id)
        with pytest.raises(DuplicateInventoryError) as exc_info:
            ledger.create_inventory(101, company, test_actor_id)
        assert exc_info.value.inventory_id == str(first.id)

    def test_same_variant_at_two_locations(self, ledger, company, franchise, test_actor_id):
        a = ledger.create_inventory(101, company, test_actor_id)
        b = ledger.create_inventory(101, franchise, test_actor_id)
        assert a.id != b.id

    def test_negative_initial_stock_rejected(self, ledger, company, test_actor_id):
        with pytest.raises(InvalidAdjustmentError):
            ledger.create_inventory(101, company, test_actor_id, initial_stock=-1)


class TestAdjustStock:

    def test_positive_and_negative_deltas(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.adjust_stock(record.id, 5, test_actor_id, notes="cycle count")
        ledger.adjust_stock(record.id, -12, test_actor_id, kind=MovementKind.SALE)
        assert record.stock == 3

    def test_zero_delta_rejected(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        with pytest.raises(InvalidAdjustmentError, match="zero"):
            ledger.adjust_stock(record.id, 0, test_actor_id)

    def test_negative_stock_rejected(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=3)
        with pytest.raises(InvalidAdjustmentError, match="negative"):
            ledger.adjust_stock(record.id, -4, test_actor_id)
        assert record.stock == 3
        assert len(_movements(inventory_selector, record)) == 1

    def test_cannot_drop_below_reserved(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 6, test_actor_id)
        with pytest.raises(InvalidAdjustmentError, match="reserved"):
            ledger.adjust_stock(record.id, -5, test_actor_id)
        assert record.stock == 10
        assert record.reserved_stock == 6

    def test_reservation_kind_rejected(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        with pytest.raises(InvalidAdjustmentError, match="not a stock movement kind"):
            ledger.adjust_stock(record.id, 1, test_actor_id, kind=MovementKind.RESERVATION)

    def test_movement_records_before_and_after(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.adjust_stock(
            record.id, -4, test_actor_id,
            kind=MovementKind.SALE, reference_type="sale", reference_id="S-77",
        )

        last = _movements(inventory_selector, record)[-1]
        assert (last.previous_stock, last.new_stock) == (10, 6)
        assert last.reference_type == "sale"
        assert last.reference_id == "S-77"
        assert last.record_version == record.version
        assert last.created_by_id == test_actor_id

    def test_unknown_record(self, ledger, test_actor_id):
        with pytest.raises(InventoryNotFoundError):
            ledger.adjust_stock(uuid4(), 1, test_actor_id)

    def test_set_stock_books_difference(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.set_stock(record.id, 25, test_actor_id, notes="recount")

        last = _movements(inventory_selector, record)[-1]
        assert record.stock == 25
        assert last.delta == 15

    def test_set_stock_to_same_value_rejected(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        with pytest.raises(InvalidAdjustmentError):
            ledger.set_stock(record.id, 10, test_actor_id)


class TestReservations:

    def test_reserve_reduces_available_only(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 4, test_actor_id, reference_type="order", reference_id="O-1")

        assert record.stock == 10
        assert record.reserved_stock == 4
        assert record.available_stock == 6

    def test_reserve_all_available(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 10, test_actor_id)
        assert record.available_stock == 0

    def test_over_reserve_rejected(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 7, test_actor_id)

        with pytest.raises(InsufficientAvailableStockError) as exc_info:
            ledger.reserve(record.id, 4, test_actor_id)

        assert exc_info.value.requested == 4
        assert exc_info.value.available == 3
        assert record.reserved_stock == 7
        assert len(_movements(inventory_selector, record)) == 2

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_reservation_rejected(self, ledger, company, test_actor_id, quantity):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        with pytest.raises(InsufficientAvailableStockError):
            ledger.reserve(record.id, quantity, test_actor_id)

    def test_release_returns_units(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 6, test_actor_id)
        ledger.release(record.id, 2, test_actor_id)

        last = _movements(inventory_selector, record)[-1]
        assert record.reserved_stock == 4
        assert last.kind is MovementKind.RELEASE
        assert last.delta == -2
        assert (last.previous_reserved, last.new_reserved) == (6, 4)

    def test_release_more_than_reserved_rejected(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 2, test_actor_id)
        with pytest.raises(InsufficientReservedStockError) as exc_info:
            ledger.release(record.id, 3, test_actor_id)
        assert exc_info.value.reserved == 2


class TestLifecycle:

    def test_inactive_record_rejects_mutations(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.deactivate(record.id, test_actor_id)

        with pytest.raises(InventoryInactiveError):
            ledger.adjust_stock(record.id, 1, test_actor_id)
        with pytest.raises(InventoryInactiveError):
            ledger.reserve(record.id, 1, test_actor_id)

    def test_reactivate(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.deactivate(record.id, test_actor_id)
        ledger.reactivate(record.id, test_actor_id)
        ledger.adjust_stock(record.id, 1, test_actor_id)
        assert record.stock == 11

    def test_reorder_point(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id)
        ledger.set_reorder_point(record.id, 5, test_actor_id)
        assert record.reorder_point == 5
        ledger.set_reorder_point(record.id, None, test_actor_id)
        assert record.reorder_point is None

    def test_negative_reorder_point_rejected(self, ledger, company, test_actor_id):
        record = ledger.create_inventory(101, company, test_actor_id)
        with pytest.raises(InvalidAdjustmentError):
            ledger.set_reorder_point(record.id, -1, test_actor_id)

    def test_get_or_create_creates_then_reuses(self, ledger, test_actor_id):
        location = Location.franchise(42)
        first = ledger.get_or_create_for_update(101, location, test_actor_id)
        second = ledger.get_or_create_for_update(101, location, test_actor_id)
        assert first.id == second.id
        assert first.stock == 0

    def test_get_or_create_reactivates(self, ledger, test_actor_id):
        location = Location.franchise(42)
        record = ledger.create_inventory(101, location, test_actor_id)
        ledger.deactivate(record.id, test_actor_id)

        again = ledger.get_or_create_for_update(101, location, test_actor_id)
        assert again.id == record.id
        assert again.is_active


class TestVersioning:

    def test_version_increments_per_mutation(self, ledger, company, test_actor_id, inventory_selector):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 1, test_actor_id)
        ledger.release(record.id, 1, test_actor_id)

        versions = [m.record_version for m in _movements(inventory_selector, record)]
        assert versions == sorted(versions)
        assert len(set(versions)) == len(versions)
        assert versions[-1] == record.version

    def test_logs_each_movement(self, ledger, company, test_actor_id, captured_logs):
        record = ledger.create_inventory(101, company, test_actor_id, initial_stock=10)
        ledger.reserve(record.id, 3, test_actor_id)

        logs = [r for r in captured_logs() if r["message"] == "stock_movement_recorded"]
        assert [r["kind"] for r in logs] == ["adjustment", "reservation"]
        assert logs[-1]["available_stock"] == 7
