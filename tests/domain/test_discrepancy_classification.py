"""
Tests for the pure reconciliation core.

Classification of (expected, received), reconciliation of receipts against
expected lines, and the pre-completion summary.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from warehouse_kernel.domain.dtos import DiscrepancyType
from warehouse_kernel.domain.reconciliation import (
    ExpectedLine,
    classify_discrepancy,
    reconcile,
    summarize_discrepancies,
)


class TestClassifyDiscrepancy:

    @pytest.mark.parametrize(
        "expected,received,kind",
        [
            (5, 5, DiscrepancyType.NONE),
            (0, 0, DiscrepancyType.NONE),
            (5, 0, DiscrepancyType.MISSING),
            (0, 3, DiscrepancyType.EXTRA),
            (5, 3, DiscrepancyType.QUANTITY_MISMATCH),
            (5, 8, DiscrepancyType.QUANTITY_MISMATCH),
        ],
    )
    def test_table(self, expected, received, kind):
        assert classify_discrepancy(expected, received) is kind

    def test_negative_quantities_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            classify_discrepancy(-1, 0)
        with pytest.raises(ValueError, match="non-negative"):
            classify_discrepancy(1, -2)

    @given(
        expected=st.integers(min_value=0, max_value=10_000),
        received=st.integers(min_value=0, max_value=10_000),
    )
    def test_none_iff_equal(self, expected, received):
        kind = classify_discrepancy(expected, received)
        assert (kind is DiscrepancyType.NONE) == (expected == received)


class TestReconcile:

    def test_absent_variant_counts_as_zero(self):
        lines = [ExpectedLine(101, 10), ExpectedLine(102, 5)]
        result = reconcile(lines, {101: 10})

        by_variant = {r.product_variant_id: r for r in result}
        assert by_variant[101].discrepancy_type is DiscrepancyType.NONE
        assert by_variant[102].received_quantity == 0
        assert by_variant[102].discrepancy_type is DiscrepancyType.MISSING

    def test_unknown_variants_become_extras_after_expected_lines(self):
        lines = [ExpectedLine(200, 4)]
        result = reconcile(lines, {200: 4, 999: 2, 300: 1})

        assert [r.product_variant_id for r in result] == [200, 300, 999]
        assert result[1].expected_quantity == 0
        assert result[1].discrepancy_type is DiscrepancyType.EXTRA
        assert result[2].item_id is None

    def test_difference_is_signed(self):
        result = reconcile([ExpectedLine(1, 10)], {1: 7})
        assert result[0].difference == -3
        assert result[0].discrepancy_type is DiscrepancyType.QUANTITY_MISMATCH


class TestSummarizeDiscrepancies:

    def test_groups_by_type(self):
        summary = summarize_discrepancies([
            (ExpectedLine(101, 10), 10),
            (ExpectedLine(102, 5), 0),
            (ExpectedLine(103, 6), 4),
            (ExpectedLine(999, 0), 2),
        ])

        assert summary.missing_count == 1
        assert summary.mismatch_count == 1
        assert summary.extra_count == 1
        assert len(summary.matched_items) == 1
        assert summary.has_discrepancies
        assert summary.total_expected == 21
        assert summary.total_received == 16

    def test_unverified_lines_are_pending(self):
        summary = summarize_discrepancies([
            (ExpectedLine(101, 10), None),
            (ExpectedLine(102, 5), 5),
        ])

        assert summary.pending_variant_ids == (101,)
        assert not summary.has_discrepancies

    def test_to_dict_shape(self):
        summary = summarize_discrepancies([(ExpectedLine(102, 5), 3)])
        data = summary.to_dict()

        assert data["mismatch_count"] == 1
        assert data["mismatch_items"] == [
            {"product_variant_id": 102, "expected": 5, "received": 3, "difference": -2}
        ]
        assert data["missing_items"] == []
