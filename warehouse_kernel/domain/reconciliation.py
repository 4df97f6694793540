"""
Reconciliation -- pure discrepancy classification for entry bills.

Responsibility:
    Compares the quantities an entry bill expects (copied from its exit bill)
    with the quantities the franchise recorded as received, classifies every
    line, and projects the result into the summary shown before completion.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Services feed it
    plain lines built from stored item state; nothing here is cached, so a
    summary can be recomputed at any time.

Classification (expected, received):
    received == expected               -> none
    received == 0 and expected > 0     -> missing
    expected == 0 and received > 0     -> extra
    otherwise (both > 0, different)    -> quantity_mismatch
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from uuid import UUID

from warehouse_kernel.domain.dtos import DiscrepancyType


def classify_discrepancy(expected: int, received: int) -> DiscrepancyType:
    """Classify one line.  Quantities must be non-negative integers."""
    if expected < 0 or received < 0:
        raise ValueError(
            f"quantities must be non-negative (expected={expected}, received={received})"
        )
    if received == expected:
        return DiscrepancyType.NONE
    if received == 0:
        return DiscrepancyType.MISSING
    if expected == 0:
        return DiscrepancyType.EXTRA
    return DiscrepancyType.QUANTITY_MISMATCH


@dataclass(frozen=True)
class ExpectedLine:
    """What the entry bill expects for one variant."""

    product_variant_id: int
    expected_quantity: int
    item_id: UUID | None = None


@dataclass(frozen=True)
class ReconciledLine:
    product_variant_id: int
    expected_quantity: int
    received_quantity: int
    discrepancy_type: DiscrepancyType
    item_id: UUID | None = None

    @property
    def difference(self) -> int:
        return self.received_quantity - self.expected_quantity


def reconcile(
    expected: Sequence[ExpectedLine],
    received: Mapping[int, int],
) -> list[ReconciledLine]:
    """
    Reconcile expected lines against a ``variant_id -> received`` map.

    Expected variants absent from ``received`` count as received 0.  Variants
    in ``received`` that nothing expects become extra lines (expected 0, no
    item id), in ascending variant order after the expected lines.
    """
    expected_ids = {line.product_variant_id for line in expected}
    result = [
        ReconciledLine(
            product_variant_id=line.product_variant_id,
            expected_quantity=line.expected_quantity,
            received_quantity=received.get(line.product_variant_id, 0),
            discrepancy_type=classify_discrepancy(
                line.expected_quantity, received.get(line.product_variant_id, 0)
            ),
            item_id=line.item_id,
        )
        for line in expected
    ]
    for variant_id in sorted(v for v in received if v not in expected_ids):
        result.append(
            ReconciledLine(
                product_variant_id=variant_id,
                expected_quantity=0,
                received_quantity=received[variant_id],
                discrepancy_type=classify_discrepancy(0, received[variant_id]),
            )
        )
    return result


@dataclass(frozen=True)
class DiscrepancySummary:
    """Read-only projection rendered before an entry bill is completed."""

    missing_items: tuple[ReconciledLine, ...] = ()
    mismatch_items: tuple[ReconciledLine, ...] = ()
    extra_items: tuple[ReconciledLine, ...] = ()
    matched_items: tuple[ReconciledLine, ...] = ()
    pending_variant_ids: tuple[int, ...] = field(default=())

    @property
    def missing_count(self) -> int:
        return len(self.missing_items)

    @property
    def mismatch_count(self) -> int:
        return len(self.mismatch_items)

    @property
    def extra_count(self) -> int:
        return len(self.extra_items)

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.missing_items or self.mismatch_items or self.extra_items)

    @property
    def total_expected(self) -> int:
        return sum(
            line.expected_quantity
            for group in (self.missing_items, self.mismatch_items, self.extra_items, self.matched_items)
            for line in group
        )

    @property
    def total_received(self) -> int:
        return sum(
            line.received_quantity
            for group in (self.missing_items, self.mismatch_items, self.extra_items, self.matched_items)
            for line in group
        )

    def to_dict(self) -> dict:
        def _lines(group: tuple[ReconciledLine, ...]) -> list[dict]:
            return [
                {
                    "product_variant_id": line.product_variant_id,
                    "expected": line.expected_quantity,
                    "received": line.received_quantity,
                    "difference": line.difference,
                }
                for line in group
            ]

        return {
            "missing_count": self.missing_count,
            "mismatch_count": self.mismatch_count,
            "extra_count": self.extra_count,
            "missing_items": _lines(self.missing_items),
            "mismatch_items": _lines(self.mismatch_items),
            "extra_items": _lines(self.extra_items),
            "pending_variant_ids": list(self.pending_variant_ids),
        }


def summarize_discrepancies(
    lines: Iterable[tuple[ExpectedLine, int | None]],
) -> DiscrepancySummary:
    """
    Group ``(expected line, received or None)`` pairs by discrepancy type.

    Lines without a received quantity have not been verified yet; they are
    reported as pending and not classified.
    """
    missing: list[ReconciledLine] = []
    mismatch: list[ReconciledLine] = []
    extra: list[ReconciledLine] = []
    matched: list[ReconciledLine] = []
    pending: list[int] = []

    buckets = {
        DiscrepancyType.MISSING: missing,
        DiscrepancyType.QUANTITY_MISMATCH: mismatch,
        DiscrepancyType.EXTRA: extra,
        DiscrepancyType.NONE: matched,
    }

    for line, received in lines:
        if received is None:
            pending.append(line.product_variant_id)
            continue
        kind = classify_discrepancy(line.expected_quantity, received)
        buckets[kind].append(
            ReconciledLine(
                product_variant_id=line.product_variant_id,
                expected_quantity=line.expected_quantity,
                received_quantity=received,
                discrepancy_type=kind,
                item_id=line.item_id,
            )
        )

    return DiscrepancySummary(
        missing_items=tuple(missing),
        mismatch_items=tuple(mismatch),
        extra_items=tuple(extra),
        matched_items=tuple(matched),
        pending_variant_ids=tuple(pending),
    )
