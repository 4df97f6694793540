"""
Value objects for stock locations and bill numbering.

Architecture position:
    Kernel > Domain -- pure, immutable, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LocationType(str, Enum):
    """Owner of an inventory record: central company stock or a franchise."""

    COMPANY = "company"
    FRANCHISE = "franchise"


@dataclass(frozen=True)
class Location:
    """
    Exactly one of a company or a franchise.

    Contract: ``location_id`` is the directory id of the owner.  ``key`` is the
    canonical string used for uniqueness of (variant, location).
    """

    location_type: LocationType
    location_id: int

    def __post_init__(self):
        if not isinstance(self.location_type, LocationType):
            object.__setattr__(self, "location_type", LocationType(self.location_type))
        if self.location_id is None or int(self.location_id) <= 0:
            raise ValueError(f"location_id must be a positive integer, got {self.location_id!r}")

    @classmethod
    def company(cls, company_id: int) -> Location:
        return cls(LocationType.COMPANY, company_id)

    @classmethod
    def franchise(cls, franchise_id: int) -> Location:
        return cls(LocationType.FRANCHISE, franchise_id)

    @classmethod
    def from_ids(cls, company_id: int | None, franchise_id: int | None) -> Location:
        """Build from the nullable column pair; exactly one must be set."""
        if (company_id is None) == (franchise_id is None):
            raise ValueError(
                "exactly one of company_id and franchise_id must be set "
                f"(got company_id={company_id!r}, franchise_id={franchise_id!r})"
            )
        if company_id is not None:
            return cls.company(company_id)
        return cls.franchise(franchise_id)

    @property
    def key(self) -> str:
        return f"{self.location_type.value}:{self.location_id}"

    @property
    def company_id(self) -> int | None:
        return self.location_id if self.location_type is LocationType.COMPANY else None

    @property
    def franchise_id(self) -> int | None:
        return self.location_id if self.location_type is LocationType.FRANCHISE else None

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class BillNumbering:
    """
    Bill number format: ``<prefix>-<company_id>-<sequence>``.

    The sequence is per company and zero padded to ``width`` digits.
    """

    exit_prefix: str = "EXB"
    entry_prefix: str = "ENB"
    width: int = 6

    def __post_init__(self):
        if not self.exit_prefix or not self.entry_prefix:
            raise ValueError("bill number prefixes must be non-empty")
        if self.exit_prefix == self.entry_prefix:
            raise ValueError("exit and entry prefixes must differ")
        if self.width < 1:
            raise ValueError("width must be at least 1")

    def format(self, bill_type: str, company_id: int, sequence: int) -> str:
        prefix = self.exit_prefix if bill_type == "exit" else self.entry_prefix
        return f"{prefix}-{company_id}-{sequence:0{self.width}d}"

    @staticmethod
    def sequence_name(company_id: int) -> str:
        return f"transfer_bill:{company_id}"
