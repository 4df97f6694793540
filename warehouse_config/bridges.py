"""
Config -> kernel bridges.

Functions that turn ``WarehouseSettings`` into kernel inputs.  They live
here because the kernel must never import ``warehouse_config``.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from warehouse_config.schema import WarehouseSettings
from warehouse_kernel.db.engine import init_engine_from_url
from warehouse_kernel.domain.values import BillNumbering


def bill_numbering_from_settings(settings: WarehouseSettings) -> BillNumbering:
    return BillNumbering(
        exit_prefix=settings.exit_bill_prefix,
        entry_prefix=settings.entry_bill_prefix,
        width=settings.bill_number_width,
    )


def selector_options_from_settings(settings: WarehouseSettings) -> dict[str, int]:
    """Keyword arguments shared by the kernel selectors."""
    return {
        "default_page_size": settings.default_page_size,
        "max_page_size": settings.max_page_size,
    }


def init_engine_from_settings(settings: WarehouseSettings) -> Engine:
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )
