"""
WarehouseSettings schema.

The frozen, validated runtime settings produced by
``warehouse_config.get_active_settings()``.  YAML fragments are parsed into
this type by the loader; nothing else constructs it at runtime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class WarehouseSettings:
    """Runtime settings for the warehouse services."""

    database_url: str
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    log_level: str = "INFO"
    max_lock_retries: int = 3
    default_page_size: int = 20
    max_page_size: int = 100
    low_stock_threshold: int = 10
    bill_number_width: int = 6
    exit_bill_prefix: str = "EXB"
    entry_bill_prefix: str = "ENB"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url is required")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got {self.log_level!r}")
        object.__setattr__(self, "log_level", self.log_level.upper())
        for name in ("pool_size", "max_page_size", "default_page_size", "bill_number_width"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        for name in ("max_overflow", "max_lock_retries", "low_stock_threshold"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        if not self.exit_bill_prefix or not self.entry_bill_prefix:
            raise ValueError("bill prefixes must be non-empty")
        if self.exit_bill_prefix == self.entry_bill_prefix:
            raise ValueError("exit and entry bill prefixes must differ")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)
