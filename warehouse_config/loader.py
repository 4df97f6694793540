"""
Configuration loader (``warehouse_config.loader``).

Responsibility
--------------
Loads a YAML settings file, overlays environment variables and parses the
result into a frozen ``WarehouseSettings``.  Callers go through
``warehouse_config.get_active_settings()``; this module is its tooling.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from the schema.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from warehouse_config.schema import WarehouseSettings

ENV_DATABASE_URL = "WAREHOUSE_DATABASE_URL"
ENV_LOG_LEVEL = "WAREHOUSE_LOG_LEVEL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in data.items()}
    if environ.get(ENV_DATABASE_URL):
        merged.setdefault("database", {})["url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        merged.setdefault("logging", {})["level"] = environ[ENV_LOG_LEVEL]
    return merged


def parse_settings(data: dict[str, Any]) -> WarehouseSettings:
    database = data.get("database") or {}
    logging_section = data.get("logging") or {}
    ledger = data.get("ledger") or {}
    pagination = data.get("pagination") or {}
    numbering = data.get("bill_numbering") or {}

    return WarehouseSettings(
        database_url=database["url"],
        echo_sql=bool(database.get("echo_sql", False)),
        pool_size=int(database.get("pool_size", 20)),
        max_overflow=int(database.get("max_overflow", 10)),
        log_level=str(logging_section.get("level", "INFO")),
        max_lock_retries=int(ledger.get("max_lock_retries", 3)),
        low_stock_threshold=int(ledger.get("low_stock_threshold", 10)),
        default_page_size=int(pagination.get("default_page_size", 20)),
        max_page_size=int(pagination.get("max_page_size", 100)),
        bill_number_width=int(numbering.get("width", 6)),
        exit_bill_prefix=str(numbering.get("exit_prefix", "EXB")),
        entry_bill_prefix=str(numbering.get("entry_prefix", "ENB")),
    )
