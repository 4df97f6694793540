"""
warehouse_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads settings files or
    environment variables directly.

Architecture position:
    Configuration.  Sits above ``warehouse_kernel`` and below
    ``warehouse_services``.  The kernel MUST NEVER import from
    ``warehouse_config``; ``warehouse_config.bridges`` translates settings
    into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid settings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from warehouse_config.loader import apply_environment, load_yaml_file, parse_settings
from warehouse_config.schema import WarehouseSettings

_logger = logging.getLogger("warehouse_kernel.config")

_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WarehouseSettings:
    """The ONLY public settings entrypoint.

    Loads ``path`` (default: ``sets/default.yaml``), overlays
    ``WAREHOUSE_DATABASE_URL`` / ``WAREHOUSE_LOG_LEVEL`` from ``environ``
    (default: the process environment) and validates the result.
    """
    settings_path = Path(path) if path is not None else _DEFAULT_SETTINGS_FILE
    data = apply_environment(
        load_yaml_file(settings_path),
        os.environ if environ is None else environ,
    )
    settings = parse_settings(data)

    _logger.info(
        "WAREHOUSE_CONFIG_TRACE",
        extra={
            "settings_file": str(settings_path),
            "log_level": settings.log_level,
            "max_lock_retries": settings.max_lock_retries,
            "page_size": settings.default_page_size,
        },
    )
    return settings


__all__ = ["WarehouseSettings", "get_active_settings"]
