"""Database layer - engine, base classes, and append-only enforcement."""

from warehouse_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from warehouse_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
