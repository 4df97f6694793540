"""Transactional facade over the warehouse kernel."""

from warehouse_services.warehouse_service import WarehouseService, build_warehouse_service

__all__ = ["WarehouseService", "build_warehouse_service"]
