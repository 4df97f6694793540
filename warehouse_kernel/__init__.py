"""
Warehouse Kernel

Inventory stock ledger and warehouse transfer reconciliation with:
- Derived available stock (stock - reserved), never stored
- Append-only stock movements, one per mutation
- Serialized per-record read-modify-write
- Atomic multi-record bill completion
- Exit -> entry bill pairing with discrepancy classification
"""

__version__ = "0.1.0"
