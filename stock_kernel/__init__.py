"""
Stock Kernel - inventory quantity reconciliation core

An append-only stock ledger with:
- A single mutation point for on-hand quantity per (product, warehouse)
- Movement history that reconstructs every quantity
- Adjustments, transfers and physical count (opname) reconciliation
- Atomic transactions with row-level locking
"""

__version__ = "0.1.0"
