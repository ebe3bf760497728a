"""
Consent Ledger - Storage Module

Abstract storage adapter contract and the in-memory reference adapter.
"""

from consent_ledger.storage.adapter import (
    Connector,
    Operator,
    Row,
    SortBy,
    StorageAdapter,
    Where,
    WhereCondition,
)
from consent_ledger.storage.memory import MemoryAdapter, matches

__all__ = [
    "Connector",
    "MemoryAdapter",
    "Operator",
    "Row",
    "SortBy",
    "StorageAdapter",
    "Where",
    "WhereCondition",
    "matches",
]
