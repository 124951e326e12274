"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Linked bank connections and credential health
- Reconciled bank transactions and their review status

Enforces uniqueness on the provider connection id and the provider
transaction id.
"""

from .sqlite_store import (
    ConnectionRecord,
    MalformedRecordError,
    StateStore,
    TransactionRecord,
    TransactionStatus,
    UpsertResult,
)

__all__ = [
    "StateStore",
    "ConnectionRecord",
    "TransactionRecord",
    "TransactionStatus",
    "UpsertResult",
    "MalformedRecordError",
]
