"""
Bank synchronization services.

- normalize: ordered extractor chains turning provider records into rows
- token_health: flags connections whose credential was rejected
- sync_lock: at most one in-flight sync per connection
- bank_sync: the sync orchestrator
- connection_lifecycle: authorize / disconnect
- transaction_review: listing with suggestions, convert / ignore
"""

from .bank_sync import AccountOutcome, ItemOutcome, SyncOrchestrator, SyncResult, SyncStatus
from .connection_lifecycle import (
    AuthorizationResult,
    ConnectionLifecycle,
    ConnectionLinkError,
    ConnectionNotFoundError,
    DisconnectResult,
    decode_state,
    encode_state,
)
from .normalize import NormalizedTransaction, normalize_transaction
from .sync_lock import ConcurrentSyncRejected, KeyedLock
from .token_health import TokenHealthMonitor
from .transaction_review import (
    InvalidStatusTransition,
    TransactionNotFoundError,
    TransactionReviewService,
)

__all__ = [
    "AccountOutcome",
    "AuthorizationResult",
    "ConcurrentSyncRejected",
    "ConnectionLifecycle",
    "ConnectionLinkError",
    "ConnectionNotFoundError",
    "DisconnectResult",
    "InvalidStatusTransition",
    "ItemOutcome",
    "KeyedLock",
    "NormalizedTransaction",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStatus",
    "TokenHealthMonitor",
    "TransactionNotFoundError",
    "TransactionReviewService",
    "decode_state",
    "encode_state",
    "normalize_transaction",
]
