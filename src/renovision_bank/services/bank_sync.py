"""Bank connection synchronization service.

One sync pass pulls the transactions of every sub-account of a connection over
a fixed lookback window and reconciles them into the state store. The window
overlaps on every pass; idempotence comes from the store's upsert keyed by the
provider transaction id.

A pass runs in two phases. All sub-accounts are fetched first, then the
fetched records are reconciled. A rejected credential therefore aborts the
pass before anything is written.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from renovision_bank.config import SyncConfig
from renovision_bank.provider_client import (
    ProviderAccount,
    ProviderError,
    UpstreamNotFound,
    UpstreamUnauthorized,
)
from renovision_bank.state_store import MalformedRecordError

from .normalize import normalize_transaction
from .sync_lock import ConcurrentSyncRejected, KeyedLock
from .token_health import TokenHealthMonitor

if TYPE_CHECKING:
    from renovision_bank.provider_client import ProviderClient
    from renovision_bank.state_store import ConnectionRecord, StateStore

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    """Outcome of a sync pass as shown to the caller."""

    OK = "OK"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    FAILED = "FAILED"
    ALREADY_SYNCING = "ALREADY_SYNCING"


@dataclass
class ItemOutcome:
    """Reconciliation outcome of one upstream transaction."""

    external_id: str | None
    ok: bool
    created: bool = False
    error: str | None = None


@dataclass
class AccountOutcome:
    """Outcome of one sub-account within a sync pass."""

    account_id: str
    processed: bool
    items: list[ItemOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def written(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def created(self) -> int:
        return sum(1 for item in self.items if item.ok and item.created)

    @property
    def rejected(self) -> int:
        return sum(1 for item in self.items if not item.ok)


@dataclass
class SyncResult:
    """Result of a sync pass. Counts are folded from the account outcomes."""

    connection_id: str
    status: SyncStatus
    accounts: list[AccountOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def accounts_processed(self) -> int:
        return sum(1 for account in self.accounts if account.processed)

    @property
    def accounts_failed(self) -> int:
        return sum(1 for account in self.accounts if not account.processed)

    @property
    def transactions_written(self) -> int:
        return sum(account.written for account in self.accounts)

    @property
    def transactions_created(self) -> int:
        return sum(account.created for account in self.accounts)

    @property
    def records_rejected(self) -> int:
        return sum(account.rejected for account in self.accounts)

    @property
    def message(self) -> str:
        """Caller-facing summary of the pass."""
        if self.status == SyncStatus.OK:
            return f"{self.transactions_created} new transactions imported"
        if self.status == SyncStatus.TOKEN_EXPIRED:
            return "Bank access has expired, please reconnect your bank"
        if self.status == SyncStatus.ALREADY_SYNCING:
            return "A synchronization is already running for this connection"
        return "Synchronization failed, please retry later"

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "status": self.status.value,
            "accounts_processed": self.accounts_processed,
            "accounts_failed": self.accounts_failed,
            "transactions_written": self.transactions_written,
            "transactions_created": self.transactions_created,
            "records_rejected": self.records_rejected,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
            "message": self.message,
        }


class SyncOrchestrator:
    """Drives sync passes for bank connections.

    Distinct connections share nothing but the state store and may be synced
    in parallel. Passes over the same connection are serialized by a keyed
    lock: a second caller gets ALREADY_SYNCING instead of waiting.
    """

    def __init__(
        self,
        provider_client: ProviderClient,
        state_store: StateStore,
        sync_config: SyncConfig | None = None,
        token_monitor: TokenHealthMonitor | None = None,
        lock: KeyedLock | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider_client: Client for the aggregation provider.
            state_store: Store receiving the reconciled transactions.
            sync_config: Lookback window, page size and worker count.
            token_monitor: Monitor flagging rejected credentials.
            lock: Keyed lock shared by every caller of this orchestrator.
            today: Clock used to compute the lookback window.
        """
        self.client = provider_client
        self.store = state_store
        self.sync_config = sync_config or SyncConfig()
        self.token_monitor = token_monitor or TokenHealthMonitor(state_store)
        self.lock = lock or KeyedLock()
        self._today = today

    def synchronize(self, connection_id: str) -> SyncResult:
        """Run one sync pass for a connection.

        Args:
            connection_id: Local connection id.

        Returns:
            SyncResult; never raises for upstream or per-item failures.
        """
        start_time = time.monotonic()
        try:
            with self.lock.hold(connection_id):
                result = self._run_pass(connection_id)
        except ConcurrentSyncRejected as e:
            logger.info("%s", e)
            result = SyncResult(connection_id=connection_id, status=SyncStatus.ALREADY_SYNCING)

        result.duration_ms = int((time.monotonic() - start_time) * 1000)

        logger.info(
            "Sync of %s finished with %s: %d accounts processed, %d failed, "
            "%d transactions written (%d new), %d rejected in %dms",
            connection_id,
            result.status.value,
            result.accounts_processed,
            result.accounts_failed,
            result.transactions_written,
            result.transactions_created,
            result.records_rejected,
            result.duration_ms,
        )
        return result

    def synchronize_many(
        self, connection_ids: Iterable[str], max_workers: int | None = None
    ) -> dict[str, SyncResult]:
        """Sync several connections in parallel.

        Args:
            connection_ids: Local connection ids (duplicates are dropped).
            max_workers: Thread count, defaults to the configured value.

        Returns:
            Mapping of connection id to its result, in input order.
        """
        ids = list(dict.fromkeys(connection_ids))
        if not ids:
            return {}

        workers = max(1, min(max_workers or self.sync_config.max_workers, len(ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bank-sync") as pool:
            futures = {cid: pool.submit(self.synchronize, cid) for cid in ids}
            return {cid: future.result() for cid, future in futures.items()}

    def _run_pass(self, connection_id: str) -> SyncResult:
        connection = self.store.get_connection(connection_id)
        if connection is None or connection.is_deleted:
            logger.error("Connection %s not found", connection_id)
            return self._failed(connection_id, f"Connection {connection_id} not found")
        if not connection.active:
            logger.warning("Connection %s is inactive, reconnection required", connection_id)
            return self._failed(connection_id, f"Connection {connection_id} is inactive")

        try:
            upstream = self.client.list_connections(connection.access_credential)
        except UpstreamUnauthorized as e:
            return self._token_expired(connection, e)
        except ProviderError as e:
            logger.error("Listing accounts for %s failed: %s", connection_id, e)
            return self._failed(connection_id, f"Account listing failed: {e}")

        grouping = next(
            (c for c in upstream if c.id == connection.external_connection_id), None
        )
        if grouping is None:
            logger.info(
                "Provider does not list connection %s yet, nothing to sync",
                connection.external_connection_id,
            )
            return SyncResult(connection_id=connection_id, status=SyncStatus.OK)

        max_date = self._today()
        min_date = max_date - timedelta(days=self.sync_config.lookback_days)

        accounts: list[AccountOutcome] = []
        fetched: list[tuple[ProviderAccount, list[dict]]] = []
        for account in grouping.accounts:
            try:
                raw = self.client.list_transactions(
                    connection.access_credential,
                    account.id,
                    min_date=min_date,
                    max_date=max_date,
                    limit=self.sync_config.page_size,
                )
            except UpstreamUnauthorized as e:
                return self._token_expired(connection, e)
            except UpstreamNotFound:
                logger.info("No transactions provisioned yet for account %s", account.id)
                raw = []
            except ProviderError as e:
                logger.warning("Fetching account %s failed, skipping it: %s", account.id, e)
                accounts.append(AccountOutcome(account_id=account.id, processed=False, error=str(e)))
                continue
            fetched.append((account, raw))

        for account, raw in fetched:
            items = [self._reconcile(connection.id, record) for record in raw]
            accounts.append(AccountOutcome(account_id=account.id, processed=True, items=items))

        result = SyncResult(
            connection_id=connection_id,
            status=SyncStatus.OK,
            accounts=accounts,
            errors=[f"Account {a.account_id}: {a.error}" for a in accounts if a.error]
            + [
                f"Transaction {item.external_id}: {item.error}"
                for a in accounts
                for item in a.items
                if not item.ok
            ],
        )

        if result.accounts_processed:
            self.store.touch_last_synced(connection_id)
        return result

    def _reconcile(self, connection_id: str, raw: Any) -> ItemOutcome:
        """Normalize and upsert one upstream record into an item outcome."""
        raw_id = raw.get("id") if isinstance(raw, dict) else None
        external_id = str(raw_id) if raw_id is not None else None
        try:
            tx = normalize_transaction(raw)
            upserted = self.store.upsert_transaction(
                connection_id=connection_id,
                external_transaction_id=tx.external_transaction_id,
                amount=tx.amount,
                description=tx.description,
                occurred_at=tx.occurred_at,
                direction=tx.direction,
                category=tx.category,
                metadata=tx.metadata,
            )
        except MalformedRecordError as e:
            logger.warning("Rejected malformed transaction %s: %s", external_id, e)
            return ItemOutcome(external_id=external_id, ok=False, error=str(e))
        except sqlite3.Error as e:
            logger.warning("Storing transaction %s failed: %s", external_id, e)
            return ItemOutcome(external_id=external_id, ok=False, error=str(e))
        return ItemOutcome(external_id=external_id, ok=True, created=upserted.created)

    def _token_expired(self, connection: ConnectionRecord, error: Exception) -> SyncResult:
        logger.warning("Provider rejected credential of connection %s: %s", connection.id, error)
        self.token_monitor.mark_unauthorized(connection.id)
        return SyncResult(
            connection_id=connection.id,
            status=SyncStatus.TOKEN_EXPIRED,
            errors=[str(error)],
        )

    @staticmethod
    def _failed(connection_id: str, message: str) -> SyncResult:
        return SyncResult(connection_id=connection_id, status=SyncStatus.FAILED, errors=[message])
