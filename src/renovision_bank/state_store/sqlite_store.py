"""
SQLite-based state store implementation.

Tables:
- bank_connections: Linked bank connections (one per provider connection id)
- bank_transactions: Reconciled bank transactions (one per provider transaction id)
"""

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class MalformedRecordError(ValueError):
    """A provider record cannot be stored (no usable external id or date)."""

    pass


class TransactionStatus(str, Enum):
    """Review status of a bank transaction. CONVERTED and IGNORED are terminal."""

    NEW = "NEW"
    CONVERTED = "CONVERTED"
    IGNORED = "IGNORED"


@dataclass
class ConnectionRecord:
    """Record of a linked bank connection."""

    id: str
    owner_project_id: str
    owner_user_id: str
    external_connection_id: str
    access_credential: str = field(repr=False)
    bank_label: str
    active: bool
    last_synced_at: str | None
    deleted_at: str | None
    created_at: str
    updated_at: str

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def needs_reconnection(self) -> bool:
        """Credential was flagged invalid; only a fresh authorization revives it."""
        return not self.active and not self.is_deleted

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ConnectionRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            owner_project_id=row["owner_project_id"],
            owner_user_id=row["owner_user_id"],
            external_connection_id=row["external_connection_id"],
            access_credential=row["access_credential"],
            bank_label=row["bank_label"],
            active=bool(row["active"]),
            last_synced_at=row["last_synced_at"],
            deleted_at=row["deleted_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class TransactionRecord:
    """Record of a reconciled bank transaction."""

    id: str
    connection_id: str
    external_transaction_id: str
    amount: Decimal  # Absolute value, see direction for the sign
    direction: str  # DEBIT or CREDIT
    description: str
    occurred_at: str  # ISO date
    category: str | None
    metadata: dict[str, Any]
    linked_expense_id: str | None
    status: TransactionStatus
    is_renovation_expense: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "TransactionRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            connection_id=row["connection_id"],
            external_transaction_id=row["external_transaction_id"],
            amount=Decimal(row["amount"]),
            direction=row["direction"],
            description=row["description"],
            occurred_at=row["occurred_at"],
            category=row["category"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            linked_expense_id=row["linked_expense_id"],
            status=TransactionStatus(row["status"]),
            is_renovation_expense=(
                bool(row["is_renovation_expense"])
                if "is_renovation_expense" in row.keys()
                else False
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class UpsertResult:
    """Outcome of a transaction upsert."""

    record: TransactionRecord
    created: bool


class StateStore:
    """
    SQLite-based state store for bank synchronization.

    Provides persistent tracking of:
    - Bank connections and their credential health
    - Reconciled transactions and their review status

    Every public method opens its own connection, so one instance can be shared
    by worker threads. Transaction upserts take the write lock up front
    (BEGIN IMMEDIATE) so concurrent passes over overlapping lookback windows
    cannot both insert the same external id.
    """

    def __init__(self, db_path: Path | str, run_migrations: bool = True, busy_timeout: float = 30.0):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
            busy_timeout: Seconds to wait for a competing writer
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout = busy_timeout
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS bank_connections (
                    id TEXT PRIMARY KEY,
                    owner_project_id TEXT NOT NULL,
                    owner_user_id TEXT NOT NULL,
                    external_connection_id TEXT NOT NULL UNIQUE,
                    access_credential TEXT NOT NULL,
                    bank_label TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1,
                    last_synced_at TEXT,
                    deleted_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS bank_transactions (
                    id TEXT PRIMARY KEY,
                    connection_id TEXT NOT NULL,
                    external_transaction_id TEXT NOT NULL UNIQUE,
                    amount TEXT NOT NULL,  -- Decimal as string
                    direction TEXT NOT NULL,
                    description TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    category TEXT,
                    metadata TEXT,  -- JSON object
                    linked_expense_id TEXT,
                    status TEXT NOT NULL DEFAULT 'NEW',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (connection_id) REFERENCES bank_connections(id)
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_bank_connections_project "
                "ON bank_connections(owner_project_id)"
            )

        # Readers must not block the writer during a sync pass
        conn = self._get_connection()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
        finally:
            conn.close()

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # Connection methods

    def upsert_connection(
        self,
        owner_project_id: str,
        owner_user_id: str,
        external_connection_id: str,
        access_credential: str,
        bank_label: str,
    ) -> ConnectionRecord:
        """
        Insert or re-link a connection keyed by the provider connection id.

        Re-linking refreshes the credential and bank label in place, reactivates
        the connection and clears a previous soft delete. Owner fields are kept.
        """
        now = _utcnow()

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO bank_connections
                (id, owner_project_id, owner_user_id, external_connection_id,
                 access_credential, bank_label, active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(external_connection_id) DO UPDATE SET
                    access_credential = excluded.access_credential,
                    bank_label = excluded.bank_label,
                    active = 1,
                    deleted_at = NULL,
                    updated_at = excluded.updated_at
            """,
                (
                    uuid.uuid4().hex,
                    owner_project_id,
                    owner_user_id,
                    external_connection_id,
                    access_credential,
                    bank_label,
                    now,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT * FROM bank_connections WHERE external_connection_id = ?",
                (external_connection_id,),
            ).fetchone()
            return ConnectionRecord.from_row(row)

    def get_connection(self, connection_id: str) -> ConnectionRecord | None:
        """Get a connection by local id (soft-deleted rows included)."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM bank_connections WHERE id = ?", (connection_id,)
            ).fetchone()
            return ConnectionRecord.from_row(row) if row else None

    def get_connection_by_external_id(self, external_connection_id: str) -> ConnectionRecord | None:
        """Get a connection by provider connection id."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM bank_connections WHERE external_connection_id = ?",
                (external_connection_id,),
            ).fetchone()
            return ConnectionRecord.from_row(row) if row else None

    def list_connections(
        self,
        project_id: str | None = None,
        active_only: bool = False,
    ) -> list[ConnectionRecord]:
        """List non-deleted connections, newest first."""
        query = "SELECT * FROM bank_connections WHERE deleted_at IS NULL"
        params: list[Any] = []
        if project_id is not None:
            query += " AND owner_project_id = ?"
            params.append(project_id)
        if active_only:
            query += " AND active = 1"
        query += " ORDER BY created_at DESC"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [ConnectionRecord.from_row(row) for row in rows]

    def deactivate_connection(self, connection_id: str) -> bool:
        """Set active=false. Returns True if the connection was active before."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE bank_connections
                SET active = 0, updated_at = ?
                WHERE id = ? AND active = 1
            """,
                (_utcnow(), connection_id),
            )
            return cursor.rowcount > 0

    def soft_delete_connection(self, connection_id: str) -> bool:
        """
        Deactivate and soft delete a connection.

        Transactions are kept for the audit trail. Returns True if a record
        was updated, False if not found or already deleted.
        """
        now = _utcnow()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE bank_connections
                SET active = 0, deleted_at = ?, updated_at = ?
                WHERE id = ? AND deleted_at IS NULL
            """,
                (now, now, connection_id),
            )
            return cursor.rowcount > 0

    def touch_last_synced(self, connection_id: str) -> None:
        """Record that a sync pass processed at least one sub-account."""
        now = _utcnow()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE bank_connections SET last_synced_at = ?, updated_at = ? WHERE id = ?",
                (now, now, connection_id),
            )

    # Transaction methods

    def upsert_transaction(
        self,
        connection_id: str,
        external_transaction_id: str | None,
        amount: Decimal,
        description: str,
        occurred_at: str,
        direction: str = "DEBIT",
        category: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UpsertResult:
        """
        Insert or refresh a transaction keyed by its provider transaction id.

        On conflict only amount, direction, description, occurrence date,
        category and metadata are overwritten: status and linked_expense_id
        survive every re-sync.

        Raises:
            MalformedRecordError: If the external id is missing or blank
        """
        if external_transaction_id is None or not str(external_transaction_id).strip():
            raise MalformedRecordError("Transaction has no external id; refusing to store it")
        external_transaction_id = str(external_transaction_id).strip()

        now = _utcnow()
        metadata_json = json.dumps(metadata or {}, default=str)

        with self._transaction(immediate=True) as conn:
            existed = conn.execute(
                "SELECT 1 FROM bank_transactions WHERE external_transaction_id = ?",
                (external_transaction_id,),
            ).fetchone()

            conn.execute(
                """
                INSERT INTO bank_transactions
                (id, connection_id, external_transaction_id, amount, direction, description,
                 occurred_at, category, metadata, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'NEW', ?, ?)
                ON CONFLICT(external_transaction_id) DO UPDATE SET
                    amount = excluded.amount,
                    direction = excluded.direction,
                    description = excluded.description,
                    occurred_at = excluded.occurred_at,
                    category = excluded.category,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
            """,
                (
                    uuid.uuid4().hex,
                    connection_id,
                    external_transaction_id,
                    str(amount),
                    direction,
                    description,
                    occurred_at,
                    category,
                    metadata_json,
                    now,
                    now,
                ),
            )

            row = conn.execute(
                "SELECT * FROM bank_transactions WHERE external_transaction_id = ?",
                (external_transaction_id,),
            ).fetchone()
            return UpsertResult(record=TransactionRecord.from_row(row), created=existed is None)

    def get_transaction(self, transaction_id: str) -> TransactionRecord | None:
        """Get a transaction by local id."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM bank_transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
            return TransactionRecord.from_row(row) if row else None

    def get_transaction_by_external_id(self, external_transaction_id: str) -> TransactionRecord | None:
        """Get a transaction by provider transaction id."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM bank_transactions WHERE external_transaction_id = ?",
                (external_transaction_id,),
            ).fetchone()
            return TransactionRecord.from_row(row) if row else None

    def count_transactions(self, connection_id: str | None = None) -> int:
        """Count stored transactions, optionally for one connection."""
        with self._transaction() as conn:
            if connection_id is None:
                row = conn.execute("SELECT COUNT(*) AS count FROM bank_transactions").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM bank_transactions WHERE connection_id = ?",
                    (connection_id,),
                ).fetchone()
            return row["count"] if row else 0

    def mark_transaction_converted(self, transaction_id: str, expense_id: str) -> bool:
        """
        Move a NEW transaction to CONVERTED and link it to an expense.

        Returns True if transitioned, False if missing or no longer NEW.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE bank_transactions
                SET status = 'CONVERTED', linked_expense_id = ?, is_renovation_expense = 1,
                    updated_at = ?
                WHERE id = ? AND status = 'NEW'
            """,
                (expense_id, _utcnow(), transaction_id),
            )
            return cursor.rowcount > 0

    def mark_transaction_ignored(self, transaction_id: str) -> bool:
        """
        Move a NEW transaction to IGNORED.

        Returns True if transitioned, False if missing or no longer NEW.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE bank_transactions
                SET status = 'IGNORED', updated_at = ?
                WHERE id = ? AND status = 'NEW'
            """,
                (_utcnow(), transaction_id),
            )
            return cursor.rowcount > 0

    def list_project_transactions(
        self,
        project_id: str,
        status: TransactionStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[TransactionRecord], int]:
        """
        Page through transactions of a project's non-deleted connections.

        Returns:
            (records ordered by occurrence date descending, total matching count)
        """
        where = "c.owner_project_id = ? AND c.deleted_at IS NULL"
        params: list[Any] = [project_id]
        if status is not None:
            where += " AND t.status = ?"
            params.append(TransactionStatus(status).value)

        with self._transaction() as conn:
            total_row = conn.execute(
                f"""
                SELECT COUNT(*) AS count
                FROM bank_transactions t JOIN bank_connections c ON c.id = t.connection_id
                WHERE {where}
            """,
                params,
            ).fetchone()
            rows = conn.execute(
                f"""
                SELECT t.*
                FROM bank_transactions t JOIN bank_connections c ON c.id = t.connection_id
                WHERE {where}
                ORDER BY t.occurred_at DESC, t.created_at DESC
                LIMIT ? OFFSET ?
            """,
                [*params, limit, offset],
            ).fetchall()
            return [TransactionRecord.from_row(row) for row in rows], total_row["count"]

    def transaction_stats(self, project_id: str) -> dict[str, dict[str, Any]]:
        """Count and amount total per status for a project's non-deleted connections."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT t.status, t.amount
                FROM bank_transactions t JOIN bank_connections c ON c.id = t.connection_id
                WHERE c.owner_project_id = ? AND c.deleted_at IS NULL
            """,
                (project_id,),
            ).fetchall()

        stats: dict[str, dict[str, Any]] = {}
        for row in rows:
            entry = stats.setdefault(row["status"], {"count": 0, "total": Decimal("0")})
            entry["count"] += 1
            entry["total"] += Decimal(row["amount"])
        return stats
