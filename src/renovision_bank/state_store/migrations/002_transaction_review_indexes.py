"""
Migration 002: Indexes for the transaction review listing.

Listing filters by connection and status and orders by occurrence date.
"""

import sqlite3

VERSION = 2
NAME = "transaction_review_indexes"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create review listing indexes."""
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_bank_transactions_status "
        "ON bank_transactions(connection_id, status)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_bank_transactions_occurred "
        "ON bank_transactions(occurred_at)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Drop review listing indexes."""
    conn.execute("DROP INDEX IF EXISTS idx_bank_transactions_status")
    conn.execute("DROP INDEX IF EXISTS idx_bank_transactions_occurred")
