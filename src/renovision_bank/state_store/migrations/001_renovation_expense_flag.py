"""
Migration 001: Flag transactions that were converted into renovation expenses.
"""

import sqlite3

VERSION = 1
NAME = "renovation_expense_flag"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add is_renovation_expense to bank_transactions."""
    conn.execute(
        """
        ALTER TABLE bank_transactions ADD COLUMN is_renovation_expense INTEGER NOT NULL DEFAULT 0
    """
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """SQLite cannot drop the column without rebuilding the table."""
    raise NotImplementedError("Downgrade not supported for this migration")
