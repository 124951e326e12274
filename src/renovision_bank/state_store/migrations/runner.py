"""
Migration runner for versioned schema changes of the bank state database.

Migration modules live next to this file and are named {version}_{name}.py,
e.g. 001_renovation_expense_flag.py. Each one defines:
- VERSION: int
- NAME: str
- upgrade(conn: Connection) -> None
- downgrade(conn: Connection) -> None  (optional, may raise NotImplementedError)
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

_PACKAGE = "renovision_bank.state_store.migrations"


@dataclass
class Migration:
    """A single schema step."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None] | None


def get_all_migrations() -> list[Migration]:
    """Load every migration module in this package, ordered by version.

    A module that fails to import is a packaging bug and is raised, not skipped:
    running later migrations on top of a missing one would corrupt the schema.
    """
    migrations = []
    for py_file in sorted(Path(__file__).parent.glob("[0-9][0-9][0-9]_*.py")):
        module = importlib.import_module(f"{_PACKAGE}.{py_file.stem}")
        migrations.append(
            Migration(
                version=module.VERSION,
                name=module.NAME,
                upgrade=module.upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        )
    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """Applies pending migrations and records them in a `migrations` table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    def applied_versions(self) -> set[int]:
        rows = self.conn.execute("SELECT version FROM migrations").fetchall()
        return {row[0] for row in rows}

    def pending(self) -> list[Migration]:
        applied = self.applied_versions()
        return [m for m in get_all_migrations() if m.version not in applied]

    def apply(self, migration: Migration) -> None:
        """Apply one migration and its bookkeeping row in a single transaction."""
        logger.info(f"Applying migration {migration.version:03d}_{migration.name}")
        try:
            migration.upgrade(self.conn)
            self.conn.execute(
                "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (
                    migration.version,
                    migration.name,
                    datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                ),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error(f"Migration {migration.version} failed: {e}")
            raise

    def run_pending(self) -> list[int]:
        """Apply all pending migrations in order. Returns the applied versions."""
        applied = []
        for migration in self.pending():
            self.apply(migration)
            applied.append(migration.version)

        if applied:
            logger.info(f"Applied {len(applied)} migrations: {applied}")
        else:
            logger.debug("No pending migrations")
        return applied
