"""Credential health tracking for bank connections."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from renovision_bank.state_store import StateStore

logger = logging.getLogger(__name__)


class TokenHealthMonitor:
    """Flags connections whose provider credential stopped working.

    A flagged connection is never retried automatically, since hammering the
    provider with a dead credential can lock the user's bank access. The flag
    is one-way: only a fresh authorization (new code exchange) sets the
    connection active again, through StateStore.upsert_connection.
    """

    def __init__(self, state_store: StateStore) -> None:
        self.store = state_store

    def mark_unauthorized(self, connection_id: str) -> bool:
        """Deactivate a connection after the provider rejected its credential.

        Returns:
            True if the connection was active and is now flagged, False if it
            was already inactive or does not exist.
        """
        changed = self.store.deactivate_connection(connection_id)
        if changed:
            logger.warning(
                "Credential rejected for connection %s, marked as needing reconnection",
                connection_id,
            )
        else:
            logger.debug("Connection %s already inactive", connection_id)
        return changed

    def needs_reconnection(self, connection_id: str) -> bool:
        """True if the connection exists, is not deleted and was flagged."""
        connection = self.store.get_connection(connection_id)
        return connection is not None and connection.needs_reconnection
