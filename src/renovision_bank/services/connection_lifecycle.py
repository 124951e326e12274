"""Bank connection lifecycle: linking, authorization and disconnection."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from renovision_bank.provider_client import ProviderError

from .bank_sync import SyncResult, SyncStatus

if TYPE_CHECKING:
    from renovision_bank.config import ProviderConfig
    from renovision_bank.provider_client import ProviderClient
    from renovision_bank.state_store import ConnectionRecord, StateStore

    from .bank_sync import SyncOrchestrator

logger = logging.getLogger(__name__)


class ConnectionLinkError(Exception):
    """Authorization did not yield a usable provider connection."""

    pass


class ConnectionNotFoundError(LookupError):
    """No non-deleted connection with this id."""

    pass


@dataclass
class AuthorizationResult:
    """Outcome of an authorization: the linked connection and its first sync."""

    connection: ConnectionRecord
    sync: SyncResult


@dataclass
class DisconnectResult:
    """Outcome of a disconnect. Local deletion always happens."""

    connection_id: str
    revoked_upstream: bool
    error: str | None = None


def encode_state(owner_user_id: str, owner_project_id: str) -> str:
    """Pack the owner ids into the opaque state round-tripped by the provider."""
    payload = json.dumps({"userId": owner_user_id, "projetId": owner_project_id})
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_state(state: str) -> tuple[str, str]:
    """
    Unpack a state produced by encode_state.

    Returns:
        (owner_user_id, owner_project_id)

    Raises:
        ValueError: If the state is not one we issued
    """
    try:
        data = json.loads(base64.b64decode(state.encode("ascii"), validate=True))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as e:
        raise ValueError("Invalid authorization state") from e

    if not isinstance(data, dict):
        raise ValueError("Invalid authorization state")
    user_id = data.get("userId")
    project_id = data.get("projetId")
    if not isinstance(user_id, str) or not isinstance(project_id, str) or not user_id or not project_id:
        raise ValueError("Authorization state is missing the owner ids")
    return user_id, project_id


class ConnectionLifecycle:
    """
    Links and unlinks bank connections.

    authorize() exchanges a one-time code for a credential, records the
    provider connection locally (re-linking updates in place) and runs one
    immediate sync. disconnect() revokes upstream on a best-effort basis and
    always soft-deletes locally.
    """

    def __init__(
        self,
        provider_client: ProviderClient,
        state_store: StateStore,
        orchestrator: SyncOrchestrator,
        provider_config: ProviderConfig | None = None,
    ) -> None:
        self.client = provider_client
        self.store = state_store
        self.orchestrator = orchestrator
        self.provider_config = provider_config

    def build_connect_url(self, owner_user_id: str, owner_project_id: str) -> str:
        """Build the provider webview URL where the user links a bank."""
        if self.provider_config is None:
            raise ValueError("Provider configuration is required to build the connect URL")

        query = urlencode(
            {
                "domain": self.provider_config.domain,
                "client_id": self.provider_config.client_id,
                "redirect_uri": self.provider_config.redirect_uri,
                "state": encode_state(owner_user_id, owner_project_id),
            }
        )
        return f"{self.provider_config.webview_url}?{query}"

    def authorize(self, code: str, owner_user_id: str, owner_project_id: str) -> AuthorizationResult:
        """
        Link the bank connection behind an authorization code.

        Args:
            code: One-time code handed back by the provider webview.
            owner_user_id: User linking the bank.
            owner_project_id: Project the connection belongs to.

        Returns:
            AuthorizationResult with the stored connection and its first sync

        Raises:
            ProviderError: If the code exchange or connection listing fails
            ConnectionLinkError: If the provider lists no connection for the code
        """
        access_token = self.client.exchange_code(code)
        if not access_token:
            raise ConnectionLinkError("Provider returned no access credential")

        upstream = self.client.list_connections(access_token)
        if not upstream:
            raise ConnectionLinkError("Provider lists no connection for this authorization")

        linked = upstream[0]
        if len(upstream) > 1:
            logger.info(
                "Provider lists %d connections for this credential, linking %s",
                len(upstream),
                linked.id,
            )

        connection = self.store.upsert_connection(
            owner_project_id=owner_project_id,
            owner_user_id=owner_user_id,
            external_connection_id=linked.id,
            access_credential=access_token,
            bank_label=linked.bank_label,
        )
        logger.info(
            "Linked %s (provider connection %s) to project %s",
            connection.bank_label,
            connection.external_connection_id,
            owner_project_id,
        )

        sync = self.orchestrator.synchronize(connection.id)
        if sync.status != SyncStatus.OK:
            logger.warning("First sync of %s: %s", connection.id, sync.message)

        refreshed = self.store.get_connection(connection.id)
        return AuthorizationResult(connection=refreshed or connection, sync=sync)

    def authorize_callback(self, code: str, state: str) -> AuthorizationResult:
        """Handle the provider redirect: decode the owner ids, then authorize."""
        owner_user_id, owner_project_id = decode_state(state)
        return self.authorize(code, owner_user_id, owner_project_id)

    def disconnect(self, connection_id: str) -> DisconnectResult:
        """
        Revoke a connection upstream and soft-delete it locally.

        A failed revocation is logged and reported, never raised: the local
        record is deleted regardless. An in-flight sync is not interrupted.

        Raises:
            ConnectionNotFoundError: If there is no non-deleted connection
        """
        connection = self.store.get_connection(connection_id)
        if connection is None or connection.is_deleted:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")

        revoked = True
        error = None
        try:
            self.client.revoke_connection(
                connection.access_credential, connection.external_connection_id
            )
        except ProviderError as e:
            revoked = False
            error = str(e)
            logger.warning(
                "Revoking provider connection %s failed, deleting locally anyway: %s",
                connection.external_connection_id,
                e,
            )

        self.store.soft_delete_connection(connection_id)
        logger.info("Disconnected connection %s", connection_id)
        return DisconnectResult(connection_id=connection_id, revoked_upstream=revoked, error=error)
