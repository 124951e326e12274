"""Test fixtures and utilities."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from renovision_bank.config import SyncConfig
from renovision_bank.provider_client import ProviderAccount, ProviderClient, ProviderConnection
from renovision_bank.state_store import StateStore

PROJECT_ID = "project-1"
USER_ID = "user-1"


def make_transaction(tx_id, value="-42.50", wording="LEROY MERLIN ACHAT", date="2025-03-01", **extra) -> dict:
    """Build a provider transaction payload."""
    tx = {
        "id": tx_id,
        "value": value,
        "wording": wording,
        "original_wording": f"CB {wording}",
        "date": date,
        "categories": [{"code": "home_improvement"}],
    }
    tx.update(extra)
    return tx


@pytest.fixture
def sample_connections_response() -> dict:
    """Provider GET /connections?expand=accounts,connector response."""
    return {
        "connections": [
            {
                "id": 42,
                "connector": {"name": "Crédit Agricole"},
                "accounts": [
                    {"id": "a1", "name": "Compte courant"},
                    {"id": "a2", "name": "Livret A"},
                ],
            }
        ]
    }


@pytest.fixture
def sample_transactions_response() -> dict:
    """Provider GET /accounts/{id}/transactions response."""
    return {
        "transactions": [
            make_transaction("t1", value="-120.00", wording="LEROY MERLIN CARRELAGE"),
            make_transaction("t2", value="35.10", wording="REMBOURSEMENT", date="2025-03-02"),
        ]
    }


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store."""
    return StateStore(temp_db)


@pytest.fixture
def connection(store):
    """An active connection whose provider id is "42"."""
    return store.upsert_connection(
        owner_project_id=PROJECT_ID,
        owner_user_id=USER_ID,
        external_connection_id="42",
        access_credential="token-abc",
        bank_label="Crédit Agricole",
    )


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(lookback_days=365, page_size=1000, max_workers=2)


@pytest.fixture
def fake_client() -> MagicMock:
    """Provider client double listing connection "42" with accounts a1 and a2."""
    client = MagicMock(spec=ProviderClient)
    client.list_connections.return_value = [
        ProviderConnection(
            id="42",
            bank_label="Crédit Agricole",
            accounts=[ProviderAccount(id="a1"), ProviderAccount(id="a2")],
        )
    ]
    client.list_transactions.return_value = []
    return client
