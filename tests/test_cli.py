"""Tests for CLI commands.

These tests verify that all CLI commands are properly registered and that
the store-only commands run end to end against a temporary database.
"""

from decimal import Decimal

import pytest

from renovision_bank.runner.main import create_cli, main
from renovision_bank.state_store import StateStore


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Config file pointing at a temporary database."""
    for name in ("BANK_CLIENT_ID", "BANK_CLIENT_SECRET", "RENOVISION_STATE_DB"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
provider:
  base_url: "http://bank.test/2.0"
  client_id: "client-1"
  client_secret: "secret-1"
state_db_path: "{tmp_path / 'state.db'}"
"""
    )
    return path


@pytest.fixture
def seeded_store(tmp_path, config_file):
    store = StateStore(tmp_path / "state.db")
    connection = store.upsert_connection("project-1", "user-1", "42", "tok", "Crédit Agricole")
    store.upsert_transaction(
        connection_id=connection.id,
        external_transaction_id="t1",
        amount=Decimal("12.00"),
        description="LEROY MERLIN",
        occurred_at="2025-03-01",
    )
    return store


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_all_commands_registered(self):
        parser = create_cli()
        subparsers_action = next(
            a for a in parser._actions if a.__class__.__name__ == "_SubParsersAction"
        )

        assert set(subparsers_action.choices) == {
            "init-config",
            "check",
            "connect-url",
            "authorize",
            "sync",
            "disconnect",
            "connections",
            "transactions",
            "convert",
            "ignore",
            "stats",
        }

    def test_sync_options(self):
        parser = create_cli()

        args = parser.parse_args(["sync", "--all", "--workers", "3"])
        assert args.all is True
        assert args.workers == 3
        assert args.connection_id is None

        args = parser.parse_args(["sync", "abc"])
        assert args.connection_id == "abc"

    def test_transactions_status_choices(self):
        parser = create_cli()

        with pytest.raises(SystemExit):
            parser.parse_args(["transactions", "--project", "p", "--status", "PENDING"])


class TestCLICommands:
    """Commands run through main()."""

    def test_no_command(self):
        assert main([]) == 1

    def test_init_config(self, tmp_path):
        path = tmp_path / "new.yaml"

        assert main(["-c", str(path), "init-config"]) == 0
        assert path.exists()
        assert main(["-c", str(path), "init-config"]) == 1

    def test_provider_command_requires_credentials(self, tmp_path, monkeypatch, capsys):
        monkeypatch.delenv("BANK_CLIENT_ID", raising=False)
        monkeypatch.delenv("BANK_CLIENT_SECRET", raising=False)

        assert main(["-c", str(tmp_path / "absent.yaml"), "sync", "--all"]) == 1
        assert "Invalid config" in capsys.readouterr().out

    def test_connections(self, config_file, seeded_store, capsys):
        assert main(["-c", str(config_file), "connections"]) == 0
        assert "Crédit Agricole" in capsys.readouterr().out

    def test_transactions_json(self, config_file, seeded_store, capsys):
        assert main(["-c", str(config_file), "transactions", "--project", "project-1", "--json"]) == 0
        out = capsys.readouterr().out
        assert '"total": 1' in out
        assert "Matériaux" in out

    @pytest.mark.parametrize("paging", [["--limit", "0"], ["--offset=-1"]])
    def test_transactions_bad_paging(self, config_file, seeded_store, capsys, paging):
        args = ["-c", str(config_file), "transactions", "--project", "project-1", *paging]

        assert main(args) == 1
        assert "❌" in capsys.readouterr().out

    def test_ignore_then_convert(self, config_file, seeded_store):
        tx = seeded_store.get_transaction_by_external_id("t1")

        assert main(["-c", str(config_file), "ignore", tx.id]) == 0
        assert main(["-c", str(config_file), "convert", tx.id, "expense-1"]) == 1

    def test_stats(self, config_file, seeded_store, capsys):
        assert main(["-c", str(config_file), "stats", "--project", "project-1"]) == 0
        assert "12.00" in capsys.readouterr().out

    def test_sync_all_without_connections(self, config_file, capsys):
        assert main(["-c", str(config_file), "sync", "--all"]) == 0
        assert "No active connection" in capsys.readouterr().out
