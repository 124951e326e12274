"""Tests for configuration loading."""

from pathlib import Path

import pytest

from renovision_bank.config import (
    PROVIDER_MAX_PAGE_SIZE,
    Config,
    ProviderConfig,
    SyncConfig,
    create_default_config,
    load_config,
)

ENV_VARS = [
    "BANK_PROVIDER_URL",
    "BANK_CLIENT_ID",
    "BANK_CLIENT_SECRET",
    "BANK_REDIRECT_URI",
    "BANK_WEBVIEW_URL",
    "BANK_WEBHOOK_SECRET",
    "BANK_TIMEOUT",
    "BANK_SYNC_LOOKBACK_DAYS",
    "RENOVISION_STATE_DB",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Make sure the host environment does not leak into config tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _provider(**overrides) -> ProviderConfig:
    values = {
        "base_url": "https://bank.test/2.0",
        "client_id": "client",
        "client_secret": "secret",
    }
    values.update(overrides)
    return ProviderConfig(**values)


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path):
        """A missing config file yields the default values."""
        config = load_config(tmp_path / "absent.yaml")

        assert config.provider.timeout_seconds == 30
        assert config.sync.lookback_days == 365
        assert config.sync.page_size == PROVIDER_MAX_PAGE_SIZE
        assert config.state_db_path == Path("data/bank_state.db")

    def test_reads_yaml_file(self, tmp_path):
        """Values are read from the YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text(
            """
provider:
  base_url: "https://bank.test/2.0"
  client_id: "abc"
  client_secret: "xyz"
  timeout_seconds: 10
sync:
  lookback_days: 90
  max_workers: 8
state_db_path: "/tmp/bank.db"
"""
        )

        config = load_config(path)

        assert config.provider.base_url == "https://bank.test/2.0"
        assert config.provider.client_id == "abc"
        assert config.provider.timeout_seconds == 10
        assert config.sync.lookback_days == 90
        assert config.sync.max_workers == 8
        assert config.state_db_path == Path("/tmp/bank.db")

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """Environment variables win over file values."""
        path = tmp_path / "config.yaml"
        path.write_text('provider:\n  client_id: "from-file"\n')
        monkeypatch.setenv("BANK_CLIENT_ID", "from-env")
        monkeypatch.setenv("BANK_TIMEOUT", "5")
        monkeypatch.setenv("BANK_SYNC_LOOKBACK_DAYS", "30")
        monkeypatch.setenv("RENOVISION_STATE_DB", str(tmp_path / "env.db"))

        config = load_config(path)

        assert config.provider.client_id == "from-env"
        assert config.provider.timeout_seconds == 5
        assert config.sync.lookback_days == 30
        assert config.state_db_path == tmp_path / "env.db"

    def test_invalid_lookback_env_keeps_file_value(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("sync:\n  lookback_days: 120\n")
        monkeypatch.setenv("BANK_SYNC_LOOKBACK_DAYS", "not-a-number")

        assert load_config(path).sync.lookback_days == 120

    def test_default_config_file_loads(self, tmp_path):
        """The generated template is valid YAML with the expected keys."""
        path = tmp_path / "nested" / "config.yaml"
        create_default_config(path)

        config = load_config(path)

        assert config.provider.client_id == "YOUR_CLIENT_ID"
        assert config.provider.webhook_secret is None
        assert config.sync.page_size == 1000


class TestValidate:
    """Tests for Config.validate."""

    def test_complete_config_is_valid(self):
        assert Config(provider=_provider()).validate() == []

    def test_missing_credentials(self):
        errors = Config(provider=_provider(client_id="", client_secret="")).validate()

        assert "provider.client_id is required" in errors
        assert "provider.client_secret is required" in errors

    def test_page_size_above_provider_maximum(self):
        config = Config(provider=_provider(), sync=SyncConfig(page_size=5000))

        assert any("page_size" in e for e in config.validate())

    def test_non_positive_values(self):
        config = Config(
            provider=_provider(timeout_seconds=0),
            sync=SyncConfig(lookback_days=0, max_workers=0),
        )

        errors = config.validate()

        assert "provider.timeout_seconds must be positive" in errors
        assert "sync.lookback_days must be positive" in errors
        assert "sync.max_workers must be at least 1" in errors

    def test_domain_is_host_only(self):
        assert _provider(base_url="https://bank.test/2.0/").domain == "bank.test"
