"""
Configuration management (SSOT).

This module defines ALL configuration for the bank synchronization service.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Provider credentials are handed to the client explicitly, never read from
  process globals by the components that call the provider.
- Every upstream call carries a finite timeout.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml

# Largest page the provider accepts on the transactions endpoint
PROVIDER_MAX_PAGE_SIZE = 1000


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ProviderConfig:
    """Bank aggregation provider configuration.

    - base_url: API root used for every call (token exchange included)
    - webview_url: Browser-facing page where the user links a bank
    """

    base_url: str
    client_id: str
    client_secret: str
    redirect_uri: str = "http://localhost:5173/banque"
    webview_url: str = "https://webview.powens.com/connect"
    webhook_secret: str | None = None
    # Request timeout (seconds)
    timeout_seconds: int = 30

    @property
    def domain(self) -> str:
        """Provider host as expected by the webview."""
        return urlparse(self.base_url).netloc or self.base_url.split("/")[0]


@dataclass
class SyncConfig:
    """Synchronization settings."""

    # Fixed lookback window for every sync pass (days back from today)
    lookback_days: int = 365
    # Transactions requested per sub-account
    page_size: int = PROVIDER_MAX_PAGE_SIZE
    # Worker threads used when syncing several connections at once
    max_workers: int = 4


@dataclass
class Config:
    """Application configuration (SSOT)."""

    provider: ProviderConfig
    sync: SyncConfig = field(default_factory=SyncConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/bank_state.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.provider.base_url:
            errors.append("provider.base_url is required")
        if not self.provider.client_id:
            errors.append("provider.client_id is required")
        if not self.provider.client_secret:
            errors.append("provider.client_secret is required")
        if self.provider.timeout_seconds <= 0:
            errors.append("provider.timeout_seconds must be positive")

        if self.sync.lookback_days <= 0:
            errors.append("sync.lookback_days must be positive")
        if not 1 <= self.sync.page_size <= PROVIDER_MAX_PAGE_SIZE:
            errors.append(f"sync.page_size must be between 1 and {PROVIDER_MAX_PAGE_SIZE}")
        if self.sync.max_workers < 1:
            errors.append("sync.max_workers must be at least 1")

        return errors


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - BANK_PROVIDER_URL
    - BANK_CLIENT_ID
    - BANK_CLIENT_SECRET
    - BANK_REDIRECT_URI
    - BANK_WEBVIEW_URL
    - BANK_WEBHOOK_SECRET
    - BANK_TIMEOUT (request timeout in seconds)
    - BANK_SYNC_LOOKBACK_DAYS
    - RENOVISION_STATE_DB
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    provider_data = data.get("provider", {})
    provider = ProviderConfig(
        base_url=os.environ.get(
            "BANK_PROVIDER_URL",
            provider_data.get("base_url", "https://renovision-sandbox.biapi.pro/2.0"),
        ),
        client_id=os.environ.get("BANK_CLIENT_ID", provider_data.get("client_id", "")),
        client_secret=os.environ.get(
            "BANK_CLIENT_SECRET", provider_data.get("client_secret", "")
        ),
        redirect_uri=os.environ.get(
            "BANK_REDIRECT_URI",
            provider_data.get("redirect_uri", "http://localhost:5173/banque"),
        ),
        webview_url=os.environ.get(
            "BANK_WEBVIEW_URL",
            provider_data.get("webview_url", "https://webview.powens.com/connect"),
        ),
        webhook_secret=os.environ.get(
            "BANK_WEBHOOK_SECRET", provider_data.get("webhook_secret")
        ),
        timeout_seconds=int(
            os.environ.get("BANK_TIMEOUT", provider_data.get("timeout_seconds", 30))
        ),
    )

    sync_data = data.get("sync", {})
    lookback_days = sync_data.get("lookback_days", 365)
    lookback_env = os.environ.get("BANK_SYNC_LOOKBACK_DAYS", "")
    if lookback_env:
        try:
            lookback_days = int(lookback_env)
        except ValueError:
            pass  # Keep file value

    sync = SyncConfig(
        lookback_days=lookback_days,
        page_size=sync_data.get("page_size", PROVIDER_MAX_PAGE_SIZE),
        max_workers=sync_data.get("max_workers", 4),
    )

    state_db = os.environ.get(
        "RENOVISION_STATE_DB", data.get("state_db_path", "data/bank_state.db")
    )

    return Config(
        provider=provider,
        sync=sync,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Renovision bank synchronization configuration
#
# Secrets can be supplied through the environment instead of this file:
# BANK_CLIENT_ID, BANK_CLIENT_SECRET, BANK_WEBHOOK_SECRET

provider:
  base_url: "https://renovision-sandbox.biapi.pro/2.0"   # API root
  client_id: "YOUR_CLIENT_ID"
  client_secret: "YOUR_CLIENT_SECRET"
  redirect_uri: "http://localhost:5173/banque"          # OAuth callback
  webview_url: "https://webview.powens.com/connect"     # Bank linking page
  webhook_secret: null                                  # HMAC secret for webhooks
  timeout_seconds: 30                                   # Every upstream call

# Synchronization settings
sync:
  lookback_days: 365        # Fixed window fetched on every pass
  page_size: 1000           # Provider maximum
  max_workers: 4            # Parallel connections for "sync --all"

# State database path
state_db_path: "data/bank_state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
