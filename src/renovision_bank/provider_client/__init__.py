"""
Bank aggregation provider API client.

Provides:
- Authorization code exchange (POST /token/access)
- Connection and account listing (GET /connections)
- Transaction listing per account (GET /accounts/{id}/transactions)
- Connection revocation (DELETE /connections/{id})
- Webhook signature verification

Every failure is mapped onto a typed ProviderError subclass so callers can
tell dead credentials from transient outages.
"""

from .client import (
    ProviderAccount,
    ProviderAPIError,
    ProviderClient,
    ProviderConnection,
    ProviderError,
    UpstreamNotFound,
    UpstreamUnauthorized,
    UpstreamUnavailable,
)
from .webhooks import compute_webhook_signature, verify_webhook_signature

__all__ = [
    "ProviderClient",
    "ProviderConnection",
    "ProviderAccount",
    "ProviderError",
    "ProviderAPIError",
    "UpstreamUnauthorized",
    "UpstreamUnavailable",
    "UpstreamNotFound",
    "compute_webhook_signature",
    "verify_webhook_signature",
]
