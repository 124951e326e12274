"""
Bank aggregation provider API client implementation.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

import requests
from requests.adapters import HTTPAdapter

if TYPE_CHECKING:
    from ..config import ProviderConfig

logger = logging.getLogger(__name__)

# Error codes/messages the provider uses for dead credentials
_UNAUTHORIZED_MARKERS = ("unauthorized", "expired", "invalid token", "invalid_token")


class ProviderError(Exception):
    """Base exception for provider client errors."""

    pass


class UpstreamUnauthorized(ProviderError):
    """Credential is invalid, revoked or expired. Never retried automatically."""

    pass


class UpstreamUnavailable(ProviderError):
    """Network failure, timeout or provider-side outage (transient)."""

    pass


class UpstreamNotFound(ProviderError):
    """Resource does not exist (yet) on the provider side."""

    pass


class ProviderAPIError(ProviderError):
    """API returned an unexpected error response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        response_body: str | None = None,
    ):
        self.status_code = status_code
        self.message = message
        self.code = code
        self.response_body = response_body

        detail = f"{code}: {message}" if code else message
        super().__init__(f"Provider API error {status_code}: {detail}")


@dataclass
class ProviderAccount:
    """A sub-account (checking, savings, card...) inside a provider connection."""

    id: str
    name: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class ProviderConnection:
    """A provider-side bank connection grouping one or more accounts."""

    id: str
    bank_label: str
    accounts: list[ProviderAccount] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "ProviderConnection":
        """Build from a `connections[]` entry expanded with accounts and connector."""
        connector = data.get("connector") or {}
        bank_label = connector.get("name") or data.get("bank_name") or "Banque inconnue"
        accounts = [
            ProviderAccount(
                id=str(acc["id"]),
                name=acc.get("name") or acc.get("original_name"),
                raw=acc,
            )
            for acc in data.get("accounts") or []
            if acc.get("id") is not None
        ]
        return cls(id=str(data.get("id")), bank_label=bank_label, accounts=accounts)


def _is_connection_entry(entry: object) -> bool:
    """Check a `connections[]` entry has the object shape from_api reads."""
    if not isinstance(entry, dict):
        return False
    if not isinstance(entry.get("connector") or {}, dict):
        return False
    accounts = entry.get("accounts") or []
    return isinstance(accounts, list) and all(isinstance(acc, dict) for acc in accounts)


def _looks_unauthorized(*values: object) -> bool:
    """Check provider error code/message for credential failure markers."""
    for value in values:
        if isinstance(value, str) and any(m in value.lower() for m in _UNAUTHORIZED_MARKERS):
            return True
    return False


class ProviderClient:
    """
    Client for the bank aggregation provider API.

    Features:
    - OAuth-style authorization code exchange
    - Connection and account listing
    - Transaction listing per account
    - Connection revocation

    No call is retried inside the client: a failure surfaces as a typed
    ProviderError and the next externally-triggered sync is the retry.
    """

    DEFAULT_TIMEOUT = 30

    TOKEN_ENDPOINT = "/token/access"
    CONNECTIONS_ENDPOINT = "/connections"
    TRANSACTIONS_ENDPOINT = "/accounts/{account_id}/transactions"
    CONNECTION_ENDPOINT = "/connections/{connection_id}"

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: int = DEFAULT_TIMEOUT,
        pool_maxsize: int = 10,
    ):
        """
        Initialize provider client.

        Args:
            base_url: Provider API root (e.g., "https://example.biapi.pro/2.0")
            client_id: Application client id
            client_secret: Application client secret
            redirect_uri: OAuth redirect URI registered with the provider
            timeout: Request timeout in seconds
            pool_maxsize: HTTP connection pool size (parallel syncs share it)
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        adapter = HTTPAdapter(max_retries=0, pool_maxsize=pool_maxsize)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    @classmethod
    def from_config(
        cls, provider_config: "ProviderConfig", pool_maxsize: int = 10
    ) -> "ProviderClient":
        """Create a client from a ProviderConfig."""
        return cls(
            base_url=provider_config.base_url,
            client_id=provider_config.client_id,
            client_secret=provider_config.client_secret,
            redirect_uri=provider_config.redirect_uri,
            timeout=provider_config.timeout_seconds,
            pool_maxsize=pool_maxsize,
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        access_token: str | None = None,
        params: dict | None = None,
        data: dict | None = None,
    ) -> requests.Response:
        """Make an API request and map failures onto the error taxonomy."""
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None

        logger.debug(f"API Request: {method} {url}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout for {url}: {e}")
            raise UpstreamUnavailable(f"Request to provider timed out: {e}") from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to {url}: {e}")
            raise UpstreamUnavailable(
                f"Failed to connect to provider at {self.base_url}: {e}"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error for {url}: {e}")
            raise UpstreamUnavailable(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        if not response.ok:
            self._raise_for_response(response)

        return response

    def _raise_for_response(self, response: requests.Response) -> None:
        """Translate a non-2xx response into a typed ProviderError."""
        status = response.status_code
        code = None
        message = response.reason or ""
        try:
            body = response.json()
            if isinstance(body, dict):
                code = body.get("code") or body.get("error")
                message = body.get("message") or body.get("description") or message
        except ValueError:
            pass

        if status in (401, 403) or _looks_unauthorized(code, message):
            logger.warning(f"Provider rejected credential ({status}): {code or message}")
            raise UpstreamUnauthorized(f"Provider rejected credential ({status}): {code or message}")
        if status == 404:
            raise UpstreamNotFound(f"Provider resource not found: {code or message}")
        if status == 429 or status >= 500:
            logger.error(f"Provider unavailable ({status}): {message}")
            raise UpstreamUnavailable(f"Provider unavailable ({status}): {message}")

        logger.error(f"API Error {status}: {message}")
        raise ProviderAPIError(
            status_code=status,
            message=message,
            code=code,
            response_body=response.text,
        )

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderAPIError(
                response.status_code, "Response body is not valid JSON", response_body=response.text
            ) from e
        if not isinstance(payload, dict):
            raise ProviderAPIError(response.status_code, "Unexpected response shape")
        return payload

    @classmethod
    def _json_list(cls, response: requests.Response, key: str) -> list:
        """Return the list under `key`, an absent or null key being empty."""
        items = cls._json(response).get(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise ProviderAPIError(response.status_code, "Unexpected response shape")
        return items

    def test_connection(self) -> bool:
        """Check the provider is reachable with these client credentials.

        The token endpoint answers 400/401 to an empty request, which still
        proves the API is up.
        """
        try:
            self._request("POST", self.TOKEN_ENDPOINT, data={})
            return True
        except (UpstreamUnauthorized, ProviderAPIError) as e:
            status = getattr(e, "status_code", 401)
            return status in (400, 401, 403)
        except ProviderError:
            return False

    def exchange_code(self, code: str) -> str:
        """
        Exchange a one-time authorization code for an access credential.

        Returns:
            Opaque access token

        Raises:
            ProviderError: On any upstream failure
            ProviderAPIError: If the response carries no access token
        """
        response = self._request(
            "POST",
            self.TOKEN_ENDPOINT,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
            },
        )
        access_token = self._json(response).get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProviderAPIError(response.status_code, "Token response has no access_token")

        logger.info("Exchanged authorization code for access token")
        return access_token

    def list_connections(self, access_token: str) -> list[ProviderConnection]:
        """List connections visible to a credential, with accounts and connector."""
        response = self._request(
            "GET",
            self.CONNECTIONS_ENDPOINT,
            access_token=access_token,
            params={"expand": "accounts,connector"},
        )
        connections = self._json_list(response, "connections")
        for entry in connections:
            if not _is_connection_entry(entry):
                raise ProviderAPIError(response.status_code, "Unexpected response shape")
        return [ProviderConnection.from_api(c) for c in connections if c.get("id") is not None]

    def list_transactions(
        self,
        access_token: str,
        account_id: str,
        min_date: date | None = None,
        max_date: date | None = None,
        limit: int = 1000,
    ) -> list[dict]:
        """
        List raw transactions of one account.

        Args:
            access_token: Connection credential
            account_id: Provider account id
            min_date: Oldest transaction date (inclusive)
            max_date: Newest transaction date (inclusive)
            limit: Page size (provider maximum is 1000)

        Returns:
            Upstream transaction dicts, unmodified
        """
        params: dict[str, Any] = {"limit": limit}
        if min_date:
            params["min_date"] = min_date.isoformat()
        if max_date:
            params["max_date"] = max_date.isoformat()

        response = self._request(
            "GET",
            self.TRANSACTIONS_ENDPOINT.format(account_id=account_id),
            access_token=access_token,
            params=params,
        )
        transactions = self._json_list(response, "transactions")

        if len(transactions) >= limit:
            logger.warning(
                f"Account {account_id} returned a full page ({limit}); older entries may be cut"
            )
        return transactions

    def revoke_connection(self, access_token: str, connection_id: str) -> None:
        """Revoke a connection on the provider side."""
        self._request(
            "DELETE",
            self.CONNECTION_ENDPOINT.format(connection_id=connection_id),
            access_token=access_token,
        )
        logger.info(f"Revoked provider connection {connection_id}")
