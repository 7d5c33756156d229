"""Authentication strategies and credential containers.

Request signing is outside the scope of the client; a strategy only has to
place the right ``Authorization`` header on an outgoing request. The transport
keeps one strategy per :class:`~tweetloom.types.AuthMode`.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, SecretStr

from .exceptions import AuthError, ConfigurationError
from .log_config import logger


class AuthStrategy(Protocol):
    """Protocol defining the interface for authentication strategies."""

    async def async_authenticate(self, request: httpx.Request) -> None:
        """
        Asynchronously modifies the request to add authentication information.

        Args:
            request: The httpx.Request object to modify.

        Raises:
            AuthError: If authentication fails (e.g., token fetching).
        """
        ...

    async def async_close(self) -> None:
        """Closes any resources held by the strategy. Must be idempotent."""
        ...


class NoAuth:
    """Strategy for requests requiring no authentication."""

    async def async_authenticate(self, request: httpx.Request) -> None:
        logger.trace("Using NoAuth strategy, no authentication applied.")

    async def async_close(self) -> None:
        """No resources to close for NoAuth, this method is a no-op."""


class BearerTokenAuth:
    """Adds a static ``Authorization: Bearer <token>`` header.

    Used both for app-only bearer tokens and for OAuth2 user access tokens;
    the transport decides which mode a given instance serves.
    """

    def __init__(self, token: str | None):
        if not token:
            raise ConfigurationError("BearerTokenAuth requires a non-empty 'token'.")
        self._token: str = token
        logger.debug("BearerTokenAuth initialized.")

    async def async_authenticate(self, request: httpx.Request) -> None:
        logger.trace("Authenticating request using BearerTokenAuth.")
        request.headers["Authorization"] = f"Bearer {self._token}"

    async def async_close(self) -> None:
        """No resources to close for BearerTokenAuth, this method is a no-op."""


class ClientCredentialsAuth:
    """Obtains an app-only bearer token through the OAuth2 client credentials grant.

    The consumer key and secret are exchanged for a token once; the token is
    then reused for every request. A lock prevents concurrent exchanges.

    Attributes:
        _consumer_key: The application's consumer key.
        _consumer_secret: The application's consumer secret.
        _token_url: The URL of the OAuth2 token endpoint.
        _access_token: The currently active bearer token.
        _token_client: An internal httpx.AsyncClient for fetching the token.
        _fetch_lock: An asyncio.Lock to prevent concurrent token fetching.
    """

    def __init__(
        self,
        consumer_key: str | None,
        consumer_secret: str | None,
        token_url: str | None,
    ):
        if not all([consumer_key, consumer_secret, token_url]):
            raise ConfigurationError(
                "ClientCredentialsAuth requires 'consumer_key', 'consumer_secret', and 'token_url'."
            )
        assert consumer_key is not None
        assert consumer_secret is not None
        assert token_url is not None
        self._consumer_key: str = consumer_key
        self._consumer_secret: str = consumer_secret
        self._token_url: str = token_url
        self._access_token: str | None = None
        self._token_client: httpx.AsyncClient | None = None
        self._fetch_lock = asyncio.Lock()
        logger.debug("ClientCredentialsAuth initialized.")

    async def _get_token_client(self) -> httpx.AsyncClient:
        if self._token_client is None:
            self._token_client = httpx.AsyncClient(timeout=15.0)
        return self._token_client

    async def fetch_access_token(self) -> str:
        """Fetches the bearer token, exchanging the consumer keys if needed.

        Returns:
            The bearer token.

        Raises:
            AuthError: If the exchange fails or the response carries no token.
        """
        async with self._fetch_lock:
            if self._access_token:
                return self._access_token

            logger.info(f"Fetching new bearer token from {self._token_url}")
            client = await self._get_token_client()
            try:
                response = await client.post(
                    url=self._token_url,
                    auth=httpx.BasicAuth(
                        username=self._consumer_key, password=self._consumer_secret
                    ),
                    data={"grant_type": "client_credentials"},
                )
                response.raise_for_status()
                token_data = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"HTTP error fetching token: {e.response.status_code} - {e.response.text}"
                )
                raise AuthError(
                    f"Failed to fetch bearer token: {e.response.status_code} - {e.response.text}",
                    response=e.response,
                ) from e
            except (httpx.RequestError, ValueError) as e:
                logger.error(f"Error fetching token: {e}")
                raise AuthError(f"Failed to fetch bearer token: {e}") from e

            access_token = token_data.get("access_token") if isinstance(token_data, dict) else None
            if not access_token:
                raise AuthError("Access token not found in token response.")
            if str(token_data.get("token_type", "bearer")).lower() != "bearer":
                raise AuthError(
                    f"Unexpected token type in token response: {token_data.get('token_type')}"
                )
            logger.info("Successfully fetched new bearer token.")
            self._access_token = access_token
            return access_token

    async def async_authenticate(self, request: httpx.Request) -> None:
        logger.trace("Authenticating request using ClientCredentialsAuth.")
        token = self._access_token or await self.fetch_access_token()
        request.headers["Authorization"] = f"Bearer {token}"

    async def async_close(self) -> None:
        """Closes the internal HTTP client used for token fetching."""
        if self._token_client:
            await self._token_client.aclose()
            self._token_client = None
            logger.debug("ClientCredentialsAuth internal client closed.")


class ClientCredentials(BaseModel):
    """Credentials for a full user-context login.

    Secrets are held as ``SecretStr`` so they never show up in reprs, logs or
    dumps; read them with ``get_secret_value()``.

    Attributes:
        bearer_token: App-only bearer token used for bearer-mode requests.
        user_access_token: OAuth2 user access token used for user-context requests.
    """

    bearer_token: SecretStr
    user_access_token: SecretStr

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientCredentials":
        """Builds credentials from a mapping using snake_case or camelCase keys."""
        aliases = {"bearerToken": "bearer_token", "userAccessToken": "user_access_token"}
        return cls.model_validate({aliases.get(k, k): v for k, v in data.items()})

    def bearer_strategy(self) -> BearerTokenAuth:
        return BearerTokenAuth(self.bearer_token.get_secret_value())

    def user_context_strategy(self) -> BearerTokenAuth:
        return BearerTokenAuth(self.user_access_token.get_secret_value())
