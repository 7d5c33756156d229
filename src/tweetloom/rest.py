"""HTTP transport for the tweetloom client.

This module provides the RestClient class, the only component that talks to
the network. It performs authorized JSON requests and opens streaming
responses, maps HTTP failures onto the tweetloom exception hierarchy, records
the rate limit headers of every response, and retries transient failures.
Pagination and caching live above it and never retry on their own.
"""

import ssl
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Self

import certifi
import httpx
import tenacity
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from .auth import AuthStrategy, NoAuth
from .config import ClientSettings
from .exceptions import (
    APIError,
    AuthError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestError,
    TimeoutError,
    TweetloomError,
    UserContextRequiredError,
)
from .log_config import logger
from .types import AuthMode, RequestData


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate limit window reported by the last response of an endpoint."""

    limit: int | None
    remaining: int | None
    reset_at: float | None


class RestClient:
    """Asynchronous HTTP transport for the REST API.

    Holds one authentication strategy per :class:`AuthMode`. Bearer requests
    fall back to ``NoAuth`` when nothing was configured, user-context requests
    fail with :class:`UserContextRequiredError` instead.

    Attributes:
        _settings: Configuration settings for the client.
        _base_url: The base URL for API requests.
        _retryable_status_codes: HTTP status codes that trigger a retry.
        _auth_strategies: Authentication strategy per auth mode.
        _http_client: The underlying httpx.AsyncClient for making requests.
        _should_close_client: Flag indicating if this instance owns the _http_client.
        rate_limits: Last observed rate limit window, keyed by endpoint
            template such as ``users/{id}/followers``.
    """

    DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset([500, 502, 503, 504])
    """Server errors considered transient. 429 is never retried here."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES,
    ):
        self._settings = settings
        self._base_url: str = (base_url or settings.api_base_url).rstrip("/")
        self._retryable_status_codes: frozenset[int] = retryable_status_codes
        self._auth_strategies: dict[AuthMode, AuthStrategy] = {}

        self._should_close_client = http_client is None
        self._http_client = http_client or self._create_default_http_client()

        self.rate_limits: dict[str, RateLimitInfo] = {}
        logger.debug(f"RestClient initialized for {self._base_url}")

    def _create_default_http_client(self) -> httpx.AsyncClient:
        """Create a default httpx.AsyncClient with configured settings."""
        try:
            verify_ssl: ssl.SSLContext | bool = ssl.create_default_context(
                cafile=certifi.where()
            )
            logger.debug("Using certifi SSL context.")
        except (OSError, ssl.SSLError):
            verify_ssl = True
            logger.warning(
                "certifi bundle failed to load. Using default SSL verification."
            )

        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._settings.request_timeout,
            verify=verify_ssl,
            headers={"User-Agent": self._settings.user_agent},
        )

    # --- Authentication ---

    def set_auth(self, mode: AuthMode, strategy: AuthStrategy) -> None:
        """Registers the strategy used for requests made in ``mode``."""
        self._auth_strategies[mode] = strategy
        logger.info(
            f"Using {type(strategy).__name__} for {mode.value} requests."
        )

    def get_auth(self, mode: AuthMode) -> AuthStrategy | None:
        """The strategy registered for ``mode``, or None."""
        return self._auth_strategies.get(mode)

    def clear_auth(self, mode: AuthMode) -> None:
        self._auth_strategies.pop(mode, None)

    def has_auth(self, mode: AuthMode) -> bool:
        return mode in self._auth_strategies

    def _strategy_for(self, mode: AuthMode) -> AuthStrategy:
        strategy = self._auth_strategies.get(mode)
        if strategy is not None:
            return strategy
        if mode is AuthMode.USER_CONTEXT:
            raise UserContextRequiredError(
                "This request requires user-context credentials; log in with Client.login()."
            )
        return NoAuth()

    # --- Response inspection ---

    def _record_rate_limit(self, endpoint: str, response: httpx.Response) -> RateLimitInfo:
        """Parse the x-rate-limit-* headers of ``response`` and remember them for ``endpoint``."""

        def _as_int(name: str) -> int | None:
            value = response.headers.get(name)
            return int(value) if value and value.isdigit() else None

        reset = _as_int("x-rate-limit-reset")
        info = RateLimitInfo(
            limit=_as_int("x-rate-limit-limit"),
            remaining=_as_int("x-rate-limit-remaining"),
            reset_at=float(reset) if reset is not None else None,
        )
        if info.limit is not None or info.remaining is not None:
            self.rate_limits[endpoint] = info
            logger.trace(
                f"Rate limit for {endpoint}: {info.remaining}/{info.limit}, reset at {info.reset_at}"
            )
        return info

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("title") or body)
        return str(body)

    def _raise_for_status(self, endpoint: str, response: httpx.Response) -> None:
        info = self._record_rate_limit(endpoint, response)
        if response.status_code < HTTPStatus.BAD_REQUEST:
            return
        detail = self._error_detail(response)
        if response.status_code == HTTPStatus.NOT_FOUND:
            raise NotFoundError(f"Resource not found: {detail}", response=response)
        if response.status_code == HTTPStatus.TOO_MANY_REQUESTS:
            logger.warning(
                f"Rate limit hit (429) for {endpoint}; window resets at {info.reset_at}."
            )
            raise RateLimitError(
                "API rate limit exceeded.", response=response, reset_at=info.reset_at
            )
        raise APIError(
            f"API request failed with status {response.status_code}: {detail}",
            response=response,
        )

    # --- Request pipeline ---

    def _build_request_data(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None,
        json_data: Any | None,
        auth_mode: AuthMode,
    ) -> RequestData:
        request_data = RequestData(
            method=method,
            url=f"{self._base_url}/{path.lstrip('/')}",
            params={k: v for k, v in params.items() if v is not None} if params else None,
            json_data=json_data,
            auth_mode=auth_mode,
        )

        if self._settings.pre_request_hooks:
            hook_params: dict[str, Any] | None = (
                dict(request_data.params) if request_data.params is not None else None
            )
            hook_headers = httpx.Headers(request_data.headers)
            logger.debug(
                f"Executing {len(self._settings.pre_request_hooks)} pre-request hooks "
                f"for {method} {request_data.url}"
            )
            for hook in self._settings.pre_request_hooks:
                try:
                    hook(method, request_data.url, hook_params, hook_headers)
                except Exception as e:
                    logger.error(
                        f"Error executing pre-request hook {getattr(hook, '__name__', str(hook))}: {e}"
                    )
            request_data.params = hook_params
            request_data.headers = dict(hook_headers.items())
        return request_data

    async def _authenticated_request(self, request_data: RequestData) -> httpx.Request:
        request = request_data.build_request()
        request.extensions["timeout"] = httpx.Timeout(
            self._settings.request_timeout
        ).as_dict()
        strategy = self._strategy_for(request_data.auth_mode)
        try:
            await strategy.async_authenticate(request)
        except AuthError:
            raise
        except httpx.HTTPError as e:
            raise AuthError(f"Authentication failed: {e}") from e
        if not request.headers.get("User-Agent"):
            request.headers["User-Agent"] = self._settings.user_agent
        return request

    async def _execute_single_request(
        self, endpoint: str, request_data: RequestData
    ) -> tuple[httpx.Response, Any]:
        """Execute one HTTP request attempt and decode its JSON body.

        Raises:
            RateLimitError: On 429 responses.
            NotFoundError: On 404 responses.
            APIError: For other HTTP error responses (4xx/5xx).
            MalformedResponseError: If a successful response is not JSON.
            TimeoutError: If the request times out.
            NetworkError: For network-related errors.
            RequestError: For other httpx request errors.
        """
        request = await self._authenticated_request(request_data)
        try:
            logger.debug(f"Sending request: {request.method} {request.url}")
            response = await self._http_client.send(request)
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {request.url}")
            raise TimeoutError("Request timed out", request=request) from e
        except httpx.NetworkError as e:
            logger.error(f"Network error occurred for {request.url}: {e}")
            raise NetworkError(
                f"Network error for {request.url}: {e}", request=request
            ) from e
        except httpx.RequestError as e:
            logger.error(f"HTTP request error for {request.url}: {e}")
            raise RequestError(
                f"HTTP request error for {request.url}: {e}", request=request
            ) from e

        logger.debug(f"Received response: {response.status_code} for {request.url}")
        self._raise_for_status(endpoint, response)

        body: Any = None
        if response.status_code != HTTPStatus.NO_CONTENT and response.content:
            try:
                body = response.json()
            except ValueError as e:
                raise MalformedResponseError(
                    f"Response body is not valid JSON: {e}", response=response
                ) from e

        for hook in self._settings.post_request_hooks:
            try:
                hook(response, body, 1)
            except Exception as e:
                logger.error(
                    f"Error executing post-request hook {getattr(hook, '__name__', str(hook))}: {e}"
                )
        return response, body

    def _should_retry_request(self, retry_state: tenacity.RetryCallState) -> bool:
        """Predicate for tenacity: retry timeouts, network errors and 5xx responses."""
        outcome = retry_state.outcome
        if not outcome or not outcome.failed:
            return False

        exc = outcome.exception()
        if isinstance(exc, RateLimitError):
            return False
        if isinstance(exc, TimeoutError | NetworkError):
            logger.warning(f"Retrying due to {type(exc).__name__}")
            return True
        if isinstance(exc, APIError) and exc.response is not None:
            status_code = exc.response.status_code
            if status_code in self._retryable_status_codes:
                logger.warning(f"Retrying due to status code {status_code}")
                return True
        return False

    async def _before_retry_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        if not retry_state.outcome:
            return
        exc = retry_state.outcome.exception()
        sleep_time = (
            getattr(retry_state.next_action, "sleep", 0)
            if retry_state.next_action
            else 0
        )
        logger.info(
            f"Retrying request in {sleep_time:.2f} seconds after "
            f"{retry_state.attempt_number} attempt(s) due to: {type(exc).__name__} - {exc}"
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any | None = None,
        auth_mode: AuthMode = AuthMode.BEARER,
        endpoint: str | None = None,
    ) -> Any:
        """Perform an authorized request and return the decoded JSON body.

        Args:
            method: HTTP method (GET, POST, ...).
            path: Request path relative to the base URL.
            params: Query parameters; ``None`` values are dropped.
            json: JSON request body.
            auth_mode: Which credentials authorize the request.
            endpoint: The endpoint template ``path`` was filled from; keys
                :attr:`rate_limits`. Defaults to ``path``.

        Returns:
            Any: The decoded JSON body, or None for empty responses.

        Raises:
            UserContextRequiredError: If ``auth_mode`` is user context and no
                user-context strategy is registered.
            TweetloomError: Transport failures, after retries are exhausted.
        """
        request_data = self._build_request_data(method, path, params, json, auth_mode)
        retry_strategy = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retries + 1),
            wait=wait_exponential(multiplier=self._settings.backoff_factor),
            retry=self._should_retry_request,
            reraise=True,
            before_sleep=self._before_retry_sleep,
        )
        try:
            _, body = await retry_strategy(
                self._execute_single_request, endpoint or path, request_data
            )
        except TweetloomError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise
        return body

    @asynccontextmanager
    async def open_stream(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        auth_mode: AuthMode = AuthMode.BEARER,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a long-lived streaming response.

        Yields an async iterator over the raw body chunks. The connection is
        closed when the context exits. Streams are never retried here.

        Raises:
            APIError: If the server rejects the connection.
            TimeoutError | NetworkError | RequestError: On transport failures,
                while connecting or while reading.
        """
        request_data = self._build_request_data("GET", path, params, None, auth_mode)
        request = await self._authenticated_request(request_data)
        request.extensions["timeout"] = httpx.Timeout(
            self._settings.request_timeout, read=self._settings.stream_read_timeout
        ).as_dict()

        logger.info(f"Opening stream: {request.url}")
        try:
            response = await self._http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise TimeoutError("Stream connection timed out", request=request) from e
        except httpx.NetworkError as e:
            raise NetworkError(f"Network error for {request.url}: {e}", request=request) from e
        except httpx.RequestError as e:
            raise RequestError(f"HTTP request error for {request.url}: {e}", request=request) from e

        try:
            if response.status_code >= HTTPStatus.BAD_REQUEST:
                await response.aread()
                self._raise_for_status(path, response)
            self._record_rate_limit(path, response)
            yield self._iter_stream(response, request)
        finally:
            await response.aclose()
            logger.info(f"Stream closed: {request.url}")

    @staticmethod
    async def _iter_stream(
        response: httpx.Response, request: httpx.Request
    ) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            raise TimeoutError("Stream read timed out", request=request) from e
        except httpx.NetworkError as e:
            raise NetworkError(f"Stream connection lost: {e}", request=request) from e
        except httpx.RequestError as e:
            raise RequestError(f"Stream read failed: {e}", request=request) from e

    async def aclose(self) -> None:
        """Close the underlying HTTP client and every auth strategy."""
        if self._should_close_client and not self._http_client.is_closed:
            await self._http_client.aclose()
            logger.info("RestClient internal HTTP client closed.")
        for strategy in self._auth_strategies.values():
            await strategy.async_close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.aclose()
