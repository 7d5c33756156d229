"""The client facade tying transport, cache, books and streams together.

A :class:`Client` is the one object applications hold. It logs in at one of
two capability tiers, hands out books for the paginated endpoints, opens the
subscribed streams once ready and exposes every entity seen so far through
its stores.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Self

import httpx
from pydantic import ValidationError

from .auth import AuthStrategy, BearerTokenAuth, ClientCredentials, ClientCredentialsAuth
from .books import Book, validate_options
from .config import ClientSettings, QueryParameters, get_settings
from .constants import ClientEvent
from .endpoints import BOOK_DEFINITIONS, USERS_ME, BaseBookOptions
from .events import EventEmitter, EventHandler, coerce_event
from .exceptions import (
    ConfigurationError,
    InvalidArgumentError,
    LoginError,
    TweetloomError,
    UserContextRequiredError,
)
from .log_config import logger
from .models import MatchingRule, Tweet, TweetList, User
from .rest import RestClient
from .store import EntityCache, EntityStore
from .streams import FilteredStreamConsumer, SampledStreamConsumer, StreamConsumer
from .types import AuthMode
from .unwrapper import EnvelopeUnwrapper

STREAM_CONSUMERS: dict[ClientEvent, type[StreamConsumer]] = {
    ClientEvent.FILTERED_TWEET_CREATE: FilteredStreamConsumer,
    ClientEvent.SAMPLED_TWEET_CREATE: SampledStreamConsumer,
}
"""Events that open a stream at login, and the consumer serving each."""


class Client:
    """Asynchronous client for the Twitter API v2.

    The client owns the HTTP transport, the shared entity cache, the event
    handlers and the stream consumers. It knows which capability tier is
    active: after :meth:`login_with_bearer_token` or
    :meth:`login_with_app_credentials` only app-only endpoints are available;
    after :meth:`login` user-context endpoints and :attr:`me` are too.

    Typical usage:
    ```python
    async with Client(events=["SAMPLED_TWEET_CREATE"]) as client:
        client.on("sampledTweetCreate", lambda tweet: print(tweet.text))
        await client.login_with_bearer_token(token)
        book = client.create_book("SearchTweetsBook", {"query": "python"})
        tweets = await book.fetch_next_page()
    ```

    Attributes:
        rest (RestClient): The HTTP transport.
        cache (EntityCache): Every entity any response has mentioned.
        me (User | None): The authenticated user after a user-context login.
        ready_at (datetime | None): When the last successful login completed.
        _settings (ClientSettings): The resolved settings for this client instance.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        events: list[ClientEvent | str] | None = None,
        query_parameters: QueryParameters | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initializes the Client.

        Args:
            settings: An optional `ClientSettings` instance. If `None`, global
                settings are loaded via `tweetloom.config.get_settings()`.
            events: Stream events to subscribe to at login. Overrides
                `settings.events` when given.
            query_parameters: Field selections sent with every query. Overrides
                `settings.query_parameters` when given.
            http_client: An optional pre-configured `httpx.AsyncClient`. The
                caller remains responsible for closing it.
        """
        self._settings: ClientSettings = settings or get_settings()
        self.events: list[ClientEvent] = (
            [coerce_event(event) for event in events]
            if events is not None
            else list(self._settings.events)
        )
        self.query_parameters: QueryParameters = (
            query_parameters or self._settings.query_parameters
        )

        self.rest = RestClient(self._settings, http_client=http_client)
        self.cache = EntityCache(self._settings.entity_cache_max_size)
        self._emitter = EventEmitter()
        self._unwrapper = EnvelopeUnwrapper()
        self._streams: dict[str, StreamConsumer] = {}
        self._credentials: ClientCredentials | None = None

        self.me: User | None = None
        self.ready_at: datetime | None = None
        logger.debug(
            f"Client initialized: events={[event.value for event in self.events]}"
        )

    # --- Entity stores ---

    @property
    def tweets(self) -> EntityStore[Tweet]:
        return self.cache.tweets

    @property
    def users(self) -> EntityStore[User]:
        return self.cache.users

    @property
    def lists(self) -> EntityStore[TweetList]:
        return self.cache.lists

    @property
    def matching_rules(self) -> EntityStore[MatchingRule]:
        return self.cache.rules

    @property
    def has_user_context(self) -> bool:
        return self._credentials is not None

    @property
    def credentials(self) -> ClientCredentials | None:
        """The user-context credentials; secrets stay wrapped in ``SecretStr``."""
        return self._credentials

    @property
    def streams(self) -> dict[str, StreamConsumer]:
        return dict(self._streams)

    # --- Events ---

    def on(self, event: ClientEvent | str, handler: EventHandler) -> EventHandler:
        """Register a handler; usable as ``client.on("ready", handler)``."""
        return self._emitter.on(event, handler)

    def off(self, event: ClientEvent | str, handler: EventHandler) -> None:
        self._emitter.off(event, handler)

    # --- Login ---

    async def login_with_bearer_token(self, token: str) -> str:
        """Make the client ready for app-only requests.

        Emits ``ready`` and opens the subscribed streams.

        Raises:
            InvalidArgumentError: If ``token`` is not a non-empty string.
        """
        if not isinstance(token, str) or not token:
            raise InvalidArgumentError(
                f"token must be a non-empty string, got {type(token).__name__}"
            )
        self.rest.set_auth(AuthMode.BEARER, BearerTokenAuth(token))
        await self._become_ready()
        return token

    async def login_with_app_credentials(
        self,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
    ) -> str:
        """Exchange consumer keys for an app-only bearer token and log in with it.

        Keys not given are taken from the settings
        (``TWEETLOOM_CONSUMER_KEY`` / ``TWEETLOOM_CONSUMER_SECRET``).

        Returns:
            The bearer token issued by the API.

        Raises:
            ConfigurationError: If no consumer key or secret is available.
            AuthError: If the token exchange fails.
        """
        key = consumer_key or (
            self._settings.consumer_key.get_secret_value()
            if self._settings.consumer_key
            else None
        )
        secret = consumer_secret or (
            self._settings.consumer_secret.get_secret_value()
            if self._settings.consumer_secret
            else None
        )
        if not key or not secret:
            raise ConfigurationError(
                "login_with_app_credentials requires a consumer key and secret."
            )
        auth = ClientCredentialsAuth(key, secret, self._settings.token_url)
        try:
            token = await auth.fetch_access_token()
        finally:
            # The token stays cached on the strategy; only its HTTP client goes.
            await auth.async_close()
        self.rest.set_auth(AuthMode.BEARER, auth)
        await self._become_ready()
        return token

    async def login_from_settings(self) -> str:
        """Log in for app-only requests with whatever the settings provide.

        A configured bearer token is preferred; otherwise the consumer key and
        secret are exchanged for one.

        Raises:
            ConfigurationError: If the settings hold no usable credentials.
        """
        if self._settings.bearer_token:
            logger.info("Using the bearer token from settings.")
            return await self.login_with_bearer_token(
                self._settings.bearer_token.get_secret_value()
            )
        if self._settings.consumer_key and self._settings.consumer_secret:
            logger.info("Using the consumer key and secret from settings.")
            return await self.login_with_app_credentials()
        raise ConfigurationError(
            "No credentials configured: set TWEETLOOM_BEARER_TOKEN or "
            "TWEETLOOM_CONSUMER_KEY and TWEETLOOM_CONSUMER_SECRET."
        )

    async def login(
        self, credentials: ClientCredentials | Mapping[str, Any]
    ) -> ClientCredentials:
        """Make the client ready for both app-only and user-context requests.

        Resolves the authenticated user into :attr:`me` before emitting
        ``ready``. If that fails the client keeps whatever login it had before.

        Args:
            credentials: A `ClientCredentials` instance or a mapping with
                ``bearer_token`` and ``user_access_token`` (camelCase accepted).

        Raises:
            InvalidArgumentError: If ``credentials`` is not a mapping or lacks a field.
            LoginError: If the authenticated user could not be resolved.
        """
        if isinstance(credentials, ClientCredentials):
            resolved = credentials
        elif isinstance(credentials, Mapping):
            try:
                resolved = ClientCredentials.from_mapping(credentials)
            except ValidationError as e:
                raise InvalidArgumentError(f"Invalid credentials: {e}") from e
        else:
            raise InvalidArgumentError(
                f"credentials must be a mapping, got {type(credentials).__name__}"
            )

        previous = {mode: self.rest.get_auth(mode) for mode in AuthMode}
        self.rest.set_auth(AuthMode.BEARER, resolved.bearer_strategy())
        self.rest.set_auth(AuthMode.USER_CONTEXT, resolved.user_context_strategy())
        try:
            me = await self._fetch_me()
        except TweetloomError as e:
            self._restore_auth(previous)
            logger.error(f"User-context login failed: {e}")
            raise LoginError(f"Could not resolve the authenticated user: {e}") from e

        self._credentials = resolved
        self.me = me
        logger.info(f"Logged in as @{me.username or me.identifier}")
        await self._become_ready()
        return resolved

    async def _fetch_me(self) -> User:
        body = await self.rest.request(
            "GET",
            USERS_ME,
            params=self.query_parameters.user_query(),
            auth_mode=AuthMode.USER_CONTEXT,
        )
        envelope = self._unwrapper.parse(body)
        self._unwrapper.unwrap_single_item(envelope)
        return self.cache.upsert_envelope(envelope, "users")[0]  # type: ignore[return-value]

    def _restore_auth(self, strategies: dict[AuthMode, AuthStrategy | None]) -> None:
        for mode, strategy in strategies.items():
            if strategy is None:
                self.rest.clear_auth(mode)
            else:
                self.rest.set_auth(mode, strategy)

    async def _become_ready(self) -> None:
        self.ready_at = datetime.now(UTC)
        logger.info("Client is ready.")
        await self._emitter.emit(ClientEvent.READY, self)
        self._start_streams()

    def _start_streams(self) -> None:
        for event, consumer_class in STREAM_CONSUMERS.items():
            if event not in self.events or consumer_class.name in self._streams:
                continue
            consumer = consumer_class(
                self.rest,
                self.cache,
                self._emitter,
                self.query_parameters,
                max_record_bytes=self._settings.stream_max_record_bytes,
            )
            self._streams[consumer.name] = consumer
            consumer.start()

    # --- Books ---

    def create_book(
        self,
        name: str,
        options: BaseBookOptions | Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> Book:
        """Create a book for paging through one endpoint.

        Options may be passed as a mapping, an option model instance or
        keyword arguments, e.g.
        ``client.create_book("ComposedTweetsBook", user=user, max_results_per_page=5)``.

        Raises:
            InvalidArgumentError: For an unknown book name or invalid options.
            UserContextRequiredError: For user-context books without a
                user-context login.
        """
        definition = BOOK_DEFINITIONS.get(name) if isinstance(name, str) else None
        if definition is None:
            raise InvalidArgumentError(
                f"Unknown book {name!r}. Valid books: {', '.join(sorted(BOOK_DEFINITIONS))}"
            )
        if kwargs:
            if options is None:
                options = kwargs
            elif isinstance(options, Mapping):
                options = {**options, **kwargs}
            else:
                raise InvalidArgumentError(
                    "Pass book options either as a model instance or as keywords, not both."
                )
        validated = validate_options(definition, options)
        if definition.requires_user_context and not self.has_user_context:
            raise UserContextRequiredError(
                f"{name} requires a user-context login; use Client.login()."
            )
        return Book(
            definition,
            validated,
            rest=self.rest,
            cache=self.cache,
            query_parameters=self.query_parameters,
        )

    # --- Lifecycle ---

    async def aclose(self) -> None:
        """Stop every stream and close the transport."""
        for consumer in self._streams.values():
            await consumer.stop()
        await self.rest.aclose()
        logger.info("Client closed.")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.aclose()
