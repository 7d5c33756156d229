"""The generic paginated fetch engine.

A :class:`Book` walks one paginated endpoint page by page. What endpoint it
calls and how its query looks comes entirely from its
:class:`~tweetloom.endpoints.BookDefinition`; all 19 variants share this
engine.

Example:
    ```python
    book = client.create_book("SearchTweetsBook", query="python", max_results_per_page=10)
    async for page in book.pages():
        for tweet_id, tweet in page.items():
            print(tweet_id, tweet.text)
    ```
"""

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .config import QueryParameters
from .cursor import CursorState, PaginationCursor
from .endpoints import COUNTS_KIND, BaseBookOptions, BookDefinition
from .exceptions import InvalidArgumentError, MalformedResponseError
from .log_config import logger
from .models import Envelope, TweetCountBucket
from .unwrapper import EnvelopeUnwrapper

if TYPE_CHECKING:
    from .rest import RestClient
    from .store import EntityCache


def validate_options(
    definition: BookDefinition, options: BaseBookOptions | Mapping[str, Any] | None
) -> BaseBookOptions:
    """Validate caller-supplied options against a variant's option model.

    Raises:
        InvalidArgumentError: If required options are missing, have the wrong
            type, or unknown options are given.
    """
    model = definition.options_model
    if isinstance(options, model):
        return options
    if options is None:
        options = {}
    if not isinstance(options, Mapping):
        raise InvalidArgumentError(
            f"Options for {definition.name} must be a mapping or {model.__name__}, "
            f"got {type(options).__name__}"
        )
    try:
        return model.model_validate(dict(options))
    except ValidationError as e:
        raise InvalidArgumentError(f"Invalid options for {definition.name}: {e}") from e


class Book:
    """A stateful paginator bound to one endpoint and one set of options.

    Books are created through ``Client.create_book``. Each call to
    :meth:`fetch_next_page` advances the book by one page; once the API stops
    returning a continuation token the book is exhausted and every further
    call raises :class:`~tweetloom.exceptions.PaginationExhaustedError`.

    Concurrent calls on one book are serialized, so a second call always sees
    the token produced by the first.
    """

    def __init__(
        self,
        definition: BookDefinition,
        options: BaseBookOptions,
        *,
        rest: "RestClient",
        cache: "EntityCache",
        query_parameters: QueryParameters | None = None,
    ):
        self.definition = definition
        self.options = options
        self.cursor = PaginationCursor(options.range_bounds())
        self._rest = rest
        self._cache = cache
        self._unwrapper = EnvelopeUnwrapper()
        self._path = definition.build_path(options)
        self._base_params = definition.build_params(
            options, query_parameters or QueryParameters()
        )
        self._lock = asyncio.Lock()

        self.result_count: int | None = None
        self.total_tweet_count: int | None = None
        logger.debug(f"{self.name} created for '{self._path}'")

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def has_more(self) -> bool:
        return self.cursor.has_more

    @property
    def total_results(self) -> int | None:
        """Result count reported by the most recent page."""
        return self.result_count

    def _page_params(self) -> dict[str, Any]:
        return {
            **self._base_params,
            **self.cursor.build_params(self.definition.token_param),
        }

    async def fetch_next_page(self) -> dict[str, Any]:
        """Fetch the next page and return its results keyed by identifier.

        The mapping preserves the order of the response. Tweet count books
        return :class:`~tweetloom.models.TweetCountBucket` values keyed by the
        bucket start instead of cached entities.

        Raises:
            PaginationExhaustedError: If the last page was already fetched.
            MalformedResponseError: If the response lacks its primary payload.
            TweetloomError: Any transport failure, unchanged.
        """
        async with self._lock:
            self.cursor.ensure_can_fetch()
            params = self._page_params()
            logger.debug(f"{self.name}: fetching '{self._path}' with params {params}")

            body = await self._rest.request(
                "GET",
                self._path,
                params=params,
                auth_mode=self.definition.auth_mode,
                endpoint=self.definition.path,
            )
            envelope = self._unwrapper.parse(body)
            items = self._unwrapper.unwrap_results(envelope)

            if self.definition.entity_kind == COUNTS_KIND:
                page = self._count_buckets(items)
                self.total_tweet_count = (
                    envelope.meta.total_tweet_count if envelope.meta else None
                )
            else:
                page = self._cache_page(envelope)

            state = self.cursor.advance(self._unwrapper.get_next_page_token(envelope))
            self.result_count = self._unwrapper.get_total_results(envelope)
            logger.debug(
                f"{self.name}: received {len(page)} result(s), cursor is {state.value}"
            )
            return page

    def _cache_page(self, envelope: Envelope) -> dict[str, Any]:
        entities = self._cache.upsert_envelope(envelope, self.definition.entity_kind)
        page: dict[str, Any] = {}
        for entity in entities:
            page.setdefault(entity.identifier, entity)
        return page

    def _count_buckets(self, items: list[dict[str, Any]]) -> dict[str, TweetCountBucket]:
        buckets: dict[str, TweetCountBucket] = {}
        for item in items:
            try:
                bucket = TweetCountBucket.model_validate(item)
            except ValidationError as e:
                raise MalformedResponseError(f"Invalid tweet count bucket: {e}") from e
            buckets[str(item["start"])] = bucket
        return buckets

    async def pages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every remaining page until the book is exhausted."""
        while self.cursor.state is not CursorState.EXHAUSTED:
            yield await self.fetch_next_page()

    async def __aiter__(self) -> AsyncIterator[Any]:
        """Yield the results of every remaining page, one at a time."""
        async for page in self.pages():
            for item in page.values():
                yield item

    def __repr__(self) -> str:
        return f"{self.name}(path={self._path!r}, cursor={self.cursor!r})"
