"""Entity cache and per-kind entity stores.

The cache normalizes every response the client receives into one object graph:
each (kind, identifier) pair maps to exactly one Python object, which is
merged in place whenever a later response mentions it again. Books and stream
consumers share the same cache, so a tweet delivered by a stream and the same
tweet returned by a search page are the same object.

Stores never fetch. Looking up an identifier that no response has mentioned
raises :class:`~tweetloom.exceptions.NotFoundError`.

The cache is unbounded by default. When a maximum size is configured every
store becomes an LRU mapping; an evicted entity is simply rebuilt as a new
object the next time a response mentions it.
"""

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any, Generic, TypeVar

from cachetools import LRUCache  # type: ignore[import-untyped]
from pydantic import ValidationError

from .exceptions import InvalidArgumentError, MalformedResponseError, NotFoundError
from .log_config import logger
from .models import BaseEntity, Envelope, MatchingRule, Media, Place, Poll, Tweet, TweetList, User

E = TypeVar("E", bound=BaseEntity)

ENTITY_MODELS: dict[str, type[BaseEntity]] = {
    "tweets": Tweet,
    "users": User,
    "lists": TweetList,
    "media": Media,
    "places": Place,
    "polls": Poll,
    "rules": MatchingRule,
}
"""Entity kinds known to the cache and the model each kind is stored as."""

INCLUDE_KINDS: frozenset[str] = frozenset({"tweets", "users", "media", "places", "polls"})
"""Keys of the ``includes`` side-table that map onto entity kinds."""


class EntityStore(Generic[E]):
    """Cache of one entity kind, keyed by identifier."""

    def __init__(
        self,
        kind: str,
        model: type[E],
        cache: "EntityCache",
        max_size: int | None = None,
    ):
        self.kind = kind
        self.model = model
        self._cache = cache
        self._entities: MutableMapping[str, E] = (
            LRUCache(maxsize=max_size) if max_size else {}
        )

    def upsert(self, identifier: str, raw: Mapping[str, Any]) -> E:
        """Insert or merge a raw API object and return the canonical instance.

        Args:
            identifier: Identifier of the object.
            raw: The object as sent by the API. May be partial.

        Returns:
            The single cached instance for ``identifier``.

        Raises:
            InvalidArgumentError: If ``identifier`` is not a non-empty string or
                contradicts the identifier inside ``raw``.
            MalformedResponseError: If ``raw`` does not validate as this kind.
        """
        if not isinstance(identifier, str) or not identifier:
            raise InvalidArgumentError(
                f"{self.model.__name__} identifier must be a non-empty string, got {identifier!r}"
            )
        payload = dict(raw)
        payload.setdefault(self.model.id_field, identifier)
        if payload[self.model.id_field] != identifier:
            raise InvalidArgumentError(
                f"Identifier {identifier!r} does not match payload "
                f"{self.model.id_field}={payload[self.model.id_field]!r}"
            )
        try:
            incoming = self.model.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponseError(
                f"Invalid {self.model.__name__} payload for {identifier!r}: {e}"
            ) from e

        existing = self._entities.get(identifier)
        if existing is None:
            incoming._cache = self._cache
            self._entities[identifier] = incoming
            return incoming
        existing.merge(incoming)
        return existing

    def add(self, raw: Mapping[str, Any]) -> E:
        """Upsert a raw object using the identifier it carries."""
        identifier = raw.get(self.model.id_field) if isinstance(raw, Mapping) else None
        if not isinstance(identifier, str) or not identifier:
            raise MalformedResponseError(
                f"{self.model.__name__} payload is missing its '{self.model.id_field}' field"
            )
        return self.upsert(identifier, raw)

    def get(self, identifier: str) -> E:
        """Return the cached entity for ``identifier``.

        Raises:
            NotFoundError: If no response has mentioned ``identifier``.
        """
        entity = self._entities.get(identifier)
        if entity is None:
            raise NotFoundError(
                f"{self.model.__name__} with ID '{identifier}' is not cached."
            )
        return entity

    def resolve(self, identifier: str) -> E | None:
        return self._entities.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[E]:
        return iter(list(self._entities.values()))

    def __repr__(self) -> str:
        return f"EntityStore(kind={self.kind!r}, size={len(self)})"


class EntityCache:
    """The shared object graph of one client: one :class:`EntityStore` per kind."""

    def __init__(self, max_size: int | None = None):
        self._stores: dict[str, EntityStore[Any]] = {
            kind: EntityStore(kind, model, self, max_size)
            for kind, model in ENTITY_MODELS.items()
        }
        logger.debug(
            f"EntityCache initialized ({'unbounded' if not max_size else f'LRU max {max_size} per kind'})."
        )

    @property
    def tweets(self) -> EntityStore[Tweet]:
        return self._stores["tweets"]

    @property
    def users(self) -> EntityStore[User]:
        return self._stores["users"]

    @property
    def lists(self) -> EntityStore[TweetList]:
        return self._stores["lists"]

    @property
    def media(self) -> EntityStore[Media]:
        return self._stores["media"]

    @property
    def places(self) -> EntityStore[Place]:
        return self._stores["places"]

    @property
    def polls(self) -> EntityStore[Poll]:
        return self._stores["polls"]

    @property
    def rules(self) -> EntityStore[MatchingRule]:
        return self._stores["rules"]

    def store(self, kind: str) -> EntityStore[Any]:
        try:
            return self._stores[kind]
        except KeyError:
            raise InvalidArgumentError(f"Unknown entity kind: {kind!r}") from None

    def upsert(self, kind: str, identifier: str, raw: Mapping[str, Any]) -> BaseEntity:
        return self.store(kind).upsert(identifier, raw)

    def upsert_includes(self, includes: Mapping[str, list[dict[str, Any]]]) -> None:
        for key, items in includes.items():
            if key not in INCLUDE_KINDS:
                logger.debug(f"Skipping unknown includes key {key!r}")
                continue
            store = self._stores[key]
            for item in items:
                store.add(item)

    def upsert_envelope(self, envelope: Envelope, kind: str) -> list[BaseEntity]:
        """Normalize a whole response into the cache.

        Every ``includes`` object is upserted before the primary payload, so
        relations of primary objects resolve as soon as they are returned.

        Args:
            envelope: The parsed response.
            kind: Entity kind of the primary payload.

        Returns:
            The cached primary entities, in response order.
        """
        store = self.store(kind)
        self.upsert_includes(envelope.includes)
        return [store.add(item) for item in envelope.primary_items()]
