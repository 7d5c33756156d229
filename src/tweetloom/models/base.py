"""Base Pydantic models for cached API entities.

Every entity the client hands out is an instance of a ``BaseEntity``
subclass owned by an :class:`~tweetloom.store.EntityStore`. Entities are
updated in place when later responses mention them again, so references held
by callers always observe the most recent data.
"""

from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, PrivateAttr

if TYPE_CHECKING:
    from ..store import EntityCache


class BaseEntity(BaseModel):
    """A cached API object identified by an immutable identifier.

    Fields the API never sent stay unset: they read as ``None`` but are absent
    from :meth:`to_dict` and from ``model_fields_set``. Unknown fields are kept
    as extras so newer API fields survive a round trip.

    Attributes:
        id_field: Name of the payload field holding the identifier.
    """

    id_field: ClassVar[str] = "id"

    model_config = ConfigDict(extra="allow")

    _cache: "EntityCache | None" = PrivateAttr(default=None)

    @property
    def identifier(self) -> str:
        return getattr(self, self.id_field)

    def merge(self, incoming: "BaseEntity") -> None:
        """Copy every field ``incoming`` carries onto this entity.

        Fields absent from ``incoming`` are left untouched, never cleared.
        """
        declared = type(self).model_fields
        for name in incoming.model_fields_set:
            if name in declared:
                setattr(self, name, getattr(incoming, name))
        if incoming.model_extra:
            if self.__pydantic_extra__ is None:
                self.__pydantic_extra__ = {}
            self.__pydantic_extra__.update(incoming.model_extra)

    def to_dict(self) -> dict[str, Any]:
        """Return the fields seen so far, in API (JSON) form."""
        declared = {
            name for name in self.model_fields_set if name in type(self).model_fields
        }
        data = self.model_dump(include=declared, mode="json") if declared else {}
        data.update(self.model_extra or {})
        return data

    def _related(self, kind: str, identifier: str | None) -> "BaseEntity | None":
        """Look up a related entity in the owning cache without fetching."""
        if self._cache is None or identifier is None:
            return None
        return self._cache.store(kind).resolve(identifier)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id_field}={self.identifier!r})"
