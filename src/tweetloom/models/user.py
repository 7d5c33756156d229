"""Pydantic model for user accounts."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from .base import BaseEntity

if TYPE_CHECKING:
    from .tweet import Tweet


class User(BaseEntity):
    """A user account."""

    id: str
    name: str | None = None
    username: str | None = None
    created_at: datetime | None = None
    description: str | None = None
    location: str | None = None
    pinned_tweet_id: str | None = None
    profile_image_url: str | None = None
    protected: bool | None = None
    url: str | None = None
    verified: bool | None = None
    entities: dict[str, Any] | None = None
    public_metrics: dict[str, int] | None = None
    withheld: dict[str, Any] | None = None

    @property
    def pinned_tweet(self) -> "Tweet | None":
        return self._related("tweets", self.pinned_tweet_id)  # type: ignore[return-value]
