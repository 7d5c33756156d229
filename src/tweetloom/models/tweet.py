"""Pydantic models for tweets and tweet count buckets."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from .base import BaseEntity

if TYPE_CHECKING:
    from .media import Media, Place, Poll
    from .user import User


class ReferencedTweet(BaseModel):
    """A reference from one tweet to another (reply, quote or retweet)."""

    type: str
    id: str

    model_config = ConfigDict(extra="allow")


class Attachments(BaseModel):
    media_keys: list[str] | None = None
    poll_ids: list[str] | None = None

    model_config = ConfigDict(extra="allow")


class Tweet(BaseEntity):
    """A tweet.

    Related objects (author, media, poll, place, referenced tweets) are
    resolved from the client's cache, so they are available whenever the
    response that carried the tweet also expanded them.
    """

    id: str
    text: str | None = None
    author_id: str | None = None
    conversation_id: str | None = None
    created_at: datetime | None = None
    in_reply_to_user_id: str | None = None
    lang: str | None = None
    possibly_sensitive: bool | None = None
    reply_settings: str | None = None
    source: str | None = None
    referenced_tweets: list[ReferencedTweet] | None = None
    attachments: Attachments | None = None
    entities: dict[str, Any] | None = None
    geo: dict[str, Any] | None = None
    public_metrics: dict[str, int] | None = None
    withheld: dict[str, Any] | None = None

    @property
    def author(self) -> "User | None":
        return self._related("users", self.author_id)  # type: ignore[return-value]

    @property
    def in_reply_to_user(self) -> "User | None":
        return self._related("users", self.in_reply_to_user_id)  # type: ignore[return-value]

    @property
    def media(self) -> list["Media"]:
        keys = self.attachments.media_keys if self.attachments else None
        found = (self._related("media", key) for key in keys or [])
        return [item for item in found if item is not None]  # type: ignore[misc]

    @property
    def poll(self) -> "Poll | None":
        poll_ids = self.attachments.poll_ids if self.attachments else None
        return self._related("polls", poll_ids[0]) if poll_ids else None  # type: ignore[return-value]

    @property
    def place(self) -> "Place | None":
        place_id = self.geo.get("place_id") if self.geo else None
        return self._related("places", place_id)  # type: ignore[return-value]

    @property
    def referenced(self) -> dict[str, "Tweet"]:
        """Cached referenced tweets keyed by reference type ("replied_to", "quoted", ...)."""
        result: dict[str, Tweet] = {}
        for reference in self.referenced_tweets or []:
            tweet = self._related("tweets", reference.id)
            if tweet is not None:
                result[reference.type] = tweet  # type: ignore[assignment]
        return result


class TweetCountBucket(BaseModel):
    """Number of tweets matching a query within one time bucket.

    Buckets are plain values, not cached entities.
    """

    start: datetime
    end: datetime
    tweet_count: int

    model_config = ConfigDict(extra="allow")
