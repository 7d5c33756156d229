"""Pydantic model for lists (curated groups of accounts)."""

from datetime import datetime
from typing import TYPE_CHECKING

from .base import BaseEntity

if TYPE_CHECKING:
    from .user import User


class TweetList(BaseEntity):
    """A list of accounts curated by its owner."""

    id: str
    name: str | None = None
    created_at: datetime | None = None
    description: str | None = None
    follower_count: int | None = None
    member_count: int | None = None
    owner_id: str | None = None
    private: bool | None = None

    @property
    def owner(self) -> "User | None":
        return self._related("users", self.owner_id)  # type: ignore[return-value]
