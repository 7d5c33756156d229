"""Pydantic models for objects that only ever arrive through expansions:
media attachments, places and polls."""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

from .base import BaseEntity


class Media(BaseEntity):
    """An image, GIF or video attached to a tweet, identified by ``media_key``."""

    id_field: ClassVar[str] = "media_key"

    media_key: str
    type: str | None = None
    url: str | None = None
    preview_image_url: str | None = None
    alt_text: str | None = None
    duration_ms: int | None = None
    height: int | None = None
    width: int | None = None
    public_metrics: dict[str, int] | None = None


class Place(BaseEntity):
    id: str
    full_name: str | None = None
    name: str | None = None
    country: str | None = None
    country_code: str | None = None
    place_type: str | None = None
    contained_within: list[str] | None = None
    geo: dict[str, Any] | None = None


class PollOption(BaseModel):
    position: int
    label: str
    votes: int | None = None

    model_config = ConfigDict(extra="allow")


class Poll(BaseEntity):
    id: str
    options: list[PollOption] | None = None
    duration_minutes: int | None = None
    end_datetime: datetime | None = None
    voting_status: str | None = None
