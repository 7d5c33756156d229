"""Pydantic models for the response envelope shared by every endpoint.

A response carries a primary payload under ``data``, related objects under
``includes``, pagination metadata under ``meta`` and, for filtered stream
records, the rules that matched under ``matching_rules``. Responses may also
carry partial ``errors`` next to successful data.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Meta(BaseModel):
    """Pagination metadata of one page."""

    result_count: int | None = None
    next_token: str | None = None
    previous_token: str | None = None
    newest_id: str | None = None
    oldest_id: str | None = None
    total_tweet_count: int | None = None

    model_config = ConfigDict(extra="allow")


class Envelope(BaseModel):
    """One decoded API response or stream record."""

    data: dict[str, Any] | list[dict[str, Any]] | None = None
    includes: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    meta: Meta | None = None
    matching_rules: list[dict[str, Any]] | None = None
    errors: list[dict[str, Any]] | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def next_token(self) -> str | None:
        return self.meta.next_token if self.meta else None

    @property
    def result_count(self) -> int | None:
        return self.meta.result_count if self.meta else None

    def primary_items(self) -> list[dict[str, Any]]:
        """The primary payload as an ordered list (a single object becomes a one-item list)."""
        if self.data is None:
            return []
        if isinstance(self.data, dict):
            return [self.data]
        return list(self.data)
