"""Pagination state for books.

A :class:`PaginationCursor` moves strictly forward through the chain of
continuation tokens the API hands back::

    NOT_STARTED --fetch--> HAS_MORE --fetch--> HAS_MORE ... --fetch--> EXHAUSTED

``EXHAUSTED`` is terminal. The range bounds a book was created with are frozen
in a :class:`RangeBounds` and sent with every page.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from .exceptions import PaginationExhaustedError


class CursorState(Enum):
    NOT_STARTED = "not_started"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"


def format_timestamp(value: datetime) -> str:
    """Format a timestamp as ISO-8601 UTC with millisecond precision.

    Naive datetimes are taken to be UTC.

    >>> format_timestamp(datetime(2022, 3, 1, 12, 30))
    '2022-03-01T12:30:00.000Z'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ensure_time_order(start: datetime | None, end: datetime | None) -> None:
    """Raise ``ValueError`` unless ``start`` lies strictly before ``end``."""
    if start is None or end is None:
        return
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)
    if end.tzinfo is None:
        end = end.replace(tzinfo=UTC)
    if start >= end:
        raise ValueError("start_time must be earlier than end_time")


class RangeBounds(BaseModel):
    """Immutable filters applied to every page of one book.

    Attributes:
        lower_id: Only return results with an identifier greater than this ("since").
        upper_id: Only return results with an identifier smaller than this ("until").
        start_time: Only return results created at or after this time.
        end_time: Only return results created before this time.
        page_size_cap: Maximum number of results per page.
    """

    lower_id: str | None = None
    upper_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    page_size_cap: int | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def check_time_order(self) -> "RangeBounds":
        ensure_time_order(self.start_time, self.end_time)
        return self

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.lower_id is not None:
            params["since_id"] = self.lower_id
        if self.upper_id is not None:
            params["until_id"] = self.upper_id
        if self.start_time is not None:
            params["start_time"] = format_timestamp(self.start_time)
        if self.end_time is not None:
            params["end_time"] = format_timestamp(self.end_time)
        if self.page_size_cap is not None:
            params["max_results"] = self.page_size_cap
        return params


class PaginationCursor:
    """Tracks how far a book has paged.

    The token and flags are only changed by :meth:`advance`, which callers
    invoke after a page was fetched and decoded successfully. A failed fetch
    therefore leaves the cursor where it was.
    """

    def __init__(self, bounds: RangeBounds | None = None):
        self.bounds = bounds or RangeBounds()
        self._token: str | None = None
        self._initial_fetch_done = False
        self._has_more = False

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def initial_fetch_done(self) -> bool:
        return self._initial_fetch_done

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def state(self) -> CursorState:
        if not self._initial_fetch_done:
            return CursorState.NOT_STARTED
        return CursorState.HAS_MORE if self._token is not None else CursorState.EXHAUSTED

    def ensure_can_fetch(self) -> None:
        """Raise if another page can not be requested.

        Raises:
            PaginationExhaustedError: Once the last page has been fetched, on
                this and every later call.
        """
        if self.state is CursorState.EXHAUSTED:
            raise PaginationExhaustedError(
                "No more pages: the last page of this book has already been fetched."
            )

    def build_params(self, token_param: str) -> dict[str, Any]:
        """Query parameters for the next page.

        Args:
            token_param: Name of the continuation parameter of the endpoint
                (e.g. ``next_token`` or ``pagination_token``).
        """
        params = self.bounds.to_params()
        if self.state is CursorState.HAS_MORE:
            params[token_param] = self._token
        return params

    def advance(self, next_token: str | None) -> CursorState:
        """Record a successfully fetched page and return the new state."""
        self._initial_fetch_done = True
        self._token = next_token or None
        self._has_more = self._token is not None
        return self.state

    def __repr__(self) -> str:
        return f"PaginationCursor(state={self.state.value}, token={self._token!r})"
