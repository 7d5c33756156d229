# tweetloom/types.py
"""Core type definitions shared by the transport and the client façade.

This module defines the data structure describing one request attempt, the
authorization modes the API distinguishes, and the type aliases for request
hooks.
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field


class AuthMode(Enum):
    """Authorization tier a request is made with.

    ``BEARER`` requests act on behalf of the application; ``USER_CONTEXT``
    requests act on behalf of the logged-in user and are only possible after
    a user-context login.
    """

    BEARER = "bearer"
    USER_CONTEXT = "user_context"


class RequestData(BaseModel):
    """Encapsulates data for a single HTTP request attempt."""

    method: str
    url: str
    params: Mapping[str, Any] | None = None
    json_data: Any | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    auth_mode: AuthMode = AuthMode.BEARER

    model_config = ConfigDict(extra="allow")

    def build_request(self) -> httpx.Request:
        """Builds an httpx.Request object from the stored data."""
        return httpx.Request(
            method=self.method,
            url=self.url,
            params=self.params,
            json=self.json_data,
            headers=self.headers,
        )


PreRequestHook = Callable[[str, str, dict[str, Any] | None, httpx.Headers], None]
"""Type alias for a pre-request hook.

Args:
    method (str): The HTTP method of the request (e.g., "GET").
    url (str): The full URL of the request.
    params (dict[str, Any] | None): A mutable dictionary of query parameters.
        Hooks can modify this dictionary in place.
    headers (httpx.Headers): Mutable request headers.
"""

PostRequestHook = Callable[[httpx.Response, Any, int], None]
"""Type alias for a post-request hook.

Args:
    response (httpx.Response): The raw `httpx.Response` object.
    body (Any): The decoded JSON body of the response.
    attempts (int): Always 1; hooks run once per attempt that succeeded.
"""
