"""Custom exception classes for the tweetloom library."""

import httpx


class TweetloomError(Exception):
    """Base exception class for all tweetloom errors."""

    def __init__(
        self,
        message: str,
        *,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
    ):
        """Initializes the base exception.

        Args:
            message: The error message.
            response: Optional httpx.Response object associated with the error.
            request: Optional httpx.Request object associated with the error.
        """
        super().__init__(message)
        self.message = message
        self.response = response
        self.request = request

    def __str__(self) -> str:
        if self.response is not None:
            url_info = getattr(getattr(self.response, "request", None), "url", "N/A")
            return (
                f"{self.message} (Status: {self.response.status_code}, URL: {url_info})"
            )
        if isinstance(self.request, httpx.Request):
            return f"{self.message} (URL: {self.request.url})"
        return self.message


# --- Transport failures (passed through the core unchanged) ---


class APIError(TweetloomError):
    """Represents a generic error returned by the API (non-specific 4xx/5xx)."""


class NotFoundError(APIError):
    """Represents a resource that does not exist.

    Raised for 404 responses, and by entity stores when an identifier was
    never cached (stores never fetch implicitly).
    """


class RateLimitError(APIError):
    """Represents hitting the API rate limit (429 Too Many Requests).

    Attributes:
        reset_at: Unix timestamp at which the rate limit window resets, if the
            server reported one.
    """

    def __init__(
        self,
        message: str,
        *,
        response: httpx.Response | None = None,
        request: httpx.Request | None = None,
        reset_at: float | None = None,
    ):
        super().__init__(message, response=response, request=request)
        self.reset_at = reset_at


class TimeoutError(TweetloomError):
    """Represents a request timeout error."""

    def __init__(self, message: str, *, request: httpx.Request | None = None):
        super().__init__(message, request=request, response=None)


class NetworkError(TweetloomError):
    """Represents a network connection error (DNS failure, connection refused, ...)."""

    def __init__(self, message: str, *, request: httpx.Request | None = None):
        super().__init__(message, request=request, response=None)


class RequestError(TweetloomError):
    """Represents an error during the HTTP request process itself.

    Covers httpx request errors that are neither timeouts nor network errors.
    """


# --- Client-side conditions ---


class ConfigurationError(TweetloomError):
    """Represents an error in the library's configuration."""

    def __init__(self, message: str):
        super().__init__(message, response=None)


class AuthError(TweetloomError):
    """Raised when an authentication error occurs, e.g., fetching a token fails."""


class UserContextRequiredError(AuthError):
    """Raised when an operation needs user-context credentials but only a bearer token is active."""


class InvalidArgumentError(TweetloomError):
    """Raised when a caller supplies a wrongly-typed or missing required option.

    Always raised eagerly, before any transport call is made.
    """


class PaginationExhaustedError(TweetloomError):
    """Raised when a book is asked for another page after its last page was fetched."""


class MalformedResponseError(TweetloomError):
    """Raised when a decoded response lacks the fields its caller requires."""


class LoginError(TweetloomError):
    """Raised when a user-context login cannot resolve the authenticated user."""


class StreamDecodeError(TweetloomError):
    """Represents a single streamed record that could not be decoded.

    This condition is recoverable: it is logged and reported, and the stream
    continues with the next record.

    Attributes:
        line: The raw text of the offending record.
        stream: Name of the stream the record arrived on.
    """

    def __init__(self, message: str, *, line: str, stream: str):
        super().__init__(message)
        self.line = line
        self.stream = stream

    def __str__(self) -> str:
        preview = self.line if len(self.line) <= 80 else f"{self.line[:77]}..."
        return f"{self.message} (stream: {self.stream}, line: {preview!r})"
