"""tweetloom: An asynchronous client for the Twitter API v2.

The package turns paginated endpoints into stateful books, keeps every entity
any response mentions in one shared cache, and consumes the filtered and
sampled tweet streams as events.
"""

from .books import Book
from .client import Client
from .config import ClientSettings, QueryParameters, get_settings
from .constants import TWEETLOOM_VERSION, ClientEvent
from .cursor import CursorState, PaginationCursor, RangeBounds
from .endpoints import BOOK_DEFINITIONS, BookDefinition
from .exceptions import (
    APIError,
    AuthError,
    ConfigurationError,
    InvalidArgumentError,
    LoginError,
    MalformedResponseError,
    NetworkError,
    NotFoundError,
    PaginationExhaustedError,
    RateLimitError,
    RequestError,
    StreamDecodeError,
    TimeoutError,
    TweetloomError,
    UserContextRequiredError,
)
from .log_config import configure_logging
from .models import (
    MatchingRule,
    Media,
    Place,
    Poll,
    Tweet,
    TweetCountBucket,
    TweetList,
    User,
)
from .store import EntityCache, EntityStore
from .types import AuthMode

__version__ = TWEETLOOM_VERSION

__all__ = [
    "__version__",
    # Client
    "Client",
    "ClientSettings",
    "QueryParameters",
    "get_settings",
    "configure_logging",
    "ClientEvent",
    "AuthMode",
    # Books
    "Book",
    "BookDefinition",
    "BOOK_DEFINITIONS",
    "CursorState",
    "PaginationCursor",
    "RangeBounds",
    # Cache
    "EntityCache",
    "EntityStore",
    # Models
    "MatchingRule",
    "Media",
    "Place",
    "Poll",
    "Tweet",
    "TweetCountBucket",
    "TweetList",
    "User",
    # Exceptions
    "APIError",
    "AuthError",
    "ConfigurationError",
    "InvalidArgumentError",
    "LoginError",
    "MalformedResponseError",
    "NetworkError",
    "NotFoundError",
    "PaginationExhaustedError",
    "RateLimitError",
    "RequestError",
    "StreamDecodeError",
    "TimeoutError",
    "TweetloomError",
    "UserContextRequiredError",
]
