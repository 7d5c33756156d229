"""Constants used throughout the tweetloom library.

This module defines the API base URLs, default client settings and the names
of the events a client can emit.
"""

from enum import Enum

# Base URLs
TWITTER_API_BASE_URL = "https://api.twitter.com/2"
OAUTH2_TOKEN_URL = "https://api.twitter.com/oauth2/token"

# Default settings
DEFAULT_TIMEOUT: float = 30.0
DEFAULT_RETRIES: int = 2
DEFAULT_STREAM_MAX_RECORD_BYTES: int = 1024 * 1024

TWEETLOOM_VERSION: str = "0.1.0"
DEFAULT_USER_AGENT: str = f"tweetloom/{TWEETLOOM_VERSION}"


class ClientEvent(str, Enum):
    """Events emitted by :class:`tweetloom.client.Client`.

    ``FILTERED_TWEET_CREATE`` and ``SAMPLED_TWEET_CREATE`` double as stream
    subscriptions: listing them in the client's ``events`` setting opens the
    matching stream at login.
    """

    READY = "ready"
    FILTERED_TWEET_CREATE = "filteredTweetCreate"
    SAMPLED_TWEET_CREATE = "sampledTweetCreate"
    STREAM_DECODE_ERROR = "streamDecodeError"
    STREAM_CLOSE = "streamClose"
