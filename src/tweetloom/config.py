# tweetloom/config.py
import json
from functools import lru_cache
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .constants import (
    DEFAULT_RETRIES,
    DEFAULT_STREAM_MAX_RECORD_BYTES,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    OAUTH2_TOKEN_URL,
    TWITTER_API_BASE_URL,
    ClientEvent,
)
from .types import PostRequestHook, PreRequestHook


class QueryParameters(BaseModel):
    """Field selections and expansions requested on every query.

    Each option is independently optional. Values are sent comma-joined, e.g.
    ``tweet_fields=["created_at", "lang"]`` becomes ``tweet.fields=created_at,lang``.
    """

    tweet_fields: list[str] | None = None
    user_fields: list[str] | None = None
    media_fields: list[str] | None = None
    place_fields: list[str] | None = None
    poll_fields: list[str] | None = None
    tweet_expansions: list[str] | None = None
    user_expansions: list[str] | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @staticmethod
    def _join(values: list[str] | None) -> str | None:
        return ",".join(values) if values else None

    def _compact(self, params: dict[str, str | None]) -> dict[str, str]:
        return {key: value for key, value in params.items() if value is not None}

    def tweet_query(self) -> dict[str, str]:
        """Query parameters for endpoints whose primary payload is tweets."""
        return self._compact(
            {
                "expansions": self._join(self.tweet_expansions),
                "tweet.fields": self._join(self.tweet_fields),
                "user.fields": self._join(self.user_fields),
                "media.fields": self._join(self.media_fields),
                "place.fields": self._join(self.place_fields),
                "poll.fields": self._join(self.poll_fields),
            }
        )

    def user_query(self) -> dict[str, str]:
        """Query parameters for endpoints whose primary payload is users."""
        return self._compact(
            {
                "expansions": self._join(self.user_expansions),
                "tweet.fields": self._join(self.tweet_fields),
                "user.fields": self._join(self.user_fields),
            }
        )

    def list_query(self) -> dict[str, str]:
        """Query parameters for endpoints whose primary payload is lists."""
        return self._compact({"user.fields": self._join(self.user_fields)})


class ClientSettings(BaseSettings):
    """
    Manages user-configurable settings for the tweetloom client, loaded from
    environment variables (prefixed with 'TWEETLOOM_') or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "secrets.env"),
        env_file_encoding="utf-8",
        env_prefix="TWEETLOOM_",
        extra="ignore",
        case_sensitive=False,
        arbitrary_types_allowed=True,  # Allow hook callables
    )

    # --- Endpoints ---
    api_base_url: str = Field(
        default=TWITTER_API_BASE_URL, description="Base URL of the REST API"
    )
    token_url: str = Field(
        default=OAUTH2_TOKEN_URL,
        description="OAuth2 endpoint used to exchange consumer keys for a bearer token",
    )

    # --- Credentials ---
    bearer_token: SecretStr | None = Field(
        default=None, description="App-only bearer token (optional)"
    )
    consumer_key: SecretStr | None = Field(
        default=None, description="Consumer key for the client credentials grant"
    )
    consumer_secret: SecretStr | None = Field(
        default=None, description="Consumer secret for the client credentials grant"
    )

    # --- Client Behavior Settings ---
    request_timeout: float = Field(
        default=DEFAULT_TIMEOUT, description="Default request timeout in seconds"
    )
    stream_read_timeout: float | None = Field(
        default=None,
        description="Read timeout for streaming connections; None waits indefinitely",
    )
    stream_max_record_bytes: int = Field(
        default=DEFAULT_STREAM_MAX_RECORD_BYTES,
        gt=0,
        description="Longest streamed record accepted; longer ones are skipped",
    )
    max_retries: int = Field(
        default=DEFAULT_RETRIES,
        description="Maximum number of transport retries for transient failures",
    )
    backoff_factor: float = Field(
        default=0.5, description="Backoff factor for retries (seconds)"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT, description="User-Agent header for requests"
    )

    # --- Entity cache ---
    entity_cache_max_size: int | None = Field(
        default=None,
        description="Per-kind LRU bound for cached entities; None keeps every entity",
    )

    # --- Subscriptions and query shaping ---
    events: Annotated[list[ClientEvent], NoDecode] = Field(
        default_factory=list,
        description="Stream events to subscribe to at login",
    )
    query_parameters: QueryParameters = Field(default_factory=QueryParameters)

    # --- Hook Settings ---
    pre_request_hooks: list[PreRequestHook] = Field(
        default_factory=list,
        description="List of hooks to call before a request is made.",
    )
    post_request_hooks: list[PostRequestHook] = Field(
        default_factory=list,
        description="List of hooks to call after a response is received and decoded.",
    )

    @field_validator("events", mode="before")
    @classmethod
    def accept_event_names(cls, v: Any) -> Any:
        """Allow both event values ("sampledTweetCreate") and member names ("SAMPLED_TWEET_CREATE").

        Environment values may be a JSON list or a comma-separated string.
        """
        if isinstance(v, str):
            text = v.strip()
            if text.startswith("["):
                v = json.loads(text)
            else:
                v = [item.strip() for item in text.split(",") if item.strip()]
        if not isinstance(v, list | tuple | set):
            return v
        resolved = []
        for item in v:
            if isinstance(item, str) and item in ClientEvent.__members__:
                resolved.append(ClientEvent[item])
            else:
                resolved.append(item)
        return resolved


@lru_cache
def get_settings() -> ClientSettings:
    """
    Provides access to the client settings.

    Settings are loaded from environment variables (prefixed with 'TWEETLOOM_')
    or .env/secrets.env files. The instance is cached for performance.

    Returns:
        ClientSettings: The settings instance.
    """
    return ClientSettings()
