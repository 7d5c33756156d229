"""Defines the paginated API endpoints, their option models and the book table.

Every book variant is described by one :class:`BookDefinition`: the endpoint
path, the authorization tier it needs, the kind of entity it returns, the name
of its continuation parameter and the option model callers construct it with.
:data:`BOOK_DEFINITIONS` maps each variant name to its definition; the generic
:class:`~tweetloom.books.Book` engine does the rest.

Option models accept both snake_case and camelCase keys and reject unknown
ones, e.g. ``{"query": "python", "maxResultsPerPage": 10}``.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .config import QueryParameters
from .cursor import RangeBounds, ensure_time_order
from .models import BaseEntity, Tweet, TweetList, User
from .types import AuthMode

# --- Continuation parameters ---
NEXT_TOKEN = "next_token"
PAGINATION_TOKEN = "pagination_token"

# --- Endpoint Paths ---
USER_BLOCKING = "users/{id}/blocking"
USER_TWEETS = "users/{id}/tweets"
USER_FOLLOWED_LISTS = "users/{id}/followed_lists"
TWEET_LIKING_USERS = "tweets/{id}/liking_users"
USER_LIKED_TWEETS = "users/{id}/liked_tweets"
LIST_FOLLOWERS = "lists/{id}/followers"
LIST_MEMBERS = "lists/{id}/members"
LIST_TWEETS = "lists/{id}/tweets"
USER_LIST_MEMBERSHIPS = "users/{id}/list_memberships"
USER_MUTING = "users/{id}/muting"
USER_OWNED_LISTS = "users/{id}/owned_lists"
USER_PINNED_LISTS = "users/{id}/pinned_lists"
TWEET_RETWEETED_BY = "tweets/{id}/retweeted_by"
TWEETS_SEARCH_RECENT = "tweets/search/recent"
SPACE_BUYERS = "spaces/{id}/buyers"
TWEETS_COUNTS_RECENT = "tweets/counts/recent"
USER_FOLLOWERS = "users/{id}/followers"
USER_FOLLOWING = "users/{id}/following"
USER_MENTIONS = "users/{id}/mentions"

# --- Non-paginated endpoints used by the client ---
USERS_ME = "users/me"
FILTERED_STREAM = "tweets/search/stream"
SAMPLED_STREAM = "tweets/sample/stream"

COUNTS_KIND = "counts"
"""Pseudo entity kind of tweet count buckets, which are never cached."""

NonEmptyStr = Annotated[str, Field(min_length=1)]


def parent_identifier(value: BaseEntity | str) -> str:
    """Identifier of a parent resource given either as an entity or an identifier."""
    return value.identifier if isinstance(value, BaseEntity) else value


# --- Pydantic Models for Book Options ---


class BaseBookOptions(BaseModel):
    """Shared configuration of every option model."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    def bound_fields(self) -> dict[str, Any]:
        return {}

    def range_bounds(self) -> RangeBounds:
        """The immutable bounds applied to every page of the book."""
        return RangeBounds(**self.bound_fields())


class PageSizeOptions(BaseBookOptions):
    max_results_per_page: int | None = Field(default=None, ge=1)

    def bound_fields(self) -> dict[str, Any]:
        return {**super().bound_fields(), "page_size_cap": self.max_results_per_page}


class RangeOptions(BaseBookOptions):
    """Identifier and time window filters for tweet timelines and search."""

    after_tweet_id: NonEmptyStr | None = None
    before_tweet_id: NonEmptyStr | None = None
    start_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("start_time", "startTime", "startTimestamp"),
    )
    end_time: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("end_time", "endTime", "endTimestamp"),
    )

    @model_validator(mode="after")
    def check_time_window(self) -> "RangeOptions":
        ensure_time_order(self.start_time, self.end_time)
        return self

    def bound_fields(self) -> dict[str, Any]:
        return {
            **super().bound_fields(),
            "lower_id": self.after_tweet_id,
            "upper_id": self.before_tweet_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


class UserBookOptions(PageSizeOptions):
    user: User | NonEmptyStr


class UserTimelineBookOptions(RangeOptions, PageSizeOptions):
    user: User | NonEmptyStr


class TweetBookOptions(PageSizeOptions):
    tweet: Tweet | NonEmptyStr


class ListBookOptions(PageSizeOptions):
    list_: TweetList | NonEmptyStr = Field(alias="list")


class SpaceBookOptions(BaseBookOptions):
    space: NonEmptyStr


class SearchTweetsBookOptions(RangeOptions, PageSizeOptions):
    query: NonEmptyStr


class TweetsCountBookOptions(RangeOptions):
    query: NonEmptyStr
    granularity: Literal["minute", "hour", "day"] | None = None


# --- Book definitions ---


class QueryShape(Enum):
    """Which field selections from :class:`QueryParameters` a book sends."""

    TWEETS = "tweets"
    USERS = "users"
    LISTS = "lists"
    NONE = "none"

    def params(self, query_parameters: QueryParameters) -> dict[str, str]:
        if self is QueryShape.TWEETS:
            return query_parameters.tweet_query()
        if self is QueryShape.USERS:
            return query_parameters.user_query()
        if self is QueryShape.LISTS:
            return query_parameters.list_query()
        return {}


def _search_params(options: Any) -> dict[str, Any]:
    return {"query": options.query}


def _count_params(options: Any) -> dict[str, Any]:
    params: dict[str, Any] = {"query": options.query}
    if options.granularity:
        params["granularity"] = options.granularity
    return params


@dataclass(frozen=True)
class BookDefinition:
    """Everything that distinguishes one book variant from another.

    Attributes:
        name: Variant name accepted by ``Client.create_book``.
        path: Endpoint path, with ``{id}`` standing for the parent resource.
        entity_kind: Cache kind of the primary payload, or ``"counts"``.
        options_model: Model the caller's options are validated against.
        query_shape: Field selections sent with every page.
        auth_mode: Authorization tier the endpoint requires.
        token_param: Name of the continuation query parameter.
        parent_field: Option field holding the parent resource, if any.
        extra_params: Builds variant-specific parameters from the options.
    """

    name: str
    path: str
    entity_kind: str
    options_model: type[BaseBookOptions]
    query_shape: QueryShape
    auth_mode: AuthMode = AuthMode.BEARER
    token_param: str = PAGINATION_TOKEN
    parent_field: str | None = None
    extra_params: Callable[[Any], dict[str, Any]] | None = field(default=None)

    @property
    def requires_user_context(self) -> bool:
        return self.auth_mode is AuthMode.USER_CONTEXT

    def build_path(self, options: BaseBookOptions) -> str:
        if self.parent_field is None:
            return self.path
        return self.path.format(id=parent_identifier(getattr(options, self.parent_field)))

    def build_params(self, options: BaseBookOptions, query_parameters: QueryParameters) -> dict[str, Any]:
        """Parameters sent with every page, before range bounds and continuation."""
        params: dict[str, Any] = dict(self.query_shape.params(query_parameters))
        if self.extra_params is not None:
            params.update(self.extra_params(options))
        return params


_DEFINITIONS = [
    BookDefinition(
        name="BlockedUsersBook",
        path=USER_BLOCKING,
        entity_kind="users",
        options_model=UserBookOptions,
        query_shape=QueryShape.USERS,
        auth_mode=AuthMode.USER_CONTEXT,
        parent_field="user",
    ),
    BookDefinition(
        name="ComposedTweetsBook",
        path=USER_TWEETS,
        entity_kind="tweets",
        options_model=UserTimelineBookOptions,
        query_shape=QueryShape.TWEETS,
        parent_field="user",
    ),
    BookDefinition(
        name="FollowedListsBook",
        path=USER_FOLLOWED_LISTS,
        entity_kind="lists",
        options_model=UserBookOptions,
        query_shape=QueryShape.LISTS,
        parent_field="user",
    ),
    BookDefinition(
        name="LikedByUsersBook",
        path=TWEET_LIKING_USERS,
        entity_kind="users",
        options_model=TweetBookOptions,
        query_shape=QueryShape.USERS,
        parent_field="tweet",
    ),
    BookDefinition(
        name="LikedTweetsBook",
        path=USER_LIKED_TWEETS,
        entity_kind="tweets",
        options_model=UserBookOptions,
        query_shape=QueryShape.TWEETS,
        parent_field="user",
    ),
    BookDefinition(
        name="ListFollowersBook",
        path=LIST_FOLLOWERS,
        entity_kind="users",
        options_model=ListBookOptions,
        query_shape=QueryShape.USERS,
        parent_field="list_",
    ),
    BookDefinition(
        name="ListMembersBook",
        path=LIST_MEMBERS,
        entity_kind="users",
        options_model=ListBookOptions,
        query_shape=QueryShape.USERS,
        parent_field="list_",
    ),
    BookDefinition(
        name="ListTweetsBook",
        path=LIST_TWEETS,
        entity_kind="tweets",
        options_model=ListBookOptions,
        query_shape=QueryShape.TWEETS,
        parent_field="list_",
    ),
    BookDefinition(
        name="MemberOfListsBook",
        path=USER_LIST_MEMBERSHIPS,
        entity_kind="lists",
        options_model=UserBookOptions,
        query_shape=QueryShape.LISTS,
        parent_field="user",
    ),
    BookDefinition(
        name="MutedUsersBook",
        path=USER_MUTING,
        entity_kind="users",
        options_model=UserBookOptions,
        query_shape=QueryShape.USERS,
        auth_mode=AuthMode.USER_CONTEXT,
        parent_field="user",
    ),
    BookDefinition(
        name="OwnedListsBook",
        path=USER_OWNED_LISTS,
        entity_kind="lists",
        options_model=UserBookOptions,
        query_shape=QueryShape.LISTS,
        parent_field="user",
    ),
    BookDefinition(
        name="PinnedListsBook",
        path=USER_PINNED_LISTS,
        entity_kind="lists",
        options_model=UserBookOptions,
        query_shape=QueryShape.LISTS,
        auth_mode=AuthMode.USER_CONTEXT,
        parent_field="user",
    ),
    BookDefinition(
        name="RetweetedByUsersBook",
        path=TWEET_RETWEETED_BY,
        entity_kind="users",
        options_model=TweetBookOptions,
        query_shape=QueryShape.USERS,
        parent_field="tweet",
    ),
    BookDefinition(
        name="SearchTweetsBook",
        path=TWEETS_SEARCH_RECENT,
        entity_kind="tweets",
        options_model=SearchTweetsBookOptions,
        query_shape=QueryShape.TWEETS,
        token_param=NEXT_TOKEN,
        extra_params=_search_params,
    ),
    BookDefinition(
        name="SpaceTicketBuyersBook",
        path=SPACE_BUYERS,
        entity_kind="users",
        options_model=SpaceBookOptions,
        query_shape=QueryShape.USERS,
        auth_mode=AuthMode.USER_CONTEXT,
        parent_field="space",
    ),
    BookDefinition(
        name="TweetsCountBook",
        path=TWEETS_COUNTS_RECENT,
        entity_kind=COUNTS_KIND,
        options_model=TweetsCountBookOptions,
        query_shape=QueryShape.NONE,
        token_param=NEXT_TOKEN,
        extra_params=_count_params,
    ),
    BookDefinition(
        name="UserFollowersBook",
        path=USER_FOLLOWERS,
        entity_kind="users",
        options_model=UserBookOptions,
        query_shape=QueryShape.USERS,
        parent_field="user",
    ),
    BookDefinition(
        name="UserFollowingsBook",
        path=USER_FOLLOWING,
        entity_kind="users",
        options_model=UserBookOptions,
        query_shape=QueryShape.USERS,
        parent_field="user",
    ),
    BookDefinition(
        name="UserMentioningTweetsBook",
        path=USER_MENTIONS,
        entity_kind="tweets",
        options_model=UserTimelineBookOptions,
        query_shape=QueryShape.TWEETS,
        parent_field="user",
    ),
]

BOOK_DEFINITIONS: dict[str, BookDefinition] = {
    definition.name: definition for definition in _DEFINITIONS
}
"""Book variant name -> definition."""

BookName = Literal[
    "BlockedUsersBook",
    "ComposedTweetsBook",
    "FollowedListsBook",
    "LikedByUsersBook",
    "LikedTweetsBook",
    "ListFollowersBook",
    "ListMembersBook",
    "ListTweetsBook",
    "MemberOfListsBook",
    "MutedUsersBook",
    "OwnedListsBook",
    "PinnedListsBook",
    "RetweetedByUsersBook",
    "SearchTweetsBook",
    "SpaceTicketBuyersBook",
    "TweetsCountBook",
    "UserFollowersBook",
    "UserFollowingsBook",
    "UserMentioningTweetsBook",
]
