"""Tests for the generic book engine and the book definitions table."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from tweetloom.books import Book, validate_options
from tweetloom.config import QueryParameters
from tweetloom.cursor import CursorState
from tweetloom.endpoints import BOOK_DEFINITIONS, SearchTweetsBookOptions
from tweetloom.exceptions import (
    APIError,
    InvalidArgumentError,
    MalformedResponseError,
    PaginationExhaustedError,
)
from tweetloom.models import Tweet, TweetCountBucket, User
from tweetloom.rest import RestClient
from tweetloom.store import EntityCache
from tweetloom.types import AuthMode


def tweets_page(ids, next_token=None, includes=None):
    meta = {"result_count": len(ids)}
    if next_token:
        meta["next_token"] = next_token
    body = {"data": [{"id": i, "text": f"tweet {i}"} for i in ids], "meta": meta}
    if includes:
        body["includes"] = includes
    return body


@pytest.fixture
def mock_rest():
    return AsyncMock(spec=RestClient)


@pytest.fixture
def cache() -> EntityCache:
    return EntityCache()


@pytest.fixture
def make_book(mock_rest, cache):
    def _make(name, options, query_parameters=None):
        definition = BOOK_DEFINITIONS[name]
        return Book(
            definition,
            validate_options(definition, options),
            rest=mock_rest,
            cache=cache,
            query_parameters=query_parameters,
        )

    return _make


def sent_params(mock_rest, call_index=-1):
    return mock_rest.request.call_args_list[call_index].kwargs["params"]


@pytest.mark.asyncio
async def test_search_first_page_returns_ordered_mapping(make_book, mock_rest):
    mock_rest.request.return_value = tweets_page(["3", "1", "2"], next_token="next")
    book = make_book("SearchTweetsBook", {"query": "rust", "maxResultsPerPage": 10})

    page = await book.fetch_next_page()

    assert list(page) == ["3", "1", "2"]
    assert all(isinstance(tweet, Tweet) for tweet in page.values())
    assert book.has_more
    assert book.cursor.state is CursorState.HAS_MORE
    mock_rest.request.assert_awaited_once_with(
        "GET",
        "tweets/search/recent",
        params={"query": "rust", "max_results": 10},
        auth_mode=AuthMode.BEARER,
        endpoint="tweets/search/recent",
    )


@pytest.mark.asyncio
async def test_last_page_exhausts_and_further_calls_fail(make_book, mock_rest):
    mock_rest.request.side_effect = [
        tweets_page(["1"], next_token="t1"),
        tweets_page(["2"]),
    ]
    book = make_book("SearchTweetsBook", {"query": "rust"})

    await book.fetch_next_page()
    second = await book.fetch_next_page()

    assert list(second) == ["2"]
    assert book.cursor.state is CursorState.EXHAUSTED
    assert sent_params(mock_rest)["next_token"] == "t1"
    for _ in range(2):
        with pytest.raises(PaginationExhaustedError):
            await book.fetch_next_page()
    assert mock_rest.request.await_count == 2


@pytest.mark.asyncio
async def test_range_bounds_sent_unchanged_on_every_page(make_book, mock_rest):
    mock_rest.request.side_effect = [
        tweets_page(["150"], next_token="t1"),
        tweets_page(["120"], next_token="t2"),
        tweets_page(["110"]),
    ]
    book = make_book(
        "ComposedTweetsBook",
        {"user": "9", "after_tweet_id": "100", "before_tweet_id": "200"},
    )

    async for _ in book.pages():
        pass

    assert mock_rest.request.await_count == 3
    for index in range(3):
        params = sent_params(mock_rest, index)
        assert params["since_id"] == "100"
        assert params["until_id"] == "200"
    assert "pagination_token" not in sent_params(mock_rest, 0)
    assert sent_params(mock_rest, 1)["pagination_token"] == "t1"
    assert sent_params(mock_rest, 2)["pagination_token"] == "t2"


@pytest.mark.asyncio
async def test_zero_result_page_is_empty_and_exhausts_in_same_call(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 0}}
    book = make_book("UserFollowersBook", {"user": "9"})

    page = await book.fetch_next_page()

    assert page == {}
    assert book.cursor.state is CursorState.EXHAUSTED
    assert book.result_count == 0


@pytest.mark.asyncio
async def test_zero_result_page_with_token_keeps_paging(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 0, "next_token": "t1"}}
    book = make_book("SearchTweetsBook", {"query": "rust"})

    assert await book.fetch_next_page() == {}
    assert book.has_more


@pytest.mark.asyncio
async def test_missing_data_on_non_empty_page_is_malformed(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 3, "next_token": "t1"}}
    book = make_book("SearchTweetsBook", {"query": "rust"})

    with pytest.raises(MalformedResponseError, match="missing its 'data' payload"):
        await book.fetch_next_page()

    assert book.cursor.state is CursorState.NOT_STARTED
    assert book.cursor.token is None


@pytest.mark.asyncio
async def test_non_object_body_is_malformed(make_book, mock_rest):
    mock_rest.request.return_value = ["not", "an", "envelope"]
    book = make_book("SearchTweetsBook", {"query": "rust"})

    with pytest.raises(MalformedResponseError):
        await book.fetch_next_page()


@pytest.mark.asyncio
async def test_transport_failure_propagates_and_cursor_stays(make_book, mock_rest):
    error = APIError("API request failed with status 503: Service Unavailable")
    mock_rest.request.side_effect = [
        tweets_page(["1"], next_token="t1"),
        error,
        tweets_page(["2"]),
    ]
    book = make_book("SearchTweetsBook", {"query": "rust"})
    await book.fetch_next_page()

    with pytest.raises(APIError) as excinfo:
        await book.fetch_next_page()
    assert excinfo.value is error
    assert book.cursor.token == "t1"

    page = await book.fetch_next_page()
    assert list(page) == ["2"]
    assert sent_params(mock_rest)["next_token"] == "t1"


@pytest.mark.asyncio
async def test_results_are_cached_and_shared_across_pages(make_book, mock_rest, cache):
    mock_rest.request.side_effect = [
        tweets_page(["1", "2"], next_token="t1"),
        {"data": [{"id": "2", "lang": "en"}], "meta": {"result_count": 1}},
    ]
    book = make_book("SearchTweetsBook", {"query": "rust"})

    first = await book.fetch_next_page()
    second = await book.fetch_next_page()

    assert second["2"] is first["2"]
    assert first["2"].text == "tweet 2"
    assert first["2"].lang == "en"
    assert cache.tweets.get("1") is first["1"]


@pytest.mark.asyncio
async def test_duplicate_identifiers_in_one_page_collapse(make_book, mock_rest):
    mock_rest.request.return_value = {
        "data": [{"id": "1", "text": "a"}, {"id": "2"}, {"id": "1", "lang": "en"}],
        "meta": {"result_count": 3},
    }
    book = make_book("SearchTweetsBook", {"query": "rust"})

    page = await book.fetch_next_page()

    assert list(page) == ["1", "2"]
    assert page["1"].text == "a"
    assert page["1"].lang == "en"


@pytest.mark.asyncio
async def test_includes_are_cached_with_the_page(make_book, mock_rest, cache):
    mock_rest.request.return_value = {
        "data": [{"id": "1", "author_id": "9"}],
        "includes": {"users": [{"id": "9", "username": "ada"}]},
        "meta": {"result_count": 1},
    }
    book = make_book("SearchTweetsBook", {"query": "rust"})

    page = await book.fetch_next_page()

    assert page["1"].author is cache.users.get("9")


@pytest.mark.asyncio
async def test_concurrent_calls_are_serialized(make_book, mock_rest):
    async def respond(method, path, *, params, auth_mode, endpoint=None):
        await asyncio.sleep(0)
        if "next_token" in params:
            return tweets_page(["2"])
        return tweets_page(["1"], next_token="t1")

    mock_rest.request.side_effect = respond
    book = make_book("SearchTweetsBook", {"query": "rust"})

    first, second = await asyncio.gather(book.fetch_next_page(), book.fetch_next_page())

    assert list(first) == ["1"]
    assert list(second) == ["2"]
    assert sent_params(mock_rest, 1)["next_token"] == "t1"
    assert book.cursor.state is CursorState.EXHAUSTED


@pytest.mark.asyncio
async def test_iterating_a_book_yields_every_result(make_book, mock_rest):
    mock_rest.request.side_effect = [
        {"data": [{"id": "9"}, {"id": "8"}], "meta": {"result_count": 2, "next_token": "t"}},
        {"data": [{"id": "7"}], "meta": {"result_count": 1}},
    ]
    book = make_book("ListMembersBook", {"list": "42"})

    users = [user async for user in book]

    assert [user.identifier for user in users] == ["9", "8", "7"]
    assert all(isinstance(user, User) for user in users)
    assert mock_rest.request.call_args_list[0].args == ("GET", "lists/42/members")


@pytest.mark.asyncio
async def test_tweets_count_book_returns_uncached_buckets(make_book, mock_rest, cache):
    mock_rest.request.return_value = {
        "data": [
            {"start": "2022-03-01T00:00:00.000Z", "end": "2022-03-02T00:00:00.000Z", "tweet_count": 12},
            {"start": "2022-03-02T00:00:00.000Z", "end": "2022-03-03T00:00:00.000Z", "tweet_count": 30},
        ],
        "meta": {"total_tweet_count": 42},
    }
    book = make_book("TweetsCountBook", {"query": "rust", "granularity": "day"})

    page = await book.fetch_next_page()

    assert list(page) == ["2022-03-01T00:00:00.000Z", "2022-03-02T00:00:00.000Z"]
    assert all(isinstance(bucket, TweetCountBucket) for bucket in page.values())
    assert page["2022-03-02T00:00:00.000Z"].tweet_count == 30
    assert book.total_tweet_count == 42
    assert book.cursor.state is CursorState.EXHAUSTED
    assert len(cache.tweets) == 0
    assert sent_params(mock_rest) == {"query": "rust", "granularity": "day"}


@pytest.mark.asyncio
async def test_parent_resource_may_be_an_entity(make_book, mock_rest, cache):
    user = cache.upsert("users", "9", {"id": "9", "username": "ada"})
    mock_rest.request.return_value = {"meta": {"result_count": 0}}
    book = make_book("OwnedListsBook", {"user": user, "max_results_per_page": 5})

    await book.fetch_next_page()

    mock_rest.request.assert_awaited_once_with(
        "GET",
        "users/9/owned_lists",
        params={"max_results": 5},
        auth_mode=AuthMode.BEARER,
        endpoint="users/{id}/owned_lists",
    )


@pytest.mark.asyncio
async def test_query_parameters_shape_each_book(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 0}}
    query_parameters = QueryParameters(
        tweet_fields=["created_at", "lang"],
        user_fields=["username"],
        media_fields=["url"],
        tweet_expansions=["author_id"],
        user_expansions=["pinned_tweet_id"],
    )

    await make_book("LikedTweetsBook", {"user": "9"}, query_parameters).fetch_next_page()
    await make_book("LikedByUsersBook", {"tweet": "1"}, query_parameters).fetch_next_page()
    await make_book("FollowedListsBook", {"user": "9"}, query_parameters).fetch_next_page()

    assert sent_params(mock_rest, 0) == {
        "expansions": "author_id",
        "tweet.fields": "created_at,lang",
        "user.fields": "username",
        "media.fields": "url",
    }
    assert sent_params(mock_rest, 1) == {
        "expansions": "pinned_tweet_id",
        "tweet.fields": "created_at,lang",
        "user.fields": "username",
    }
    assert sent_params(mock_rest, 2) == {"user.fields": "username"}


@pytest.mark.asyncio
async def test_user_context_books_request_user_context(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 0}}

    await make_book("MutedUsersBook", {"user": "9"}).fetch_next_page()

    assert mock_rest.request.call_args.kwargs["auth_mode"] is AuthMode.USER_CONTEXT


@pytest.mark.asyncio
async def test_time_window_is_sent_as_utc_timestamps(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 0}}
    book = make_book(
        "UserMentioningTweetsBook",
        {
            "user": "9",
            "startTime": datetime(2022, 3, 1, tzinfo=UTC),
            "endTime": "2022-03-02T06:00:00+02:00",
        },
    )

    await book.fetch_next_page()

    assert sent_params(mock_rest) == {
        "start_time": "2022-03-01T00:00:00.000Z",
        "end_time": "2022-03-02T04:00:00.000Z",
    }


@pytest.mark.asyncio
async def test_time_window_accepts_timestamp_option_names(make_book, mock_rest):
    mock_rest.request.return_value = {"meta": {"result_count": 0}}
    book = make_book(
        "SearchTweetsBook",
        {
            "query": "rust",
            "startTimestamp": 1646092800000,
            "endTimestamp": "2022-03-02T04:00:00Z",
        },
    )

    await book.fetch_next_page()

    assert sent_params(mock_rest) == {
        "query": "rust",
        "start_time": "2022-03-01T00:00:00.000Z",
        "end_time": "2022-03-02T04:00:00.000Z",
    }


def test_timestamp_option_names_still_check_the_window_order():
    with pytest.raises(InvalidArgumentError):
        validate_options(
            BOOK_DEFINITIONS["SearchTweetsBook"],
            {"query": "rust", "startTimestamp": 1646179200000, "endTimestamp": 1646092800000},
        )


# --- Option validation ---


def test_options_accept_snake_and_camel_case():
    definition = BOOK_DEFINITIONS["SearchTweetsBook"]

    camel = validate_options(definition, {"query": "rust", "maxResultsPerPage": 10})
    snake = validate_options(definition, {"query": "rust", "max_results_per_page": 10})

    assert camel == snake
    assert isinstance(camel, SearchTweetsBookOptions)


def test_options_model_instance_is_used_as_is():
    definition = BOOK_DEFINITIONS["SearchTweetsBook"]
    options = SearchTweetsBookOptions(query="rust")

    assert validate_options(definition, options) is options


@pytest.mark.parametrize(
    "name, options",
    [
        ("SearchTweetsBook", {}),
        ("SearchTweetsBook", {"query": ""}),
        ("SearchTweetsBook", {"query": 42}),
        ("SearchTweetsBook", {"query": "rust", "maxResultsPerPage": 0}),
        ("SearchTweetsBook", {"query": "rust", "colour": "blue"}),
        ("ComposedTweetsBook", {}),
        ("ListTweetsBook", {"user": "9"}),
        ("TweetsCountBook", {"query": "rust", "granularity": "week"}),
        ("TweetsCountBook", {"query": "rust", "maxResultsPerPage": 10}),
        (
            "SearchTweetsBook",
            {"query": "rust", "startTime": "2022-03-02T00:00:00Z", "endTime": "2022-03-01T00:00:00Z"},
        ),
    ],
)
def test_invalid_options_raise_invalid_argument(name, options):
    with pytest.raises(InvalidArgumentError, match=f"Invalid options for {name}"):
        validate_options(BOOK_DEFINITIONS[name], options)


def test_non_mapping_options_raise_invalid_argument():
    with pytest.raises(InvalidArgumentError, match="must be a mapping"):
        validate_options(BOOK_DEFINITIONS["SearchTweetsBook"], "rust")


SAMPLE_OPTIONS = {
    "BlockedUsersBook": ({"user": "9"}, "users/9/blocking"),
    "ComposedTweetsBook": ({"user": "9"}, "users/9/tweets"),
    "FollowedListsBook": ({"user": "9"}, "users/9/followed_lists"),
    "LikedByUsersBook": ({"tweet": "1"}, "tweets/1/liking_users"),
    "LikedTweetsBook": ({"user": "9"}, "users/9/liked_tweets"),
    "ListFollowersBook": ({"list": "42"}, "lists/42/followers"),
    "ListMembersBook": ({"list": "42"}, "lists/42/members"),
    "ListTweetsBook": ({"list": "42"}, "lists/42/tweets"),
    "MemberOfListsBook": ({"user": "9"}, "users/9/list_memberships"),
    "MutedUsersBook": ({"user": "9"}, "users/9/muting"),
    "OwnedListsBook": ({"user": "9"}, "users/9/owned_lists"),
    "PinnedListsBook": ({"user": "9"}, "users/9/pinned_lists"),
    "RetweetedByUsersBook": ({"tweet": "1"}, "tweets/1/retweeted_by"),
    "SearchTweetsBook": ({"query": "rust"}, "tweets/search/recent"),
    "SpaceTicketBuyersBook": ({"space": "1DXxy"}, "spaces/1DXxy/buyers"),
    "TweetsCountBook": ({"query": "rust"}, "tweets/counts/recent"),
    "UserFollowersBook": ({"user": "9"}, "users/9/followers"),
    "UserFollowingsBook": ({"user": "9"}, "users/9/following"),
    "UserMentioningTweetsBook": ({"user": "9"}, "users/9/mentions"),
}


def test_every_book_variant_is_defined():
    assert set(BOOK_DEFINITIONS) == set(SAMPLE_OPTIONS)
    assert len(BOOK_DEFINITIONS) == 19


@pytest.mark.asyncio
@pytest.mark.parametrize("name", sorted(SAMPLE_OPTIONS))
async def test_every_book_variant_fetches_its_endpoint(name, make_book, mock_rest):
    options, path = SAMPLE_OPTIONS[name]
    mock_rest.request.return_value = {"meta": {"result_count": 0}}
    book = make_book(name, options)

    assert await book.fetch_next_page() == {}
    assert mock_rest.request.call_args.args == ("GET", path)
    assert book.cursor.state is CursorState.EXHAUSTED
