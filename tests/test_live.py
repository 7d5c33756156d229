"""Tests against the real API. Run with ``pytest -m live`` and a bearer token in the environment."""

import pytest

from tweetloom import Client
from tweetloom.config import ClientSettings, QueryParameters

pytestmark = pytest.mark.live


@pytest.fixture
def live_settings(bearer_token):
    if not bearer_token:
        pytest.skip("TWEETLOOM_BEARER_TOKEN is not set")
    return ClientSettings(events=[], query_parameters=QueryParameters(tweet_fields=["created_at"]))


@pytest.mark.asyncio
async def test_search_recent_returns_tweets(live_settings, bearer_token):
    async with Client(live_settings) as client:
        await client.login_with_bearer_token(bearer_token)
        book = client.create_book("SearchTweetsBook", query="python", max_results_per_page=10)

        page = await book.fetch_next_page()

        assert len(page) <= 10
        for identifier, tweet in page.items():
            assert client.tweets.get(identifier) is tweet
            assert tweet.created_at is not None
