# tests/conftest.py
import os

import pytest
from dotenv import load_dotenv

from tweetloom.config import ClientSettings, QueryParameters

# Load environment variables from .env file if it exists
# Useful for storing a bearer token locally for the live tests
load_dotenv()


@pytest.fixture(scope="session")
def bearer_token() -> str | None:
    """Fixture to provide the bearer token from environment variables."""
    return os.getenv("TWEETLOOM_BEARER_TOKEN")


@pytest.fixture
def settings() -> ClientSettings:
    """Settings isolated from the environment, with instant retries."""
    return ClientSettings(
        _env_file=None,
        api_base_url="https://api.example.com/2",
        token_url="https://api.example.com/oauth2/token",
        max_retries=2,
        backoff_factor=0.0,
        bearer_token=None,
        consumer_key=None,
        consumer_secret=None,
        events=[],
        query_parameters=QueryParameters(),
    )
