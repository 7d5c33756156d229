"""Pydantic models for tweetloom entities and response envelopes."""

from .base import BaseEntity
from .envelope import Envelope, Meta
from .lists import TweetList
from .media import Media, Place, Poll, PollOption
from .rule import MatchingRule
from .tweet import Attachments, ReferencedTweet, Tweet, TweetCountBucket
from .user import User

__all__ = [
    "Attachments",
    "BaseEntity",
    "Envelope",
    "MatchingRule",
    "Media",
    "Meta",
    "Place",
    "Poll",
    "PollOption",
    "ReferencedTweet",
    "Tweet",
    "TweetCountBucket",
    "TweetList",
    "User",
]
