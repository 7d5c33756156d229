"""Pydantic model for filtered stream rules."""

from .base import BaseEntity


class MatchingRule(BaseEntity):
    """A filtered stream rule.

    Stream records only carry ``id`` and ``tag``; ``value`` is known once the
    rule itself has been seen.
    """

    id: str
    tag: str | None = None
    value: str | None = None
