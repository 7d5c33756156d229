# tweetloom/unwrapper.py
"""Response unwrapping for the ``data`` / ``includes`` / ``meta`` envelope.

The unwrapper is the single place that decides whether a decoded response is
usable. Books, stream consumers and the login step all go through it, so a
response missing its primary payload fails the same way everywhere.
"""

from typing import Any

from pydantic import ValidationError

from .exceptions import MalformedResponseError
from .log_config import logger
from .models import Envelope


class EnvelopeUnwrapper:
    """Parses decoded JSON into :class:`Envelope` objects and extracts their parts.

    Typical page response:

    ```json
    {
        "data": [{"id": "1", "text": "hello"}],
        "includes": {"users": [{"id": "9", "username": "someone"}]},
        "meta": {"result_count": 1, "next_token": "b26v89c19zqg8o3fo7gghep0wmpt92c0wn0jiqwtc7tdp"}
    }
    ```

    A page with no results omits ``data`` and reports ``"result_count": 0``.
    """

    def parse(self, body: Any) -> Envelope:
        """Validate a decoded response body as an envelope.

        Raises:
            MalformedResponseError: If the body is not a JSON object or its
                top-level fields have the wrong shape.
        """
        if not isinstance(body, dict):
            raise MalformedResponseError(
                f"Expected a JSON object response, got {type(body).__name__}"
            )
        try:
            envelope = Envelope.model_validate(body)
        except ValidationError as e:
            raise MalformedResponseError(f"Response envelope is malformed: {e}") from e

        if envelope.errors:
            logger.warning(
                f"Response carried {len(envelope.errors)} partial error(s): "
                f"{[error.get('detail') or error.get('title') for error in envelope.errors]}"
            )
        return envelope

    def unwrap_results(self, envelope: Envelope) -> list[dict[str, Any]]:
        """Return the primary payload of a page as an ordered list.

        A page without ``data`` is only acceptable when its metadata reports
        zero results.

        Raises:
            MalformedResponseError: If ``data`` is missing on a non-empty page.
        """
        if envelope.data is None:
            if envelope.result_count == 0:
                return []
            raise MalformedResponseError(
                "Response is missing its 'data' payload"
                + self._describe_errors(envelope)
            )
        return envelope.primary_items()

    def unwrap_single_item(self, envelope: Envelope) -> dict[str, Any]:
        """Return the primary payload of a single-object response.

        Raises:
            MalformedResponseError: If ``data`` is missing or is not an object.
        """
        if not isinstance(envelope.data, dict):
            raise MalformedResponseError(
                "Response is missing its single-object 'data' payload"
                + self._describe_errors(envelope)
            )
        return envelope.data

    def get_next_page_token(self, envelope: Envelope) -> str | None:
        """Return the continuation token, treating blank tokens as absent."""
        token = envelope.next_token
        if token is None:
            return None
        token = token.strip()
        return token or None

    def get_total_results(self, envelope: Envelope) -> int | None:
        return envelope.result_count

    @staticmethod
    def _describe_errors(envelope: Envelope) -> str:
        if not envelope.errors:
            return ""
        details = "; ".join(
            str(error.get("detail") or error.get("title") or error)
            for error in envelope.errors
        )
        return f": {details}"
