"""Consumers for the long-lived newline-delimited JSON streams.

The API keeps a streaming response open indefinitely and writes one JSON
record per line, plus blank lines as keep-alive heartbeats. Chunk boundaries
of the underlying connection are arbitrary: a record, or even a single UTF-8
character, may be split across chunks, so consumers buffer until a line
terminator arrives.

A record that cannot be decoded is reported (logged and emitted as
``streamDecodeError``) and skipped; the connection stays open. When the
connection ends, for any reason, ``streamClose`` is emitted once. Consumers
never reconnect.
"""

import asyncio
import json
from typing import TYPE_CHECKING, Any, ClassVar

from .config import QueryParameters
from .constants import DEFAULT_STREAM_MAX_RECORD_BYTES, ClientEvent
from .endpoints import FILTERED_STREAM, SAMPLED_STREAM
from .exceptions import MalformedResponseError, StreamDecodeError, TweetloomError
from .log_config import logger
from .models import Envelope, MatchingRule, Tweet
from .unwrapper import EnvelopeUnwrapper

if TYPE_CHECKING:
    from .events import EventEmitter
    from .rest import RestClient
    from .store import EntityCache


class LineBuffer:
    """Turns a sequence of byte chunks into complete lines of bytes.

    Lines are split on ``\\n``; a trailing ``\\r`` is stripped. The incomplete
    tail of the last chunk is kept until the next chunk (or :meth:`flush`), so
    a UTF-8 character split across chunks arrives whole. Lines are not
    decoded here; invalid UTF-8 is left for the consumer to report.

    A line longer than ``max_line_bytes`` is dropped as soon as it grows past
    the bound and yields ``None`` in its place; its remaining bytes are
    discarded up to the next line terminator.
    """

    def __init__(self, max_line_bytes: int | None = None) -> None:
        self._pending = bytearray()
        self._max_line_bytes = max_line_bytes
        self._discarding = False

    def feed(self, chunk: bytes) -> list[bytes | None]:
        lines: list[bytes | None] = []
        start = 0
        end = chunk.find(b"\n")
        while end != -1:
            if self._discarding:
                self._discarding = False
            else:
                self._pending += chunk[start:end]
                lines.append(self._take())
            start = end + 1
            end = chunk.find(b"\n", start)

        if not self._discarding:
            self._pending += chunk[start:]
            if self._too_long(len(self._pending)):
                self._pending.clear()
                self._discarding = True
                lines.append(None)
        return lines

    def flush(self) -> list[bytes | None]:
        """Return whatever is left once the stream has ended."""
        if self._discarding:
            self._discarding = False
            return []
        if not self._pending:
            return []
        line = self._take()
        return [line] if line != b"" else []

    def _take(self) -> bytes | None:
        line = bytes(self._pending).removesuffix(b"\r")
        self._pending.clear()
        return None if self._too_long(len(line)) else line

    def _too_long(self, size: int) -> bool:
        return self._max_line_bytes is not None and size > self._max_line_bytes


class StreamConsumer:
    """Base class of the stream consumers.

    Subclasses set :attr:`name`, :attr:`path` and :attr:`event` and implement
    :meth:`cache_record`.
    """

    name: ClassVar[str]
    path: ClassVar[str]
    event: ClassVar[ClientEvent]

    def __init__(
        self,
        rest: "RestClient",
        cache: "EntityCache",
        emitter: "EventEmitter",
        query_parameters: QueryParameters | None = None,
        *,
        max_record_bytes: int | None = DEFAULT_STREAM_MAX_RECORD_BYTES,
    ):
        self._rest = rest
        self._cache = cache
        self._emitter = emitter
        self._params = (query_parameters or QueryParameters()).tweet_query()
        self._unwrapper = EnvelopeUnwrapper()
        self._max_record_bytes = max_record_bytes
        self._task: asyncio.Task[None] | None = None
        self.records_delivered = 0
        self.records_skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "asyncio.Task[None]":
        """Start consuming in a background task. Starting twice returns the same task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"tweetloom-{self.name}-stream")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> None:
        """Wait until the stream has ended."""
        if self._task is not None:
            await self._task

    async def run(self) -> None:
        """Consume the stream until the connection ends.

        Transport failures end the stream; they are logged and reported
        through ``streamClose`` rather than raised.
        """
        buffer = LineBuffer(self._max_record_bytes)
        try:
            async with self._rest.open_stream(self.path, params=self._params) as chunks:
                logger.info(f"Connected to the {self.name} stream")
                async for chunk in chunks:
                    for line in buffer.feed(chunk):
                        await self.consume_line(line)
                for line in buffer.flush():
                    await self.consume_line(line)
        except asyncio.CancelledError:
            logger.info(f"The {self.name} stream was stopped")
            await self._emitter.emit(ClientEvent.STREAM_CLOSE, self.name, None)
            raise
        except TweetloomError as e:
            logger.error(f"The {self.name} stream closed with an error: {e}")
            await self._emitter.emit(ClientEvent.STREAM_CLOSE, self.name, e)
            return

        logger.info(f"The {self.name} stream ended")
        await self._emitter.emit(ClientEvent.STREAM_CLOSE, self.name, None)

    async def consume_line(self, line: bytes | None) -> None:
        """Decode, cache and dispatch one line of the stream.

        ``None`` stands for a record the buffer dropped for its size.
        """
        if line is not None and not line.strip():
            return
        try:
            if line is None:
                raise StreamDecodeError(
                    f"Record exceeds {self._max_record_bytes} bytes",
                    line="",
                    stream=self.name,
                )
            envelope = self.decode(line)
            args = self.cache_record(envelope)
        except StreamDecodeError as e:
            self.records_skipped += 1
            logger.warning(f"Skipping undecodable record: {e}")
            await self._emitter.emit(ClientEvent.STREAM_DECODE_ERROR, e)
            return
        self.records_delivered += 1
        await self._emitter.emit(self.event, *args)

    def decode(self, raw: bytes) -> Envelope:
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StreamDecodeError(
                f"Invalid UTF-8 at byte {e.start}",
                line=raw.decode("utf-8", errors="replace"),
                stream=self.name,
            ) from e
        try:
            body = json.loads(line)
        except json.JSONDecodeError as e:
            raise StreamDecodeError(f"Invalid JSON: {e.msg}", line=line, stream=self.name) from e
        try:
            envelope = self._unwrapper.parse(body)
        except MalformedResponseError as e:
            raise StreamDecodeError(str(e), line=line, stream=self.name) from e
        data = envelope.data
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise StreamDecodeError(
                "Record has no 'data' object with an 'id'", line=line, stream=self.name
            )
        return envelope

    def cache_record(self, envelope: Envelope) -> tuple[Any, ...]:
        """Upsert a decoded record and return the arguments of its event."""
        raise NotImplementedError

    def _cache_tweet(self, envelope: Envelope) -> Tweet:
        try:
            return self._cache.upsert_envelope(envelope, "tweets")[0]  # type: ignore[return-value]
        except MalformedResponseError as e:
            raise StreamDecodeError(
                str(e), line=envelope.model_dump_json(), stream=self.name
            ) from e


class FilteredStreamConsumer(StreamConsumer):
    """Delivers tweets matching the filtered stream's rules.

    Emits ``filteredTweetCreate(tweet, rules)`` where ``rules`` maps each
    matching rule's identifier to its cached :class:`MatchingRule`.
    """

    name = "filtered"
    path = FILTERED_STREAM
    event = ClientEvent.FILTERED_TWEET_CREATE

    def cache_record(self, envelope: Envelope) -> tuple[Tweet, dict[str, MatchingRule]]:
        tweet = self._cache_tweet(envelope)
        rules: dict[str, MatchingRule] = {}
        for raw_rule in envelope.matching_rules or []:
            try:
                rule = self._cache.rules.add(raw_rule)
            except MalformedResponseError as e:
                raise StreamDecodeError(
                    str(e), line=envelope.model_dump_json(), stream=self.name
                ) from e
            rules[rule.identifier] = rule
        return tweet, rules


class SampledStreamConsumer(StreamConsumer):
    """Delivers the sampled stream: ``sampledTweetCreate(tweet)``."""

    name = "sampled"
    path = SAMPLED_STREAM
    event = ClientEvent.SAMPLED_TWEET_CREATE

    def cache_record(self, envelope: Envelope) -> tuple[Tweet]:
        return (self._cache_tweet(envelope),)
