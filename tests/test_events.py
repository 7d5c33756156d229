import pytest

from tweetloom.constants import ClientEvent
from tweetloom.events import EventEmitter, coerce_event
from tweetloom.exceptions import InvalidArgumentError


@pytest.mark.parametrize(
    "event",
    [ClientEvent.READY, "READY", "ready"],
)
def test_coerce_event_accepts_members_names_and_values(event):
    assert coerce_event(event) is ClientEvent.READY


@pytest.mark.parametrize("event", ["tweetCreate", "", 3, None])
def test_coerce_event_rejects_unknown_events(event):
    with pytest.raises(InvalidArgumentError, match="Unknown event"):
        coerce_event(event)


@pytest.mark.asyncio
async def test_handlers_run_in_registration_order():
    emitter = EventEmitter()
    calls = []

    async def second(value):
        calls.append(("second", value))

    emitter.on("sampledTweetCreate", lambda value: calls.append(("first", value)))
    emitter.on(ClientEvent.SAMPLED_TWEET_CREATE, second)
    emitter.on("SAMPLED_TWEET_CREATE", lambda value: calls.append(("third", value)))

    await emitter.emit(ClientEvent.SAMPLED_TWEET_CREATE, 1)
    await emitter.emit(ClientEvent.SAMPLED_TWEET_CREATE, 2)

    assert calls == [
        ("first", 1),
        ("second", 1),
        ("third", 1),
        ("first", 2),
        ("second", 2),
        ("third", 2),
    ]


@pytest.mark.asyncio
async def test_off_removes_a_handler():
    emitter = EventEmitter()
    calls = []
    handler = emitter.on("ready", calls.append)

    emitter.off("ready", handler)
    emitter.off("ready", handler)
    await emitter.emit(ClientEvent.READY, "client")

    assert calls == []
    assert emitter.listeners("ready") == []


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_the_others():
    emitter = EventEmitter()
    calls = []

    def broken(*args):
        raise RuntimeError("handler failed")

    emitter.on("streamClose", broken)
    emitter.on("streamClose", lambda name, error: calls.append((name, error)))

    await emitter.emit(ClientEvent.STREAM_CLOSE, "sampled", None)

    assert calls == [("sampled", None)]


@pytest.mark.asyncio
async def test_emit_without_handlers_is_a_no_op():
    await EventEmitter().emit(ClientEvent.STREAM_DECODE_ERROR, object())


def test_on_rejects_non_callables_and_unknown_events():
    emitter = EventEmitter()

    with pytest.raises(InvalidArgumentError, match="must be callable"):
        emitter.on("ready", "not a function")
    with pytest.raises(InvalidArgumentError, match="Unknown event"):
        emitter.on("tweetCreate", print)
