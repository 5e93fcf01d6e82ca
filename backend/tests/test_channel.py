import asyncio
import logging

import httpx
import pytest

from relay_fakes import RecordingTransport, body_after_frame

from function_streamer.channel import StreamingChannel
from function_streamer.errors import (
    ChannelConstructionError,
    ChannelStateError,
    ChannelTransportError,
)

URL = "https://relay.test/.stream/req-1"


def run_channel(transport, script, **kwargs):
    """Open a channel on ``transport``, run ``script(channel)``, wait for close."""
    events = []

    async def scenario():
        async with httpx.AsyncClient(transport=transport) as client:
            channel = StreamingChannel(URL, client=client, **kwargs)
            channel.on_finish(lambda: events.append("finish"))
            channel.on_error(lambda exc: events.append(exc))
            channel.open()
            await script(channel)
            await channel.wait_closed(2)
            return channel

    channel = asyncio.run(scenario())
    return channel, events


def test_metadata_is_sent_once_before_first_body_byte():
    transport = RecordingTransport()

    async def script(res):
        res.set_header("content-type", "text/plain")
        res.status_code = 201
        res.write(b"hello")
        res.write(b" ")
        res.end(b"world")

    channel, events = run_channel(transport, script)

    assert transport.received == (
        b'{"headers":{"content-type":"text/plain"},"statusCode":201}\x00hello world'
    )
    assert transport.received.count(b'"statusCode"') == 1
    assert events == ["finish"]
    assert channel.closed


def test_headers_and_status_set_after_first_write_are_ignored(caplog):
    transport = RecordingTransport()

    async def script(res):
        res.set_header("x-before", "1")
        res.write(b"a")
        res.set_header("x-after", "2")
        res.status_code = 500
        res.write(b"b")
        res.end()

    with caplog.at_level(logging.WARNING):
        channel, _ = run_channel(transport, script)

    assert transport.received == b'{"headers":{"x-before":"1"},"statusCode":200}\x00ab'
    assert channel.status_code == 200
    assert "x-after" not in channel.headers
    assert "after response metadata was sent" in caplog.text


def test_end_without_writes_still_sends_metadata():
    transport = RecordingTransport()

    async def script(res):
        res.status_code = 204
        res.end()

    _, events = run_channel(transport, script)

    assert transport.received == b'{"headers":{},"statusCode":204}\x00'
    assert events == ["finish"]


def test_str_writes_are_encoded_and_list_headers_serialized():
    transport = RecordingTransport()

    async def script(res):
        res.set_header("set-cookie", ["a=1", "b=2"]).set_header("content-length", 4)
        res.write("héllo")
        res.end()

    run_channel(transport, script)

    assert transport.received.startswith(
        b'{"headers":{"set-cookie":["a=1","b=2"],"content-length":4},"statusCode":200}\x00'
    )
    assert body_after_frame(transport.received) == "héllo".encode("utf-8")


def test_write_after_end_raises():
    transport = RecordingTransport()
    errors = []

    async def script(res):
        res.end(b"done")
        res.end()
        try:
            res.write(b"late")
        except ChannelStateError as exc:
            errors.append(exc)

    run_channel(transport, script)

    assert len(errors) == 1
    assert body_after_frame(transport.received) == b"done"


def test_write_signals_backpressure_and_drain_waits_for_the_relay():
    transport = RecordingTransport()
    signals = []

    async def script(res):
        signals.append(res.write(b"a"))
        signals.append(res.write(b"b"))
        await asyncio.wait_for(res.drain(), 1)
        signals.append(res.write(b"c"))
        res.end()

    async def scenario():
        async with httpx.AsyncClient(transport=transport) as client:
            channel = StreamingChannel(URL, client=client, high_water_mark=3)
            # queue fills before the connection task gets to run
            first = channel.write(b"x")
            channel.open()
            await script(channel)
            await channel.wait_closed(2)
            return first

    first = asyncio.run(scenario())

    assert first is True
    assert signals[:2] == [False, False]
    assert signals[2] is True
    assert body_after_frame(transport.received) == b"xabc"


def test_connection_failure_emits_a_single_error():
    transport = RecordingTransport(fail_on_connect=True)

    async def script(res):
        await asyncio.sleep(0.01)
        with pytest.raises(ChannelTransportError):
            res.write(b"after failure")
        res.end()

    channel, events = run_channel(transport, script)

    assert len(events) == 1
    assert isinstance(events[0], httpx.ConnectError)
    assert isinstance(channel.error, httpx.ConnectError)


def test_relay_error_status_is_reported_as_error():
    transport = RecordingTransport(status_code=503)

    async def script(res):
        res.end(b"body")

    _, events = run_channel(transport, script)

    assert len(events) == 1
    assert isinstance(events[0], ChannelTransportError)
    assert "503" in str(events[0])


def test_abort_closes_without_signals():
    transport = RecordingTransport()

    async def script(res):
        res.write(b"partial")
        await asyncio.sleep(0.01)
        res.abort()

    channel, events = run_channel(transport, script)

    assert events == []
    assert channel.closed and channel.ended


def test_async_context_manager_ends_the_stream():
    transport = RecordingTransport()

    async def scenario():
        async with httpx.AsyncClient(transport=transport) as client:
            async with StreamingChannel(URL, client=client) as res:
                res.write(b"ctx")

    asyncio.run(scenario())

    assert body_after_frame(transport.received) == b"ctx"
    assert str(transport.requests[0].url) == URL
    assert transport.requests[0].method == "POST"


@pytest.mark.parametrize("url", ["ftp://relay.test/.stream/x", "/.stream/x", ""])
def test_invalid_urls_fail_construction(url):
    with pytest.raises(ChannelConstructionError):
        StreamingChannel(url)


def test_unserializable_header_does_not_mark_metadata_sent():
    transport = RecordingTransport()
    failures = []

    async def script(res):
        res.set_header("x-bad", b"raw")
        try:
            res.write(b"a")
        except TypeError as exc:
            failures.append(exc)
        assert not res.metadata_sent
        res.set_header("x-bad", "ok")
        res.write(b"body")
        res.end()

    run_channel(transport, script)

    assert len(failures) == 1
    assert transport.received == b'{"headers":{"x-bad":"ok"},"statusCode":200}\x00body'


def test_raising_observer_is_logged_and_others_still_run(caplog):
    transport = RecordingTransport()
    events = []

    def broken_observer():
        raise RuntimeError("observer boom")

    async def scenario():
        async with httpx.AsyncClient(transport=transport) as client:
            channel = StreamingChannel(URL, client=client)
            channel.on_finish(broken_observer)
            channel.on_finish(lambda: events.append("finish"))
            channel.open()
            channel.end(b"done")
            await channel.wait_closed(2)
            return channel

    with caplog.at_level(logging.ERROR):
        channel = asyncio.run(scenario())

    assert events == ["finish"]
    assert channel.error is None
    assert "Finish observer for relay stream" in caplog.text
    assert "observer boom" in caplog.text
