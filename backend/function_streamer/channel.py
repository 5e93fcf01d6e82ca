import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Union

import httpx

from .errors import ChannelConstructionError, ChannelStateError, ChannelTransportError
from .framing import encode_metadata

logger = logging.getLogger(__name__)

HeaderValue = Union[str, int, List[str]]
WritableData = Union[bytes, bytearray, memoryview, str]

_EOF = object()


class StreamingChannel:
    """Writable response sink backed by an outbound connection to the relay.

    The channel owns one streaming HTTP request whose body is fed from an
    in-memory chunk queue. The first ``write`` (or ``end`` when nothing was
    written) puts the metadata frame on the queue ahead of any body bytes:
    compact JSON ``{"headers": ..., "statusCode": ...}`` followed by one NUL
    byte. Everything after that is forwarded verbatim in call order.

    Observers registered with ``on_finish`` fire once the relay has accepted
    the whole stream. Observers registered with ``on_error`` fire once on the
    first transport failure, whether it happens before or after ``end``.
    """

    def __init__(
        self,
        url: str,
        *,
        method: str = "POST",
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = 10.0,
        high_water_mark: int = 16,
    ):
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise ChannelConstructionError(f"invalid relay url: {url!r}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ChannelConstructionError(f"unsupported relay url: {url!r}")

        self.url = str(parsed)
        self.method = method
        self._client = client
        self._timeout = httpx.Timeout(connect_timeout, read=None, write=None)
        self._high_water_mark = max(int(high_water_mark), 1)

        self._headers: Dict[str, HeaderValue] = {}
        self._status_code = 200
        self._metadata_sent = False
        self._ended = False
        self._closed = False
        self._error: Optional[BaseException] = None

        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._drained = asyncio.Event()
        self._drained.set()
        self._task: Optional["asyncio.Task[None]"] = None
        self._finish_callbacks: List[Callable[[], None]] = []
        self._error_callbacks: List[Callable[[BaseException], None]] = []

    async def __aenter__(self) -> "StreamingChannel":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.end()
        await self.wait_closed()

    @property
    def status_code(self) -> int:
        return self._status_code

    @status_code.setter
    def status_code(self, value: int) -> None:
        if self._metadata_sent:
            logger.warning("Ignoring status code %s set after response metadata was sent", value)
            return
        self._status_code = int(value)

    @property
    def headers(self) -> Dict[str, HeaderValue]:
        return dict(self._headers)

    @property
    def metadata_sent(self) -> bool:
        return self._metadata_sent

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def get_header(self, name: str) -> Optional[HeaderValue]:
        return self._headers.get(name)

    def set_header(self, name: str, value: HeaderValue) -> "StreamingChannel":
        if self._metadata_sent:
            logger.warning("Ignoring header %r set after response metadata was sent", name)
            return self
        self._headers[name] = value
        return self

    def on_finish(self, callback: Callable[[], None]) -> None:
        self._finish_callbacks.append(callback)

    def on_error(self, callback: Callable[[BaseException], None]) -> None:
        self._error_callbacks.append(callback)

    def open(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._pump())

    def write(self, data: WritableData, encoding: str = "utf-8") -> bool:
        """Queue ``data`` for the relay.

        Returns False once the pending queue reaches the high-water mark; the
        caller may then await ``drain()`` before writing more.
        """
        if self._error is not None:
            raise ChannelTransportError("relay connection failed") from self._error
        if self._ended:
            raise ChannelStateError("write after end")

        chunk = data.encode(encoding) if isinstance(data, str) else bytes(data)
        self._send_metadata()
        if chunk:
            self._enqueue(chunk)
        return self._queue.qsize() < self._high_water_mark

    async def drain(self) -> None:
        while self._queue.qsize() >= self._high_water_mark and not self._closed:
            self._drained.clear()
            await self._drained.wait()
        if self._error is not None:
            raise ChannelTransportError("relay connection failed") from self._error

    def end(self, data: Optional[WritableData] = None, encoding: str = "utf-8") -> None:
        if self._ended:
            return
        if self._error is not None:
            self._ended = True
            return
        if data is not None:
            self.write(data, encoding)
        else:
            # the relay always gets a metadata frame, even for an empty body
            self._send_metadata()
        self._ended = True
        self._queue.put_nowait(_EOF)

    def abort(self) -> None:
        """Drop the outbound connection without notifying observers."""
        self._ended = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._mark_closed()

    async def wait_closed(self, timeout: Optional[float] = None) -> bool:
        if self._task is None:
            return True
        await asyncio.wait({self._task}, timeout=timeout)
        return self._task.done()

    def _send_metadata(self) -> None:
        if self._metadata_sent:
            return
        frame = encode_metadata(self._headers, self._status_code)
        self._metadata_sent = True
        self._enqueue(frame)

    def _enqueue(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)
        if self._queue.qsize() >= self._high_water_mark:
            self._drained.clear()

    async def _body(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if self._queue.qsize() < self._high_water_mark:
                self._drained.set()
            if chunk is _EOF:
                return
            yield chunk  # type: ignore[misc]

    async def _pump(self) -> None:
        try:
            if self._client is not None:
                await self._send(self._client)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    await self._send(client)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(exc)
        else:
            self._finish()
        finally:
            self._mark_closed()

    async def _send(self, client: httpx.AsyncClient) -> None:
        logger.debug("Opening relay stream %s %s", self.method, self.url)
        async with client.stream(
            self.method,
            self.url,
            content=self._body(),
            headers={"content-type": "application/octet-stream"},
            timeout=self._timeout,
        ) as response:
            await response.aread()
            if response.is_error:
                raise ChannelTransportError(f"relay responded with status {response.status_code}")

    def _fail(self, exc: BaseException) -> None:
        if self._error is not None:
            return
        self._error = exc
        # unsent bytes are not redelivered
        while not self._queue.empty():
            self._queue.get_nowait()
        for callback in list(self._error_callbacks):
            try:
                callback(exc)
            except Exception:
                logger.exception("Error observer for relay stream %s raised", self.url)

    def _finish(self) -> None:
        logger.debug("Relay stream %s finished", self.url)
        for callback in list(self._finish_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Finish observer for relay stream %s raised", self.url)

    def _mark_closed(self) -> None:
        self._closed = True
        self._drained.set()
