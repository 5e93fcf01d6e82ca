import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from .channel import StreamingChannel
from .config import REQUEST_ID_HEADER, Settings, load_settings, relay_url
from .errors import ChannelConstructionError, HandlerFailure, MissingRequestIdError
from .schemas import Outcome
from .utils import CompletionGate, invocation_timeout, is_awaitable

logger = logging.getLogger(__name__)

StreamingHandler = Callable[..., Optional[Awaitable[Any]]]


def request_id_from_event(event: Optional[Mapping[str, Any]]) -> str:
    headers = (event or {}).get("headers") or {}
    request_id = headers.get(REQUEST_ID_HEADER)
    if not request_id:
        raise MissingRequestIdError(f"missing {REQUEST_ID_HEADER} header")
    return request_id


async def run_invocation(
    handler: StreamingHandler,
    event: Mapping[str, Any],
    context: Any = None,
    callback: Optional[Callable[..., Any]] = None,
    *,
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> Outcome:
    """Run one streaming invocation and return its single Outcome.

    The handler writes into a StreamingChannel relayed to the stream relay.
    Channel finish, channel error, handler completion and handler failure all
    report to one CompletionGate; the first to arrive decides the Outcome and
    the rest are ignored, apart from being logged when they carry an error.
    """
    try:
        request_id = request_id_from_event(event)
    except MissingRequestIdError as exc:
        logger.info("Rejecting invocation: %s", exc)
        return Outcome.client_error()

    try:
        channel = StreamingChannel(
            relay_url(settings, request_id),
            method=settings.relay_method,
            client=client,
            connect_timeout=settings.connect_timeout,
            high_water_mark=settings.high_water_mark,
        )
    except ChannelConstructionError:
        logger.exception("Could not create relay stream for request %s", request_id)
        return Outcome.server_error()

    gate: CompletionGate[Outcome] = CompletionGate()

    def _on_channel_error(exc: BaseException) -> None:
        logger.error("Relay stream for request %s failed", request_id, exc_info=exc)
        gate.resolve(Outcome.server_error())

    def _on_handler_failure(exc: BaseException) -> None:
        failure = HandlerFailure(f"streaming handler for request {request_id} failed")
        failure.__cause__ = exc
        logger.error("%s", failure, exc_info=failure)
        gate.resolve(Outcome.server_error())

    def _on_handler_done(task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            if not gate.resolved:
                logger.error("Streaming handler for request %s was cancelled", request_id)
                gate.resolve(Outcome.server_error())
            return
        exc = task.exception()
        if exc is not None:
            _on_handler_failure(exc)
            return
        channel.end()
        gate.resolve(Outcome.ok())

    channel.on_error(_on_channel_error)
    channel.on_finish(lambda: gate.resolve(Outcome.ok()))
    channel.open()

    handler_task: Optional["asyncio.Future[Any]"] = None
    try:
        result = handler(event, channel, context, callback)
    except Exception as exc:
        _on_handler_failure(exc)
    else:
        if is_awaitable(result):
            handler_task = asyncio.ensure_future(result)
            handler_task.add_done_callback(_on_handler_done)
        else:
            channel.end()
            gate.resolve(Outcome.ok())

    loop = asyncio.get_running_loop()
    timeout = invocation_timeout(context, settings.invocation_timeout)
    deadline = loop.time() + timeout
    try:
        outcome = await gate.wait(timeout)
    except asyncio.TimeoutError:
        logger.error("Streaming invocation for request %s timed out after %.1fs", request_id, timeout)
        gate.resolve(Outcome.server_error())
        outcome = gate.result()

    if handler_task is not None and not handler_task.done():
        handler_task.cancel()
        await asyncio.wait({handler_task}, timeout=max(deadline - loop.time(), 0))

    if outcome.kind != "ok":
        channel.abort()
    elif not await channel.wait_closed(max(deadline - loop.time(), 0)):
        logger.warning("Relay stream for request %s still open at the deadline; aborting", request_id)
        channel.abort()
    return outcome


def streamer(
    handler: StreamingHandler,
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Adapt a streaming handler to the single-response function contract.

    ``handler(event, response, context, callback)`` receives a
    StreamingChannel as ``response`` and may return an awaitable. The wrapped
    coroutine never raises; it returns one of the three Outcome responses.
    """
    settings = settings or load_settings()

    @functools.wraps(handler)
    async def wrapped(event, context=None, callback=None) -> Dict[str, Any]:
        outcome = await run_invocation(
            handler,
            event,
            context,
            callback,
            settings=settings,
            client=client,
        )
        return outcome.to_response()

    return wrapped


def lambda_entrypoint(handler: StreamingHandler, *, settings: Optional[Settings] = None) -> Callable[..., Dict[str, Any]]:
    """Synchronous ``(event, context)`` entrypoint running each invocation on a fresh event loop."""
    wrapped = streamer(handler, settings=settings)

    @functools.wraps(handler)
    def entry(event, context=None) -> Dict[str, Any]:
        return asyncio.run(wrapped(event, context))

    return entry
