import asyncio
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from mangum.handlers.utils import get_server_and_port, maybe_encode_body, strip_api_gateway_path

from .channel import StreamingChannel


def _event_headers(event: Mapping[str, Any]) -> Dict[str, List[str]]:
    merged: Dict[str, List[str]] = {}
    for name, values in (event.get("multiValueHeaders") or {}).items():
        merged[name.lower()] = [str(v) for v in (values or [])]
    for name, value in (event.get("headers") or {}).items():
        merged.setdefault(name.lower(), [str(value)])
    return merged


def _query_string(event: Mapping[str, Any]) -> bytes:
    if event.get("rawQuery"):
        return str(event["rawQuery"]).encode("latin-1")
    multi = event.get("multiValueQueryStringParameters")
    if multi:
        return urlencode(multi, doseq=True).encode("latin-1")
    single = event.get("queryStringParameters")
    if single:
        return urlencode(single).encode("latin-1")
    return b""


def _client_address(headers: Dict[str, List[str]]) -> Optional[Tuple[str, int]]:
    for name in ("x-nf-client-connection-ip", "x-forwarded-for"):
        values = headers.get(name)
        if values and values[0]:
            return (values[0].split(",")[0].strip(), 0)
    return None


def build_scope(event: Mapping[str, Any], *, base_path: str = "/") -> Dict[str, Any]:
    """Translate a function invocation event into an ASGI HTTP scope."""
    headers = _event_headers(event)
    first_values = {name: values[0] for name, values in headers.items() if values}
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.0"},
        "http_version": "1.1",
        "method": str(event.get("httpMethod") or "GET").upper(),
        "scheme": first_values.get("x-forwarded-proto", "https"),
        "path": strip_api_gateway_path(event.get("path") or "/", api_gateway_base_path=base_path) or "/",
        "raw_path": None,
        "root_path": "",
        "query_string": _query_string(event),
        "headers": [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, values in headers.items()
            for value in values
        ],
        "server": get_server_and_port(first_values),
        "client": _client_address(headers),
    }


def _append_header(res: StreamingChannel, name: str, value: str) -> None:
    existing = res.get_header(name)
    if existing is None:
        res.set_header(name, value)
    elif isinstance(existing, list):
        res.set_header(name, existing + [value])
    else:
        res.set_header(name, [str(existing), value])


def asgi_handler(app, *, base_path: str = "/"):
    """Streaming handler that serves ``app`` and relays its response.

    The request body is delivered in one ``http.request`` message.
    ``http.disconnect`` is withheld until the response is complete so that
    streaming responses are not cut short.
    """

    async def handler(event, res: StreamingChannel, context=None, callback=None) -> None:
        scope = build_scope(event, base_path=base_path)
        scope["aws.event"] = event
        scope["aws.context"] = context
        body = maybe_encode_body(event.get("body") or b"", is_base64=bool(event.get("isBase64Encoded")))
        request_sent = False
        response_complete = asyncio.Event()

        async def receive() -> Dict[str, Any]:
            nonlocal request_sent
            if not request_sent:
                request_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            await response_complete.wait()
            return {"type": "http.disconnect"}

        async def send(message: Dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                res.status_code = message["status"]
                for raw_name, raw_value in message.get("headers", []):
                    _append_header(res, raw_name.decode("latin-1"), raw_value.decode("latin-1"))
            elif message["type"] == "http.response.body":
                chunk = message.get("body", b"")
                if chunk and not res.write(chunk):
                    await res.drain()
                if not message.get("more_body", False):
                    response_complete.set()

        try:
            await app(scope, receive, send)
        finally:
            response_complete.set()

    return handler
