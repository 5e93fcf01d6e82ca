import logging
import os
from typing import Any, List, Mapping, Optional

from ..schemas import GraphTokenError, GraphTokenResponse

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Nf-Graph-Token"
TOKEN_HEADER_NORMALIZED = "x-nf-graph-token"


def _field(event: Any, name: str) -> Any:
    if isinstance(event, Mapping):
        return event.get(name)
    return getattr(event, name, None)


def _token_from_mapping_headers(headers: Any) -> Optional[str]:
    if not isinstance(headers, Mapping):
        return None
    if TOKEN_HEADER in headers or TOKEN_HEADER_NORMALIZED in headers:
        header = headers.get(TOKEN_HEADER) or headers.get(TOKEN_HEADER_NORMALIZED)
        if isinstance(header, (list, tuple)):
            return header[0] if header else None
        return header
    return None


def _token_from_env() -> GraphTokenResponse:
    # _NETLIFY_GRAPH_TOKEN is injected by the Next.js plugin
    token = os.getenv("_NETLIFY_GRAPH_TOKEN") or os.getenv("NETLIFY_GRAPH_TOKEN")
    return GraphTokenResponse(token=token)


def _token_fallback(event: Any) -> GraphTokenResponse:
    # Older CLI versions pass the token on the event instead of a header
    authlify_token = _field(event, "authlifyToken")
    if authlify_token:
        return GraphTokenResponse(token=authlify_token)

    # Local dev without the Next.js plugin has no injected secrets
    if os.getenv("NETLIFY_DEV") == "true":
        return _token_from_env()
    return GraphTokenResponse(token=None)


def _token_from_event(event: Any) -> GraphTokenResponse:
    headers = _field(event, "headers")
    # Mapping lookup first, in case a header is literally named "get"
    token = _token_from_mapping_headers(headers)
    if token:
        return GraphTokenResponse(token=token)

    getter = getattr(headers, "get", None)
    if headers is not None and not isinstance(headers, Mapping) and callable(getter):
        return GraphTokenResponse(token=getter(TOKEN_HEADER))

    return _token_fallback(event)


def _is_event_required() -> bool:
    local_dev = os.getenv("NETLIFY_DEV") == "true"
    local_build = not local_dev and os.getenv("NETLIFY_LOCAL") == "true"
    remote_build = os.getenv("NETLIFY") == "true"
    in_build_phase = local_build or remote_build
    in_get_static_props = "_NETLIFY_GRAPH_TOKEN" in os.environ
    return not in_build_phase and not in_get_static_props


def _incorrect_arguments_errors(event: Any) -> Optional[List[GraphTokenError]]:
    requires_event = _is_event_required()

    if requires_event and event is None:
        return [
            GraphTokenError(
                type="missing-event-in-function",
                message=(
                    "You must provide an event or request to `get_graph_token` "
                    "when used in functions and on-demand builders."
                ),
            )
        ]

    if not requires_event and event is not None:
        return [
            GraphTokenError(
                type="provided-event-in-build",
                message="You must not pass arguments to `get_graph_token` when used in builds.",
            )
        ]
    return None


def get_graph_token(event: Any = None, suppress_log: bool = False) -> GraphTokenResponse:
    """Return the Graph token for ``event``, or structured errors.

    Never raises. ``suppress_log`` lets callers report the errors themselves.
    """
    errors = _incorrect_arguments_errors(event)
    if errors:
        if not suppress_log:
            for error in errors:
                logger.error(error.message)
        return GraphTokenResponse(errors=errors)

    return _token_from_event(event) if event is not None else _token_from_env()


def get_graph_token_for_build() -> GraphTokenResponse:
    return _token_from_env()
