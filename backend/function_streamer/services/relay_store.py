from typing import Dict, List, Set

from ..framing import FrameDecoder
from ..schemas import RelayStreamRecord


# In-memory state for the development relay. Not shared across processes.
RELAY_STREAMS: Dict[str, FrameDecoder] = {}
COMPLETED_STREAMS: Set[str] = set()


def open_stream(request_id: str) -> FrameDecoder:
    decoder = FrameDecoder()
    RELAY_STREAMS[request_id] = decoder
    COMPLETED_STREAMS.discard(request_id)
    return decoder


def complete_stream(request_id: str) -> None:
    if request_id not in RELAY_STREAMS:
        raise KeyError("stream not found")
    COMPLETED_STREAMS.add(request_id)


def get_stream(request_id: str) -> RelayStreamRecord:
    decoder = RELAY_STREAMS.get(request_id)
    if decoder is None:
        raise KeyError("stream not found")
    return RelayStreamRecord(
        request_id=request_id,
        status_code=decoder.status_code,
        headers=decoder.headers,
        body=bytes(decoder.body).decode("utf-8", errors="replace"),
        size=len(decoder.body),
        completed=request_id in COMPLETED_STREAMS,
    )


def list_streams() -> List[RelayStreamRecord]:
    return [get_stream(request_id) for request_id in RELAY_STREAMS]


def clear_streams() -> None:
    RELAY_STREAMS.clear()
    COMPLETED_STREAMS.clear()
