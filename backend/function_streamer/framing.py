import json
from typing import Any, Dict, Mapping, Optional

from .errors import FramingError

DELIMITER = b"\x00"


def encode_metadata(headers: Mapping[str, Any], status_code: int) -> bytes:
    """Serialize response metadata into the frame that precedes the body.

    JSON text never contains a raw NUL byte, so the delimiter is unambiguous.
    """
    payload = json.dumps(
        {"headers": dict(headers), "statusCode": status_code},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return payload.encode("utf-8") + DELIMITER


class FrameDecoder:
    """Incremental decoder for a metadata-prefixed byte stream."""

    def __init__(self):
        self._pending = bytearray()
        self.metadata: Optional[Dict[str, Any]] = None
        self.body = bytearray()

    @property
    def headers(self) -> Dict[str, Any]:
        return dict((self.metadata or {}).get("headers") or {})

    @property
    def status_code(self) -> Optional[int]:
        if self.metadata is None:
            return None
        return self.metadata.get("statusCode")

    @property
    def complete(self) -> bool:
        return self.metadata is not None

    def feed(self, chunk: bytes) -> None:
        if self.metadata is not None:
            self.body.extend(chunk)
            return

        self._pending.extend(chunk)
        index = self._pending.find(DELIMITER)
        if index < 0:
            return

        raw = bytes(self._pending[:index])
        try:
            metadata = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FramingError(f"invalid metadata frame: {exc}") from exc
        if not isinstance(metadata, dict):
            raise FramingError("metadata frame must be a JSON object")

        self.metadata = metadata
        self.body.extend(self._pending[index + 1:])
        self._pending.clear()
