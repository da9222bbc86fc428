import json
from typing import Any, Dict, List, Optional

from relay.errors import MalformedFrame

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
DONE_EVENT = f"{DATA_PREFIX} {DONE_SENTINEL}\n\n".encode("utf-8")


class SSELineBuffer:
    """Splits an SSE byte stream into complete lines across arbitrary chunks.

    Bytes are only decoded once a full line is available, so a multi-byte
    character cut by a chunk boundary is reassembled before decoding.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer.extend(chunk)
        lines: List[str] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx < 0:
                break
            raw = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]
            lines.append(_decode_line(raw))
        return lines

    def flush(self) -> List[str]:
        """Return the unterminated tail, if any, once the stream has ended."""
        if not self._buffer:
            return []
        raw = bytes(self._buffer)
        self._buffer.clear()
        return [_decode_line(raw)]

    @property
    def pending(self) -> int:
        return len(self._buffer)


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    # undecodable bytes surface as a malformed frame at parse time
    return raw.decode("utf-8", errors="surrogateescape")


def data_payload(line: str) -> Optional[str]:
    """Return the trimmed payload of a ``data:`` line, or None for other lines."""
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].strip()


def is_done(payload: str) -> bool:
    return payload == DONE_SENTINEL


def parse_event(payload: str) -> Dict[str, Any]:
    try:
        payload.encode("utf-8")
        event = json.loads(payload)
    except (UnicodeEncodeError, ValueError) as e:
        raise MalformedFrame(f"undecodable SSE payload: {e}") from e
    if not isinstance(event, dict):
        raise MalformedFrame(f"SSE payload is not an object: {type(event).__name__}")
    return event


def extract_delta(event: Dict[str, Any]) -> Optional[str]:
    """Pull ``choices[0].delta.content`` out of an OpenAI-style chunk."""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def delta_payload(text: str) -> Dict[str, Any]:
    return {"choices": [{"delta": {"content": text}, "index": 0, "finish_reason": None}]}


def encode_event(payload: Dict[str, Any]) -> bytes:
    return f"{DATA_PREFIX} {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")
