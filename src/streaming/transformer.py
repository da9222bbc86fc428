import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, List, Optional

from relay.errors import MalformedFrame
from .normalize import normalize_text
from .sse import (
    DONE_EVENT,
    SSELineBuffer,
    data_payload,
    delta_payload,
    encode_event,
    extract_delta,
    is_done,
    parse_event,
)

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class ClientDisconnected(Exception):
    pass


class StreamTransformer:
    """Turns an upstream SSE completion stream into one normalized frame.

    Deltas are accumulated in arrival order; nothing is emitted until the
    upstream stream has finished, then a single frame carrying the normalized
    text is written, followed by the ``[DONE]`` sentinel.
    """

    def __init__(self, normalizer: Callable[[str], str] = normalize_text) -> None:
        self._normalizer = normalizer

    async def collect(
        self,
        chunks: AsyncIterable[bytes],
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> str:
        """Read the whole upstream stream and return the concatenated deltas."""
        buffer = SSELineBuffer()
        parts: List[str] = []
        malformed = 0

        async for chunk in chunks:
            if is_disconnected is not None and await is_disconnected():
                raise ClientDisconnected("client went away while reading upstream")
            done, bad = self._consume(buffer.feed(chunk), parts)
            malformed += bad
            if done:
                break
        else:
            _, bad = self._consume(buffer.flush(), parts)
            malformed += bad

        if malformed:
            logger.warning("Skipped %d malformed upstream frame(s)", malformed)
        return "".join(parts)

    def _consume(self, lines: List[str], parts: List[str]):
        malformed = 0
        for line in lines:
            payload = data_payload(line)
            if payload is None or not payload:
                continue
            if is_done(payload):
                return True, malformed
            try:
                event = parse_event(payload)
            except MalformedFrame as e:
                logger.debug("Malformed upstream frame: %s", e)
                malformed += 1
                continue
            text = extract_delta(event)
            if text:
                parts.append(text)
        return False, malformed

    async def relay(
        self,
        chunks: AsyncIterable[bytes],
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[bytes]:
        full_text = await self.collect(chunks, is_disconnected)
        cleaned = self._normalizer(full_text)
        logger.info("Relaying %d chars (%d before normalization)", len(cleaned), len(full_text))
        yield encode_event(delta_payload(cleaned))
        yield DONE_EVENT
