"""
SSE Frame Decoder

Turns the raw byte stream of an upstream chat completion into logical
payloads. Upstream framing is `data: <json>\\n\\n`, terminated by
`data: [DONE]\\n\\n`, with `:`-prefixed comment lines used as keepalives.

Network reads may split a frame anywhere, including inside the `data: `
prefix or inside a multi-byte UTF-8 sequence, so the decoder carries both
an incremental byte decoder and a partial-line buffer between chunks.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class _StreamDone:
    """Marker for the `[DONE]` payload. Never handed to the JSON parser."""

    def __repr__(self) -> str:
        return "STREAM_DONE"


STREAM_DONE = _StreamDone()

Payload = Union[str, _StreamDone]
Frame = Union[Dict[str, Any], _StreamDone]

DATA_PREFIX = "data:"
DONE_PAYLOAD = "[DONE]"


def parse_line(line: str) -> Optional[Payload]:
    """Map one SSE line to a payload, or None when the line carries no data."""
    trimmed = line.strip()
    if not trimmed or trimmed.startswith(":"):
        return None
    # event:/id:/retry: fields are not used by the completion API.
    if not trimmed.startswith(DATA_PREFIX):
        return None
    data = trimmed[len(DATA_PREFIX):].lstrip()
    if data == DONE_PAYLOAD:
        return STREAM_DONE
    return data


class SSEDecoder:
    """Incremental, chunk-boundary-safe SSE line decoder."""

    def __init__(self) -> None:
        self._bytes = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial_line = ""
        self.malformed_frames = 0

    def feed(self, chunk: bytes) -> List[Payload]:
        return self._drain(self._bytes.decode(chunk), final=False)

    def flush(self) -> List[Payload]:
        """Emit whatever is buffered once the upstream body has ended."""
        return self._drain(self._bytes.decode(b"", final=True), final=True)

    def _drain(self, text: str, *, final: bool) -> List[Payload]:
        buffered = self._partial_line + text
        lines = buffered.split("\n")
        # The last element is an unterminated line unless the stream is over.
        self._partial_line = "" if final else lines.pop()

        payloads: List[Payload] = []
        for line in lines:
            payload = parse_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def decode_json(self, payload: str) -> Optional[Dict[str, Any]]:
        """
        Parse a non-terminal payload.

        Malformed JSON is dropped and treated like a keepalive; it is only
        counted and logged at debug level so the client never notices.
        """
        try:
            obj = json.loads(payload)
        except ValueError:
            self.malformed_frames += 1
            logger.debug(f"Dropping malformed SSE payload: {payload[:200]!r}")
            return None
        if not isinstance(obj, dict):
            self.malformed_frames += 1
            logger.debug(f"Dropping non-object SSE payload: {payload[:200]!r}")
            return None
        return obj


async def iter_sse_json(
    chunks: AsyncIterator[bytes],
    decoder: Optional[SSEDecoder] = None,
) -> AsyncIterator[Frame]:
    """Yield parsed JSON frames (and STREAM_DONE) from an upstream byte stream."""
    decoder = decoder or SSEDecoder()

    def _frames(payloads: List[Payload]) -> List[Frame]:
        frames: List[Frame] = []
        for payload in payloads:
            if payload is STREAM_DONE:
                frames.append(STREAM_DONE)
                continue
            obj = decoder.decode_json(payload)
            if obj is not None:
                frames.append(obj)
        return frames

    async for chunk in chunks:
        if not chunk:
            continue
        for frame in _frames(decoder.feed(chunk)):
            yield frame

    for frame in _frames(decoder.flush()):
        yield frame
