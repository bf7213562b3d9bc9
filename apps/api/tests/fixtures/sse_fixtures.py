"""Synthetic upstream completion streams for relay tests.

Builders return the raw bytes OpenRouter would send (`data: <json>\\n\\n`
frames). FakeUpstream plays them back through httpx.MockTransport and
records every request body and how often each response was closed.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional, Union

import httpx

from services.openrouter_client import OpenRouterClient


def frame(payload: Union[Dict[str, Any], str]) -> bytes:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")


def content_chunk(text: str, finish_reason: Optional[str] = None) -> Dict[str, Any]:
    return {"choices": [{"delta": {"content": text}, "finish_reason": finish_reason}]}


def reasoning_chunk(text: str) -> Dict[str, Any]:
    return {"choices": [{"delta": {"reasoning": text}, "finish_reason": None}]}


def tool_chunk(
    arguments: str,
    *,
    call_id: Optional[str] = None,
    name: Optional[str] = None,
    index: int = 0,
    finish_reason: Optional[str] = None,
) -> Dict[str, Any]:
    fragment: Dict[str, Any] = {"index": index, "function": {"arguments": arguments}}
    if call_id:
        fragment["id"] = call_id
        fragment["type"] = "function"
    if name:
        fragment["function"]["name"] = name
    return {"choices": [{"delta": {"tool_calls": [fragment]}, "finish_reason": finish_reason}]}


def finish_chunk(reason: str) -> Dict[str, Any]:
    return {"choices": [{"delta": {}, "finish_reason": reason}]}


DONE = b"data: [DONE]\n\n"


def text_stream(*parts: str) -> bytes:
    """A plain answer: one content frame per part, then stop and [DONE]."""
    body = b": OPENROUTER PROCESSING\n\n"
    for part in parts:
        body += frame(content_chunk(part))
    return body + frame(finish_chunk("stop")) + DONE


def tool_call_stream(
    name: str,
    argument_parts: List[str],
    *,
    call_id: str = "call_abc123",
    preamble: str = "",
) -> bytes:
    """Optional text, then a function call whose arguments arrive in pieces."""
    body = frame(content_chunk(preamble)) if preamble else b""
    body += frame(tool_chunk(argument_parts[0], call_id=call_id, name=name))
    for part in argument_parts[1:]:
        body += frame(tool_chunk(part))
    return body + frame(finish_chunk("tool_calls")) + DONE


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class CountingStream(httpx.AsyncByteStream):
    """Response body that counts how many times it was closed."""

    def __init__(self, chunks: List[bytes], delay: float = 0.0):
        self.chunks = chunks
        self.delay = delay
        self.close_count = 0
        self.chunks_served = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.chunks_served += 1
            yield chunk

    async def aclose(self) -> None:
        self.close_count += 1


class FakeUpstream:
    """Scripted completion API. Queue one response per expected upstream call."""

    def __init__(self):
        self._queue: List[Union[httpx.Response, CountingStream, Dict[str, Any]]] = []
        self.requests: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []
        self.streams: List[CountingStream] = []
        self._client: Optional[OpenRouterClient] = None

    def queue_stream(self, body: Union[bytes, List[bytes]], delay: float = 0.0) -> CountingStream:
        chunks = body if isinstance(body, list) else [body]
        stream = CountingStream(chunks, delay=delay)
        self._queue.append(stream)
        return stream

    def queue_error(self, status_code: int, body: str) -> None:
        self._queue.append(httpx.Response(status_code, text=body))

    def queue_json(self, data: Dict[str, Any]) -> None:
        self._queue.append(data)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        if not self._queue:
            raise AssertionError("unexpected upstream call")
        item = self._queue.pop(0)
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, CountingStream):
            self.streams.append(item)
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, stream=item)
        return httpx.Response(200, json=item)

    def client(self) -> OpenRouterClient:
        if self._client is None:
            self._client = OpenRouterClient(
                api_key="test-key",
                base_url="https://openrouter.test/api/v1",
                referer="http://localhost:3000",
                app_title="Test App",
                transport=httpx.MockTransport(self.handler),
            )
        return self._client


def parse_events(body: bytes) -> List[Union[Dict[str, Any], str]]:
    """Outbound relay bytes -> list of decoded events ('[DONE]' kept as a string)."""
    events: List[Union[Dict[str, Any], str]] = []
    for block in body.decode("utf-8").split("\n\n"):
        if not block:
            continue
        assert block.startswith("data: "), block
        data = block[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events
