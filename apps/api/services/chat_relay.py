"""
Chat Relay (streaming completion with one inline tool round)

Drives one inbound chat request:

    AWAITING_FIRST_STREAM --(no tool)--------------------------------> DONE
    AWAITING_FIRST_STREAM -> TOOL_ASSEMBLED -> TOOL_EXECUTED
                          -> AWAITING_SECOND_STREAM ------------------> DONE

Pass 1 streams the model's answer with tool detection on. Content (and,
for the plain chat, reasoning) is forwarded as soon as it arrives. If the
model assembled a function call, the tool runs, the client is told, and
pass 2 streams the model's reply to the tool result with detection off, so
there is never a third upstream call.

Outbound framing is `data: <json>\\n\\n`; the stream always ends with one
`data: [DONE]\\n\\n` unless the client itself went away. Failures after the
first byte never surface as HTTP errors: they are logged, emission stops,
and `[DONE]` still goes out.

Usage (see routers/chat.py):

    relay = ChatRelay(client, payload, tools=registry)
    await relay.open()  # UpstreamError here -> plain JSON error response
    return StreamingResponse(relay.events(), ...)
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import AsyncExitStack, aclosing
from dataclasses import replace
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from core.config import settings
from services.coach_tools import ToolRegistry
from services.delta_accumulator import CompletionState, ToolCallAccumulator, fold_frames
from services.openrouter_client import OpenRouterClient, UpstreamError
from services.sse_decoder import SSEDecoder, iter_sse_json

logger = logging.getLogger(__name__)

DONE_FRAME = b"data: [DONE]\n\n"


class RelayPhase(str, Enum):
    AWAITING_FIRST_STREAM = "awaiting_first_stream"
    TOOL_ASSEMBLED = "tool_assembled"
    TOOL_EXECUTED = "tool_executed"
    AWAITING_SECOND_STREAM = "awaiting_second_stream"
    DONE = "done"


def encode_event(event: Dict[str, Any]) -> bytes:
    return b"data: " + json.dumps(event, ensure_ascii=False).encode("utf-8") + b"\n\n"


class ChatRelay:
    def __init__(
        self,
        client: OpenRouterClient,
        payload: Dict[str, Any],
        *,
        tools: Optional[ToolRegistry] = None,
        forward_reasoning: bool = False,
        app_title: Optional[str] = None,
        deadline_s: Optional[float] = None,
    ):
        self.client = client
        self.payload = payload
        self.tools = tools
        self.forward_reasoning = forward_reasoning
        self.app_title = app_title
        self.deadline_s = deadline_s if deadline_s is not None else settings.OPENROUTER_REQUEST_DEADLINE_S

        self.phase = RelayPhase.AWAITING_FIRST_STREAM
        self.upstream_calls = 0
        self.malformed_frames = 0

        self._first_pass = AsyncExitStack()
        self._first_chunks: Optional[AsyncIterator[bytes]] = None
        self._deadline: Optional[float] = None
        self._closed = False

    async def open(self) -> None:
        """
        Start upstream call #1 and wait for its status line.

        Raises:
            UpstreamError: non-2xx or transport failure; nothing has been sent
                to the client yet, so the caller can still answer with JSON.
        """
        if self._first_chunks is not None:
            return
        self._deadline = asyncio.get_running_loop().time() + self.deadline_s
        self.upstream_calls += 1
        self._first_chunks = await self._first_pass.enter_async_context(
            self.client.stream_completion(self.payload, app_title=self.app_title)
        )

    async def aclose(self) -> None:
        """Release the first upstream response. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self._first_pass.aclose()

    async def shutdown(self) -> None:
        """Release the upstream response and the tools' DB session."""
        await self.aclose()
        if self.tools is not None:
            self.tools.close()

    async def events(self) -> AsyncIterator[bytes]:
        """Outbound SSE byte stream."""
        state: Optional[CompletionState] = None
        try:
            await self.open()

            decoder = SSEDecoder()
            frames = iter_sse_json(self._bounded(self._first_chunks), decoder)
            folded = fold_frames(
                frames,
                detect_tools=self.tools is not None,
                forward_reasoning=self.forward_reasoning,
            )
            async with aclosing(folded):
                async for state, events in folded:
                    for event in events:
                        yield encode_event(event)
                    if state.tool_ready:
                        break
            self.malformed_frames += decoder.malformed_frames + (state.malformed_frames if state else 0)

            # The first stream is finished with either way.
            await self.aclose()

            if self.tools is not None and state is not None and state.tool_call.has_call:
                self.phase = RelayPhase.TOOL_ASSEMBLED
                async with aclosing(self._run_tool_round(state)) as round_events:
                    async for chunk in round_events:
                        yield chunk
        except (UpstreamError, httpx.HTTPError) as e:
            logger.warning(f"Chat relay upstream failure in phase {self.phase.value}: {e}")
        except TimeoutError:
            logger.warning(f"Chat relay deadline of {self.deadline_s}s exceeded in phase {self.phase.value}")
        except Exception as e:
            logger.error(f"Chat relay failed in phase {self.phase.value}: {e}", exc_info=True)
        finally:
            await self.shutdown()
            self.phase = RelayPhase.DONE
            logger.info(
                "Chat relay finished",
                extra={
                    "extra_fields": {
                        "upstream_calls": self.upstream_calls,
                        "content_chars": len(state.content) if state else 0,
                        "tool": state.tool_call.name if state and state.tool_call.has_call else None,
                        "malformed_frames": self.malformed_frames,
                    }
                },
            )

        yield DONE_FRAME

    async def _run_tool_round(self, state: CompletionState) -> AsyncIterator[bytes]:
        call = state.tool_call
        try:
            args = call.parse_arguments()
        except ValueError as e:
            logger.warning(f"Discarding tool call {call.name!r}: arguments are not a JSON object ({e})")
            return

        if not call.id:
            call = replace(call, id=f"call_{uuid.uuid4().hex[:24]}")

        result = self.tools.dispatch(call.name, args)
        self.phase = RelayPhase.TOOL_EXECUTED
        yield encode_event(self.tools.notification(call.name, args, result))

        continuation = self.continuation_payload(state.content, call, result)
        self.phase = RelayPhase.AWAITING_SECOND_STREAM
        self.upstream_calls += 1

        async with self.client.stream_completion(continuation, app_title=self.app_title) as chunks:
            decoder = SSEDecoder()
            folded = fold_frames(
                iter_sse_json(self._bounded(chunks), decoder),
                detect_tools=False,
                forward_reasoning=self.forward_reasoning,
            )
            second: Optional[CompletionState] = None
            async with aclosing(folded):
                async for second, events in folded:
                    for event in events:
                        yield encode_event(event)
            self.malformed_frames += decoder.malformed_frames + (second.malformed_frames if second else 0)

    def continuation_payload(
        self, content: str, call: ToolCallAccumulator, result: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Request body for pass 2: the original messages plus the assistant's
        tool call and the tool's result. Tool declarations are dropped.
        """
        payload = {k: v for k, v in self.payload.items() if k not in ("tools", "tool_choice")}
        payload["messages"] = [
            *self.payload["messages"],
            {
                "role": "assistant",
                "content": content or None,
                "tool_calls": [call.as_message_tool_call()],
            },
            {
                "role": "tool",
                "tool_call_id": call.id,
                "content": json.dumps(result, ensure_ascii=False, default=str),
            },
        ]
        payload["stream"] = True
        return payload

    async def _bounded(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Apply the per-request deadline to every upstream read."""
        iterator = chunks.__aiter__()
        while True:
            try:
                async with asyncio.timeout_at(self._deadline):
                    chunk = await iterator.__anext__()
            except StopAsyncIteration:
                return
            yield chunk
