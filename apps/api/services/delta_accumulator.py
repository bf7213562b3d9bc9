"""
Delta Accumulator / Tool-Call Assembler

Folds streamed completion chunks
(`{choices: [{delta: {content?, reasoning?, tool_calls?}, finish_reason?}]}`)
into an immutable CompletionState and the client-facing events each chunk
produces. `apply_chunk` is a pure function of (state, frame) so a whole pass
can be replayed frame by frame in tests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from services.sse_decoder import STREAM_DONE, Frame

logger = logging.getLogger(__name__)

FINISH_TOOL_CALLS = "tool_calls"


@dataclass(frozen=True)
class ToolCallAccumulator:
    """
    One function call assembled from streamed fragments.

    id and name arrive once (first non-empty value wins); argument text is
    appended in arrival order and only becomes valid JSON when complete.
    Fragments for a second, parallel call (different `index`) are ignored.
    """

    id: str = ""
    name: str = ""
    argument_text: str = ""
    index: Optional[int] = None
    has_call: bool = False

    def merge(self, fragment: Dict[str, Any]) -> "ToolCallAccumulator":
        if not isinstance(fragment, dict):
            return self

        index = fragment.get("index")
        if self.has_call and index is not None and self.index is not None and index != self.index:
            logger.info(f"Ignoring parallel tool call fragment (index={index}); only one call per turn is executed")
            return self

        function = fragment.get("function") or {}
        if not isinstance(function, dict):
            return self
        arguments = function.get("arguments") or ""
        if isinstance(arguments, dict):
            # Some providers send the arguments already decoded.
            arguments = json.dumps(arguments, ensure_ascii=False)

        return replace(
            self,
            id=self.id or (fragment.get("id") or ""),
            name=self.name or (function.get("name") or ""),
            argument_text=self.argument_text + arguments,
            index=self.index if self.index is not None else index,
            has_call=True,
        )

    def parse_arguments(self) -> Dict[str, Any]:
        """
        Parse the accumulated argument text. Call only after the finish signal.

        Raises:
            ValueError: text is not a JSON object.
        """
        text = self.argument_text.strip()
        if not text:
            return {}
        args = json.loads(text)
        if not isinstance(args, dict):
            raise ValueError(f"tool arguments must be a JSON object, got {type(args).__name__}")
        return args

    def as_message_tool_call(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.argument_text or "{}"},
        }


@dataclass(frozen=True)
class CompletionState:
    content: str = ""
    reasoning: str = ""
    tool_call: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    finish_reason: Optional[str] = None
    # A tool call is assembled and the model finished with `tool_calls`.
    tool_ready: bool = False
    # `[DONE]` seen.
    done: bool = False
    # Frames (or tool-call fragments) whose shape was wrong and were skipped.
    malformed_frames: int = 0


def apply_chunk(
    state: CompletionState,
    frame: Frame,
    *,
    detect_tools: bool,
    forward_reasoning: bool,
) -> Tuple[CompletionState, List[Dict[str, Any]]]:
    """
    Fold one decoded frame into the state.

    Returns the new state and the events to forward to the client, in the
    order the deltas arrived. Content is never batched or reordered.
    """
    if frame is STREAM_DONE:
        return replace(state, done=True), []

    if "error" in frame:
        logger.warning(f"Upstream reported an error mid-stream: {frame.get('error')}")

    choices = frame.get("choices")
    if not choices:
        # Usage or keep-alive chunk.
        return state, []
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        return _skip_malformed(state, frame), []

    choice = choices[0]
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        return _skip_malformed(state, frame), []
    events: List[Dict[str, Any]] = []
    malformed = state.malformed_frames

    content = state.content
    text = delta.get("content")
    if isinstance(text, str) and text:
        content += text
        events.append({"content": text})

    reasoning = state.reasoning
    thought = delta.get("reasoning")
    if isinstance(thought, str) and thought:
        reasoning += thought
        if forward_reasoning:
            events.append({"reasoning": thought})

    tool_call = state.tool_call
    fragments = delta.get("tool_calls")
    if detect_tools and isinstance(fragments, list):
        for fragment in fragments:
            if not isinstance(fragment, dict) or not isinstance(fragment.get("function") or {}, dict):
                logger.debug(f"Skipping malformed tool call fragment: {fragment!r:.200}")
                malformed += 1
                continue
            tool_call = tool_call.merge(fragment)

    reason = choice.get("finish_reason")
    reason = reason if isinstance(reason, str) else None
    finish_reason = reason or state.finish_reason
    tool_ready = state.tool_ready or (reason == FINISH_TOOL_CALLS and tool_call.has_call)

    return (
        replace(
            state,
            content=content,
            reasoning=reasoning,
            tool_call=tool_call,
            finish_reason=finish_reason,
            tool_ready=tool_ready,
            malformed_frames=malformed,
        ),
        events,
    )


def _skip_malformed(state: CompletionState, frame: Frame) -> CompletionState:
    logger.debug(f"Skipping completion chunk with unexpected shape: {str(frame)[:200]!r}")
    return replace(state, malformed_frames=state.malformed_frames + 1)


async def fold_frames(
    frames: AsyncIterator[Frame],
    *,
    detect_tools: bool,
    forward_reasoning: bool,
) -> AsyncIterator[Tuple[CompletionState, List[Dict[str, Any]]]]:
    """Yield (state, events) after every frame; stops after `[DONE]`."""
    state = CompletionState()
    async for frame in frames:
        state, events = apply_chunk(
            state, frame, detect_tools=detect_tools, forward_reasoning=forward_reasoning
        )
        yield state, events
        if state.done:
            return
