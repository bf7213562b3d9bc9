"""
Streaming Chat API Router

Two SSE endpoints over the same relay:
- /api/chat: general chat, reasoning channel forwarded, no tools
- /api/running-chat: running coach with profile/calendar tools
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from core.config import settings
from core.database import SessionLocal
from core.exceptions import UpstreamServiceError
from schemas import ChatRequest
from services.chat_relay import ChatRelay
from services.coach_tools import build_running_coach_tools
from services.openrouter_client import (
    OpenRouterClient,
    UpstreamError,
    build_chat_payload,
    get_openrouter_client,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _stream(relay: ChatRelay) -> StreamingResponse:
    try:
        await relay.open()
    except UpstreamError as e:
        await relay.shutdown()
        raise UpstreamServiceError(e.status_code, e.body)

    return StreamingResponse(
        relay.events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(relay.shutdown),
    )


@router.post("/chat")
async def chat(
    request: ChatRequest,
    client: OpenRouterClient = Depends(get_openrouter_client),
):
    """General chat. Streams `{content}` and `{reasoning}` events, then `[DONE]`."""
    payload = build_chat_payload(
        request.model or settings.DEFAULT_CHAT_MODEL,
        request.wire_messages(),
        temperature=request.temperature if request.temperature is not None else settings.CHAT_DEFAULT_TEMPERATURE,
        max_tokens=request.max_tokens,
        reasoning=request.reasoning,
    )
    relay = ChatRelay(client, payload, forward_reasoning=True)
    return await _stream(relay)


@router.post("/running-chat")
async def running_chat(
    request: ChatRequest,
    client: OpenRouterClient = Depends(get_openrouter_client),
):
    """
    Running coach chat.

    The model may call save_runner_profile, get_running_events or
    create_running_event once per turn; the client receives a
    `{toolExecuted, ...}` event before the follow-up answer streams in.

    The tools get their own session: the response body outlives request-scoped
    dependencies, so the relay closes it when the stream ends.
    """
    tools = build_running_coach_tools(SessionLocal())
    payload = build_chat_payload(
        request.model or settings.DEFAULT_CHAT_MODEL,
        request.wire_messages(),
        temperature=request.temperature if request.temperature is not None else settings.COACH_DEFAULT_TEMPERATURE,
        max_tokens=request.max_tokens,
        reasoning=request.reasoning,
        tools=tools.declarations(),
    )
    relay = ChatRelay(
        client,
        payload,
        tools=tools,
        app_title=settings.OPENROUTER_COACH_APP_TITLE,
    )
    return await _stream(relay)
