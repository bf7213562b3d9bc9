"""
OpenRouter Upstream Client

Thin async wrapper around the OpenRouter chat-completions endpoint.

- `stream_completion` yields the raw SSE byte stream of a `stream: true` call
  and closes the upstream response when the caller leaves the context.
- `complete` performs a regular JSON call (vision, image generation).

Non-2xx answers are read fully and raised as UpstreamError(status, body) so
callers can pass both through verbatim.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from core.config import settings

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"


class UpstreamError(Exception):
    """The completion API failed. `status_code` is 500 when no HTTP status exists."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"upstream returned {status_code}: {body[:300]}")
        self.status_code = status_code
        self.body = body


def build_chat_payload(
    model: str,
    messages: List[Dict[str, Any]],
    *,
    temperature: float,
    max_tokens: Optional[int] = None,
    reasoning: bool = False,
    tools: Optional[List[Dict[str, Any]]] = None,
    stream: bool = True,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "stream": stream,
    }
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
    if max_tokens:
        payload["max_tokens"] = max_tokens
    if reasoning:
        payload["reasoning"] = {"effort": settings.REASONING_EFFORT}
    return payload


class OpenRouterClient:
    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str,
        referer: str,
        app_title: str,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            logger.warning("OPENROUTER_API_KEY is not set; upstream calls will be rejected")
        self.api_key = api_key or ""
        self.referer = referer
        self.app_title = app_title
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, **overrides: Any) -> "OpenRouterClient":
        options: Dict[str, Any] = {
            "api_key": settings.OPENROUTER_API_KEY,
            "base_url": settings.OPENROUTER_BASE_URL,
            "referer": settings.OPENROUTER_HTTP_REFERER,
            "app_title": settings.OPENROUTER_APP_TITLE,
            "connect_timeout": settings.OPENROUTER_CONNECT_TIMEOUT_S,
            "read_timeout": settings.OPENROUTER_READ_TIMEOUT_S,
        }
        options.update(overrides)
        return cls(**options)

    def _headers(self, app_title: Optional[str]) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": app_title or self.app_title,
        }

    @asynccontextmanager
    async def stream_completion(
        self,
        payload: Dict[str, Any],
        *,
        app_title: Optional[str] = None,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Open a streaming completion.

        Usage:
            async with client.stream_completion(payload) as chunks:
                async for chunk in chunks:
                    ...

        Raises:
            UpstreamError: non-2xx status or transport failure.
        """
        try:
            async with self._http.stream(
                "POST",
                CHAT_COMPLETIONS_PATH,
                json=payload,
                headers=self._headers(app_title),
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.warning(
                        f"OpenRouter stream rejected: status={response.status_code} model={payload.get('model')}"
                    )
                    raise UpstreamError(response.status_code, body)
                yield response.aiter_bytes()
        except httpx.TransportError as e:
            logger.error(f"OpenRouter transport error: {type(e).__name__}: {e}")
            raise UpstreamError(500, f"{type(e).__name__}: {e}") from e

    async def complete(
        self,
        payload: Dict[str, Any],
        *,
        app_title: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Non-streaming completion. Returns the decoded JSON body."""
        try:
            response = await self._http.post(
                CHAT_COMPLETIONS_PATH,
                json=payload,
                headers=self._headers(app_title),
            )
        except httpx.TransportError as e:
            logger.error(f"OpenRouter transport error: {type(e).__name__}: {e}")
            raise UpstreamError(500, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            logger.warning(
                f"OpenRouter request rejected: status={response.status_code} model={payload.get('model')}"
            )
            raise UpstreamError(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(502, response.text) from e

    async def aclose(self) -> None:
        await self._http.aclose()


# Process-wide client (shares one connection pool)
_client: Optional[OpenRouterClient] = None


def get_openrouter_client() -> OpenRouterClient:
    """FastAPI dependency returning the shared upstream client."""
    global _client

    if _client is None:
        _client = OpenRouterClient.from_settings()
    return _client


async def close_openrouter_client() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
