"""
Dogfood: hit /api/running-chat over HTTP and reconstruct the reply.

Goal:
- Prove the streamed response arrives whole and ends with [DONE].
- Show which tool (if any) the coach ran.

Usage:
    python scripts/dogfood_running_chat.py "Mi marca en 10K es 45:30"
    API_BASE_URL=http://localhost:8000 python scripts/dogfood_running_chat.py
"""

from __future__ import annotations

import json
import os
import sys
from typing import Iterable, List, Tuple

import httpx

DEFAULT_MESSAGE = "Ayer hice 12 km a 5:10/km y me sentí bien. ¿Qué tengo en el calendario esta semana?"


def _parse_sse(stream_iter: Iterable[bytes]) -> Tuple[str, List[dict], bool]:
    """
    Very small SSE parser: accumulates content deltas into full text and
    collects tool notifications.
    """
    buf = ""
    full = ""
    tool_events: List[dict] = []
    saw_done = False

    def handle_packet(packet: str) -> None:
        nonlocal full, saw_done
        for line in packet.splitlines():
            if not line.startswith("data:"):
                continue
            data_str = line[5:].strip()
            if data_str == "[DONE]":
                saw_done = True
                continue
            try:
                obj = json.loads(data_str)
            except ValueError:
                print(f"!! unparseable frame: {data_str[:120]!r}", file=sys.stderr)
                continue
            if isinstance(obj.get("content"), str):
                full += obj["content"]
            if "toolExecuted" in obj:
                tool_events.append(obj)

    for chunk in stream_iter:
        if not chunk:
            continue
        buf += chunk.decode("utf-8", errors="replace")
        while True:
            idx = buf.find("\n\n")
            if idx == -1:
                break
            packet = buf[:idx]
            buf = buf[idx + 2 :]
            handle_packet(packet)

    # trailing packet without delimiter
    if buf.strip():
        handle_packet(buf.strip())

    return full, tool_events, saw_done


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:8000")
    message = " ".join(sys.argv[1:]) or DEFAULT_MESSAGE
    body = {"messages": [{"role": "user", "content": message}]}

    with httpx.Client(base_url=base_url, timeout=130.0) as client:
        with client.stream("POST", "/api/running-chat", json=body) as resp:
            if resp.status_code != 200:
                resp.read()
                raise RuntimeError(f"running-chat failed: {resp.status_code} {resp.text[:500]}")
            text, tool_events, saw_done = _parse_sse(resp.iter_bytes())

    print("tool_events=", tool_events)
    print("done=", saw_done)
    print("response_len=", len(text))
    print("----- STREAMED RESPONSE START -----")
    print(text)
    print("----- STREAMED RESPONSE END -----")
    if not saw_done:
        sys.exit(1)


if __name__ == "__main__":
    main()
