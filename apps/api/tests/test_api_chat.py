"""
Tests for the streaming chat endpoints (/api/chat, /api/running-chat).
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from core.database import Base
from models import RunnerProfile, RunningEvent
from routers import chat as chat_router
from fixtures.sse_fixtures import parse_events, split_every, text_stream, tool_call_stream

QUESTION = {"messages": [{"role": "user", "content": "¿Cuál es mi marca en 10K?"}]}


class TestRunningChat:
    def test_plain_answer_streams_verbatim(self, client, upstream, db_session):
        db_session.add(RunnerProfile(singleton_key=1, pb10k="45:30"))
        db_session.commit()
        upstream.queue_stream(split_every(text_stream("Tu marca en 10K ", "es 45:30."), 3))

        response = client.post("/api/running-chat", json=QUESTION)

        assert response.status_code == 200
        assert parse_events(response.content) == [
            {"content": "Tu marca en 10K "},
            {"content": "es 45:30."},
            "[DONE]",
        ]
        assert len(upstream.requests) == 1

    def test_event_stream_headers(self, client, upstream):
        upstream.queue_stream(text_stream("Hola"))

        response = client.post("/api/running-chat", json=QUESTION)

        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

    def test_upstream_payload_and_headers(self, client, upstream):
        upstream.queue_stream(text_stream("Hola"))

        client.post("/api/running-chat", json=QUESTION)

        payload = upstream.requests[0]
        assert payload["stream"] is True
        assert payload["temperature"] == 0.7
        assert payload["tool_choice"] == "auto"
        assert [t["function"]["name"] for t in payload["tools"]] == [
            "save_runner_profile",
            "get_running_events",
            "create_running_event",
        ]
        assert payload["messages"] == QUESTION["messages"]
        headers = upstream.headers[0]
        assert headers["authorization"] == "Bearer test-key"
        assert headers["x-title"] == "OpenRouter Running Coach"

    def test_tool_round_trip_over_http(self, client, upstream, db_session):
        upstream.queue_stream(tool_call_stream(
            "create_running_event",
            ['{"date":"2025-06-01",', '"type":"race","title":"Maratón"}'],
        ))
        upstream.queue_stream(text_stream("Listo, apuntado."))

        response = client.post("/api/running-chat", json={
            "messages": [{"role": "user", "content": "Apunta el maratón del 1 de junio"}],
        })

        assert parse_events(response.content) == [
            {"toolExecuted": "create_running_event", "eventCreated": True},
            {"content": "Listo, apuntado."},
            "[DONE]",
        ]
        assert db_session.query(RunningEvent).count() == 1

    def test_tool_messages_from_client_history_pass_through(self, client, upstream):
        upstream.queue_stream(text_stream("ok"))
        history = [
            {"role": "system", "content": "Eres un entrenador."},
            {"role": "assistant", "content": None, "tool_calls": [
                {"id": "call_1", "type": "function", "function": {"name": "get_running_events", "arguments": "{}"}},
            ]},
            {"role": "tool", "tool_call_id": "call_1", "content": "{}"},
            {"role": "user", "content": "¿Y ahora?"},
        ]

        client.post("/api/running-chat", json={"messages": history, "temperature": 0.2})

        assert upstream.requests[0]["messages"] == history
        assert upstream.requests[0]["temperature"] == 0.2

    def test_upstream_rejection_is_passed_through(self, client, upstream):
        upstream.queue_error(429, "rate limited")

        response = client.post("/api/running-chat", json=QUESTION)

        assert response.status_code == 429
        assert response.json() == {"error": "rate limited", "code": "UPSTREAM_ERROR"}

    def test_request_without_messages_is_rejected(self, client, upstream):
        response = client.post("/api/running-chat", json={"model": "openai/gpt-4o"})

        assert response.status_code == 422
        assert upstream.requests == []


class TestGeneralChat:
    def test_payload_has_no_tools(self, client, upstream):
        upstream.queue_stream(text_stream("Hola"))

        client.post("/api/chat", json={**QUESTION, "model": "anthropic/claude-sonnet-4", "reasoning": True})

        payload = upstream.requests[0]
        assert payload["model"] == "anthropic/claude-sonnet-4"
        assert payload["temperature"] == 1.0
        assert payload["reasoning"] == {"effort": "medium"}
        assert "tools" not in payload
        assert "tool_choice" not in payload
        assert upstream.headers[0]["x-title"] == "Test App"

    def test_reasoning_is_forwarded(self, client, upstream):
        upstream.queue_stream(
            b'data: {"choices":[{"delta":{"reasoning":"Pensando"}}]}\n\n'
            b'data: {"choices":[{"delta":{"content":"Hola"}}]}\n\n'
            b"data: [DONE]\n\n"
        )

        response = client.post("/api/chat", json=QUESTION)

        assert parse_events(response.content) == [{"reasoning": "Pensando"}, {"content": "Hola"}, "[DONE]"]

    def test_max_tokens_is_sent_when_given(self, client, upstream):
        upstream.queue_stream(text_stream("Hola"))

        client.post("/api/chat", json={**QUESTION, "maxTokens": 256})

        assert upstream.requests[0]["max_tokens"] == 256


class TestCoachToolSession:
    def test_tool_session_is_released_after_the_stream(self, client, upstream, tmp_path, monkeypatch):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'coach.db'}",
            poolclass=QueuePool,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=engine)
        monkeypatch.setattr(chat_router, "SessionLocal", sessionmaker(bind=engine, expire_on_commit=False))
        upstream.queue_stream(tool_call_stream("get_running_events", ["{}"]))
        upstream.queue_stream(text_stream("No tienes nada esta semana."))

        response = client.post("/api/running-chat", json=QUESTION)

        assert parse_events(response.content)[0] == {"toolExecuted": "get_running_events", "eventsFound": 0}
        assert engine.pool.checkedout() == 0
        engine.dispose()

    def test_tool_session_is_released_when_upstream_rejects(self, client, upstream, tmp_path, monkeypatch):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'coach.db'}",
            poolclass=QueuePool,
            connect_args={"check_same_thread": False},
        )
        monkeypatch.setattr(chat_router, "SessionLocal", sessionmaker(bind=engine))
        upstream.queue_error(500, "boom")

        assert client.post("/api/running-chat", json=QUESTION).status_code == 500
        assert engine.pool.checkedout() == 0
        engine.dispose()
