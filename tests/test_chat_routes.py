"""
Chat Routes Tests
=================

HTTP surface of the chat API: request validation, unauthorized turns, the
server-sent event stream and thread management.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chat_labs.api import chat_routes
from chat_labs.models.chat_models import ChatType, StreamEvent, StreamEventType, ThinkingMode
from chat_labs.services.chat_router import ChatRouter, ChatTurnResult
from chat_labs.state.thread_store import ThreadStore

HEADERS = {"X-User-Email": "Taro@Example.com", "X-User-Name": "Taro"}


async def fake_stream():
    yield StreamEvent(type=StreamEventType.CONTENT, content="Hel")
    yield StreamEvent(type=StreamEventType.FINAL_CONTENT, content="Hello")


@pytest.fixture
def fake_router():
    mock = AsyncMock()
    mock.chat_api_entry.side_effect = lambda prompt, user, signal: ChatTurnResult(
        success=True, chat_type=ChatType.EXTENSIONS, stream=fake_stream()
    )
    return mock


@pytest.fixture
def store(tmp_path):
    return ThreadStore(data_dir=tmp_path)


@pytest.fixture
def client(monkeypatch, fake_router, store):
    monkeypatch.setattr(chat_routes, "chat_router", fake_router)
    monkeypatch.setattr(chat_routes, "thread_store", store)
    app = FastAPI()
    app.include_router(chat_routes.router)
    return TestClient(app)


def sse_events(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


class TestPostChat:

    def test_missing_message_is_rejected(self, client, fake_router):
        response = client.post("/api/chat", json={"id": "t1"}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["error"] == "missing_content"
        fake_router.chat_api_entry.assert_not_called()

    def test_blank_message_is_rejected(self, client):
        response = client.post("/api/chat", json={"id": "t1", "message": "   "}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["error"] == "missing_content"

    def test_missing_id_is_rejected(self, client):
        response = client.post("/api/chat", json={"message": "hi"}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["error"] == "missing_content"

    def test_invalid_json_is_rejected(self, client):
        response = client.post(
            "/api/chat", content=b"{not json", headers={**HEADERS, "Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_json"

    def test_unauthorized_turn_returns_empty_401(self, client, fake_router):
        fake_router.chat_api_entry.side_effect = None
        fake_router.chat_api_entry.return_value = ChatTurnResult(success=False, unauthorized=True)
        response = client.post("/api/chat", json={"id": "t1", "message": "hi"}, headers=HEADERS)
        assert response.status_code == 401
        assert response.content == b""

    def test_unsafe_thread_id_is_401_and_writes_nothing(self, client, monkeypatch, store, tmp_path):
        aggregator = MagicMock()
        monkeypatch.setattr(chat_routes, "chat_router", ChatRouter(
            store=store, aggregator=aggregator, strategies=MagicMock(), crm_bridge=MagicMock()
        ))
        response = client.post("/api/chat", json={"id": "../../escaped", "message": "hi"}, headers=HEADERS)

        assert response.status_code == 401
        assert response.content == b""
        aggregator.aggregate.assert_not_called()
        assert not (tmp_path.parent / "escaped.json").exists()
        assert list(store.threads_dir.iterdir()) == []

    def test_streams_events(self, client):
        response = client.post("/api/chat", json={"id": "t1", "message": "hi"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["content", "finalContent"]
        assert events[-1]["content"] == "Hello"

    def test_prompt_and_identity_passed_to_router(self, client, fake_router):
        client.post(
            "/api/chat",
            json={"id": " t1 ", "message": "hi", "thinking_mode": "standard", "multimodal_image": "abc"},
            headers=HEADERS,
        )
        prompt, user, signal = fake_router.chat_api_entry.call_args.args
        assert prompt.id == "t1"
        assert prompt.thinking_mode == ThinkingMode.NORMAL
        assert prompt.multimodal_image == "abc"
        assert user.id == "taro@example.com"
        assert user.name == "Taro"
        assert signal.is_cancelled is False

    def test_stream_failure_becomes_error_event(self, client, fake_router):
        async def broken_stream():
            yield StreamEvent(type=StreamEventType.CONTENT, content="partial")
            raise RuntimeError("upstream exploded")

        fake_router.chat_api_entry.side_effect = lambda prompt, user, signal: ChatTurnResult(
            success=True, chat_type=ChatType.EXTENSIONS, stream=broken_stream()
        )
        response = client.post("/api/chat", json={"id": "t1", "message": "hi"}, headers=HEADERS)
        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["content", "error"]

    def test_uninitialized_router_is_500(self, client, monkeypatch):
        monkeypatch.setattr(chat_routes, "chat_router", None)
        response = client.post("/api/chat", json={"id": "t1", "message": "hi"}, headers=HEADERS)
        assert response.status_code == 500


class TestThreads:

    def test_create_thread_and_read_history(self, client):
        created = client.post(
            "/api/chat/threads", json={"name": "Sales", "persona_message": "Be brief."}, headers=HEADERS
        ).json()
        assert created["user_id"] == "taro@example.com"

        history = client.get(f"/api/chat/history/{created['id']}", headers=HEADERS).json()
        assert history["thread"]["name"] == "Sales"
        assert history["messages"] == []

    def test_history_of_other_users_thread_is_401(self, client):
        created = client.post("/api/chat/threads", json={}, headers=HEADERS).json()
        response = client.get(
            f"/api/chat/history/{created['id']}", headers={"X-User-Email": "hanako@example.com"}
        )
        assert response.status_code == 401

    def test_unknown_thread_is_404(self, client):
        assert client.get("/api/chat/history/missing", headers=HEADERS).status_code == 404

    def test_add_document(self, client, store):
        created = client.post("/api/chat/threads", json={}, headers=HEADERS).json()
        response = client.post(
            f"/api/chat/threads/{created['id']}/documents",
            json={"name": "notes.txt", "text": "First paragraph.\n\nSecond paragraph."},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["chunks"] == 1
        assert store.get_thread(created["id"]) is not None

    def test_toggle_extension(self, client):
        created = client.post("/api/chat/threads", json={}, headers=HEADERS).json()
        url = f"/api/chat/threads/{created['id']}/extensions/crm-ext"
        assert client.put(url, headers=HEADERS).json()["extension"] == ["crm-ext"]
        assert client.put(url, headers=HEADERS).json()["extension"] == ["crm-ext"]
        assert client.delete(url, headers=HEADERS).json()["extension"] == []
