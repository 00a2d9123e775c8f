from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from muninn.ai_orchestrator import ChatClientError, EmbeddingsError

from .conftest import FakeEmbeddings


def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/api/health").json()["ok"] is True


def test_save_then_get_chat(client: TestClient, resources):
    resp = client.post("/api/v1/chat", json={"role": "user", "content": "Hello", "hash": "h1"})
    assert resp.status_code == 200
    assert resp.json() == {"role": "user", "content": "Hello", "hash": "h1"}
    assert resources.embedding_client.calls == ["Hello"]

    resp = client.get("/api/v1/chat/h1")
    assert resp.status_code == 200
    assert resp.json() == {"role": "user", "content": "Hello", "hash": "h1"}


def test_get_chat_is_scoped_to_user(client: TestClient):
    client.post(
        "/api/v1/chat",
        json={"role": "user", "content": "secret", "hash": "h2"},
        headers={"X-Muninn-User": "alice"},
    )
    assert client.get("/api/v1/chat/h2", headers={"X-Muninn-User": "alice"}).status_code == 200
    assert client.get("/api/v1/chat/h2", headers={"X-Muninn-User": "bob"}).status_code == 404
    assert client.get("/api/v1/chat/h2").status_code == 404


def test_get_unknown_chat_is_404(client: TestClient):
    resp = client.get("/api/v1/chat/missing")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Chat not found"


def test_save_chat_validates_body(client: TestClient):
    assert client.post("/api/v1/chat", json={"role": "user"}).status_code == 422


def test_search_ranks_by_similarity(client: TestClient, resources):
    resources.embedding_client = FakeEmbeddings(
        {"cats": [1.0, 0.0], "dogs": [0.0, 1.0], "kittens": [0.9, 0.1]}
    )
    for i, text in enumerate(["cats", "dogs"]):
        client.post("/api/v1/chat", json={"role": "user", "content": text, "hash": f"h{i}"})

    resp = client.post("/api/v1/chat/search", json={"content": "kittens"})
    assert resp.status_code == 200
    body = resp.json()
    assert [r["content"] for r in body] == ["cats", "dogs"]
    assert body[0]["ranking"] > body[1]["ranking"]
    assert set(body[0]) == {"role", "content", "hash", "ranking"}

    resp = client.post("/api/v1/chat/search", json={"content": "kittens", "limit": 1})
    assert [r["content"] for r in resp.json()] == ["cats"]


def test_search_with_no_chats_is_empty(client: TestClient):
    resp = client.post("/api/v1/chat/search", json={"content": "anything"})
    assert resp.status_code == 200
    assert resp.json() == []


def test_embedding_failure_is_502(client: TestClient, resources):
    resources.embedding_client = FakeEmbeddings(fail=EmbeddingsError("boom"))
    resp = client.post("/api/v1/chat", json={"role": "user", "content": "Hello", "hash": "h"})
    assert resp.status_code == 502
    assert "boom" in resp.json()["detail"]


def test_embeddings_not_configured_is_500(client: TestClient, resources):
    resources.embedding_client = FakeEmbeddings(fail=EmbeddingsError("no key", configured=False))
    resp = client.post("/api/v1/chat/search", json={"content": "Hello"})
    assert resp.status_code == 500


def test_complete_routes_to_engine(client: TestClient, resources):
    messages = [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}]

    resp = client.post("/api/v1/complete", json={"messages": messages})
    assert resp.status_code == 200
    assert resp.json() == {"role": "assistant", "content": "from gpt"}

    resp = client.post("/api/v1/complete", json={"messages": messages, "engine": "ollama"})
    assert resp.json()["content"] == "from ollama"
    assert [m.content for m in resources.ollama_client.contexts[0]] == ["be brief", "hi"]


def test_complete_rejects_unknown_engine(client: TestClient):
    resp = client.post(
        "/api/v1/complete",
        json={"messages": [{"role": "user", "content": "hi"}], "engine": "mystery"},
    )
    assert resp.status_code == 422


def test_complete_failure_is_502(client: TestClient, resources):
    resources.gpt_client.fail = ChatClientError("upstream down")
    resp = client.post("/api/v1/complete", json={"messages": [{"role": "user", "content": "hi"}]})
    assert resp.status_code == 502
    assert "upstream down" in resp.json()["detail"]


def test_complete_rejects_unknown_role(client: TestClient):
    resp = client.post("/api/v1/complete", json={"messages": [{"role": "narrator", "content": "hi"}]})
    assert resp.status_code == 422


@pytest.mark.parametrize("user", ["..", "../../escape", "{abs}", "a\\b", "..."])
def test_unsafe_user_header_is_rejected(client: TestClient, storage, user):
    user = user.format(abs=storage / "outside")
    resp = client.post(
        "/api/v1/chat",
        json={"role": "user", "content": "Hello", "hash": "h"},
        headers={"X-Muninn-User": user},
    )
    assert resp.status_code == 400
    assert client.get("/api/v1/chat/h", headers={"X-Muninn-User": user}).status_code == 400
    assert client.post("/api/v1/chat/search", json={"content": "x"}, headers={"X-Muninn-User": user}).status_code == 400
    assert not list(storage.glob("**/messages.json"))
    assert not (storage.parent / "escape").exists()
