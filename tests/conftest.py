from __future__ import annotations

from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from muninn.ai_orchestrator import ChatClientError, EmbeddingsError, Message
from muninn.app import app
from muninn.repos import FsAttributeRepo, FsMessageRepo
from muninn.resources import Resources, get_resources


class FakeEmbeddings:
    """Looks vectors up by text; unknown text maps to a fixed vector."""

    def __init__(self, vectors: Dict[str, List[float]] | None = None, fail: EmbeddingsError | None = None):
        self.vectors = vectors or {}
        self.fail = fail
        self.calls: List[str] = []

    def get_embeddings(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail is not None:
            raise self.fail
        return self.vectors.get(text, [0.1, 0.2, 0.3])


class FakeChatClient:
    def __init__(self, reply: str = "ok", fail: ChatClientError | None = None):
        self.reply = reply
        self.fail = fail
        self.contexts: List[List[Message]] = []

    def complete(self, context: List[Message]) -> str:
        self.contexts.append(context)
        if self.fail is not None:
            raise self.fail
        return self.reply


@pytest.fixture()
def storage(tmp_path, monkeypatch):
    monkeypatch.setenv("MESSAGE_STORAGE_PATH", str(tmp_path))
    return tmp_path


@pytest.fixture()
def resources(storage) -> Resources:
    return Resources(
        message_repo=FsMessageRepo(storage),
        user_attributes_repo=FsAttributeRepo(storage),
        embedding_client=FakeEmbeddings(),
        gpt_client=FakeChatClient(reply="from gpt"),
        ollama_client=FakeChatClient(reply="from ollama"),
    )


@pytest.fixture()
def client(resources):
    app.dependency_overrides[get_resources] = lambda: resources
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
