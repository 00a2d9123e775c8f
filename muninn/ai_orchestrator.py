# muninn/ai_orchestrator.py
from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

import httpx
from openai import OpenAI
from pydantic import BaseModel, ConfigDict

from . import config

logger = logging.getLogger(__name__)


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    role: Role
    content: str

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


class EmbeddingsError(Exception):
    def __init__(self, message: str, configured: bool = True):
        super().__init__(message)
        self.configured = configured


class ChatClientError(Exception):
    def __init__(self, message: str, configured: bool = True):
        super().__init__(message)
        self.configured = configured


def make_openai_client() -> Optional[OpenAI]:
    """
    Build an OpenAI client. Supports OPENAI_BASE_URL for compatible providers.
    Returns None if no key is configured.
    """
    if not config.OPENAI_API_KEY:
        return None
    return OpenAI(
        api_key=config.OPENAI_API_KEY,
        base_url=config.OPENAI_BASE_URL,
        timeout=60.0,
        max_retries=2,
    )


class ContextBuilder:
    """Accumulates a conversation, trimming each message."""

    def __init__(self):
        self.messages: List[Message] = []

    def add_message(self, role: Role, text: str) -> "ContextBuilder":
        self.messages.append(Message(role=Role(role).value, content=text.strip()))
        return self

    def build(self) -> List[Message]:
        return list(self.messages)


# ------------------------------ Embeddings ----------------------------------
class OpenAiEmbeddingsClient:
    def __init__(self, client: Optional[OpenAI] = None, model: str = config.EMBEDDING_MODEL):
        self._client = client
        self.model = model

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = make_openai_client()
        if self._client is None:
            raise EmbeddingsError("Embeddings not configured (OPENAI_API_KEY missing)", configured=False)
        return self._client

    def get_embeddings(self, text: str) -> List[float]:
        client = self.client
        try:
            resp = client.embeddings.create(model=self.model, input=text)
            return list(resp.data[0].embedding)
        except Exception as e:
            logger.error("Embedding request failed: %s", e)
            raise EmbeddingsError(f"{type(e).__name__}: {e}") from e


# ------------------------------ Completions ---------------------------------
class GptClient:
    """OpenAI chat completions."""

    def __init__(self, client: Optional[OpenAI] = None, model: str = config.CHAT_MODEL):
        self._client = client
        self.model = model

    def complete(self, context: List[Message]) -> str:
        client = self._client or make_openai_client()
        if client is None:
            raise ChatClientError("LLM not configured (OPENAI_API_KEY missing)", configured=False)
        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=[m.model_dump() for m in context],
            )
            return resp.choices[0].message.content or ""
        except Exception as e:
            logger.error("Chat completion failed: %s", e)
            raise ChatClientError(f"{type(e).__name__}: {e}") from e


class OllamaClient:
    """Local Ollama server, non-streaming /api/chat."""

    def __init__(
        self,
        base_url: str = config.OLLAMA_BASE_URL,
        model: str = config.OLLAMA_MODEL,
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport

    def complete(self, context: List[Message]) -> str:
        body = {
            "model": self.model,
            "messages": [m.model_dump() for m in context],
            "stream": False,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as http:
                r = http.post(f"{self.base_url}/api/chat", json=body)
                r.raise_for_status()
                return r.json()["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error("Ollama request failed: %s", e)
            raise ChatClientError(f"{type(e).__name__}: {e}") from e
