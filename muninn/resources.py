# muninn/resources.py
"""Process-wide clients and repositories, handed to routes via Depends."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Header, HTTPException

from . import config
from .ai_orchestrator import GptClient, OllamaClient, OpenAiEmbeddingsClient
from .repos import FsAttributeRepo, FsMessageRepo, InvalidUserError, validate_user


@dataclass
class Resources:
    message_repo: FsMessageRepo = field(default_factory=FsMessageRepo)
    user_attributes_repo: FsAttributeRepo = field(default_factory=FsAttributeRepo)
    embedding_client: OpenAiEmbeddingsClient = field(default_factory=OpenAiEmbeddingsClient)
    gpt_client: GptClient = field(default_factory=GptClient)
    ollama_client: OllamaClient = field(default_factory=OllamaClient)


_resources: Optional[Resources] = None


def get_resources() -> Resources:
    global _resources
    if _resources is None:
        _resources = Resources()
    return _resources


def check_user(name: str) -> str:
    try:
        return validate_user(name)
    except InvalidUserError:
        raise HTTPException(status_code=400, detail="Invalid user name")


def get_user(x_muninn_user: Optional[str] = Header(None)) -> str:
    # No auth: the caller names itself, or gets the shared default user
    return check_user((x_muninn_user or "").strip() or config.DEFAULT_USER)


def get_path_user(username: str) -> str:
    return check_user(username)
