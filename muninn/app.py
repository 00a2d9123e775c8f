# muninn/app.py
from __future__ import annotations

import logging
import time
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import __version__, config
from .ai_orchestrator import ChatClientError, EmbeddingsError, Message
from .app_attributes import router as attributes_router
from .repos import ChatModel, ChatNotFoundError, today
from .resources import Resources, get_resources, get_user

logger = logging.getLogger(__name__)

# ---------------------------- FastAPI app -----------------------------------
app = FastAPI(title="Muninn Memory API", version=__version__)

ALLOWED_ORIGINS = [o for o in [config.ALLOWED_ORIGIN] if o]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Muninn-User"],
)

app.include_router(attributes_router)

# ------------------------------ Models --------------------------------------
class ChatRequest(BaseModel):
    role: str
    content: str
    hash: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    role: str
    content: str
    hash: str

    @classmethod
    def from_model(cls, model: ChatModel) -> "ChatResponse":
        return cls(role=model.role, content=model.content, hash=model.hash)


class SearchRequest(BaseModel):
    content: str
    limit: Optional[int] = Field(None, ge=1)


class SearchResponse(ChatResponse):
    ranking: float


class CompleteRequest(BaseModel):
    messages: List[Message] = Field(..., min_length=1)
    engine: Literal["openai", "ollama"] = "openai"


class CompleteResponse(BaseModel):
    role: str = "assistant"
    content: str


# ------------------------------ Helpers -------------------------------------
def _embed(resources: Resources, text: str) -> List[float]:
    try:
        return resources.embedding_client.get_embeddings(text)
    except EmbeddingsError as e:
        status = 502 if e.configured else 500
        raise HTTPException(status_code=status, detail=f"Embedding generation failed: {e}")


# ------------------------- Health -------------------------------------------
@app.get("/health")
def plain_health():
    return {"status": "ok"}


@app.get("/api/health")
def api_health():
    return {"ok": True, "ts": int(time.time())}


# ------------------------------ Routes --------------------------------------
@app.post("/api/v1/chat", response_model=ChatResponse)
def save_chat(
    payload: ChatRequest,
    resources: Resources = Depends(get_resources),
    user: str = Depends(get_user),
):
    embedding = _embed(resources, payload.content)
    chat = ChatModel(
        role=payload.role,
        content=payload.content,
        hash=payload.hash,
        embedding=embedding,
    )
    saved = resources.message_repo.save_chat(today(), user, chat)
    return ChatResponse.from_model(saved)


@app.post("/api/v1/chat/search", response_model=List[SearchResponse])
def search_chat(
    payload: SearchRequest,
    resources: Resources = Depends(get_resources),
    user: str = Depends(get_user),
):
    query_vector = _embed(resources, payload.content)
    found = resources.message_repo.embeddings_search_for_user(user, query_vector)
    if payload.limit:
        found = found[: payload.limit]
    return [
        SearchResponse(role=c.role, content=c.content, hash=c.hash, ranking=score)
        for score, c in found
    ]


@app.get("/api/v1/chat/{chat_id}", response_model=ChatResponse)
def get_chat(
    chat_id: str,
    resources: Resources = Depends(get_resources),
    user: str = Depends(get_user),
):
    try:
        chat = resources.message_repo.get_chat(user, chat_id)
    except ChatNotFoundError:
        raise HTTPException(status_code=404, detail="Chat not found")
    return ChatResponse.from_model(chat)


@app.post("/api/v1/complete", response_model=CompleteResponse)
def complete(body: CompleteRequest, resources: Resources = Depends(get_resources)):
    client = resources.ollama_client if body.engine == "ollama" else resources.gpt_client
    try:
        content = client.complete(body.messages)
    except ChatClientError as e:
        status = 502 if e.configured else 500
        raise HTTPException(status_code=status, detail=f"LLM generation failed: {e}")
    return CompleteResponse(content=content)
