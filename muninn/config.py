# muninn/config.py
"""Runtime settings from the environment; the storage root is resolved per call."""
import os
from pathlib import Path

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info")

# Storage
DEFAULT_USER = os.getenv("MUNINN_DEFAULT_USER", "my_user")

# LLM providers
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
EMBEDDING_MODEL = os.getenv("MUNINN_EMBEDDING_MODEL", "text-embedding-3-small")
CHAT_MODEL = os.getenv("MUNINN_CHAT_MODEL", "gpt-4-turbo-preview")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("MUNINN_OLLAMA_MODEL", "gemma:2b")

# CORS
ALLOWED_ORIGIN = os.getenv("ALLOWED_ORIGIN") or ""


def storage_root() -> Path:
    """
    Base directory for stored data. MESSAGE_STORAGE_PATH wins; otherwise the
    local data dir ($XDG_DATA_HOME or ~/.local/share). Resolved per call.
    """
    override = os.getenv("MESSAGE_STORAGE_PATH")
    if override:
        return Path(override)
    xdg = os.getenv("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"
