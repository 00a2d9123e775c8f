# muninn/repos.py
from __future__ import annotations

import contextlib
import json
import logging
import math
import os
import re
import tempfile
import threading
import time
from datetime import date as Date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError

from . import config

logger = logging.getLogger(__name__)

APP_DIR = "muninn"
MESSAGES_FILE = "messages.json"
ATTRIBUTES_FILE = "attributes.json"
DATE_FORMAT = "%Y-%m-%d"


# ------------------------------ Models --------------------------------------
class ChatModel(BaseModel):
    role: str
    content: str
    hash: str
    embedding: List[float] = Field(default_factory=list)


class Attribute(BaseModel):
    username: str
    attribute: str
    value: str


class ChatNotFoundError(LookupError):
    pass


class AttributeNotFoundError(LookupError):
    pass


# ------------------------------ Helpers -------------------------------------
USER_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]+$")


class InvalidUserError(ValueError):
    pass


class CorruptFileError(ValueError):
    pass


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 if either has no length."""
    dot = sum(a * b for a, b in zip(v1, v2))
    magnitude = math.sqrt(sum(a * a for a in v1)) * math.sqrt(sum(b * b for b in v2))
    if magnitude == 0:
        return 0.0
    return dot / magnitude


def today() -> Date:
    return datetime.now().date()


def validate_user(user: str) -> str:
    """User names become directory names: one plain path segment, never dots only."""
    if not USER_PATTERN.match(user or "") or not user.strip("."):
        raise InvalidUserError(f"Invalid user name: {user!r}")
    return user


def user_root(root: Path, user: str) -> Path:
    base = (root / APP_DIR).resolve()
    path = (base / validate_user(user)).resolve()
    if path.parent != base:
        raise InvalidUserError(f"Invalid user name: {user!r}")
    return path


def day_dir(root: Path, user: str, day: Date) -> Path:
    return user_root(root, user) / day.strftime(DATE_FORMAT)


def _write_atomic(path: Path, payload: Any) -> None:
    # temp file in the same directory, then rename over the target
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def _set_aside(path: Path) -> Path:
    aside = path.with_name(f"{path.name}.corrupt-{int(time.time() * 1000)}")
    path.replace(aside)
    return aside


def _parse_chats(path: Path) -> List[ChatModel]:
    """Raises OSError when the file can't be read, CorruptFileError when it can't be parsed."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise TypeError(f"expected a list, got {type(raw).__name__}")
        return [ChatModel.model_validate(item) for item in raw]
    except (ValueError, TypeError, ValidationError) as e:
        raise CorruptFileError(f"{path}: {e}") from e


def _read_chats(path: Path) -> List[ChatModel]:
    # missing or unreadable day file reads as empty
    try:
        return _parse_chats(path)
    except FileNotFoundError:
        return []
    except (OSError, CorruptFileError) as e:
        logger.error("Ignoring unreadable day file %s: %s", path, e)
        return []


# ----------------------------- Message repo ---------------------------------
class FsMessageRepo:
    """
    Chats stored per user and per day under <root>/muninn/<user>/<YYYY-MM-DD>/,
    with an in-memory index keyed by (hash, user).
    """

    def __init__(self, root: Optional[Path] = None):
        self._root = root
        self._memory: Dict[Tuple[str, str], ChatModel] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root if self._root is not None else config.storage_root()

    def path_for_date(self, user: str, day: Date) -> Path:
        return day_dir(self.root, user, day) / MESSAGES_FILE

    def save_chat(self, day: Date, user: str, chat: ChatModel) -> ChatModel:
        with self._lock:
            self._memory[(chat.hash, user)] = chat

            path = self.path_for_date(user, day)
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                chats = _parse_chats(path)
            except FileNotFoundError:
                chats = []
            except CorruptFileError as e:
                # keep the unreadable history instead of writing over it
                try:
                    aside = _set_aside(path)
                except OSError as move_err:
                    logger.error("Unreadable day file %s left in place: %s; %s", path, e, move_err)
                    return chat
                logger.error("Moved unreadable day file to %s: %s", aside, e)
                chats = []
            except OSError as e:
                logger.error("Error reading %s: %s", path, e)
                return chat
            chats.append(chat)
            try:
                _write_atomic(path, [c.model_dump() for c in chats])
            except OSError as e:
                logger.error("Error writing to file %s: %s", path, e)
        return chat

    def get_chat(self, user: str, chat_id: str) -> ChatModel:
        key = (chat_id, user)
        with self._lock:
            chat = self._memory.get(key)
            if chat is not None:
                return chat
            for loaded in _read_chats(self.path_for_date(user, today())):
                self._memory[(loaded.hash, user)] = loaded
            chat = self._memory.get(key)
        if chat is None:
            logger.error("Chat %s not found for user %s", chat_id, user)
            raise ChatNotFoundError(f"Chat {chat_id} not found")
        return chat

    def get_all_for_user(self, user: str) -> List[ChatModel]:
        with self._lock:
            chats = _read_chats(self.path_for_date(user, today()))
            if chats:
                return chats

            # nothing today: fall back to the most recent day on disk
            try:
                entries = list(user_root(self.root, user).iterdir())
            except OSError:
                return []
            days = []
            for entry in entries:
                if not entry.is_dir():
                    continue
                try:
                    days.append(datetime.strptime(entry.name, DATE_FORMAT).date())
                except ValueError:
                    continue
            for day in sorted(days, reverse=True):
                chats = _read_chats(self.path_for_date(user, day))
                if chats:
                    return chats
            return []

    def embeddings_search_for_user(
        self, user: str, query_vector: Sequence[float]
    ) -> List[Tuple[float, ChatModel]]:
        ranked = [
            (cosine_similarity(chat.embedding, query_vector), chat)
            for chat in self.get_all_for_user(user)
        ]
        ranked.sort(key=lambda pair: pair[0], reverse=True)
        return ranked


class MockMessageRepo:
    """Canned repo for wiring tests; never touches the filesystem."""

    def save_chat(self, day: Date, user: str, chat: ChatModel) -> ChatModel:
        return chat

    def get_chat(self, user: str, chat_id: str) -> ChatModel:
        return ChatModel(role="user", content="Hello", hash=chat_id, embedding=[0.1, 0.2, 0.3])

    def get_all_for_user(self, user: str) -> List[ChatModel]:
        return []

    def embeddings_search_for_user(
        self, user: str, query_vector: Sequence[float]
    ) -> List[Tuple[float, ChatModel]]:
        chat = ChatModel(role="user", content="Hello", hash="123", embedding=[0.1, 0.2, 0.3])
        return [(0.1, chat)]


# ---------------------------- Attribute repo --------------------------------
class FsAttributeRepo:
    """Per-user key/value pairs kept in <root>/muninn/<user>/attributes.json."""

    def __init__(self, root: Optional[Path] = None):
        self._root = root
        self._memory: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root if self._root is not None else config.storage_root()

    def _path(self, user: str) -> Path:
        return user_root(self.root, user) / ATTRIBUTES_FILE

    def _load(self, user: str) -> Dict[str, str]:
        if user not in self._memory:
            path = self._path(user)
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                data = {}
            except (OSError, ValueError) as e:
                logger.error("Ignoring unreadable attribute file %s: %s", path, e)
                data = {}
            if not isinstance(data, dict):
                logger.error("Ignoring attribute file %s: not a JSON object", path)
                data = {}
            self._memory[user] = {str(k): str(v) for k, v in data.items()}
        return self._memory[user]

    def save_attribute(self, user: str, attribute: str, value: str) -> Attribute:
        with self._lock:
            attrs = self._load(user)
            attrs[attribute] = value
            path = self._path(user)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                _write_atomic(path, attrs)
            except OSError as e:
                logger.error("Error writing attributes for %s: %s", user, e)
        return Attribute(username=user, attribute=attribute, value=value)

    def get_attribute(self, user: str, attribute: str) -> Attribute:
        with self._lock:
            value = self._load(user).get(attribute)
        if value is None:
            raise AttributeNotFoundError(f"Attribute {attribute} not found for {user}")
        return Attribute(username=user, attribute=attribute, value=value)
