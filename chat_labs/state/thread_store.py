"""
Thread Store
============

Manages chat threads, their messages and uploaded documents with JSON
persistence, one file per thread.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, List
from datetime import datetime
import uuid

from pydantic import BaseModel

from ..models.chat_models import ChatDocument, ChatMessage, ChatThread, UserInfo
from .identifiers import is_safe_name

logger = logging.getLogger(__name__)

DOCUMENT_CHUNK_CHARS = 1000


class ThreadResponse(BaseModel):
    """Result of establishing a thread for a request."""
    success: bool
    thread: Optional[ChatThread] = None
    error: Optional[str] = None


def chunk_text(text: str, size: int = DOCUMENT_CHUNK_CHARS) -> List[str]:
    """Split text into chunks of at most ``size`` characters on paragraph boundaries."""
    chunks: List[str] = []
    current = ""
    for paragraph in (p.strip() for p in text.split("\n\n")):
        if not paragraph:
            continue
        while len(paragraph) > size:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(paragraph[:size])
            paragraph = paragraph[size:]
        if current and len(current) + len(paragraph) + 2 > size:
            chunks.append(current)
            current = ""
        current = f"{current}\n\n{paragraph}" if current else paragraph
    if current:
        chunks.append(current)
    return chunks


class ThreadStore:
    """Stores threads, messages and documents."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.threads_dir = (data_dir or Path("data")) / "threads"
        self.threads_dir.mkdir(parents=True, exist_ok=True)
        self._cache: Dict[str, Dict[str, Any]] = {}
        logger.info(f"[THREAD-STORE] Initialized with threads_dir={self.threads_dir}")

    def _path(self, thread_id: str) -> Path:
        if not is_safe_name(thread_id):
            raise ValueError(f"Invalid thread id: {thread_id!r}")
        return self.threads_dir / f"{thread_id}.json"

    def _get_record(self, thread_id: str) -> Optional[Dict[str, Any]]:
        if not is_safe_name(thread_id):
            return None
        if thread_id in self._cache:
            return self._cache[thread_id]

        path = self._path(thread_id)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                self._cache[thread_id] = json.load(f)
                return self._cache[thread_id]
        return None

    def _save_record(self, thread_id: str):
        """Save thread record to disk."""
        if thread_id in self._cache:
            with open(self._path(thread_id), "w", encoding="utf-8") as f:
                json.dump(self._cache[thread_id], f, ensure_ascii=False, indent=2)

    def _touch(self, record: Dict[str, Any]):
        record["thread"]["updated_at"] = datetime.now().isoformat()

    # ---- Threads ----

    def get_thread(self, thread_id: str) -> Optional[ChatThread]:
        record = self._get_record(thread_id)
        return ChatThread(**record["thread"]) if record else None

    def create_thread(
        self,
        user: UserInfo,
        thread_id: Optional[str] = None,
        name: str = "New chat",
        persona_message: str = "",
        extension: Optional[List[str]] = None,
        model: Optional[str] = None
    ) -> ChatThread:
        """Create a new thread owned by ``user``."""
        thread_id = thread_id or str(uuid.uuid4())
        if not is_safe_name(thread_id):
            raise ValueError(f"Invalid thread id: {thread_id!r}")

        thread = ChatThread(
            id=thread_id,
            user_id=user.id,
            name=name,
            persona_message=persona_message,
            extension=extension or [],
            model=model,
        )
        self._cache[thread.id] = {
            "thread": thread.model_dump(mode="json"),
            "messages": [],
            "documents": [],
        }
        self._save_record(thread.id)
        logger.info(f"[THREAD-STORE] Created thread {thread.id} for user {user.id}")
        return thread

    def update_thread(self, thread: ChatThread) -> bool:
        record = self._get_record(thread.id)
        if not record:
            return False
        record["thread"] = thread.model_dump(mode="json")
        self._touch(record)
        self._save_record(thread.id)
        return True

    def set_extension(self, thread_id: str, extension_id: str, enabled: bool = True) -> Optional[ChatThread]:
        """Enable or disable an extension on a thread, keeping list order."""
        thread = self.get_thread(thread_id)
        if not thread:
            return None
        if enabled and extension_id not in thread.extension:
            thread.extension.append(extension_id)
        elif not enabled:
            thread.extension = [e for e in thread.extension if e != extension_id]
        self.update_thread(thread)
        return thread

    async def ensure_thread(self, thread_id: str, user: UserInfo) -> ThreadResponse:
        """
        Load the thread for a request, creating it on first use.

        Fails when the thread belongs to another user.
        """
        if not thread_id:
            return ThreadResponse(success=False, error="missing thread id")
        if not is_safe_name(thread_id):
            logger.warning(f"[THREAD-STORE] Rejected invalid thread id {thread_id!r}")
            return ThreadResponse(success=False, error="invalid thread id")

        thread = self.get_thread(thread_id)
        if thread is None:
            thread = self.create_thread(user, thread_id=thread_id)
        elif thread.user_id != user.id:
            logger.warning(f"[THREAD-STORE] User {user.id} denied access to thread {thread_id}")
            return ThreadResponse(success=False, error="thread belongs to another user")

        return ThreadResponse(success=True, thread=thread)

    # ---- Messages ----

    async def create_message(self, message: ChatMessage) -> ChatMessage:
        """Append a message to its thread."""
        record = self._get_record(message.thread_id)
        if record is None:
            raise KeyError(f"Unknown thread: {message.thread_id}")

        record["messages"].append(message.model_dump(mode="json"))
        self._touch(record)
        self._save_record(message.thread_id)
        return message

    async def find_top_messages(self, thread_id: str, limit: int = 30) -> List[ChatMessage]:
        """Latest ``limit`` messages, newest first."""
        record = self._get_record(thread_id)
        if not record:
            return []
        latest = record["messages"][-limit:] if limit else record["messages"]
        return [ChatMessage(**m) for m in reversed(latest)]

    def get_messages(self, thread_id: str) -> List[ChatMessage]:
        """All messages, oldest first."""
        record = self._get_record(thread_id)
        if not record:
            return []
        return [ChatMessage(**m) for m in record["messages"]]

    # ---- Documents ----

    def add_document(self, thread_id: str, name: str, text: str) -> Optional[ChatDocument]:
        record = self._get_record(thread_id)
        if not record:
            return None

        document = ChatDocument(thread_id=thread_id, name=name, chunks=chunk_text(text))
        record["documents"].append(document.model_dump(mode="json"))
        self._touch(record)
        self._save_record(thread_id)
        logger.info(f"[THREAD-STORE] Added document '{name}' ({len(document.chunks)} chunks) to {thread_id}")
        return document

    async def find_all_documents(self, thread_id: str) -> List[ChatDocument]:
        record = self._get_record(thread_id)
        if not record:
            return []
        return [ChatDocument(**d) for d in record["documents"]]
