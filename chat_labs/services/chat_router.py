"""
Chat Router
===========

Entry point for one chat turn:

1. Ensure the thread (failure is unauthorized; nothing else runs)
2. Fetch history, documents and tools concurrently
3. Record the user message before any generation
4. Classify the turn (multimodal > chat-with-file > extensions) and stream
   the chosen strategy; CRM threads take the direct bridge
5. Persist the assistant and tool turns produced by the stream
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from pydantic import BaseModel, ConfigDict

from ..config import CHAT_DEFAULT_SYSTEM_PROMPT
from ..models.chat_models import (
    ChatDocument, ChatMessage, ChatRole, ChatThread, ChatType, StreamEvent, ToolCall, UserInfo, UserPrompt
)
from ..models.extension_models import ToolDefinition
from ..state.thread_store import ThreadStore
from .cancellation import CancellationSignal
from .chat_strategies import ChatStrategies
from .crm_bridge import CrmDirectBridge
from .extension_aggregator import ExtensionAggregator
from .history_sanitizer import sanitize_history
from .reasoning_modes import generation_options

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 30


class ChatTurnResult(BaseModel):
    """Outcome of starting a chat turn."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    chat_type: Optional[ChatType] = None
    stream: Optional[Any] = None        # AsyncIterator[StreamEvent]
    unauthorized: bool = False
    error: Optional[str] = None


def classify_chat_type(
    multimodal_image: Optional[str],
    documents: List[ChatDocument],
    tools: List[ToolDefinition]
) -> ChatType:
    """Pick the strategy for a turn; fixed priority, no state."""
    if multimodal_image:
        return ChatType.MULTIMODAL
    if documents:
        return ChatType.CHAT_WITH_FILE
    return ChatType.EXTENSIONS


def transcript_to_messages(thread_id: str, transcript: List[Dict[str, Any]]) -> List[ChatMessage]:
    messages = []
    for turn in transcript:
        calls = turn.get("tool_calls")
        messages.append(ChatMessage(
            thread_id=thread_id,
            role=ChatRole(turn["role"]),
            content=turn.get("content"),
            tool_calls=[ToolCall(**c) for c in calls] if calls else None,
            tool_call_id=turn.get("tool_call_id"),
        ))
    return messages


class ChatRouter:
    """Routes chat turns to response strategies."""

    def __init__(
        self,
        store: ThreadStore,
        aggregator: ExtensionAggregator,
        strategies: ChatStrategies,
        crm_bridge: CrmDirectBridge,
        default_system_prompt: str = CHAT_DEFAULT_SYSTEM_PROMPT
    ):
        self.store = store
        self.aggregator = aggregator
        self.strategies = strategies
        self.crm_bridge = crm_bridge
        self.default_system_prompt = default_system_prompt

    async def _get_history(self, thread: ChatThread) -> List[Dict[str, Any]]:
        try:
            newest_first = await self.store.find_top_messages(thread.id, HISTORY_LIMIT)
        except (OSError, ValueError) as e:
            logger.error(f"[CHAT] Error getting history: {e}")
            return []
        return sanitize_history([m.to_openai() for m in reversed(newest_first)])

    async def _get_documents(self, thread: ChatThread) -> List[ChatDocument]:
        try:
            return await self.store.find_all_documents(thread.id)
        except (OSError, ValueError) as e:
            logger.error(f"[CHAT] Error getting documents: {e}")
            return []

    async def _persist_after(
        self,
        thread_id: str,
        stream: AsyncIterator[StreamEvent],
        transcript: List[Dict[str, Any]]
    ) -> AsyncIterator[StreamEvent]:
        try:
            async for event in stream:
                yield event
        finally:
            for message in transcript_to_messages(thread_id, transcript):
                await self.store.create_message(message)
            if transcript:
                logger.info(f"[CHAT] Persisted {len(transcript)} generated turns to {thread_id}")

    async def chat_api_entry(
        self,
        prompt: UserPrompt,
        user: UserInfo,
        signal: Optional[CancellationSignal] = None
    ) -> ChatTurnResult:
        """
        Start a chat turn.

        Args:
            prompt: Thread id, message, optional image and reasoning mode
            user: Caller identity
            signal: Request-scoped cancellation signal

        Returns:
            ChatTurnResult with a stream of events, or unauthorized
        """
        ensured = await self.store.ensure_thread(prompt.id, user)
        if not ensured.success:
            return ChatTurnResult(success=False, unauthorized=True, error=ensured.error)
        thread = ensured.thread

        mode = prompt.thinking_mode
        options = generation_options(mode)

        history, documents, tools = await asyncio.gather(
            self._get_history(thread),
            self._get_documents(thread),
            self.aggregator.aggregate(thread, prompt.message, mode, signal),
        )

        persona = f"{self.default_system_prompt} \n\n {thread.persona_message}"
        chat_type = classify_chat_type(prompt.multimodal_image, documents, tools)

        await self.store.create_message(ChatMessage(
            thread_id=thread.id,
            role=ChatRole.USER,
            name=user.name,
            content=prompt.message,
            multimodal_image=prompt.multimodal_image or None,
        ))

        logger.info(f"[CHAT] thread={thread.id} type={chat_type.value} mode={mode.value}")

        transcript: List[Dict[str, Any]] = []
        if chat_type == ChatType.MULTIMODAL:
            stream = self.strategies.multimodal(
                thread, persona, prompt.message, prompt.multimodal_image, options, signal, transcript
            )
        elif chat_type == ChatType.CHAT_WITH_FILE:
            stream = self.strategies.chat_with_file(
                thread, persona, prompt.message, history, documents, options, signal, transcript
            )
        elif self.crm_bridge.is_active(thread):
            stream = self.crm_bridge.stream(
                thread, persona, prompt.message, history, user, options, signal, transcript
            )
        else:
            stream = self.strategies.extensions(
                thread, persona, prompt.message, history, tools, options, signal, transcript
            )

        return ChatTurnResult(
            success=True,
            chat_type=chat_type,
            stream=self._persist_after(thread.id, stream, transcript),
        )
