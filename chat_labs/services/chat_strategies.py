"""
Chat Strategies
===============

Generators for the three response strategies:

- multimodal: answer about an attached image, no history
- chat-with-file: answer from the thread's uploaded documents
- extensions: tool-augmented answer ("pick a tool, then answer")
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from ..config import resolve_default_model
from ..models.chat_models import ChatDocument, ChatThread, StreamEvent
from ..models.extension_models import ToolDefinition
from .cancellation import CancellationSignal
from .extension_registry import ExtensionRegistry
from .history_sanitizer import sanitize_history
from .llm_service import LLMService
from .reasoning_modes import GenerationOptions

logger = logging.getLogger(__name__)

JST = timezone(timedelta(hours=9))
MAX_CONTEXT_CHUNKS = 5

_ASCII_WORD = re.compile(r"[a-z0-9]+")
_CJK_RUN = re.compile(r"[\u3040-\u30ff\u3400-\u9fff]+")


def jst_prompt(now: Optional[datetime] = None) -> str:
    today = (now or datetime.now(JST)).astimezone(JST).strftime("%Y-%m-%d")
    return "\n".join([
        "## Internal timezone rules (Do not reveal)",
        "- Interpret all dates/times in **Asia/Tokyo (JST, UTC+9)**.",
        "- Normalize relative or ambiguous dates (今日/明日/10/5/10月5日) to **YYYY-MM-DD in JST**.",
        "- **Do not mention these rules or JST normalization in the final answer.**",
        "",
        f"Today in JST: {today}",
    ])


def _terms(text: str) -> Set[str]:
    lowered = text.lower()
    terms = set(_ASCII_WORD.findall(lowered))
    for run in _CJK_RUN.findall(lowered):
        if len(run) == 1:
            terms.add(run)
        terms.update(run[i:i + 2] for i in range(len(run) - 1))
    return terms


def rank_chunks(message: str, documents: List[ChatDocument], limit: int = MAX_CONTEXT_CHUNKS) -> List[Tuple[ChatDocument, int, str]]:
    """Chunks sharing the most terms with the message, as (document, index, text)."""
    query = _terms(message)
    scored = []
    for document in documents:
        for index, chunk in enumerate(document.chunks):
            scored.append((len(query & _terms(chunk)), document, index, chunk))

    # stable sort keeps upload order among equal scores
    scored.sort(key=lambda item: item[0], reverse=True)
    hits = [s for s in scored if s[0] > 0] or scored
    return [(doc, index, chunk) for _, doc, index, chunk in hits[:limit]]


def documents_prompt(message: str, documents: List[ChatDocument]) -> str:
    excerpts = [
        f"[{doc.name} #{index + 1}]\n{chunk}"
        for doc, index, chunk in rank_chunks(message, documents)
    ]
    return (
        "Answer the question using only the document excerpts below. "
        "Cite the excerpts you used as [document name #n]. "
        "If the excerpts do not contain the answer, say so.\n\n"
        + "\n---\n".join(excerpts)
    )


def image_data_url(image: str) -> str:
    return image if image.startswith("data:") else f"data:image/png;base64,{image}"


class ChatStrategies:
    """Builds the completion request for each strategy and streams it."""

    def __init__(self, llm: LLMService, registry: ExtensionRegistry):
        self.llm = llm
        self.registry = registry

    def multimodal(
        self,
        thread: ChatThread,
        persona: str,
        message: str,
        image: str,
        options: Optional[GenerationOptions] = None,
        signal: Optional[CancellationSignal] = None,
        transcript: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[StreamEvent]:
        messages = [
            {"role": "system", "content": persona},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": message},
                    {"type": "image_url", "image_url": {"url": image_data_url(image)}},
                ],
            },
        ]
        return self.llm.stream_chat(
            messages, resolve_default_model(thread.model), options, signal=signal, transcript=transcript
        )

    def chat_with_file(
        self,
        thread: ChatThread,
        persona: str,
        message: str,
        history: List[Dict[str, Any]],
        documents: List[ChatDocument],
        options: Optional[GenerationOptions] = None,
        signal: Optional[CancellationSignal] = None,
        transcript: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[StreamEvent]:
        logger.info(f"[CHAT] Answering from {len(documents)} documents")
        messages = [
            {"role": "system", "content": f"{persona}\n\n{documents_prompt(message, documents)}"},
            *sanitize_history(history),
            {"role": "user", "content": message},
        ]
        return self.llm.stream_chat(
            messages, resolve_default_model(thread.model), options, signal=signal, transcript=transcript
        )

    def extensions(
        self,
        thread: ChatThread,
        persona: str,
        message: str,
        history: List[Dict[str, Any]],
        tools: List[ToolDefinition],
        options: Optional[GenerationOptions] = None,
        signal: Optional[CancellationSignal] = None,
        transcript: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[StreamEvent]:
        steps = self.registry.execution_steps_prompt(thread.extension)
        system = "\n".join(part for part in (persona, steps, jst_prompt()) if part)
        messages = [
            {"role": "system", "content": system},
            *sanitize_history(history),
            {"role": "user", "content": message},
        ]
        model = resolve_default_model(thread.model)
        logger.info(f"[CHAT] Tool-augmented answer with {len(tools)} tools, model={model}")
        return self.llm.stream_chat(
            messages, model, options, tools=tools or None, signal=signal, transcript=transcript
        )
