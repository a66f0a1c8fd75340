"""
Shared test fixtures.
"""

import pytest

from chat_labs.models.chat_models import StreamEvent, StreamEventType


class FakeLLM:
    """Stands in for LLMService: records each call and answers with fixed text."""

    def __init__(self, answer="回答です"):
        self.answer = answer
        self.calls = []
        self.on_call = None

    async def stream_chat(self, messages, model, options=None, tools=None, signal=None, transcript=None):
        self.calls.append({"messages": messages, "model": model, "options": options, "tools": tools})
        if self.on_call:
            self.on_call()
        yield StreamEvent(type=StreamEventType.CONTENT, content=self.answer)
        if transcript is not None:
            transcript.append({"role": "assistant", "content": self.answer})
        yield StreamEvent(type=StreamEventType.FINAL_CONTENT, content=self.answer)


@pytest.fixture
def llm():
    return FakeLLM()

