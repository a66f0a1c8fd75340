"""
Chat Models for Chat Labs
==========================

Models for chat threads, messages, documents and inbound prompts.
"""

import uuid
from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


class ChatRole(str, Enum):
    """Role of chat participant."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"
    FUNCTION = "function"  # deprecated function-call role, dropped from history


class ThinkingModeUI(str, Enum):
    """Reasoning mode as selected in the UI."""
    STANDARD = "standard"
    THINKING = "thinking"
    FAST = "fast"


class ThinkingMode(str, Enum):
    """Reasoning mode used internally."""
    NORMAL = "normal"
    THINKING = "thinking"
    FAST = "fast"


class ChatType(str, Enum):
    """Response strategy selected for a turn."""
    MULTIMODAL = "multimodal"
    CHAT_WITH_FILE = "chat-with-file"
    EXTENSIONS = "extensions"


class ToolCallFunction(BaseModel):
    """Function name and JSON arguments of a tool call."""
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    """A tool call issued by the assistant."""
    id: Optional[str] = None
    type: str = "function"
    function: ToolCallFunction


class ChatMessage(BaseModel):
    """A single conversation turn."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    thread_id: Optional[str] = None
    role: ChatRole
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    multimodal_image: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    def to_openai(self) -> Dict[str, Any]:
        """Map to the completion protocol's message shape."""
        message: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.role == ChatRole.ASSISTANT and self.tool_calls is not None:
            message["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        if self.role == ChatRole.TOOL:
            message["tool_call_id"] = self.tool_call_id
        if self.role == ChatRole.FUNCTION and self.name:
            message["name"] = self.name
        return message


class ChatThread(BaseModel):
    """A conversation thread."""
    id: str
    user_id: str
    name: str = "New chat"
    persona_message: str = ""
    extension: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


class ChatDocument(BaseModel):
    """A document uploaded into a thread, split into text chunks."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    thread_id: str
    name: str
    chunks: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class UserPrompt(BaseModel):
    """An inbound user turn."""
    id: str
    message: str
    multimodal_image: str = ""
    thinking_mode: ThinkingMode = ThinkingMode.NORMAL


class UserInfo(BaseModel):
    """Identity of the caller, as provided by the fronting auth layer."""
    id: str
    name: str = ""
    email: Optional[str] = None


class StreamEventType(str, Enum):
    """Kinds of events emitted on the response stream."""
    CONTENT = "content"
    FUNCTION_CALL = "functionCall"
    FUNCTION_CALL_RESULT = "functionCallResult"
    FINAL_CONTENT = "finalContent"
    ERROR = "error"


class StreamEvent(BaseModel):
    """One event on the response stream."""
    type: StreamEventType
    content: str = ""
    name: Optional[str] = None
