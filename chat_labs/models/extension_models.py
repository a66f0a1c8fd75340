"""
Extension Models for Chat Labs
===============================

Models for registered extensions and the callable tools offered to the
completion model.
"""

import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List
from pydantic import BaseModel, Field
from datetime import datetime


class EndpointType(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ExtensionFunction(BaseModel):
    """One HTTP-backed function of an extension."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    endpoint: str
    endpoint_type: EndpointType = EndpointType.POST


class Extension(BaseModel):
    """A registered extension."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""
    execution_steps: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    functions: List[ExtensionFunction] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


ToolFunction = Callable[[Dict[str, Any]], Awaitable[Any]]


class ToolDefinition(BaseModel):
    """A callable tool offered to the completion model."""
    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    function: ToolFunction

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
