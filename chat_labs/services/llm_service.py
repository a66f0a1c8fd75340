"""
LLM Service for Chat Labs
==========================

Streaming chat completions against OpenAI or Azure OpenAI, with an optional
tool-running loop: the model picks tools, their results are appended to the
conversation, and the model is called again until it answers in text.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncAzureOpenAI, AsyncOpenAI

from ..config import LLMConfig
from ..models.chat_models import StreamEvent, StreamEventType
from ..models.extension_models import ToolDefinition
from .cancellation import CancellationSignal
from .reasoning_modes import GenerationOptions

logger = logging.getLogger(__name__)

REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def is_reasoning_model(model: str) -> bool:
    return model.lower().startswith(REASONING_MODEL_PREFIXES)


def _serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


class LLMService:
    """
    Service for streaming chat completions.

    Used for:
    - Plain answers (CRM direct path, follow-ups)
    - Tool-augmented answers (image tools, extension tools)
    - Multimodal answers over an attached image
    """

    def __init__(self, config: Optional[LLMConfig] = None, client: Optional[Any] = None):
        self.config = config or LLMConfig()
        self._client = client

    def _get_client(self) -> Optional[Any]:
        """Create the SDK client on first use."""
        if self._client is not None:
            return self._client

        if not self.config.api_key:
            logger.error("[LLM-SERVICE] No API key configured")
            return None

        if self.config.use_azure:
            self._client = AsyncAzureOpenAI(
                api_key=self.config.api_key,
                azure_endpoint=self.config.azure_endpoint,
                api_version=self.config.azure_api_version,
            )
            logger.info(f"[LLM-SERVICE] Using Azure OpenAI at {self.config.azure_endpoint}")
        else:
            kwargs: Dict[str, Any] = {"api_key": self.config.api_key}
            if self.config.base_url:
                kwargs["base_url"] = self.config.base_url
            self._client = AsyncOpenAI(**kwargs)
            logger.info("[LLM-SERVICE] Using OpenAI")
        return self._client

    def _request_kwargs(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        options: GenerationOptions,
        tools: Optional[List[ToolDefinition]]
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"model": model, "messages": messages, "stream": True}
        if is_reasoning_model(model):
            kwargs["reasoning_effort"] = options.reasoning_effort
        else:
            kwargs["temperature"] = options.temperature
        if tools:
            kwargs["tools"] = [tool.to_openai() for tool in tools]
        return kwargs

    async def _execute_tool(
        self,
        tools: Dict[str, ToolDefinition],
        call: Dict[str, Any],
        signal: Optional[CancellationSignal]
    ) -> str:
        name = call["function"]["name"]
        tool = tools.get(name)
        if tool is None:
            logger.warning(f"[LLM-SERVICE] Model requested unknown tool '{name}'")
            return _serialize_result({"error": f"Unknown tool: {name}"})

        raw_args = call["function"]["arguments"] or "{}"
        try:
            args = json.loads(raw_args)
        except json.JSONDecodeError:
            logger.warning(f"[LLM-SERVICE] Invalid JSON arguments for '{name}': {raw_args[:200]}")
            return _serialize_result({"error": f"Invalid arguments for {name}"})

        try:
            pending = tool.function(args if isinstance(args, dict) else {})
            result = await (signal.run(pending) if signal else pending)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[LLM-SERVICE] Tool '{name}' failed: {e}")
            result = {"error": f"{name} failed: {e}"}

        return _serialize_result(result)

    async def stream_chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        options: Optional[GenerationOptions] = None,
        tools: Optional[List[ToolDefinition]] = None,
        signal: Optional[CancellationSignal] = None,
        transcript: Optional[List[Dict[str, Any]]] = None
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion, running tools until the model answers in text.

        Args:
            messages: Conversation in completion-protocol shape
            model: Deployment/model name
            options: Generation options of the reasoning mode
            tools: Tools offered to the model; None for a plain completion
            signal: Request-scoped cancellation signal
            transcript: Receives every assistant/tool message produced

        Yields:
            StreamEvent for content deltas, tool calls, tool results and the
            final answer; an error event when the upstream call fails
        """
        options = options or GenerationOptions()
        client = self._get_client()
        if client is None:
            yield StreamEvent(type=StreamEventType.ERROR, content="LLM service not initialized")
            return

        conversation = list(messages)
        tool_map = {tool.name: tool for tool in tools or []}

        for round_index in range(self.config.max_tool_rounds + 1):
            offer_tools = tools if tool_map and round_index < self.config.max_tool_rounds else None
            kwargs = self._request_kwargs(model, conversation, options, offer_tools)

            text_parts: List[str] = []
            calls: Dict[int, Dict[str, Any]] = {}
            try:
                request = client.chat.completions.create(**kwargs)
                stream = await (signal.run(request) if signal else request)
                async for chunk in stream:
                    if signal:
                        signal.check()
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta is None:
                        continue
                    if delta.content:
                        text_parts.append(delta.content)
                        yield StreamEvent(type=StreamEventType.CONTENT, content=delta.content)
                    for tc in delta.tool_calls or []:
                        entry = calls.setdefault(tc.index, {
                            "id": None,
                            "type": "function",
                            "function": {"name": "", "arguments": ""},
                        })
                        if tc.id:
                            entry["id"] = tc.id
                        if tc.function is not None:
                            if tc.function.name:
                                entry["function"]["name"] += tc.function.name
                            if tc.function.arguments:
                                entry["function"]["arguments"] += tc.function.arguments
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[LLM-SERVICE] Completion failed (model={model}): {e}")
                yield StreamEvent(type=StreamEventType.ERROR, content="The assistant could not generate a response.")
                return

            text = "".join(text_parts)

            if not calls:
                answer = {"role": "assistant", "content": text}
                if transcript is not None:
                    transcript.append(answer)
                logger.info(f"[LLM-SERVICE] Completed in {round_index + 1} round(s), length={len(text)}")
                yield StreamEvent(type=StreamEventType.FINAL_CONTENT, content=text)
                return

            ordered = [calls[i] for i in sorted(calls)]
            assistant_turn = {"role": "assistant", "content": text or None, "tool_calls": ordered}
            conversation.append(assistant_turn)
            if transcript is not None:
                transcript.append(assistant_turn)

            for call in ordered:
                name = call["function"]["name"]
                logger.info(f"[LLM-SERVICE] Tool call: {name}")
                yield StreamEvent(
                    type=StreamEventType.FUNCTION_CALL,
                    name=name,
                    content=call["function"]["arguments"],
                )
                result = await self._execute_tool(tool_map, call, signal)
                tool_turn = {"role": "tool", "tool_call_id": call["id"], "content": result}
                conversation.append(tool_turn)
                if transcript is not None:
                    transcript.append(tool_turn)
                yield StreamEvent(type=StreamEventType.FUNCTION_CALL_RESULT, name=name, content=result)

        logger.warning(f"[LLM-SERVICE] Tool loop exhausted after {self.config.max_tool_rounds} rounds")
        yield StreamEvent(type=StreamEventType.ERROR, content="The assistant stopped after too many tool calls.")
