"""
Extension Registry
==================

Registered extensions with JSON persistence, and the HTTP-backed tools
built from their functions.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from ..models.extension_models import EndpointType, Extension, ExtensionFunction, ToolDefinition
from .cancellation import CancellationSignal

logger = logging.getLogger(__name__)

_TOOL_NAME = re.compile(r"[^A-Za-z0-9_-]")


class ExtensionRegistry:
    """Stores extensions in ``<data_dir>/extensions.json``."""

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.data_dir = data_dir or Path("data")
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.data_dir / "extensions.json"
        self.timeout = timeout
        self._transport = transport
        self._cache: Dict[str, Extension] = {}
        self._load()
        logger.info(f"[EXTENSIONS] Loaded {len(self._cache)} extensions from {self.path}")

    def _load(self):
        if not self.path.exists():
            return
        with open(self.path, encoding="utf-8") as f:
            raw = json.load(f)
        for item in raw:
            extension = Extension(**item)
            self._cache[extension.id] = extension

    def _save(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(
                [e.model_dump(mode="json") for e in self._cache.values()],
                f, ensure_ascii=False, indent=2
            )

    def list_extensions(self) -> List[Extension]:
        return list(self._cache.values())

    def find_by_id(self, extension_id: str) -> Optional[Extension]:
        return self._cache.get(extension_id)

    def save_extension(self, extension: Extension) -> Extension:
        self._cache[extension.id] = extension
        self._save()
        logger.info(f"[EXTENSIONS] Saved extension {extension.id} ({extension.name})")
        return extension

    def delete_extension(self, extension_id: str) -> bool:
        if extension_id not in self._cache:
            return False
        del self._cache[extension_id]
        self._save()
        return True

    def find_execution_steps(self, extension_id: str) -> Optional[str]:
        """Execution-steps text of an extension, or None when not registered."""
        extension = self.find_by_id(extension_id)
        return extension.execution_steps if extension else None

    def execution_steps_prompt(self, extension_ids: List[str]) -> str:
        """Concatenated execution steps of every registered extension id."""
        steps = []
        for extension_id in extension_ids:
            text = self.find_execution_steps(extension_id)
            if text:
                steps.append(text.strip())
            elif text is None:
                logger.warning(f"[EXTENSIONS] Extension {extension_id} not found")
        return "\n".join(steps)

    async def call_function(
        self,
        extension: Extension,
        function: ExtensionFunction,
        args: Dict[str, Any]
    ) -> Any:
        """Call an extension function's endpoint; errors come back as payloads."""
        query = args.get("query") if isinstance(args.get("query"), dict) else None
        body = args.get("body") if isinstance(args.get("body"), dict) else None
        send_body = function.endpoint_type not in (EndpointType.GET, EndpointType.DELETE)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    function.endpoint_type.value,
                    function.endpoint,
                    params=query,
                    json=body if send_body else None,
                    headers=extension.headers,
                )
        except httpx.TimeoutException:
            logger.error(f"[EXTENSIONS] Timeout calling {function.name}")
            return {"error": f"{function.name} timed out"}
        except httpx.RequestError as e:
            logger.error(f"[EXTENSIONS] Network error calling {function.name}: {e}")
            return {"error": f"Network error: {str(e)}"}

        if response.status_code >= 400:
            logger.error(f"[EXTENSIONS] {function.name} returned HTTP {response.status_code}")
            return {"error": f"{function.name} failed: HTTP {response.status_code}"}

        try:
            return response.json()
        except ValueError:
            return response.text

    async def get_dynamic_tools(
        self,
        extension_ids: List[str],
        signal: Optional[CancellationSignal] = None
    ) -> List[ToolDefinition]:
        """Tool definitions for every function of the given extensions."""
        tools: List[ToolDefinition] = []
        for extension_id in extension_ids or []:
            extension = self.find_by_id(extension_id)
            if extension is None:
                logger.warning(f"[EXTENSIONS] Extension {extension_id} not found")
                continue
            for function in extension.functions:
                tools.append(self._to_tool(extension, function, signal))
        return tools

    def _to_tool(
        self,
        extension: Extension,
        function: ExtensionFunction,
        signal: Optional[CancellationSignal]
    ) -> ToolDefinition:
        async def call(args: Dict[str, Any]) -> Any:
            pending = self.call_function(extension, function, args)
            return await (signal.run(pending) if signal else pending)

        return ToolDefinition(
            name=_TOOL_NAME.sub("_", function.name)[:64],
            description=function.description,
            parameters=function.parameters,
            function=call,
        )
