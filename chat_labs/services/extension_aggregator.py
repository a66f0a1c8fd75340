"""
Extension Aggregator
====================

Builds the tool list offered to the model for one turn.

- Threads without the CRM extension get the built-in image tools.
- CRM threads skip them; the direct bridge never offers generic tools.
- Every thread gets the dynamic tools of its enabled extensions.

A failing source is logged and skipped; the other source still counts.
"""

import asyncio
import logging
from typing import List, Optional

from ..models.chat_models import ChatThread, ThinkingMode
from ..models.extension_models import ToolDefinition
from .cancellation import CancellationSignal
from .extension_registry import ExtensionRegistry
from .image_tools import ImageTools
from .reasoning_modes import generation_options

logger = logging.getLogger(__name__)


class ExtensionAggregator:
    """Collects default and dynamic tools for a thread."""

    def __init__(self, image_tools: ImageTools, registry: ExtensionRegistry, crm_extension_id: str = ""):
        self.image_tools = image_tools
        self.registry = registry
        self.crm_extension_id = crm_extension_id

    def has_crm_extension(self, thread: ChatThread) -> bool:
        return bool(self.crm_extension_id) and self.crm_extension_id in (thread.extension or [])

    async def aggregate(
        self,
        thread: ChatThread,
        user_message: str,
        mode: ThinkingMode = ThinkingMode.NORMAL,
        signal: Optional[CancellationSignal] = None
    ) -> List[ToolDefinition]:
        """
        Build the tool list for a turn.

        Args:
            thread: Current thread
            user_message: The turn's user message
            mode: Reasoning mode, parameterizes the image tools
            signal: Request-scoped cancellation signal

        Returns:
            Default tools (non-CRM threads) followed by dynamic tools
        """
        tools: List[ToolDefinition] = []

        if self.has_crm_extension(thread):
            logger.info("[EXTENSIONS] CRM extension enabled, skipping default image tools")
        else:
            try:
                tools.extend(self.image_tools.build(thread.id, user_message, generation_options(mode), signal))
            except Exception as e:
                logger.error(f"[EXTENSIONS] Default tools unavailable: {e}")

        try:
            tools.extend(await self.registry.get_dynamic_tools(thread.extension, signal))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[EXTENSIONS] Dynamic tools unavailable: {e}")

        logger.info(f"[EXTENSIONS] {len(tools)} tools for thread {thread.id}")
        return tools
