"""
Image Tools
===========

The two built-in tools offered to the completion model:

- ``create_img``: generate a new base image for the thread
- ``add_text_to_existing_image``: overlay styled text on the thread's base
  image, resolving freeform styling against the remembered layout

Tools never raise; failures come back as ``{"error": ...}`` payloads for
the model to narrate.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from ..models.extension_models import ToolDefinition
from ..models.overlay_models import OverlayRequest, SizeBucket
from ..state.image_store import BASE_IMAGE_NAME, ImageStore
from ..state.layout_memory import LayoutMemory
from .cancellation import CancellationSignal
from .image_client import ImageClient
from .image_generator import ImageGenerator, validate_image_prompt
from .overlay_resolver import OverlayResolver
from .reasoning_modes import GenerationOptions

logger = logging.getLogger(__name__)

CREATE_IMG_DESCRIPTION = (
    "Create a NEW image from a text prompt. Use only when the user asks for a new picture. "
    "Do not use this to add or adjust text on an image that already exists; "
    "call add_text_to_existing_image with the previous image URL instead."
)

ADD_TEXT_DESCRIPTION = (
    "Add or adjust text on the most recently created image of this chat. "
    "CRITICAL RULE: When the user is ONLY requesting position/size/color adjustments, "
    "you MUST preserve the EXACT text from the previous image without any modifications."
)

CREATE_IMG_PARAMETERS = {
    "type": "object",
    "properties": {
        "prompt": {"type": "string", "description": "Description of the image to create."},
    },
    "required": ["prompt"],
}

ADD_TEXT_PARAMETERS = {
    "type": "object",
    "properties": {
        "imageUrl": {
            "type": "string",
            "description": "URL of the existing image, as returned previously (for example from create_img).",
        },
        "text": {
            "type": "string",
            "description": (
                "Text to draw. If the user is ONLY adjusting position, size, or color "
                "('右に', 'もう少し大きく', '赤色に'), use the EXACT same text as before."
            ),
        },
        "styleHint": {
            "type": "string",
            "description": (
                "Natural language hint for size, color and position such as "
                "'大きめの白文字で、下部中央に', '少し上に', '➡ で少し右へ', 'もう少し大きく'."
            ),
        },
        "font": {"type": "string", "description": "Font name or family, e.g. 'Yu Mincho', 'gothic'."},
        "color": {"type": "string", "description": "Text color such as 'white', 'red' or '#ffcc00'."},
        "size": {
            "type": "string",
            "enum": [s.value for s in SizeBucket],
            "description": "Rough size hint.",
        },
        "offsetX": {
            "type": "number",
            "description": "Horizontal offset in pixels. Positive moves text to the right, negative to the left.",
        },
        "offsetY": {
            "type": "number",
            "description": "Vertical offset in pixels. Positive moves text downward, negative upward.",
        },
    },
    "required": ["imageUrl", "text"],
}


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _as_size(value: Any) -> Optional[SizeBucket]:
    try:
        return SizeBucket(str(value).strip().lower()) if value else None
    except ValueError:
        return None


def overlay_request_from_args(args: Dict[str, Any]) -> OverlayRequest:
    """Map the model's tool arguments onto an OverlayRequest."""
    return OverlayRequest(
        text=str(args.get("text") or "").strip(),
        image_url=(args.get("imageUrl") or "").strip() or None,
        style_hint=(args.get("styleHint") or "").strip() or None,
        font=(args.get("font") or None),
        color=(args.get("color") or None),
        size=_as_size(args.get("size")),
        offset_x=_as_int(args.get("offsetX")),
        offset_y=_as_int(args.get("offsetY")),
    )


class ImageTools:
    """Builds the image tools for one thread and turn."""

    def __init__(
        self,
        generator: ImageGenerator,
        compose_client: ImageClient,
        store: ImageStore,
        memory: LayoutMemory
    ):
        self.generator = generator
        self.compose_client = compose_client
        self.store = store
        self.memory = memory
        self.resolver = OverlayResolver(memory)

    async def create_image(
        self,
        thread_id: str,
        args: Dict[str, Any],
        options: GenerationOptions,
        signal: Optional[CancellationSignal] = None
    ) -> Dict[str, Any]:
        """Generate a new base image and forget the previous overlay layout."""
        prompt = str(args.get("prompt") or "").strip()
        problem = validate_image_prompt(prompt)
        if problem:
            return {"error": problem}

        pending = self.generator.generate(prompt, fast=options.fast_image_model)
        result = await (signal.run(pending) if signal else pending)
        if not result.success:
            return {"error": result.error}

        name = f"{uuid.uuid4().hex}.png"
        try:
            self.store.save(thread_id, name, result.image_bytes)
            self.store.save(thread_id, BASE_IMAGE_NAME, result.image_bytes)
        except OSError as e:
            logger.error(f"[IMAGE-TOOLS] Storing image failed: {e}")
            return {"error": f"There was an error storing the image: {e}"}

        # new base image, so the old layout no longer applies
        self.memory.clear(thread_id)

        return {"revised_prompt": prompt, "url": self.store.url_for(thread_id, name)}

    async def add_text(
        self,
        thread_id: str,
        args: Dict[str, Any],
        user_message: str,
        signal: Optional[CancellationSignal] = None
    ) -> Dict[str, Any]:
        """Resolve the overlay, compose it on the base image and store the result."""
        request = overlay_request_from_args(args)
        if not request.text:
            return {"error": "text is required for add_text_to_existing_image."}

        base_image = self.store.load(thread_id, BASE_IMAGE_NAME)
        if base_image is None:
            return {"error": "No base image exists for this chat. Create an image first."}

        resolution = self.resolver.resolve(thread_id, request, user_message)

        pending = self.compose_client.compose(base_image, resolution.layout, resolution.bottom_margin)
        composed = await (signal.run(pending) if signal else pending)
        if not composed.success:
            return {"error": composed.error}

        name = f"{uuid.uuid4().hex}.png"
        try:
            self.store.save(thread_id, name, composed.image_bytes)
        except OSError as e:
            logger.error(f"[IMAGE-TOOLS] Storing composed image failed: {e}")
            return {"error": f"There was an error storing the image: {e}"}

        return {"revised_prompt": resolution.layout.text, "url": self.store.url_for(thread_id, name)}

    def build(
        self,
        thread_id: str,
        user_message: str,
        options: GenerationOptions,
        signal: Optional[CancellationSignal] = None
    ) -> List[ToolDefinition]:
        """Tool definitions bound to one thread, message and reasoning mode."""

        async def create_img(args: Dict[str, Any]) -> Dict[str, Any]:
            return await self.create_image(thread_id, args, options, signal)

        async def add_text_to_existing_image(args: Dict[str, Any]) -> Dict[str, Any]:
            return await self.add_text(thread_id, args, user_message, signal)

        return [
            ToolDefinition(
                name="create_img",
                description=CREATE_IMG_DESCRIPTION,
                parameters=CREATE_IMG_PARAMETERS,
                function=create_img,
            ),
            ToolDefinition(
                name="add_text_to_existing_image",
                description=ADD_TEXT_DESCRIPTION,
                parameters=ADD_TEXT_PARAMETERS,
                function=add_text_to_existing_image,
            ),
        ]
