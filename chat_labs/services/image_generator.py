"""
Image Generator for Chat Labs
==============================

Vertex AI Imagen integration: text prompt -> PNG bytes.

The SDK call is blocking, so it runs in a worker thread under a timeout.
Fast reasoning mode uses the fast Imagen variant.
"""

import asyncio
import logging
from typing import Optional
from pydantic import BaseModel

from ..config import ImageConfig

logger = logging.getLogger(__name__)

# Try to import Vertex AI
try:
    import vertexai
    from vertexai.preview.vision_models import ImageGenerationModel
    VERTEXAI_AVAILABLE = True
except ImportError:
    VERTEXAI_AVAILABLE = False
    logger.warning("vertexai not available, image generation disabled")

MAX_PROMPT_CHARS = 4000


class GeneratedImage(BaseModel):
    """Response from image generation."""
    success: bool
    image_bytes: Optional[bytes] = None
    model: Optional[str] = None
    error: Optional[str] = None


def validate_image_prompt(prompt: str) -> Optional[str]:
    """Return a user-facing problem with the prompt, or None when usable."""
    if not prompt or not prompt.strip():
        return "No prompt provided"
    if len(prompt.strip()) >= MAX_PROMPT_CHARS:
        return f"Prompt is too long, it must be less than {MAX_PROMPT_CHARS} characters"
    return None


def sanitize_image_prompt(prompt: str) -> str:
    """Collapse whitespace and drop control characters."""
    cleaned = "".join(ch if ch.isprintable() else " " for ch in prompt)
    return " ".join(cleaned.split())


class ImageGenerator:
    """
    Imagen client.

    Usage:
        generator = ImageGenerator(config)
        result = await generator.generate("A lighthouse at dawn", fast=False)
        if result.success:
            png = result.image_bytes
    """

    def __init__(self, config: Optional[ImageConfig] = None):
        self.config = config or ImageConfig()
        self._initialized = False

    def _initialize(self) -> bool:
        """Initialize Vertex AI."""
        if self._initialized:
            return True

        if not VERTEXAI_AVAILABLE:
            logger.error("[IMAGE-GEN] vertexai not installed")
            return False

        try:
            vertexai.init(project=self.config.project_id, location=self.config.location)
            self._initialized = True
            logger.info(f"[IMAGE-GEN] Initialized with project={self.config.project_id}")
            return True
        except Exception as e:
            logger.error(f"[IMAGE-GEN] Initialization failed: {e}")
            return False

    def _generate_sync(self, model_name: str, prompt: str) -> bytes:
        model = ImageGenerationModel.from_pretrained(model_name)
        response = model.generate_images(prompt=prompt, number_of_images=1, aspect_ratio="1:1")
        images = list(response.images)
        if not images:
            raise RuntimeError("no image returned")
        return images[0]._image_bytes

    async def generate(self, prompt: str, fast: bool = False) -> GeneratedImage:
        """
        Generate one square image.

        Args:
            prompt: Image description
            fast: Use the fast model variant

        Returns:
            GeneratedImage with PNG bytes on success
        """
        problem = validate_image_prompt(prompt)
        if problem:
            return GeneratedImage(success=False, error=problem)

        if not self._initialize():
            return GeneratedImage(success=False, error="Image generation is not configured")

        model_name = self.config.fast_model if fast else self.config.model
        clean_prompt = sanitize_image_prompt(prompt)
        logger.info(f"[IMAGE-GEN] Generating with {model_name}: {clean_prompt[:50]}...")

        try:
            image_bytes = await asyncio.wait_for(
                asyncio.to_thread(self._generate_sync, model_name, clean_prompt),
                timeout=self.config.generation_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"[IMAGE-GEN] Timed out after {self.config.generation_timeout}s")
            return GeneratedImage(success=False, model=model_name, error="Image generation timed out - please try again")
        except Exception as e:
            logger.error(f"[IMAGE-GEN] Generation failed: {e}")
            return GeneratedImage(success=False, model=model_name, error=f"There was an error creating the image: {e}")

        logger.info(f"[IMAGE-GEN] Generated {len(image_bytes)} bytes")
        return GeneratedImage(success=True, image_bytes=image_bytes, model=model_name)
