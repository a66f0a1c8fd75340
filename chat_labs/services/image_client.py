"""
Image Composition Client for Chat Labs
=======================================

HTTP client for the external compositing service that renders a resolved
text overlay onto a base image.

The service accepts the base image as base64 plus the overlay layout and
answers with either JSON carrying a base64 PNG or the raw PNG bytes.
"""

import base64
import binascii
import httpx
from typing import Optional
from pydantic import BaseModel
import logging

from ..models.overlay_models import OverlayLayout

logger = logging.getLogger(__name__)


class ComposeResponse(BaseModel):
    """Response from overlay composition."""
    success: bool
    image_bytes: Optional[bytes] = None
    composition_time_ms: Optional[int] = None
    error: Optional[str] = None


class ImageClient:
    """
    HTTP client for the compositing service.

    Usage:
        client = ImageClient("http://localhost:8090")
        response = await client.compose(base_png, layout, bottom_margin=80)
        if response.success:
            png = response.image_bytes
    """

    def __init__(self, base_url: str, timeout: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize composition client.

        Args:
            base_url: Compositing service URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        logger.info(f"[ImageClient] Initialized with base URL: {self.base_url}")

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def compose(
        self,
        base_image: bytes,
        layout: OverlayLayout,
        bottom_margin: Optional[int] = None
    ) -> ComposeResponse:
        """
        Render the layout's text onto the base image.

        Args:
            base_image: PNG bytes of the base image
            layout: Fully resolved overlay layout
            bottom_margin: Extra margin for bottom placements, px

        Returns:
            ComposeResponse with the composed PNG on success
        """
        url = f"{self.base_url}/compose"

        payload = {
            "image_base64": base64.b64encode(base_image).decode("ascii"),
            **layout.model_dump(mode="json"),
            "auto_detect_placard": False,
        }
        if bottom_margin is not None:
            payload["bottom_margin"] = bottom_margin

        logger.info(
            f"[ImageClient] Composing '{layout.text[:30]}' "
            f"({layout.align.value}/{layout.v_align.value}, size={layout.size.value})"
        )

        try:
            async with self._client(self.timeout) as client:
                response = await client.post(url, json=payload)

                if response.status_code != 200:
                    error_msg = f"Text overlay failed: HTTP {response.status_code}"
                    logger.error(f"[ImageClient] {error_msg}")
                    return ComposeResponse(success=False, error=error_msg)

                content_type = response.headers.get("content-type", "")
                if content_type.startswith("image/"):
                    return ComposeResponse(success=True, image_bytes=response.content)

                data = response.json()
                encoded = data.get("image_base64") or data.get("image")
                if not encoded:
                    logger.error("[ImageClient] Compose response carried no image")
                    return ComposeResponse(success=False, error="Compositing service returned no image")

                return ComposeResponse(
                    success=True,
                    image_bytes=base64.b64decode(encoded),
                    composition_time_ms=data.get("composition_time_ms"),
                )

        except httpx.TimeoutException:
            logger.error("[ImageClient] Timeout calling compositing service")
            return ComposeResponse(success=False, error="Compositing service timeout - please try again")
        except httpx.RequestError as e:
            logger.error(f"[ImageClient] Network error: {e}")
            return ComposeResponse(success=False, error=f"Network error: {str(e)}")
        except (ValueError, binascii.Error) as e:
            logger.error(f"[ImageClient] Invalid compose response: {e}")
            return ComposeResponse(success=False, error="Invalid response from compositing service")

    async def health_check(self) -> bool:
        """
        Check if the compositing service is available.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            async with self._client(5.0) as client:
                response = await client.get(f"{self.base_url}/health")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
