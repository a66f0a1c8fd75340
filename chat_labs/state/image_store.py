"""
Image Store
===========

Per-thread image files under ``<data_dir>/images/<thread_id>/`` and the
public URLs they are served from.
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from .identifiers import is_safe_name

logger = logging.getLogger(__name__)

BASE_IMAGE_NAME = "__base__.png"


class ImageStore:
    """Stores generated and composed images per thread."""

    def __init__(self, data_dir: Optional[Path] = None, public_base_url: Optional[str] = None):
        self.root = (data_dir or Path("data")) / "images"
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        logger.info(f"[IMAGE-STORE] Initialized with root={self.root}")

    def _path(self, thread_id: str, name: str) -> Path:
        if not is_safe_name(thread_id) or not is_safe_name(name):
            raise ValueError(f"Invalid image reference: {thread_id}/{name}")
        return self.root / thread_id / name

    def save(self, thread_id: str, name: str, data: bytes) -> Path:
        path = self._path(thread_id, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"[IMAGE-STORE] Saved {thread_id}/{name} ({len(data)} bytes)")
        return path

    def load(self, thread_id: str, name: str) -> Optional[bytes]:
        try:
            path = self._path(thread_id, name)
        except ValueError:
            return None
        if not path.exists():
            return None
        return path.read_bytes()

    def url_for(self, thread_id: str, name: str) -> str:
        """Public URL of a stored image."""
        query = urlencode({"t": thread_id, "img": name})
        if self.public_base_url:
            return f"{self.public_base_url}/?{query}"
        return f"/api/images?{query}"
