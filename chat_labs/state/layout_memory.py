"""
Layout Memory
=============

Per-thread store of the last resolved text overlay layout.

The in-memory store is the default; the file store keeps the layout in
``<data_dir>/<thread_id>/__overlay_state__.json`` so it survives restarts.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from ..models.overlay_models import OverlayLayout
from .identifiers import is_safe_name

logger = logging.getLogger(__name__)

OVERLAY_STATE_FILE = "__overlay_state__.json"


class LayoutMemory(ABC):
    """Abstract base for per-thread overlay layout stores."""

    @abstractmethod
    def get(self, thread_id: str) -> Optional[OverlayLayout]:
        """Last layout stored for the thread, or None."""
        pass

    @abstractmethod
    def set(self, thread_id: str, layout: OverlayLayout) -> None:
        """Replace the thread's layout."""
        pass

    @abstractmethod
    def clear(self, thread_id: str) -> None:
        """Forget the thread's layout; a no-op when none is stored."""
        pass


class InMemoryLayoutMemory(LayoutMemory):
    """Process-local layout store. Last writer wins."""

    def __init__(self):
        self._layouts: Dict[str, OverlayLayout] = {}

    def get(self, thread_id: str) -> Optional[OverlayLayout]:
        layout = self._layouts.get(thread_id)
        return layout.model_copy() if layout else None

    def set(self, thread_id: str, layout: OverlayLayout) -> None:
        self._layouts[thread_id] = layout.model_copy()

    def clear(self, thread_id: str) -> None:
        self._layouts.pop(thread_id, None)


class FileLayoutMemory(LayoutMemory):
    """Layout store persisted as one JSON file per thread."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = data_dir or Path("data")
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[LAYOUT-MEMORY] Persisting overlay state under {self.data_dir}")

    def _path(self, thread_id: str) -> Path:
        if not is_safe_name(thread_id):
            raise ValueError(f"Invalid thread id: {thread_id!r}")
        return self.data_dir / thread_id / OVERLAY_STATE_FILE

    def get(self, thread_id: str) -> Optional[OverlayLayout]:
        if not is_safe_name(thread_id):
            return None
        path = self._path(thread_id)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return OverlayLayout(**json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"[LAYOUT-MEMORY] Ignoring unreadable state for {thread_id}: {e}")
            return None

    def set(self, thread_id: str, layout: OverlayLayout) -> None:
        path = self._path(thread_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(layout.model_dump(mode="json"), f, ensure_ascii=False, indent=2)

    def clear(self, thread_id: str) -> None:
        if not is_safe_name(thread_id):
            return
        path = self._path(thread_id)
        if path.exists():
            path.unlink()
            logger.info(f"[LAYOUT-MEMORY] Cleared overlay state for {thread_id}")
