"""
Overlay Resolver
================

Merges a new overlay instruction with the thread's remembered layout into
a complete OverlayLayout, then remembers the result.

Precedence per field:
- text: previous text is kept unless the user asked to change it
- align / v_align: parsed -> previous -> center / middle
- size: parsed -> caller -> previous -> large, then one relative step
- color: caller -> parsed -> previous -> white
- font family: keyword scan (mincho, meiryo, gothic) -> previous -> gothic
- bold / italic: explicit off / on phrase -> previous -> off
- offsets: reset on any absolute position keyword, else accumulate
"""

import logging
from typing import Optional

from ..models.overlay_models import (
    FontFamily, HorizontalAlign, OverlayLayout, OverlayRequest, OverlayResolution,
    SIZE_ORDER, SizeAdjust, SizeBucket, StyleHints, VerticalAlign
)
from ..state.layout_memory import LayoutMemory
from .phrase_rules import PhraseText
from .style_hint_parser import detect_font_family, parse_style_hint

logger = logging.getLogger(__name__)

TEXT_CHANGE_MARKERS = (
    "変更", "変える", "書き換え", "change the text", "rewrite", "replace the text",
)


def step_size(size: SizeBucket, adjust: Optional[SizeAdjust]) -> SizeBucket:
    """Move one bucket up or down, clamped to small..xlarge."""
    if adjust is None:
        return size
    index = SIZE_ORDER.index(size)
    if adjust == SizeAdjust.LARGER:
        index = min(index + 1, len(SIZE_ORDER) - 1)
    else:
        index = max(index - 1, 0)
    return SIZE_ORDER[index]


def wants_text_change(user_message: str) -> bool:
    return PhraseText(user_message).has_any(TEXT_CHANGE_MARKERS)


def resolve_layout(
    request: OverlayRequest,
    hints: StyleHints,
    user_message: str = "",
    previous: Optional[OverlayLayout] = None
) -> OverlayResolution:
    """
    Resolve a complete layout without touching any store.

    Args:
        request: Caller-supplied overlay arguments
        hints: Hints parsed from the styling instruction
        user_message: Raw user message of the turn
        previous: Last layout remembered for the thread

    Returns:
        OverlayResolution with the layout and a size before/after note
    """
    text = request.text.strip()
    text_preserved = False
    if previous and previous.text and text != previous.text and not wants_text_change(user_message):
        logger.warning(
            f"[OVERLAY] Text changed without an explicit request, keeping '{previous.text}'"
        )
        text = previous.text
        text_preserved = True

    align = hints.align or (previous.align if previous else HorizontalAlign.CENTER)
    v_align = hints.v_align or (previous.v_align if previous else VerticalAlign.MIDDLE)

    size_before = hints.size or request.size or (previous.size if previous else SizeBucket.LARGE)
    size = step_size(size_before, hints.size_adjust)

    color = request.color or hints.color or (previous.color if previous else "white")

    font_scan = " ".join(part for part in (request.style_hint, request.font, hints.font) if part)
    font_family = (
        detect_font_family(font_scan)
        or (previous.font_family if previous else FontFamily.GOTHIC)
    )

    bold = hints.bold if hints.bold is not None else (previous.bold if previous else False)
    italic = hints.italic if hints.italic is not None else (previous.italic if previous else False)

    base_x = 0 if hints.repositioned or not previous else previous.offset_x
    base_y = 0 if hints.repositioned or not previous else previous.offset_y
    offset_x = base_x + (hints.offset_x or 0) + (request.offset_x or 0)
    offset_y = base_y + (hints.offset_y or 0) + (request.offset_y or 0)

    layout = OverlayLayout(
        text=text,
        align=align,
        v_align=v_align,
        offset_x=offset_x,
        offset_y=offset_y,
        size=size,
        color=color,
        font_family=font_family,
        bold=bold,
        italic=italic,
    )
    return OverlayResolution(
        layout=layout,
        size_before=size_before,
        size_after=size,
        text_preserved=text_preserved,
        bottom_margin=hints.bottom_margin,
    )


class OverlayResolver:
    """Resolves overlay edits against a thread's remembered layout."""

    def __init__(self, memory: LayoutMemory):
        self.memory = memory

    def resolve(self, thread_id: str, request: OverlayRequest, user_message: str = "") -> OverlayResolution:
        """Parse the hint, resolve the layout and remember it for the thread."""
        hint_source = (request.style_hint or "").strip() or user_message or ""
        hints = parse_style_hint(hint_source)
        previous = self.memory.get(thread_id)

        resolution = resolve_layout(request, hints, user_message, previous)
        self.memory.set(thread_id, resolution.layout)

        logger.info(
            f"[OVERLAY] thread={thread_id} align={resolution.layout.align.value}/"
            f"{resolution.layout.v_align.value} size={resolution.size_note} "
            f"offset=({resolution.layout.offset_x},{resolution.layout.offset_y})"
        )
        return resolution
