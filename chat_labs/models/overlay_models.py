"""
Overlay Models for Chat Labs
=============================

Models for text overlays composited onto generated images: the complete
per-thread layout, the sparse hints parsed from an instruction, and the
caller-supplied tool arguments.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class HorizontalAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class VerticalAlign(str, Enum):
    TOP = "top"
    MIDDLE = "middle"
    BOTTOM = "bottom"


class SizeBucket(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


# Ordered small -> xlarge for relative stepping
SIZE_ORDER = [SizeBucket.SMALL, SizeBucket.MEDIUM, SizeBucket.LARGE, SizeBucket.XLARGE]


class SizeAdjust(str, Enum):
    LARGER = "larger"
    SMALLER = "smaller"


class FontFamily(str, Enum):
    GOTHIC = "gothic"
    MINCHO = "mincho"
    MEIRYO = "meiryo"


class OverlayLayout(BaseModel):
    """Complete resolved text overlay state for a thread."""
    text: str
    align: HorizontalAlign = HorizontalAlign.CENTER
    v_align: VerticalAlign = VerticalAlign.MIDDLE
    offset_x: int = 0
    offset_y: int = 0
    size: SizeBucket = SizeBucket.LARGE
    color: str = "white"
    font_family: FontFamily = FontFamily.GOTHIC
    bold: bool = False
    italic: bool = False


class StyleHints(BaseModel):
    """
    Sparse styling directives parsed from one instruction.

    Only matched fields are set; defaulting is left to the resolver.
    """
    size: Optional[SizeBucket] = None
    size_adjust: Optional[SizeAdjust] = None
    align: Optional[HorizontalAlign] = None
    v_align: Optional[VerticalAlign] = None
    offset_x: Optional[int] = None     # relative delta, px
    offset_y: Optional[int] = None     # relative delta, px
    bottom_margin: Optional[int] = None
    font: Optional[str] = None         # named face, e.g. "Yu Mincho"
    color: Optional[str] = None
    bold: Optional[bool] = None        # False when explicitly turned off
    italic: Optional[bool] = None
    repositioned: bool = False         # an absolute-position keyword was present


class OverlayRequest(BaseModel):
    """Arguments of an overlay edit as supplied by the calling model."""
    text: str
    image_url: Optional[str] = None
    style_hint: Optional[str] = None
    font: Optional[str] = None
    color: Optional[str] = None
    size: Optional[SizeBucket] = None
    offset_x: Optional[int] = None
    offset_y: Optional[int] = None


class OverlayResolution(BaseModel):
    """Resolved layout plus observability notes."""
    layout: OverlayLayout
    size_before: SizeBucket
    size_after: SizeBucket
    text_preserved: bool = False
    bottom_margin: Optional[int] = None

    @property
    def size_note(self) -> str:
        return f"{self.size_before.value} -> {self.size_after.value}"
