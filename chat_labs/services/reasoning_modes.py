"""
Reasoning Modes
===============

Maps the UI's thinking mode onto the internal mode and the generation
options derived from it.
"""

from typing import Optional, Union
from pydantic import BaseModel

from ..models.chat_models import ThinkingMode, ThinkingModeUI

UI_TO_API = {
    ThinkingModeUI.STANDARD: ThinkingMode.NORMAL,
    ThinkingModeUI.THINKING: ThinkingMode.THINKING,
    ThinkingModeUI.FAST: ThinkingMode.FAST,
}


class GenerationOptions(BaseModel):
    """Completion and image options for one reasoning mode."""
    reasoning_effort: str = "medium"
    temperature: float = 0.7
    fast_image_model: bool = False


MODE_OPTIONS = {
    ThinkingMode.NORMAL: GenerationOptions(reasoning_effort="medium", temperature=0.7),
    ThinkingMode.THINKING: GenerationOptions(reasoning_effort="high", temperature=0.7),
    ThinkingMode.FAST: GenerationOptions(reasoning_effort="low", temperature=0.7, fast_image_model=True),
}


def normalize_thinking_mode(mode: Optional[Union[str, ThinkingMode, ThinkingModeUI]]) -> ThinkingMode:
    """
    Accept either vocabulary and return the internal mode.

    Unknown or missing values fall back to normal.
    """
    if mode is None:
        return ThinkingMode.NORMAL
    if isinstance(mode, ThinkingMode):
        return mode
    value = mode.value if isinstance(mode, ThinkingModeUI) else str(mode).strip().lower()
    try:
        return UI_TO_API[ThinkingModeUI(value)]
    except ValueError:
        pass
    try:
        return ThinkingMode(value)
    except ValueError:
        return ThinkingMode.NORMAL


def generation_options(mode: ThinkingMode) -> GenerationOptions:
    return MODE_OPTIONS.get(mode, MODE_OPTIONS[ThinkingMode.NORMAL]).model_copy()
