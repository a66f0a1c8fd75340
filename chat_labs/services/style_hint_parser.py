"""
Style Hint Parser
==================

Parses a freeform styling instruction ("大きめの白文字で下部中央に",
"a bit bigger", "➡ で少し右へ") into sparse StyleHints.

Each category is an ordered rule table evaluated first-match-wins.
"""

from typing import List, Optional, Tuple

from ..models.overlay_models import (
    FontFamily, HorizontalAlign, SizeAdjust, SizeBucket, StyleHints, VerticalAlign
)
from .phrase_rules import PhraseText, Predicate, first_match, phrases

NUDGE_X_PX = 80
NUDGE_Y_PX = 60
BOTTOM_MARGIN_PX = 80


# ---- Size ----
RELATIVE_SIZE_RULES = [
    (phrases("もう少し大きく", "もうちょっと大きく", "もっと大きく", "さらに大きく", "ちょい大きく",
             "一回り大きく", "bigger", "larger", "enlarge", "size up"), SizeAdjust.LARGER),
    (phrases("もう少し小さく", "もうちょっと小さく", "もっと小さく", "さらに小さく", "ちょい小さく",
             "一回り小さく", "smaller", "shrink", "size down"), SizeAdjust.SMALLER),
]

ABSOLUTE_SIZE_RULES = [
    (phrases("特大", "ドーン", "めちゃ大", "extra large", "xlarge", "huge"), SizeBucket.XLARGE),
    (phrases("大きめ", "大きく", "大きい", "large", "big"), SizeBucket.LARGE),
    (phrases("小さめ", "小さい", "控えめ", "small", "tiny"), SizeBucket.SMALL),
    (phrases("普通", "標準", "medium", "normal size", "regular size"), SizeBucket.MEDIUM),
]

# ---- Offsets: (phrases, dx, dy) ----
VERBAL_NUDGES: List[Tuple[Tuple[str, ...], int, int]] = [
    (("少し右", "ちょい右", "やや右", "a little to the right", "a bit to the right",
      "slightly to the right", "slightly right", "move right", "nudge right"), NUDGE_X_PX, 0),
    (("少し左", "ちょい左", "やや左", "a little to the left", "a bit to the left",
      "slightly to the left", "slightly left", "move left", "nudge left"), -NUDGE_X_PX, 0),
    (("少し上", "ちょい上", "やや上", "a little up", "a bit up", "a little higher",
      "slightly up", "slightly higher", "move up", "nudge up"), 0, -NUDGE_Y_PX),
    (("少し下", "ちょい下", "やや下", "a little down", "a bit down", "a little lower",
      "slightly down", "slightly lower", "move down", "nudge down"), 0, NUDGE_Y_PX),
]

ARROW_NUDGES: List[Tuple[Tuple[str, ...], int, int]] = [
    (("→", "➡", "➜", "右矢印", "right arrow"), NUDGE_X_PX, 0),
    (("←", "⬅", "左矢印", "left arrow"), -NUDGE_X_PX, 0),
    (("↑", "⬆", "上矢印", "up arrow"), 0, -NUDGE_Y_PX),
    (("↓", "⬇", "下矢印", "down arrow"), 0, NUDGE_Y_PX),
]

# ---- Position ----
VERTICAL_RULES = [
    (phrases("一番上", "最上部", "上端", "画面の上", "上部", "上の方", "上側", "top", "upper"),
     VerticalAlign.TOP),
    (phrases("一番下", "最下部", "フッター", "下部", "下の方", "下側", "bottom", "footer", "lower"),
     VerticalAlign.BOTTOM),
]

MIDDLE_RULES = [
    (phrases("真ん中", "センター", "中心", "中央", "middle", "center", "centre"), VerticalAlign.MIDDLE),
]

CORNER_RULES = [
    (phrases("左上", "top left", "upper left"), (HorizontalAlign.LEFT, VerticalAlign.TOP)),
    (phrases("右上", "top right", "upper right"), (HorizontalAlign.RIGHT, VerticalAlign.TOP)),
    (phrases("左下", "bottom left", "lower left"), (HorizontalAlign.LEFT, VerticalAlign.BOTTOM)),
    (phrases("右下", "bottom right", "lower right"), (HorizontalAlign.RIGHT, VerticalAlign.BOTTOM)),
]


def _side(word: str, explicit: Tuple[str, ...]) -> Predicate:
    # bare 左/右 counts unless the instruction also asks for the center
    return lambda hint: hint.has_any(explicit) or (
        hint.has(word) and not hint.has_any(("中央", "真ん中"))
    )


HORIZONTAL_RULES = [
    (_side("左", ("左寄せ", "左側", "左端", "left")), HorizontalAlign.LEFT),
    (_side("右", ("右寄せ", "右側", "右端", "right")), HorizontalAlign.RIGHT),
    (phrases("中央", "真ん中", "センター", "中寄せ", "center", "centre", "centered"),
     HorizontalAlign.CENTER),
]

POSITION_WORDS = (
    "左上", "右上", "左下", "右下", "一番上", "一番下", "中央", "真ん中", "センター", "上部", "下部",
    "center", "centre", "top", "bottom", "corner",
)

# ---- Typeface, color, emphasis ----
FONT_RULES = [
    (phrases("手書き", "handwriting", "handwritten"), "Comic Sans MS"),
    (phrases("明朝", "mincho"), "Yu Mincho"),
    (phrases("ゴシック", "gothic"), "Yu Gothic"),
    (phrases("メイリオ", "meiryo"), "Meiryo"),
]

COLOR_RULES = [
    (phrases("黄", "yellow"), "yellow"),
    (phrases("青", "blue"), "blue"),
    (phrases("赤", "red"), "red"),
    (phrases("黒", "black"), "#000000"),
    (phrases("白", "white"), "#ffffff"),
]

BOLD_RULES = [
    (phrases("太字やめ", "太字解除", "太字をやめ", "太字を解除", "通常", "not bold", "no bold", "unbold"), False),
    (phrases("太字", "ボールド", "bold"), True),
]

ITALIC_RULES = [
    (phrases("斜体やめ", "斜体解除", "イタリックやめ", "イタリック解除", "斜体をやめ", "斜体を解除",
             "not italic", "no italic"), False),
    (phrases("イタリック", "斜体", "italic", "italics"), True),
]

FAMILY_PRIORITY = [
    (("明朝", "mincho", "serif"), FontFamily.MINCHO),
    (("メイリオ", "meiryo"), FontFamily.MEIRYO),
    (("ゴシック", "gothic"), FontFamily.GOTHIC),
]


def _apply_nudges(hint: PhraseText, table, result: StyleHints) -> None:
    for words, dx, dy in table:
        if hint.has_any(words):
            if dx:
                result.offset_x = (result.offset_x or 0) + dx
            if dy:
                result.offset_y = (result.offset_y or 0) + dy
            hint.remove(words)


def parse_style_hint(style_hint: Optional[str]) -> StyleHints:
    """
    Parse a styling instruction into sparse hints.

    Args:
        style_hint: Freeform instruction text (Japanese or English)

    Returns:
        StyleHints with only the matched fields set
    """
    result = StyleHints()
    if not style_hint or not style_hint.strip():
        return result

    hint = PhraseText(style_hint)

    result.size_adjust = first_match(RELATIVE_SIZE_RULES, hint)
    if result.size_adjust is None:
        result.size = first_match(ABSOLUTE_SIZE_RULES, hint)

    # Nudges first, then strip them so "少し右" is not read as right-aligned
    _apply_nudges(hint, VERBAL_NUDGES, result)
    _apply_nudges(hint, ARROW_NUDGES, result)

    result.v_align = first_match(VERTICAL_RULES, hint)
    if result.v_align is None:
        result.v_align = first_match(MIDDLE_RULES, hint)

    corner = first_match(CORNER_RULES, hint)
    if corner is not None:
        result.align, result.v_align = corner
    else:
        result.align = first_match(HORIZONTAL_RULES, hint)

    if result.v_align == VerticalAlign.BOTTOM:
        result.bottom_margin = BOTTOM_MARGIN_PX

    result.repositioned = (
        result.align is not None
        or result.v_align is not None
        or hint.has_any(POSITION_WORDS)
    )

    result.font = first_match(FONT_RULES, hint)
    result.color = first_match(COLOR_RULES, hint)
    result.bold = first_match(BOLD_RULES, hint)
    result.italic = first_match(ITALIC_RULES, hint)

    return result


def detect_font_family(text: str) -> Optional[FontFamily]:
    """Scan text for a font family keyword in fixed priority order."""
    hint = PhraseText(text)
    for words, family in FAMILY_PRIORITY:
        if hint.has_any(words):
            return family
    return None
