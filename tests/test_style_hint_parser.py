"""
Style Hint Parser Tests
=======================

Covers size, position, nudge, typeface, color and emphasis rules for
Japanese and English instructions.
"""

import pytest

from chat_labs.models.overlay_models import (
    FontFamily, HorizontalAlign, SizeAdjust, SizeBucket, VerticalAlign
)
from chat_labs.services.style_hint_parser import (
    BOTTOM_MARGIN_PX, NUDGE_X_PX, NUDGE_Y_PX, detect_font_family, parse_style_hint
)


class TestEmpty:

    @pytest.mark.parametrize("hint", [None, "", "   "])
    def test_blank_hint_sets_nothing(self, hint):
        hints = parse_style_hint(hint)
        assert hints.model_dump(exclude_defaults=True) == {}
        assert hints.repositioned is False


class TestSize:

    def test_relative_larger_japanese(self):
        hints = parse_style_hint("もう少し大きく")
        assert hints.size_adjust == SizeAdjust.LARGER
        assert hints.size is None

    def test_relative_smaller_english(self):
        hints = parse_style_hint("make it a bit smaller")
        assert hints.size_adjust == SizeAdjust.SMALLER
        assert hints.size is None

    @pytest.mark.parametrize("hint, expected", [
        ("特大で", SizeBucket.XLARGE),
        ("大きめの文字", SizeBucket.LARGE),
        ("小さめに", SizeBucket.SMALL),
        ("普通のサイズ", SizeBucket.MEDIUM),
        ("huge letters", SizeBucket.XLARGE),
        ("ＢＩＧ", SizeBucket.LARGE),
    ])
    def test_absolute_sizes(self, hint, expected):
        hints = parse_style_hint(hint)
        assert hints.size == expected
        assert hints.size_adjust is None


class TestPosition:

    def test_bottom_center_with_white(self):
        hints = parse_style_hint("大きめの白文字で、下部中央に")
        assert hints.size == SizeBucket.LARGE
        assert hints.color == "#ffffff"
        assert hints.v_align == VerticalAlign.BOTTOM
        assert hints.align == HorizontalAlign.CENTER
        assert hints.bottom_margin == BOTTOM_MARGIN_PX
        assert hints.repositioned is True

    def test_center_only(self):
        hints = parse_style_hint("中央に")
        assert hints.align == HorizontalAlign.CENTER
        assert hints.v_align == VerticalAlign.MIDDLE
        assert hints.bottom_margin is None

    @pytest.mark.parametrize("hint, align, v_align", [
        ("右上に", HorizontalAlign.RIGHT, VerticalAlign.TOP),
        ("左上", HorizontalAlign.LEFT, VerticalAlign.TOP),
        ("右下に置いて", HorizontalAlign.RIGHT, VerticalAlign.BOTTOM),
        ("bottom left", HorizontalAlign.LEFT, VerticalAlign.BOTTOM),
        ("top right corner", HorizontalAlign.RIGHT, VerticalAlign.TOP),
    ])
    def test_corners(self, hint, align, v_align):
        hints = parse_style_hint(hint)
        assert hints.align == align
        assert hints.v_align == v_align

    def test_bottom_corner_sets_margin(self):
        assert parse_style_hint("左下").bottom_margin == BOTTOM_MARGIN_PX

    def test_top_does_not_match_inside_words(self):
        hints = parse_style_hint("the topic is cats")
        assert hints.v_align is None
        assert hints.repositioned is False

    def test_right_does_not_match_inside_words(self):
        hints = parse_style_hint("bright red")
        assert hints.align is None
        assert hints.color == "red"


class TestNudges:

    def test_small_right_nudge_is_not_alignment(self):
        hints = parse_style_hint("少し右")
        assert hints.offset_x == NUDGE_X_PX
        assert hints.offset_y is None
        assert hints.align is None
        assert hints.repositioned is False

    def test_arrow_and_verbal_nudge_accumulate(self):
        hints = parse_style_hint("➡ で少し右へ")
        assert hints.offset_x == 2 * NUDGE_X_PX
        assert hints.align is None

    def test_vertical_nudges(self):
        assert parse_style_hint("少し上").offset_y == -NUDGE_Y_PX
        assert parse_style_hint("a little lower").offset_y == NUDGE_Y_PX

    def test_opposite_nudges_cancel(self):
        hints = parse_style_hint("少し右、やっぱり少し左")
        assert hints.offset_x == 0

    def test_english_nudge(self):
        hints = parse_style_hint("move it a little to the right")
        assert hints.offset_x == NUDGE_X_PX
        assert hints.align is None


class TestTypefaceAndColor:

    def test_named_fonts(self):
        assert parse_style_hint("明朝体で").font == "Yu Mincho"
        assert parse_style_hint("手書き風").font == "Comic Sans MS"
        assert parse_style_hint("gothic please").font == "Yu Gothic"

    @pytest.mark.parametrize("hint, color", [
        ("黄色で", "yellow"),
        ("青文字", "blue"),
        ("黒で", "#000000"),
        ("white text", "#ffffff"),
    ])
    def test_colors(self, hint, color):
        assert parse_style_hint(hint).color == color

    def test_bold_on_and_off(self):
        assert parse_style_hint("太字で").bold is True
        assert parse_style_hint("太字やめて").bold is False
        assert parse_style_hint("make it bold").bold is True
        assert parse_style_hint("not bold").bold is False
        assert parse_style_hint("中央に").bold is None

    def test_italic_on_and_off(self):
        assert parse_style_hint("イタリックで").italic is True
        assert parse_style_hint("斜体解除").italic is False

    def test_combined_english(self):
        hints = parse_style_hint("make it yellow and bold at the top")
        assert hints.color == "yellow"
        assert hints.bold is True
        assert hints.v_align == VerticalAlign.TOP
        assert hints.align is None


class TestFontFamily:

    @pytest.mark.parametrize("text, family", [
        ("明朝で", FontFamily.MINCHO),
        ("serif font", FontFamily.MINCHO),
        ("メイリオ", FontFamily.MEIRYO),
        ("Yu Gothic", FontFamily.GOTHIC),
        ("明朝 or gothic", FontFamily.MINCHO),
        ("nothing here", None),
    ])
    def test_detect_font_family(self, text, family):
        assert detect_font_family(text) == family
