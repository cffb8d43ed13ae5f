"""Tests for dalail/render.py frame rendering."""

from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image, ImageFont

from dalail.render import (
    TEXT_FONT_CANDIDATES,
    TRANSLATION_FALLBACK,
    TRANSLATION_MAX_LINES,
    FontSet,
    draw_text_items,
    find_font,
    gradient_overlay,
    layout_lines,
    prepare_text,
    render_frame,
    shadow_for,
    split_lines,
)
from dalail.schema import RenderState, RenderStyle

# Pillow's bundled font, so results don't depend on installed fonts
FONTS = FontSet()

SMALL = {"width": 216, "height": 384}


def make_state(text="Hello\n\nWorld", translation=None, **style):
    return RenderState(
        collection_number=2,
        reader_name="Reader",
        text=text,
        translation=translation,
        style=RenderStyle(**style),
    )


class TestSplitLines:
    def test_paragraphs_and_lines(self):
        assert split_lines("a\n\nb\nc") == ["a", "b", "c"]

    def test_empty(self):
        assert split_lines("") == []
        assert split_lines(None) == []


class TestShadow:
    def test_offset_from_strength(self):
        assert shadow_for(35).offset_y == 3
        assert shadow_for(35).blur == 35
        assert shadow_for(12).offset_y == 2
        assert shadow_for(0).offset_y == 2

    def test_scaled(self):
        s = shadow_for(36, scale=0.5)
        assert s.blur == 18
        assert s.offset_y == 1.5


class TestLayout:
    def test_center(self):
        layout = layout_lines(make_state())
        font_px = 46 * 1.6
        step = font_px * 1.4
        assert layout.scale == 1.0
        assert layout.lines == ["Hello", "World"]
        assert layout.font_px == pytest.approx(font_px)
        assert layout.line_step == pytest.approx(step)
        assert layout.start_y == pytest.approx(960 - step)
        assert layout.block_height == pytest.approx(2 * step)

    def test_top_and_bottom_anchors(self):
        step = 46 * 1.6 * 1.4
        top = layout_lines(make_state(position="top"))
        bottom = layout_lines(make_state(position="bottom"))
        assert top.start_y == pytest.approx(300 - step)
        assert bottom.start_y == pytest.approx(1920 - 500 - step)

    def test_scales_with_width(self):
        layout = layout_lines(make_state(width=540, height=960, position="top"))
        assert layout.scale == 0.5
        assert layout.font_px == pytest.approx(46 * 1.6 * 0.5)
        assert layout.start_y == pytest.approx(150 - layout.line_step)

    def test_translation_hidden_by_default(self):
        layout = layout_lines(make_state(translation="Ô Allah"))
        assert layout.translation_lines == []

    def test_translation_below_block(self):
        layout = layout_lines(make_state(translation="Ô Allah\n\nprie", show_translation=True))
        assert layout.translation_lines == ["Ô Allah", "prie"]
        assert layout.translation_start_y == pytest.approx(layout.start_y + layout.block_height + 40)
        assert layout.translation_step == 40
        assert layout.translation_font_px == 28

    def test_translation_fallback(self):
        layout = layout_lines(make_state(show_translation=True))
        assert layout.translation_lines == [TRANSLATION_FALLBACK]

    def test_translation_line_cap(self):
        text = "\n".join(f"line {i}" for i in range(10))
        layout = layout_lines(make_state(translation=text, show_translation=True))
        assert len(layout.translation_lines) == TRANSLATION_MAX_LINES


class TestGradient:
    def test_alpha_ramp(self):
        alpha = np.asarray(gradient_overlay(10, 101))[:, :, 3]
        assert alpha[0, 0] == round(0.35 * 255)
        assert alpha[50, 0] == 0
        assert alpha[100, 0] == round(0.45 * 255)
        assert (alpha[:, 0] == alpha[:, 9]).all()


class TestRenderFrame:
    def test_size_and_mode(self):
        img = render_frame(make_state(**SMALL), fonts=FONTS)
        assert img.size == (216, 384)
        assert img.mode == "RGB"

    def test_negative_time_rejected(self):
        with pytest.raises(ValueError):
            render_frame(make_state(**SMALL), -0.1, fonts=FONTS)

    def test_static_over_time(self):
        state = make_state(**SMALL)
        first = render_frame(state, 0.0, fonts=FONTS)
        later = render_frame(state, 2.5, fonts=FONTS)
        assert first.tobytes() == later.tobytes()

    def test_text_is_drawn(self):
        with_text = render_frame(make_state(**SMALL), fonts=FONTS)
        empty = render_frame(make_state(text="", **SMALL), fonts=FONTS)
        assert with_text.tobytes() != empty.tobytes()

    def test_shadow_toggle(self):
        on = render_frame(make_state(shadow_on=True, **SMALL), fonts=FONTS)
        off = render_frame(make_state(shadow_on=False, **SMALL), fonts=FONTS)
        assert on.tobytes() != off.tobytes()

    def test_labels_toggle(self):
        with_labels = render_frame(make_state(text="", **SMALL), fonts=FONTS)
        without = render_frame(
            make_state(text="", show_collection_label=False, show_reader_name=False, **SMALL),
            fonts=FONTS,
        )
        assert with_labels.tobytes() != without.tobytes()

    def test_background_color(self):
        img = render_frame(
            make_state(text="", show_collection_label=False, show_reader_name=False, **SMALL),
            fonts=FONTS,
        )
        # Mid-frame the overlay is transparent
        assert img.getpixel((108, 192)) == (0x0E, 0x2A, 0x22)

    def test_background_image(self, tmp_path):
        cover = tmp_path / "cover.png"
        Image.new("RGB", (50, 50), (200, 10, 10)).save(cover)
        img = render_frame(
            make_state(
                text="",
                show_collection_label=False,
                show_reader_name=False,
                background_image=str(cover),
                **SMALL,
            ),
            fonts=FONTS,
        )
        assert img.size == (216, 384)
        r, g, b = img.getpixel((108, 192))
        assert r > 150 and g < 50


# Presentation forms of beh (U+0628)
BEH_ISOLATED = "ﺏ"
BEH_FINAL = "ﺐ"
BEH_INITIAL = "ﺑ"


class TestArabicShaping:
    def test_latin_passes_through(self):
        basic = SimpleNamespace(layout_engine=ImageFont.Layout.BASIC)
        assert prepare_text("Reader A", basic) == ("Reader A", None)

    def test_basic_layout_joins_and_reorders(self):
        basic = SimpleNamespace(layout_engine=ImageFont.Layout.BASIC)
        text, direction = prepare_text("بب", basic)
        # Initial then final form, stored left to right for display
        assert text == BEH_FINAL + BEH_INITIAL
        assert direction is None

    def test_raqm_layout_draws_rtl(self):
        raqm = SimpleNamespace(layout_engine=ImageFont.Layout.RAQM)
        assert prepare_text("بب", raqm) == ("بب", "rtl")

    def test_drawn_in_joined_forms(self):
        path = find_font(TEXT_FONT_CANDIDATES)
        if path is None:
            pytest.skip("no Arabic-capable font installed")
        font = ImageFont.truetype(path, 60, layout_engine=ImageFont.Layout.BASIC)
        base = Image.new("RGBA", (200, 100), (0, 0, 0, 255))

        def draw(text):
            img = draw_text_items(base, [((100, 70), text)], font, (255, 255, 255, 255))
            return img.tobytes()

        drawn = draw("بب")
        assert drawn == draw(BEH_FINAL + BEH_INITIAL)
        assert drawn != draw(BEH_ISOLATED + BEH_ISOLATED)
