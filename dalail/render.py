"""
Frame rendering with Pillow.

``render_frame`` maps a RenderState and a frame time to one RGB image:

1. Background (solid color, or an image scaled to cover)
2. Vertical gradient overlay for legibility
3. Corner labels (part number, reader name)
4. Primary text block, vertically centered on a position anchor
5. Translation lines below the block, when enabled
6. Optional drop shadow under the text

Geometry is defined for a 1080-wide frame and scaled to the actual width.

Arabic is shaped by libraqm when Pillow has it. Otherwise lines are reshaped
into presentation forms and reordered for display before drawing.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

import arabic_reshaper
import numpy as np
from bidi.algorithm import get_display
from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont, features

from dalail.classify import ARABIC_CHARS_RE
from dalail.schema import RenderState

logger = logging.getLogger(__name__)

HAS_RAQM = features.check("raqm")

REFERENCE_WIDTH = 1080

# Primary font is drawn at font_size * LINE_SPACING_SCALE
LINE_SPACING_SCALE = 1.6

# Position anchors (reference pixels)
TOP_ANCHOR_Y = 300
BOTTOM_ANCHOR_OFFSET = 500

# Gradient overlay opacity at top, middle and bottom
GRADIENT_STOPS = (0.35, 0.0, 0.45)

LABEL_FONT_SIZE = 40
LABEL_MARGIN_X = 60
LABEL_BASELINE_Y = 90
LABEL_COLOR = (245, 211, 125, 242)

TRANSLATION_FONT_SIZE = 28
TRANSLATION_MAX_LINES = 6
TRANSLATION_GAP = 40
TRANSLATION_STEP = 40
TRANSLATION_COLOR = (255, 255, 255, 199)
TRANSLATION_SHADOW_BLUR = 6
TRANSLATION_SHADOW_COLOR = (0, 0, 0, 204)
TRANSLATION_FALLBACK = "الترجمة غير متوفرة تلقائيًا لهذا المقطع في المصدر الحالي."

SHADOW_COLOR = (0, 0, 0, 217)

_LINE_SPLIT_RE = re.compile(r"\n\n|\n")

TEXT_FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/amiri/Amiri-Regular.ttf",
    "/usr/share/fonts/opentype/fonts-hosny-amiri/Amiri-Regular.ttf",
    "/usr/share/fonts/truetype/noto/NotoNaskhArabic-Regular.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
    "C:/Windows/Fonts/arial.ttf",
]

LABEL_FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/cairo/Cairo-Bold.ttf",
    "/usr/share/fonts/truetype/noto/NotoSansArabic-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
]


# ============================================================
# Fonts
# ============================================================


def find_font(candidates: Sequence[str]) -> str | None:
    """First existing font file among the candidates."""
    for path in candidates:
        if path and os.path.exists(path):
            return path
    return None


@lru_cache(maxsize=32)
def load_font(path: str | None, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Load a TrueType font, falling back to Pillow's bundled default.

    Args:
        path: Font file, or None for the default font
        size: Pixel size
    """
    size = max(1, int(round(size)))
    if path:
        layout = ImageFont.Layout.RAQM if HAS_RAQM else ImageFont.Layout.BASIC
        try:
            return ImageFont.truetype(path, size, layout_engine=layout)
        except OSError as e:
            logger.warning(f"Could not load font {path}: {e}; using default")
    return ImageFont.load_default(size=size)


@dataclass(frozen=True)
class FontSet:
    """Font files used for the three text roles."""

    text: str | None = None
    label: str | None = None
    translation: str | None = None

    @classmethod
    def resolve(
        cls,
        text: str | None = None,
        label: str | None = None,
        translation: str | None = None,
    ) -> FontSet:
        """Use configured paths when given, otherwise search the system."""
        text_path = text or find_font(TEXT_FONT_CANDIDATES)
        label_path = label or find_font(LABEL_FONT_CANDIDATES) or text_path
        if text_path is None:
            logger.warning("No Arabic-capable font found, using Pillow default font")
        if not HAS_RAQM:
            logger.info("libraqm not available, shaping Arabic with arabic-reshaper and python-bidi")
        return cls(text=text_path, label=label_path, translation=translation or label_path)


# ============================================================
# Layout
# ============================================================


@dataclass(frozen=True)
class Shadow:
    """Drop shadow parameters."""

    blur: float
    offset_y: float
    color: tuple[int, int, int, int]


@dataclass(frozen=True)
class TextLayout:
    """Pure geometry of the text on one frame (pixel units)."""

    scale: float
    lines: list[str]
    font_px: float
    line_step: float
    start_y: float
    translation_lines: list[str]
    translation_font_px: float
    translation_start_y: float
    translation_step: float

    @property
    def block_height(self) -> float:
        return len(self.lines) * self.line_step


def split_lines(text: str | None) -> list[str]:
    """Split text on paragraph/line breaks, dropping empty lines."""
    if not text:
        return []
    return [line for line in _LINE_SPLIT_RE.split(text) if line]


def shadow_for(strength: float, scale: float = 1.0) -> Shadow:
    """Main text shadow derived from a single strength value."""
    return Shadow(
        blur=strength * scale,
        offset_y=max(2, round(strength / 12)) * scale,
        color=SHADOW_COLOR,
    )


def anchor_y(position: str, height: int, scale: float) -> float:
    """Vertical center of the text block for a position mode."""
    if position == "top":
        return TOP_ANCHOR_Y * scale
    if position == "bottom":
        return height - BOTTOM_ANCHOR_OFFSET * scale
    return height / 2


def layout_lines(state: RenderState) -> TextLayout:
    """
    Compute text geometry for a render state.

    Lines are drawn on their baseline starting at ``start_y`` and advancing by
    ``line_step``; the block is centered on the position anchor.
    """
    style = state.style
    scale = style.width / REFERENCE_WIDTH

    lines = split_lines(state.text)
    font_px = style.font_size * LINE_SPACING_SCALE * scale
    line_step = font_px * style.line_height
    total = len(lines) * line_step
    start_y = anchor_y(style.position, style.height, scale) - total / 2

    translation_lines: list[str] = []
    if style.show_translation:
        translation_lines = split_lines(state.translation or TRANSLATION_FALLBACK)[:TRANSLATION_MAX_LINES]

    return TextLayout(
        scale=scale,
        lines=lines,
        font_px=font_px,
        line_step=line_step,
        start_y=start_y,
        translation_lines=translation_lines,
        translation_font_px=TRANSLATION_FONT_SIZE * scale,
        translation_start_y=start_y + total + TRANSLATION_GAP * scale,
        translation_step=TRANSLATION_STEP * scale,
    )


# ============================================================
# Drawing
# ============================================================


@lru_cache(maxsize=4)
def _load_cover(path: str, width: int, height: int) -> Image.Image:
    """Load an image scaled to cover (width, height), center-cropped."""
    with Image.open(path) as src:
        img = src.convert("RGB")
    w, h = img.size
    scale = max(width / w, height / h)
    new_size = (max(width, round(w * scale)), max(height, round(h * scale)))
    img = img.resize(new_size, Image.Resampling.LANCZOS)
    left = (new_size[0] - width) // 2
    top = (new_size[1] - height) // 2
    return img.crop((left, top, left + width, top + height))


def draw_background(state: RenderState) -> Image.Image:
    """Solid color fill, or the background image scaled to cover."""
    style = state.style
    size = (style.width, style.height)
    if style.background_image:
        return _load_cover(style.background_image, *size).convert("RGBA")
    return Image.new("RGBA", size, ImageColor.getrgb(style.background_color))


def gradient_overlay(width: int, height: int) -> Image.Image:
    """Black overlay, darker at top and bottom and transparent at mid-frame."""
    top, mid, bottom = GRADIENT_STOPS
    ys = np.arange(height, dtype=np.float32)
    alpha = np.interp(ys, [0, (height - 1) / 2, height - 1], [top, mid, bottom])

    overlay = np.zeros((height, width, 4), dtype=np.uint8)
    overlay[:, :, 3] = np.round(alpha * 255).astype(np.uint8)[:, None]
    return Image.fromarray(overlay)


def prepare_text(
    text: str,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
) -> tuple[str, str | None]:
    """
    Text and direction to hand to ``ImageDraw.text`` for one line.

    Lines without Arabic are passed through. With a raqm font the line is drawn
    right-to-left and shaped by Pillow; otherwise it is reshaped into joined
    presentation forms and put in visual order.
    """
    if not ARABIC_CHARS_RE.search(text):
        return text, None
    if getattr(font, "layout_engine", None) == ImageFont.Layout.RAQM:
        return text, "rtl"
    return get_display(arabic_reshaper.reshape(text)), None


def _draw_shadow(
    base: Image.Image,
    items: Sequence[tuple[tuple[float, float], str]],
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    shadow: Shadow,
    anchor: str,
) -> Image.Image:
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    for (x, y), text in items:
        text, direction = prepare_text(text, font)
        draw.text(
            (x, y + shadow.offset_y),
            text,
            font=font,
            fill=shadow.color,
            anchor=anchor,
            direction=direction,
        )
    # Canvas-style blur value: the Gaussian sigma is half of it
    if shadow.blur > 0:
        layer = layer.filter(ImageFilter.GaussianBlur(radius=shadow.blur / 2))
    return Image.alpha_composite(base, layer)


def draw_text_items(
    base: Image.Image,
    items: Sequence[tuple[tuple[float, float], str]],
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
    fill: tuple[int, ...],
    shadow: Shadow | None = None,
    anchor: str = "ms",
) -> Image.Image:
    """Draw text items (position, text) with an optional blurred shadow."""
    if not items:
        return base
    if shadow is not None:
        base = _draw_shadow(base, items, font, shadow, anchor)

    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    for (x, y), text in items:
        text, direction = prepare_text(text, font)
        draw.text((x, y), text, font=font, fill=fill, anchor=anchor, direction=direction)
    return Image.alpha_composite(base, layer)


def render_frame(
    state: RenderState,
    frame_time: float = 0.0,
    fonts: FontSet | None = None,
) -> Image.Image:
    """
    Render one frame of a selection.

    Args:
        state: Render state of the selection
        frame_time: Time of the frame in seconds from the start of the window
        fonts: Font files to use (resolved from the system if None)

    Returns:
        RGB image of style.width x style.height

    The composition is currently static: every frame time yields the same
    image.
    """
    if frame_time < 0:
        raise ValueError(f"frame_time must be >= 0, got {frame_time}")

    fonts = fonts or FontSet.resolve()
    style = state.style
    width, height = style.width, style.height
    layout = layout_lines(state)
    scale = layout.scale

    img = draw_background(state)
    img = Image.alpha_composite(img, gradient_overlay(width, height))

    # Corner labels
    label_font = load_font(fonts.label, round(LABEL_FONT_SIZE * scale))
    label_y = LABEL_BASELINE_Y * scale
    if style.show_collection_label:
        img = draw_text_items(
            img,
            [((width - LABEL_MARGIN_X * scale, label_y), f"الحزب {state.collection_number}")],
            label_font,
            LABEL_COLOR,
            anchor="rs",
        )
    if style.show_reader_name and state.reader_name:
        img = draw_text_items(
            img,
            [((LABEL_MARGIN_X * scale, label_y), state.reader_name)],
            label_font,
            LABEL_COLOR,
            anchor="ls",
        )

    # Primary text
    main_shadow = shadow_for(style.shadow_strength, scale) if style.shadow_on else None
    text_font = load_font(fonts.text, round(layout.font_px))
    items = [
        ((width / 2, layout.start_y + i * layout.line_step), line)
        for i, line in enumerate(layout.lines)
    ]
    img = draw_text_items(
        img,
        items,
        text_font,
        ImageColor.getcolor(style.text_color, "RGBA"),
        shadow=main_shadow,
    )

    # Translation
    if layout.translation_lines:
        t_shadow = None
        if style.shadow_on:
            t_shadow = Shadow(
                blur=TRANSLATION_SHADOW_BLUR * scale,
                offset_y=0,
                color=TRANSLATION_SHADOW_COLOR,
            )
        t_font = load_font(fonts.translation, round(layout.translation_font_px))
        t_items = [
            ((width / 2, layout.translation_start_y + i * layout.translation_step), line)
            for i, line in enumerate(layout.translation_lines)
        ]
        img = draw_text_items(img, t_items, t_font, TRANSLATION_COLOR, shadow=t_shadow)

    return img.convert("RGB")
