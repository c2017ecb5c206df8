"""
Bubble style rules shared by every render strategy.

These mirror the editor's live view: font size relative to the page width,
line height, text stroke, feather shadow and mask shape precedence.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from typesetter.config import (DEFAULT_MASK_CORNER_RADIUS, DEFAULT_MASK_FEATHER,
                               DEFAULT_MASK_SHAPE, ExportMethod, ExportOptions)
from typesetter.image.image_utils import parse_color, pixel_box
from typesetter.models import TRANSPARENT, Bubble, ImageRecord
from typesetter.text.text_processing import FontSpec, resolve_font

Color = Tuple[int, int, int, int]

FONT_SCALE = 0.02
LINE_HEIGHT_RATIO = 1.5
STROKE_WIDTH_PX = 3.0
DEFAULT_STROKE_COLOR = "#ffffff"
DEFAULT_FILL_COLOR = "#ffffff"
# Feather intensity maps to a box-shadow in percent of the page width.
FEATHER_BLUR_RATIO = 0.15 / 100.0
FEATHER_SPREAD_RATIO = 0.08 / 100.0
FEATHER_PASSES = 8
FEATHER_PASS_ALPHA = 0.15


@dataclass(frozen=True)
class BubbleStyle:
    """Resolved pixel geometry and paint of one bubble."""

    center_x: float
    center_y: float
    box_width: float
    box_height: float
    rotation: float
    shape: str
    corner_radius: float  # percent of each axis
    blur: float
    spread: float
    font: FontSpec
    font_px: float
    line_height: float
    letter_spacing: float
    fill: Color
    stroke: Color
    background: Optional[Color]  # None paints no background shape

    @property
    def shadow_extent(self) -> float:
        return self.blur + self.spread if self.background else 0.0


def resolve_mask_style(bubble: Bubble, options: ExportOptions) -> Tuple[str, float, float]:
    """Shape, corner radius and feather: bubble override, then option default, then hard default."""

    def first(*values):
        for value in values:
            if value is not None:
                return value
        return None

    shape = first(bubble.mask_shape, options.default_mask_shape, DEFAULT_MASK_SHAPE)
    radius = first(
        bubble.mask_corner_radius,
        options.default_mask_corner_radius,
        DEFAULT_MASK_CORNER_RADIUS,
    )
    feather = first(bubble.mask_feather, options.default_mask_feather, DEFAULT_MASK_FEATHER)
    return shape, float(radius), float(feather)


def resolve_bubble_style(
    bubble: Bubble, width: int, height: int, options: ExportOptions
) -> BubbleStyle:
    shape, radius, feather = resolve_mask_style(bubble, options)
    font_px = width * bubble.font_size * FONT_SCALE
    line_height_ratio = LINE_HEIGHT_RATIO if bubble.line_height is None else bubble.line_height
    letter_spacing_em = bubble.letter_spacing or 0.0

    if bubble.background_color == TRANSPARENT:
        background = None
        blur = spread = 0.0
    else:
        background = parse_color(bubble.background_color)
        blur = width * feather * FEATHER_BLUR_RATIO
        spread = width * feather * FEATHER_SPREAD_RATIO

    stroke = bubble.stroke_color
    if not stroke or stroke == TRANSPARENT:
        stroke = DEFAULT_STROKE_COLOR

    return BubbleStyle(
        center_x=width * bubble.x / 100.0,
        center_y=height * bubble.y / 100.0,
        box_width=width * bubble.width / 100.0,
        box_height=height * bubble.height / 100.0,
        rotation=bubble.rotation,
        shape=shape,
        corner_radius=radius,
        blur=blur,
        spread=spread,
        font=resolve_font(bubble.font_family),
        font_px=font_px,
        line_height=font_px * float(line_height_ratio),
        letter_spacing=font_px * float(letter_spacing_em),
        fill=parse_color(bubble.color, "#000000"),
        stroke=parse_color(stroke),
        background=background,
    )


def feather_passes(blur: float, spread: float) -> List[Tuple[float, float]]:
    """
    Concentric (expansion, alpha) passes approximating a blurred shadow,
    outermost first: alpha = 0.15 / i for i = 8..1.
    """
    if blur <= 0 and spread <= 0:
        return []
    return [
        (spread + blur * i / FEATHER_PASSES, FEATHER_PASS_ALPHA / i)
        for i in range(FEATHER_PASSES, 0, -1)
    ]


def filled_regions(record: ImageRecord) -> List[Tuple[Tuple[int, int, int, int], Color]]:
    """Pixel boxes and colors of manually filled, cleaned masks to burn in."""
    fills = []
    for region in record.mask_regions:
        if region.method == "fill" and region.is_cleaned:
            box = pixel_box(region.rect, int(record.width), int(record.height))
            if box[2] > box[0] and box[3] > box[1]:
                fills.append((box, parse_color(region.fill_color, DEFAULT_FILL_COLOR)))
    return fills


def text_families(record: ImageRecord) -> List[str]:
    """CSS families needed to paint the record's bubble text."""
    families = [resolve_font(b.font_family).css_family for b in record.bubbles if b.text.strip()]
    return list(dict.fromkeys(families))


class Renderer:
    """Interface of a render strategy: record in, PNG bytes out."""

    method: ExportMethod

    def render(self, record: ImageRecord, options: Optional[ExportOptions] = None) -> bytes:
        raise NotImplementedError

    def release(self) -> None:
        """Frees resources held between renders."""
        pass
