"""
Measured-layout strategy: lays out each bubble off-screen with the real
font metrics, then paints backgrounds and text directly with Pillow.
"""

import io
import math
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from typesetter.caching import (FontFace, FontResourceCache, LRUCache,
                                get_font_cache, select_faces)
from typesetter.config import ExportMethod, ExportOptions, OutputConfig
from typesetter.image.image_utils import encode_image, fit_to_size, load_image
from typesetter.models import Bubble, ImageRecord
from typesetter.rendering.base import (STROKE_WIDTH_PX, BubbleStyle, Renderer,
                                       feather_passes, filled_regions,
                                       resolve_bubble_style, text_families)
from typesetter.text.layout_engine import TextLayout, layout_text
from utils.logging import log_message

# Pillow strokes outward only, so half the CSS stroke width is visible.
PIL_STROKE_WIDTH = max(1, round(STROKE_WIDTH_PX / 2))

_pil_font_cache = LRUCache(max_size=64)


def _load_pil_font(face: Optional[FontFace], size: int) -> ImageFont.FreeTypeFont:
    key = (face.key if face else None, size)
    font = _pil_font_cache.get(key)
    if font is None:
        if face is None:
            font = ImageFont.load_default(size=size)
        else:
            font = ImageFont.truetype(io.BytesIO(face.data), size)
        _pil_font_cache.put(key, font)
    return font


class FontPicker:
    """Chooses a face per character from a family's faces, nearest weight first."""

    def __init__(self, faces: List[FontFace], weight: int, size: float):
        self.faces = select_faces(faces, weight)
        self.size = max(1, round(size))

    def font_for(self, char: str) -> ImageFont.FreeTypeFont:
        for face in self.faces:
            if face.has_glyph(char):
                return _load_pil_font(face, self.size)
        return _load_pil_font(self.faces[0] if self.faces else None, self.size)

    def runs(self, text: str) -> List[Tuple[str, ImageFont.FreeTypeFont]]:
        """Splits text into runs drawn with the same font."""
        runs: List[Tuple[str, ImageFont.FreeTypeFont]] = []
        for char in text:
            font = self.font_for(char)
            if runs and runs[-1][1] is font:
                runs[-1] = (runs[-1][0] + char, font)
            else:
                runs.append((char, font))
        return runs

    def char_width(self, char: str) -> float:
        return self.font_for(char).getlength(char)

    def line_width(self, text: str) -> float:
        return sum(font.getlength(run) for run, font in self.runs(text))


def _draw_shape(
    draw: ImageDraw.ImageDraw,
    box: Tuple[float, float, float, float],
    shape: str,
    radius_x: float,
    radius_y: float,
    fill,
) -> None:
    left, top, right, bottom = box
    if right <= left or bottom <= top:
        return
    if shape == "ellipse":
        draw.ellipse(box, fill=fill)
    elif shape == "rounded" and radius_x > 0 and radius_y > 0:
        radius_x = min(radius_x, (right - left) / 2.0)
        radius_y = min(radius_y, (bottom - top) / 2.0)
        # Elliptical corners: two crossing rectangles plus four corner ellipses
        draw.rectangle((left + radius_x, top, right - radius_x, bottom), fill=fill)
        draw.rectangle((left, top + radius_y, right, bottom - radius_y), fill=fill)
        for cx, cy in (
            (left, top),
            (right - 2 * radius_x, top),
            (left, bottom - 2 * radius_y),
            (right - 2 * radius_x, bottom - 2 * radius_y),
        ):
            draw.ellipse((cx, cy, cx + 2 * radius_x, cy + 2 * radius_y), fill=fill)
    else:
        draw.rectangle(box, fill=fill)


class MeasuredLayoutRenderer(Renderer):
    """Paints bubbles with Pillow after a measured layout pass."""

    method = ExportMethod.CANVAS

    def __init__(
        self,
        font_cache: Optional[FontResourceCache] = None,
        output: Optional[OutputConfig] = None,
        verbose: bool = False,
    ):
        self.font_cache = font_cache or get_font_cache()
        self.output = output or OutputConfig()
        self.verbose = verbose

    def render(self, record: ImageRecord, options: Optional[ExportOptions] = None) -> bytes:
        options = options or ExportOptions()
        size = (int(record.width), int(record.height))
        canvas = fit_to_size(load_image(record.background_source), size)

        fills = filled_regions(record)
        if fills:
            draw = ImageDraw.Draw(canvas)
            for box, color in fills:
                draw.rectangle((box[0], box[1], box[2] - 1, box[3] - 1), fill=color)

        families = text_families(record)
        faces = self.font_cache.resolve_faces(families) if families else {}

        for bubble in record.bubbles:
            style = resolve_bubble_style(bubble, size[0], size[1], options)
            layer = self._render_bubble_layer(bubble, style, faces)
            if layer is None:
                continue
            _composite_centered(canvas, layer, (style.center_x, style.center_y))

        log_message(
            f"Rendered {record.name} ({len(record.bubbles)} bubbles, measured layout)",
            verbose=self.verbose,
        )
        return encode_image(canvas, "PNG", png_compression=self.output.png_compression)

    def _render_bubble_layer(
        self, bubble: Bubble, style: BubbleStyle, faces: Dict[str, List[FontFace]]
    ) -> Optional[Image.Image]:
        picker = FontPicker(faces.get(style.font.css_family, []), style.font.weight, style.font_px)
        layout = None
        if bubble.text.strip():
            layout = layout_text(
                bubble.text,
                bubble.is_vertical,
                style.font_px,
                style.line_height,
                style.box_width,
                style.box_height,
                picker.char_width,
                picker.line_width,
                style.letter_spacing,
            )

        # Layer centered on the bubble so rotation keeps the center fixed
        half_w = style.box_width / 2.0 + style.shadow_extent
        half_h = style.box_height / 2.0 + style.shadow_extent
        if layout is not None and layout.bounds is not None:
            left, top, right, bottom = layout.bounds
            pad = style.font_px + PIL_STROKE_WIDTH
            half_w = max(half_w, style.box_width / 2.0 - left + pad, right - style.box_width / 2.0 + pad)
            half_h = max(half_h, style.box_height / 2.0 - top + pad, bottom - style.box_height / 2.0 + pad)
        layer_w, layer_h = math.ceil(2 * half_w), math.ceil(2 * half_h)
        if layer_w <= 0 or layer_h <= 0 or (style.background is None and layout is None):
            return None

        layer = Image.new("RGBA", (layer_w, layer_h), (0, 0, 0, 0))
        offset_x = layer_w / 2.0 - style.box_width / 2.0
        offset_y = layer_h / 2.0 - style.box_height / 2.0

        if style.background is not None:
            self._paint_background(layer, style, offset_x, offset_y)
        if layout is not None:
            self._paint_text(layer, layout, style, picker, offset_x, offset_y)

        if style.rotation:
            # PIL rotates counter-clockwise; bubble rotation is clockwise
            layer = layer.rotate(-style.rotation, resample=Image.Resampling.BICUBIC, expand=True)
        return layer

    def _paint_background(
        self, layer: Image.Image, style: BubbleStyle, offset_x: float, offset_y: float
    ) -> None:
        box = (offset_x, offset_y, offset_x + style.box_width, offset_y + style.box_height)
        radius_x = style.box_width * style.corner_radius / 100.0
        radius_y = style.box_height * style.corner_radius / 100.0
        r, g, b, a = style.background

        for expansion, alpha in feather_passes(style.blur, style.spread):
            feather_layer = Image.new("RGBA", layer.size, (0, 0, 0, 0))
            _draw_shape(
                ImageDraw.Draw(feather_layer),
                (box[0] - expansion, box[1] - expansion, box[2] + expansion, box[3] + expansion),
                style.shape,
                radius_x + expansion,
                radius_y + expansion,
                (r, g, b, round(a * alpha)),
            )
            layer.alpha_composite(feather_layer)

        shape_layer = Image.new("RGBA", layer.size, (0, 0, 0, 0))
        _draw_shape(ImageDraw.Draw(shape_layer), box, style.shape, radius_x, radius_y, style.background)
        layer.alpha_composite(shape_layer)

    def _paint_text(
        self,
        layer: Image.Image,
        layout: TextLayout,
        style: BubbleStyle,
        picker: FontPicker,
        offset_x: float,
        offset_y: float,
    ) -> None:
        draw = ImageDraw.Draw(layer)
        text_options = {
            "fill": style.fill,
            "stroke_width": PIL_STROKE_WIDTH,
            "stroke_fill": style.stroke,
        }

        if not layout.vertical:
            for line in layout.lines:
                if not line.text:
                    continue
                cursor_x = offset_x + line.center_x - line.width / 2.0
                center_y = offset_y + line.center_y
                runs = picker.runs(line.text)
                if style.letter_spacing:
                    runs = [(char, font) for run, font in runs for char in run]
                for run, font in runs:
                    draw.text((cursor_x, center_y), run, font=font, anchor="lm", **text_options)
                    cursor_x += font.getlength(run) + style.letter_spacing
            return

        for glyph in layout.glyphs:
            font = picker.font_for(glyph.char)
            center = (offset_x + glyph.center_x, offset_y + glyph.center_y)
            if not glyph.rotation:
                draw.text(center, glyph.char, font=font, anchor="mm", **text_options)
                continue

            # The sideways glyph is painted upright on its own tile, then turned
            side = math.ceil(max(glyph.advance, glyph.extent) * 2 + PIL_STROKE_WIDTH * 2)
            tile = Image.new("RGBA", (side, side), (0, 0, 0, 0))
            ImageDraw.Draw(tile).text(
                (side / 2.0, side / 2.0), glyph.char, font=font, anchor="mm", **text_options
            )
            tile = tile.rotate(-glyph.rotation, resample=Image.Resampling.BICUBIC)
            _composite_centered(layer, tile, center)


def _composite_centered(layer: Image.Image, tile: Image.Image, center: Tuple[float, float]) -> None:
    left = round(center[0] - tile.width / 2.0)
    top = round(center[1] - tile.height / 2.0)
    if left >= 0 and top >= 0:
        layer.alpha_composite(tile, dest=(left, top))
        return
    # alpha_composite rejects negative offsets; paste clips them
    overlay = Image.new("RGBA", layer.size, (0, 0, 0, 0))
    overlay.paste(tile, (left, top))
    layer.alpha_composite(overlay)
