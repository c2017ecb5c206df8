"""
Full-fidelity capture strategy.

Rebuilds the editor's visual tree for one image (background picture, burnt-in
fills, then each bubble with its shape, feather shadow and text) on an
off-screen Skia surface with the fonts installed from self-contained style
rules, and snapshots the result.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import skia
import uharfbuzz as hb
from PIL import Image

from typesetter.caching import FontFace, FontResourceCache, get_font_cache, select_faces
from typesetter.config import ExportMethod, ExportOptions, OutputConfig
from typesetter.image.image_utils import encode_image, fit_to_size, load_image
from typesetter.models import ImageRecord
from typesetter.rendering.base import (STROKE_WIDTH_PX, BubbleStyle, Color, Renderer,
                                       filled_regions, resolve_bubble_style,
                                       text_families)
from typesetter.text.drawing_engine import (build_line_blob, centered_baseline,
                                            default_typeface, load_font_resources,
                                            make_raster_surface, pil_to_skia_image,
                                            shaped_width, skia_surface_to_pil,
                                            to_skia_color)
from typesetter.text.layout_engine import TextLayout, layout_text
from utils.exceptions import FontError, RenderingError
from utils.logging import log_message


@dataclass
class ImageNode:
    image: Image.Image


@dataclass
class FillNode:
    box: Tuple[int, int, int, int]
    color: Color


@dataclass
class BubbleNode:
    text: str
    vertical: bool
    style: BubbleStyle


@dataclass
class VisualTree:
    width: int
    height: int
    families: List[str] = field(default_factory=list)
    nodes: List[Union[ImageNode, FillNode, BubbleNode]] = field(default_factory=list)


def build_visual_tree(record: ImageRecord, options: Optional[ExportOptions] = None) -> VisualTree:
    """Describes what the editor shows for a record, in paint order."""
    options = options or ExportOptions()
    width, height = int(record.width), int(record.height)
    tree = VisualTree(width=width, height=height, families=text_families(record))
    tree.nodes.append(ImageNode(fit_to_size(load_image(record.background_source), (width, height))))
    for box, color in filled_regions(record):
        tree.nodes.append(FillNode(box, color))
    for bubble in record.bubbles:
        tree.nodes.append(
            BubbleNode(
                text=bubble.text,
                vertical=bubble.is_vertical,
                style=resolve_bubble_style(bubble, width, height, options),
            )
        )
    return tree


class TypefaceSelector:
    """Per-character typeface choice within one family, with shaping faces where available."""

    def __init__(self, faces: List[Tuple[FontFace, skia.Typeface, hb.Face]], size: float):
        self.faces = faces
        self.size = size
        self._fallback = skia.Font(default_typeface(), size)

    def entry_for(self, char: str) -> Optional[Tuple[FontFace, skia.Typeface, hb.Face]]:
        for entry in self.faces:
            if entry[0].has_glyph(char):
                return entry
        return self.faces[0] if self.faces else None

    def font_for(self, char: str) -> skia.Font:
        entry = self.entry_for(char)
        if entry is None:
            return self._fallback
        return skia.Font(entry[1], self.size)

    def runs(self, text: str) -> List[Tuple[str, Optional[Tuple[FontFace, skia.Typeface, hb.Face]]]]:
        runs: List[Tuple[str, Optional[Tuple[FontFace, skia.Typeface, hb.Face]]]] = []
        for char in text:
            entry = self.entry_for(char)
            if runs and runs[-1][1] is entry:
                runs[-1] = (runs[-1][0] + char, entry)
            else:
                runs.append((char, entry))
        return runs

    def char_width(self, char: str) -> float:
        return self.run_width(char, self.entry_for(char))

    def run_width(self, run: str, entry) -> float:
        """Advance of a run as placed on the canvas: shaped when a shaping face is available."""
        if entry is None:
            return self._fallback.measureText(run)
        return shaped_width(run, entry[2], self.size)

    def line_width(self, text: str) -> float:
        return sum(self.run_width(run, entry) for run, entry in self.runs(text))

    def run_font(self, entry) -> skia.Font:
        return self._fallback if entry is None else skia.Font(entry[1], self.size)


class CaptureSurface:
    """
    Off-screen drawing surface reused across captures.

    The surface is only reallocated when the requested size changes; installed
    fonts persist until new style rules are installed or the surface is
    destroyed.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.surface: Optional[skia.Surface] = None
        self.size: Optional[Tuple[int, int]] = None
        self._installed_css: Optional[str] = None
        self._families: Dict[str, List[Tuple[FontFace, skia.Typeface, hb.Face]]] = {}

    def init(self, width: int, height: int) -> skia.Surface:
        size = (int(width), int(height))
        if self.surface is None or self.size != size:
            self.surface = make_raster_surface(*size)
            self.size = size
            log_message(f"Capture surface allocated: {size[0]}x{size[1]}", verbose=self.verbose)
        self.surface.getCanvas().clear(skia.ColorTRANSPARENT)
        return self.surface

    def install_styles(self, css: str, font_cache: FontResourceCache) -> None:
        """Installs the fonts of self-contained @font-face rules."""
        if css == self._installed_css:
            return
        families: Dict[str, List[Tuple[FontFace, skia.Typeface, hb.Face]]] = {}
        for family, faces in font_cache.faces_from_css(css).items():
            for face in faces:
                try:
                    typeface, hb_face = load_font_resources(face)
                except FontError:
                    continue
                families.setdefault(family, []).append((face, typeface, hb_face))
        self._families = families
        self._installed_css = css
        log_message(f"Installed fonts for {len(families)} families", verbose=self.verbose)

    def selector(self, family: str, weight: int, size: float) -> TypefaceSelector:
        entries = self._families.get(family, [])
        ordered = select_faces([entry[0] for entry in entries], weight)
        by_face = {id(entry[0]): entry for entry in entries}
        return TypefaceSelector([by_face[id(face)] for face in ordered], size)

    def snapshot(self) -> Image.Image:
        if self.surface is None:
            raise RenderingError("Capture surface has not been initialized")
        return skia_surface_to_pil(self.surface)

    def destroy(self) -> None:
        self.surface = None
        self.size = None
        self._installed_css = None
        self._families = {}


_capture_surface: Optional[CaptureSurface] = None
_capture_lock = threading.Lock()


def get_capture_surface(verbose: bool = False) -> CaptureSurface:
    """Get the shared capture surface, creating it on first use."""
    global _capture_surface
    with _capture_lock:
        if _capture_surface is None:
            _capture_surface = CaptureSurface(verbose=verbose)
        return _capture_surface


def destroy_capture_surface() -> None:
    """Releases the shared capture surface."""
    global _capture_surface
    with _capture_lock:
        if _capture_surface is not None:
            _capture_surface.destroy()
        _capture_surface = None


def _shape_rect(left: float, top: float, right: float, bottom: float) -> skia.Rect:
    return skia.Rect.MakeLTRB(left, top, right, bottom)


def _draw_shape(canvas: skia.Canvas, rect: skia.Rect, style: BubbleStyle, expansion: float, paint: skia.Paint):
    if style.shape == "ellipse":
        canvas.drawOval(rect, paint)
    elif style.shape == "rounded" and style.corner_radius > 0:
        radius_x = style.box_width * style.corner_radius / 100.0 + expansion
        radius_y = style.box_height * style.corner_radius / 100.0 + expansion
        canvas.drawRRect(skia.RRect.MakeRectXY(rect, radius_x, radius_y), paint)
    else:
        canvas.drawRect(rect, paint)


class CaptureRenderer(Renderer):
    """Renders records by painting their visual tree on a shared Skia surface."""

    method = ExportMethod.SCREENSHOT

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
        tree = build_visual_tree(record, options)
        capture = get_capture_surface(self.verbose)
        canvas = capture.init(tree.width, tree.height).getCanvas()

        css = self.font_cache.get_embedded_css(tree.families) if tree.families else ""
        if css:
            capture.install_styles(css, self.font_cache)

        for node in tree.nodes:
            if isinstance(node, ImageNode):
                canvas.drawImage(pil_to_skia_image(node.image), 0, 0)
            elif isinstance(node, FillNode):
                paint = skia.Paint(Color=to_skia_color(node.color), AntiAlias=False)
                canvas.drawRect(_shape_rect(*node.box), paint)
            else:
                self._draw_bubble(canvas, capture, node)

        snapshot = capture.snapshot()
        log_message(
            f"Captured {record.name} ({len(record.bubbles)} bubbles)",
            verbose=self.verbose,
        )
        return encode_image(snapshot, "PNG", png_compression=self.output.png_compression)

    def release(self) -> None:
        destroy_capture_surface()

    def _draw_bubble(self, canvas: skia.Canvas, capture: CaptureSurface, node: BubbleNode) -> None:
        style = node.style
        canvas.save()
        canvas.translate(style.center_x, style.center_y)
        if style.rotation:
            canvas.rotate(style.rotation)
        # Box-local coordinates from here on
        canvas.translate(-style.box_width / 2.0, -style.box_height / 2.0)

        if style.background is not None:
            self._draw_background(canvas, style)

        if node.text.strip():
            selector = capture.selector(style.font.css_family, style.font.weight, style.font_px)
            layout = layout_text(
                node.text,
                node.vertical,
                style.font_px,
                style.line_height,
                style.box_width,
                style.box_height,
                selector.char_width,
                selector.line_width,
                style.letter_spacing,
            )
            self._draw_text(canvas, layout, style, selector)

        canvas.restore()

    def _draw_background(self, canvas: skia.Canvas, style: BubbleStyle) -> None:
        color = to_skia_color(style.background)
        if style.blur > 0 or style.spread > 0:
            shadow = skia.Paint(
                Color=color,
                AntiAlias=True,
                MaskFilter=skia.MaskFilter.MakeBlur(skia.kNormal_BlurStyle, max(style.blur / 2.0, 0.1)),
            )
            expansion = style.spread
            _draw_shape(
                canvas,
                _shape_rect(-expansion, -expansion, style.box_width + expansion, style.box_height + expansion),
                style,
                expansion,
                shadow,
            )
        _draw_shape(
            canvas,
            _shape_rect(0, 0, style.box_width, style.box_height),
            style,
            0.0,
            skia.Paint(Color=color, AntiAlias=True),
        )

    def _draw_text(
        self, canvas: skia.Canvas, layout: TextLayout, style: BubbleStyle, selector: TypefaceSelector
    ) -> None:
        stroke = skia.Paint(
            Color=to_skia_color(style.stroke),
            AntiAlias=True,
            Style=skia.Paint.kStroke_Style,
            StrokeWidth=STROKE_WIDTH_PX,
            StrokeJoin=skia.Paint.kRound_Join,
        )
        fill = skia.Paint(Color=to_skia_color(style.fill), AntiAlias=True)

        if not layout.vertical:
            for line in layout.lines:
                if not line.text:
                    continue
                cursor_x = line.center_x - line.width / 2.0
                runs = selector.runs(line.text)
                if style.letter_spacing:
                    runs = [(char, entry) for run, entry in runs for char in run]
                for run, entry in runs:
                    font = selector.run_font(entry)
                    baseline = line.center_y + centered_baseline(font)
                    blob = None
                    if entry is not None:
                        blob = build_line_blob(run, entry[1], entry[2], style.font_px, cursor_x, baseline)
                    for paint in (stroke, fill):
                        if blob is not None:
                            canvas.drawTextBlob(blob, 0, 0, paint)
                        else:
                            canvas.drawString(run, cursor_x, baseline, font, paint)
                    cursor_x += selector.run_width(run, entry) + style.letter_spacing
            return

        for glyph in layout.glyphs:
            font = selector.font_for(glyph.char)
            width = font.measureText(glyph.char)
            canvas.save()
            canvas.translate(glyph.center_x, glyph.center_y)
            if glyph.rotation:
                canvas.rotate(glyph.rotation)
            for paint in (stroke, fill):
                canvas.drawString(glyph.char, -width / 2.0, centered_baseline(font), font, paint)
            canvas.restore()
