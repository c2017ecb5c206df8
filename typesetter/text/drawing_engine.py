import threading
from typing import Dict, List, Optional, Tuple

import skia
import uharfbuzz as hb
from PIL import Image

from typesetter.caching import FontFace, LRUCache
from utils.exceptions import FontError, RenderingError, ResourceUnavailableError
from utils.logging import log_message

_typeface_cache = LRUCache(max_size=50)
_hb_face_cache = LRUCache(max_size=50)
_font_cache_lock = threading.RLock()

# HarfBuzz uses 26.6 fixed-point format (64 units per pixel)
HB_26_6_SCALE_FACTOR = 64.0


def load_font_resources(face: FontFace) -> Tuple[skia.Typeface, hb.Face]:
    """
    Loads the Skia Typeface and HarfBuzz Face of a font face, using LRU caching.

    Raises:
        FontError: If Skia or HarfBuzz cannot load the font data
    """
    with _font_cache_lock:
        typeface = _typeface_cache.get(face.key)
        if typeface is None:
            typeface = skia.Typeface.MakeFromData(skia.Data.MakeWithCopy(face.data))
            if typeface is None:
                log_message(f"Skia typeface load failed: {face.family}", always_print=True)
                raise FontError(f"Failed to create Skia typeface for '{face.family}'")
            _typeface_cache.put(face.key, typeface)

        hb_face = _hb_face_cache.get(face.key)
        if hb_face is None:
            try:
                hb_face = hb.Face(face.data)
            except Exception as e:
                log_message(f"HarfBuzz face load failed: {face.family}: {e}", always_print=True)
                raise FontError(f"Failed to create HarfBuzz face for '{face.family}'") from e
            _hb_face_cache.put(face.key, hb_face)

    return typeface, hb_face


def default_typeface() -> skia.Typeface:
    return skia.Typeface()


def to_skia_color(color: Tuple[int, int, int, int]) -> int:
    r, g, b, a = color
    return skia.Color(r, g, b, a)


def pil_to_skia_image(pil_image: Image.Image) -> skia.Image:
    """Converts a PIL image to a Skia Image.

    Raises:
        RenderingError: If conversion fails
    """
    if pil_image.mode != "RGBA":
        pil_image = pil_image.convert("RGBA")
    skia_image = skia.Image.frombytes(
        pil_image.tobytes(), pil_image.size, skia.kRGBA_8888_ColorType
    )
    if skia_image is None:
        log_message("PIL to Skia conversion failed", always_print=True)
        raise RenderingError("Failed to create Skia image from PIL")
    return skia_image


def make_raster_surface(width: int, height: int) -> skia.Surface:
    """Allocates an off-screen raster surface.

    Raises:
        ResourceUnavailableError: If the surface cannot be allocated
    """
    surface = skia.Surface.MakeRasterN32Premul(int(width), int(height))
    if surface is None:
        log_message(f"Could not allocate {width}x{height} surface", always_print=True)
        raise ResourceUnavailableError(f"Failed to allocate a {width}x{height} raster surface")
    return surface


def skia_surface_to_pil(surface: skia.Surface) -> Image.Image:
    """Converts a Skia Surface back to a PIL image.

    Raises:
        RenderingError: If conversion fails
    """
    try:
        skia_image: Optional[skia.Image] = surface.makeImageSnapshot()
        if skia_image is None:
            log_message("Skia surface snapshot failed", always_print=True)
            raise RenderingError("Failed to create Skia image snapshot")

        skia_image = skia_image.convert(
            alphaType=skia.kUnpremul_AlphaType, colorType=skia.kRGBA_8888_ColorType
        )
        return Image.fromarray(skia_image)
    except RenderingError:
        raise
    except Exception as e:
        log_message(f"Skia to PIL conversion error: {e}", always_print=True)
        raise RenderingError("Skia to PIL conversion failed") from e


def shape_line(text: str, hb_font: hb.Font, features: Optional[Dict[str, bool]] = None):
    """Shapes a run of text with HarfBuzz, returning glyph infos and positions."""
    buf = hb.Buffer()
    buf.add_str(text)
    buf.guess_segment_properties()
    hb.shape(hb_font, buf, features or {})
    return buf.glyph_infos, buf.glyph_positions


def make_hb_font(hb_face: hb.Face, font_size: float) -> hb.Font:
    hb_font = hb.Font(hb_face)
    hb_font.ptem = float(font_size)
    hb_scale = int(font_size * HB_26_6_SCALE_FACTOR)
    hb_font.scale = (hb_scale, hb_scale)
    return hb_font


def shaped_width(text: str, hb_face: hb.Face, font_size: float) -> float:
    if not text:
        return 0.0
    _, positions = shape_line(text, make_hb_font(hb_face, font_size))
    return sum(pos.x_advance for pos in positions) / HB_26_6_SCALE_FACTOR


def build_line_blob(
    text: str,
    typeface: skia.Typeface,
    hb_face: hb.Face,
    font_size: float,
    origin_x: float,
    baseline_y: float,
) -> Optional[skia.TextBlob]:
    """
    Shapes a line and positions its glyphs starting at (origin_x, baseline_y).

    Returns:
        TextBlob, or None if shaping produced no glyphs
    """
    infos, positions = shape_line(text, make_hb_font(hb_face, font_size))
    if not infos:
        return None

    skia_font = skia.Font(typeface, font_size)
    glyph_ids: List[int] = [info.codepoint for info in infos]
    points = []
    cursor_x = origin_x
    for pos in positions:
        points.append(
            skia.Point(
                cursor_x + pos.x_offset / HB_26_6_SCALE_FACTOR,
                baseline_y - pos.y_offset / HB_26_6_SCALE_FACTOR,
            )
        )
        cursor_x += pos.x_advance / HB_26_6_SCALE_FACTOR

    builder = skia.TextBlobBuilder()
    builder.allocRunPos(skia_font, glyph_ids, points)
    return builder.make()


def centered_baseline(font: skia.Font) -> float:
    """Baseline offset that puts the middle of ascent/descent on y = 0."""
    metrics = font.getMetrics()
    return -(metrics.fAscent + metrics.fDescent) / 2.0
