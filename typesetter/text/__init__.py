"""
Text processing and layout modules for the typesetting export engine.

This subpackage contains modules for:
- Font family catalog and glyph orientation rules
- Vertical and horizontal layout with measured centering
- Skia and HarfBuzz drawing helpers
"""

from .drawing_engine import (build_line_blob, load_font_resources,
                             skia_surface_to_pil)
from .layout_engine import TextLayout, layout_text
from .text_processing import (FONT_FAMILIES, glyph_rotation,
                              needs_vertical_rotation, resolve_font)

__all__ = [
    "build_line_blob",
    "load_font_resources",
    "skia_surface_to_pil",
    "TextLayout",
    "layout_text",
    "FONT_FAMILIES",
    "glyph_rotation",
    "needs_vertical_rotation",
    "resolve_font",
]
