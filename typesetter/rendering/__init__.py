"""
Render strategies for the typesetting export engine.

This subpackage contains modules for:
- Bubble style resolution shared by every strategy
- Measured-layout rendering painted with Pillow
- Full-fidelity capture on a persistent Skia surface
"""

from typing import Optional

from typesetter.caching import FontResourceCache
from typesetter.config import ExportMethod, OutputConfig

from .base import Renderer, feather_passes, resolve_bubble_style, resolve_mask_style
from .capture import (CaptureRenderer, CaptureSurface, build_visual_tree,
                      destroy_capture_surface, get_capture_surface)
from .measured import MeasuredLayoutRenderer

RENDERERS = {
    ExportMethod.CANVAS: MeasuredLayoutRenderer,
    ExportMethod.SCREENSHOT: CaptureRenderer,
}


def get_renderer(
    method=ExportMethod.CANVAS,
    font_cache: Optional[FontResourceCache] = None,
    output: Optional[OutputConfig] = None,
    verbose: bool = False,
) -> Renderer:
    """Instantiates the render strategy registered for an export method."""
    return RENDERERS[ExportMethod(method)](font_cache=font_cache, output=output, verbose=verbose)


__all__ = [
    "RENDERERS",
    "get_renderer",
    "Renderer",
    "feather_passes",
    "resolve_bubble_style",
    "resolve_mask_style",
    "CaptureRenderer",
    "CaptureSurface",
    "build_visual_tree",
    "destroy_capture_surface",
    "get_capture_surface",
    "MeasuredLayoutRenderer",
]
