"""
Manga Typesetter Package

This package contains the compositing and export engine for typeset manga pages.
It renders styled text bubbles and mask fills over page images and exports
them as PNG files or a ZIP archive.
"""

from .caching import FontResourceCache, get_font_cache, reset_font_cache
from .config import ExportMethod, ExportOptions, TypesetConfig
from .export import ARCHIVE_NAME, export_all, export_one, single_export_filename, write_export
from .models import Bubble, ImageRecord, MaskRegion
from .project import load_project, save_project
from .rendering import destroy_capture_surface, get_renderer

__version__ = "1.0.0"
__version_info__ = (1, 0, 0)
__description__ = "Compositing and export engine for typeset manga pages"
__all__ = [
    'FontResourceCache',
    'get_font_cache',
    'reset_font_cache',
    'ExportMethod',
    'ExportOptions',
    'TypesetConfig',
    'ARCHIVE_NAME',
    'export_all',
    'export_one',
    'single_export_filename',
    'write_export',
    'Bubble',
    'ImageRecord',
    'MaskRegion',
    'load_project',
    'save_project',
    'destroy_capture_surface',
    'get_renderer',
]
