"""
Image processing modules for the typesetting export engine.

This subpackage contains modules for:
- Decoding, encoding and geometry helpers
- Dominant background color sampling
- Mask previews, inpaint masks and region restore
"""

from .color_sampler import detect_bubble_color
from .image_utils import encode_image, load_image, parse_color, pixel_box
from .regions import (composite_region, crop_region, generate_annotated_preview,
                      generate_inpaint_mask, generate_masked_image,
                      restore_region)

__all__ = [
    "detect_bubble_color",
    "encode_image",
    "load_image",
    "parse_color",
    "pixel_box",
    "composite_region",
    "crop_region",
    "generate_annotated_preview",
    "generate_inpaint_mask",
    "generate_masked_image",
    "restore_region",
]
