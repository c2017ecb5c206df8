"""
Tests for the doughnut color sampler.

Tests cover:
- Uniform opaque images
- Transparent and unreadable sources
- Ring sampling that ignores the region's own content
- Downscaling of large images
"""

import io

import numpy as np
from PIL import Image, ImageDraw

from typesetter.image.color_sampler import detect_bubble_color


def _encode(image):
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def test_uniform_color_is_returned_exactly(png_bytes):
    source = png_bytes((120, 90), (32, 64, 96, 255))
    assert detect_bubble_color(source, 50, 50, 30, 30) == "#204060"


def test_transparent_region_falls_back_to_white(png_bytes):
    source = png_bytes((120, 90), (10, 10, 10, 0))
    assert detect_bubble_color(source, 50, 50, 30, 30) == "#ffffff"


def test_unreadable_source_falls_back_to_white():
    assert detect_bubble_color(b"not an image", 50, 50, 10, 10) == "#ffffff"


def test_region_content_does_not_vote():
    image = Image.new("RGBA", (200, 200), (240, 240, 240, 255))
    # A dark block filling exactly the sampled region
    ImageDraw.Draw(image).rectangle([60, 60, 139, 139], fill=(0, 0, 0, 255))
    assert detect_bubble_color(_encode(image), 50, 50, 40, 40) == "#f0f0f0"


def test_quantization_rounds_to_nearest_step(png_bytes):
    # 23 -> 16, 25 -> 32, 250 clamps to 255 after rounding up to 256
    source = png_bytes((64, 64), (23, 25, 250, 255))
    assert detect_bubble_color(source, 50, 50, 20, 20) == "#1020ff"


def test_large_image_is_sampled_after_downscaling():
    pixels = np.full((1500, 2400, 4), (196, 16, 48, 255), dtype=np.uint8)
    source = _encode(Image.fromarray(pixels, "RGBA"))
    assert detect_bubble_color(source, 50, 50, 10, 10) == "#c01030"
