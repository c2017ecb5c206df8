import base64
import binascii
import io
import math
import os
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageColor

from typesetter.models import ImageSource, Rect
from utils.exceptions import DecodeError, ImageProcessingError
from utils.logging import log_message

DATA_URL_PREFIX = "data:"


def _source_bytes(source: ImageSource) -> bytes:
    """Resolves a path, data URL or base64 payload to encoded image bytes."""
    if isinstance(source, bytes):
        return source
    if isinstance(source, Path):
        return source.read_bytes()
    if not isinstance(source, str) or not source:
        raise DecodeError(f"Unsupported image source type: {type(source).__name__}")

    if source.startswith(DATA_URL_PREFIX):
        header, _, payload = source.partition(",")
        if ";base64" not in header:
            raise DecodeError("Only base64 data URLs are supported")
        source = payload
    elif len(source) < 4096 and os.path.isfile(source):
        return Path(source).read_bytes()

    try:
        return base64.b64decode(source, validate=False)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Image payload is neither a file nor valid base64") from e


def load_image(source: ImageSource, mode: Optional[str] = "RGBA") -> Image.Image:
    """
    Decodes an image source into a fully loaded PIL image.

    Args:
        source: Filesystem path, raw encoded bytes, base64 text or data URL
        mode: Target mode, or None to keep the decoded mode

    Returns:
        PIL.Image: Decoded image

    Raises:
        DecodeError: If the source cannot be read or decoded
    """
    try:
        data = _source_bytes(source)
        image = Image.open(io.BytesIO(data))
        image.load()
    except DecodeError:
        raise
    except Exception as e:
        log_message(f"Image decode failed: {e}", always_print=True)
        raise DecodeError(f"Failed to load image: {e}") from e

    if mode and image.mode != mode:
        image = image.convert(mode)
    return image


def encode_image(
    image: Image.Image, image_format: str = "PNG", jpeg_quality: int = 90, png_compression: int = 6
) -> bytes:
    """
    Encodes an image to bytes.

    JPEG output is flattened onto white since it has no alpha channel.

    Raises:
        ImageProcessingError: If encoding fails
    """
    image_format = image_format.upper()
    save_options = {}
    if image_format in ("JPEG", "JPG"):
        image_format = "JPEG"
        if image.mode in ("RGBA", "LA"):
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[-1])
            image = background
        elif image.mode != "RGB":
            image = image.convert("RGB")
        save_options["quality"] = max(1, min(jpeg_quality, 100))
    elif image_format == "PNG":
        save_options["compress_level"] = max(0, min(png_compression, 9))

    buffer = io.BytesIO()
    try:
        image.save(buffer, format=image_format, **save_options)
    except Exception as e:
        log_message(f"Error encoding {image_format} image: {e}", always_print=True)
        raise ImageProcessingError(f"Failed to encode {image_format} image") from e
    return buffer.getvalue()


def parse_color(color: Optional[str], default: str = "#ffffff") -> Tuple[int, int, int, int]:
    """Parses a CSS-style color to RGBA, falling back to the default."""
    try:
        return ImageColor.getcolor(color or default, "RGBA")
    except ValueError:
        log_message(f"Unrecognized color '{color}', using {default}", always_print=True)
        return ImageColor.getcolor(default, "RGBA")


def rect_edges(rect: Rect, width: float, height: float) -> Tuple[float, float, float, float]:
    """Converts a percentage rect to (left, top, right, bottom) in pixels."""
    center_x = width * rect.x / 100.0
    center_y = height * rect.y / 100.0
    rect_w = width * rect.width / 100.0
    rect_h = height * rect.height / 100.0
    return (
        center_x - rect_w / 2.0,
        center_y - rect_h / 2.0,
        center_x + rect_w / 2.0,
        center_y + rect_h / 2.0,
    )


def pixel_box(rect: Rect, width: int, height: int) -> Tuple[int, int, int, int]:
    """
    Integer pixel box of a percentage rect: floor of the leading edges, ceil
    of the trailing edges, clamped to the image bounds.
    """
    left, top, right, bottom = rect_edges(rect, width, height)
    left = max(0, min(width, math.floor(left)))
    top = max(0, min(height, math.floor(top)))
    right = max(left, min(width, math.ceil(right)))
    bottom = max(top, min(height, math.ceil(bottom)))
    return left, top, right, bottom


def fit_to_size(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Resizes an image to the exact size when it differs."""
    if image.size == tuple(size):
        return image
    return image.resize(size, Image.Resampling.LANCZOS)
