import math

import cv2
import numpy as np

from typesetter.image.image_utils import load_image
from typesetter.models import ImageSource
from utils.logging import log_message

DEFAULT_COLOR = "#ffffff"
MAX_SAMPLE_SIDE = 1024
SAMPLE_STRIDE = 4
QUANT_STEP = 16
MIN_ALPHA = 128
MIN_RING_PX = 5.0
RING_RATIO = 0.2


def detect_bubble_color(
    image_source: ImageSource,
    x: float,
    y: float,
    width: float,
    height: float,
    verbose: bool = False,
) -> str:
    """
    Estimates the dominant color around a region using doughnut sampling.

    Pixels inside the region itself are ignored so the bubble's text does not
    vote; only a ring around it is sampled. Colors are quantized to steps of
    16 and the most frequent bucket wins, the first one seen on ties.

    Args:
        image_source: Image to sample
        x, y: Region center as a percentage of image width/height
        width, height: Region size as a percentage of image width/height
        verbose: Whether to print detailed logs

    Returns:
        str: Hex color such as "#f0f0f0"; white on any failure
    """
    try:
        image = load_image(image_source, mode="RGBA")
    except Exception as e:
        log_message(f"Color detection skipped, image unreadable: {e}", always_print=True)
        return DEFAULT_COLOR

    pixels = np.asarray(image)
    img_h, img_w = pixels.shape[:2]
    if img_w == 0 or img_h == 0:
        return DEFAULT_COLOR

    if img_w > MAX_SAMPLE_SIDE or img_h > MAX_SAMPLE_SIDE:
        scale = MAX_SAMPLE_SIDE / max(img_w, img_h)
        img_w = max(1, round(img_w * scale))
        img_h = max(1, round(img_h * scale))
        pixels = cv2.resize(pixels, (img_w, img_h), interpolation=cv2.INTER_AREA)

    inner_w = img_w * width / 100.0
    inner_h = img_h * height / 100.0
    inner_left = img_w * x / 100.0 - inner_w / 2.0
    inner_top = img_h * y / 100.0 - inner_h / 2.0
    inner_right = inner_left + inner_w
    inner_bottom = inner_top + inner_h

    pad_x = max(MIN_RING_PX, inner_w * RING_RATIO)
    pad_y = max(MIN_RING_PX, inner_h * RING_RATIO)
    start_x = max(0, math.floor(inner_left - pad_x))
    start_y = max(0, math.floor(inner_top - pad_y))
    end_x = min(img_w, math.ceil(inner_right + pad_x))
    end_y = min(img_h, math.ceil(inner_bottom + pad_y))
    if end_x <= start_x or end_y <= start_y:
        return DEFAULT_COLOR

    sampled = pixels[start_y:end_y:SAMPLE_STRIDE, start_x:end_x:SAMPLE_STRIDE]
    xs = np.arange(start_x, end_x, SAMPLE_STRIDE)
    ys = np.arange(start_y, end_y, SAMPLE_STRIDE)
    grid_x, grid_y = np.meshgrid(xs, ys)

    inside = (
        (grid_x >= inner_left)
        & (grid_x < inner_right)
        & (grid_y >= inner_top)
        & (grid_y < inner_bottom)
    )
    keep = ~inside & (sampled[..., 3] >= MIN_ALPHA)
    if not keep.any():
        log_message("Color detection found no opaque ring pixels", verbose=verbose)
        return DEFAULT_COLOR

    rgb = sampled[..., :3][keep].astype(np.int32)
    quantized = np.minimum(np.floor(rgb / QUANT_STEP + 0.5).astype(np.int32) * QUANT_STEP, 255)
    keys = (quantized[:, 0] << 16) | (quantized[:, 1] << 8) | quantized[:, 2]

    # Row-major order of `keys` is the scan order, so the smallest first index
    # among the top counts is the first-seen color.
    unique_keys, first_index, counts = np.unique(keys, return_index=True, return_counts=True)
    best = max(range(len(unique_keys)), key=lambda i: (counts[i], -first_index[i]))
    color = f"#{int(unique_keys[best]):06x}"
    log_message(
        f"Detected background {color} from {int(keep.sum())} samples", verbose=verbose
    )
    return color
