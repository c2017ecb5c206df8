"""
Immutable updates of image records driven by engine results.

Every function returns a new record (or None when a referenced region does
not exist) and never mutates its input, so callers can keep whole-record
snapshots for history.
"""

from dataclasses import replace
from typing import Callable, Iterable, Optional

from typesetter.image.color_sampler import detect_bubble_color
from typesetter.models import TRANSPARENT, Bubble, ImageRecord, ImageSource, MaskRegion, clamp
from utils.logging import log_message

MIN_FONT_SIZE = 0.5
MAX_FONT_SIZE = 5.0

ColorDetector = Callable[[ImageSource, float, float, float, float], str]


def overlaps(bubble: Bubble, mask: MaskRegion) -> bool:
    """
    Whether a bubble's center lies within a mask's half extents.

    This is a coarse center-point test, not a rectangle intersection, and it
    ignores bubble rotation.
    """
    return abs(bubble.x - mask.x) <= mask.width / 2 and abs(bubble.y - mask.y) <= mask.height / 2


def _clear_overlapping_backgrounds(bubbles: Iterable[Bubble], masks: Iterable[MaskRegion]):
    masks = list(masks)
    updated = []
    for bubble in bubbles:
        if any(overlaps(bubble, mask) for mask in masks):
            bubble = replace(bubble, background_color=TRANSPARENT, auto_detect_background=False)
        updated.append(bubble)
    return tuple(updated)


def scale_font_sizes(record: ImageRecord, factor: float) -> ImageRecord:
    """Scales every bubble's font size, clamped to [0.5, 5.0] and rounded to 2 decimals."""
    bubbles = tuple(
        replace(b, font_size=round(clamp(b.font_size * factor, MIN_FONT_SIZE, MAX_FONT_SIZE), 2))
        for b in record.bubbles
    )
    return record.with_changes(bubbles=bubbles)


def set_font_family(record: ImageRecord, font_family: str) -> ImageRecord:
    return record.with_changes(
        bubbles=tuple(replace(b, font_family=font_family) for b in record.bubbles)
    )


def mark_regions_cleaned(
    record: ImageRecord, region_ids: Iterable[str], cleaned_source: ImageSource
) -> ImageRecord:
    """
    Records a completed inpaint: the regions become cleaned, the new raster
    becomes the background, and bubbles over those regions lose their
    background shape so the cleaned art shows through.
    """
    ids = set(region_ids)
    regions = tuple(
        replace(m, is_cleaned=True) if m.id in ids else m for m in record.mask_regions
    )
    cleaned = [m for m in regions if m.id in ids]
    return record.with_changes(
        mask_regions=regions,
        cleaned_source=cleaned_source,
        bubbles=_clear_overlapping_backgrounds(record.bubbles, cleaned),
        inpainting_status="done",
    )


def fill_regions(
    record: ImageRecord, color: str, region_ids: Optional[Iterable[str]] = None
) -> ImageRecord:
    """Marks regions as manually filled with a flat color; all regions when no ids are given."""
    ids = None if region_ids is None else set(region_ids)
    regions = tuple(
        replace(m, method="fill", is_cleaned=True, fill_color=color)
        if ids is None or m.id in ids
        else m
        for m in record.mask_regions
    )
    filled = [m for m in regions if ids is None or m.id in ids]
    return record.with_changes(
        mask_regions=regions,
        bubbles=_clear_overlapping_backgrounds(record.bubbles, filled),
    )


def apply_region_restore(
    record: ImageRecord, region_id: str, restored_source: ImageSource
) -> Optional[ImageRecord]:
    """Stores a restored raster and marks its region uncleaned; None for an unknown region."""
    if record.find_region(region_id) is None:
        return None
    regions = tuple(
        replace(m, is_cleaned=False) if m.id == region_id else m for m in record.mask_regions
    )
    return record.with_changes(mask_regions=regions, cleaned_source=restored_source)


def apply_background_detection(
    record: ImageRecord,
    detector: Optional[ColorDetector] = None,
    verbose: bool = False,
) -> ImageRecord:
    """
    Samples a background color for every bubble that allows it.

    Bubbles with auto_detect_background explicitly False keep their color.
    Colors are sampled from the original, uncleaned source.
    """
    detector = detector or detect_bubble_color
    bubbles = []
    detected = 0
    for bubble in record.bubbles:
        if bubble.auto_detect_background is not False:
            color = detector(record.pristine_source, bubble.x, bubble.y, bubble.width, bubble.height)
            bubble = replace(bubble, background_color=color)
            detected += 1
        bubbles.append(bubble)
    log_message(f"Detected backgrounds for {detected} bubbles in {record.name}", verbose=verbose)
    return record.with_changes(bubbles=tuple(bubbles))
