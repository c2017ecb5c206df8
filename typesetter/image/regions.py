"""
Raster derivations of mask geometry: previews, inpaint masks and region
restores, plus the crop/composite pair used to hand a rectangle to an
external process and paste the result back at the same offset.
"""

from typing import Optional

from PIL import Image, ImageDraw

from typesetter.config import OutputConfig
from typesetter.image.image_utils import (encode_image, fit_to_size, load_image,
                                          pixel_box, rect_edges)
from typesetter.models import ImageRecord, Rect
from utils.exceptions import ValidationError
from utils.logging import log_message

OUTLINE_COLOR = (255, 0, 0, 255)
OUTLINE_WIDTH_RATIO = 0.004


def _record_size(record: ImageRecord):
    return int(record.width), int(record.height)


def generate_annotated_preview(
    record: ImageRecord, output: Optional[OutputConfig] = None
) -> bytes:
    """Draws the original image with a red outline around every mask (JPEG)."""
    output = output or OutputConfig()
    image = fit_to_size(load_image(record.pristine_source), _record_size(record))
    draw = ImageDraw.Draw(image)
    line_width = max(1, round(max(image.size) * OUTLINE_WIDTH_RATIO))

    for region in record.mask_regions:
        left, top, right, bottom = rect_edges(region.rect, *image.size)
        draw.rectangle(
            [round(left), round(top), round(right), round(bottom)],
            outline=OUTLINE_COLOR,
            width=line_width,
        )

    return encode_image(image, "JPEG", jpeg_quality=output.jpeg_quality)


def generate_masked_image(
    record: ImageRecord, output: Optional[OutputConfig] = None
) -> bytes:
    """
    Keeps only the content inside mask rectangles, everything else white.

    With no masks the full source is returned unchanged in content.
    """
    output = output or OutputConfig()
    source = fit_to_size(load_image(record.pristine_source), _record_size(record))
    if not record.mask_regions:
        return encode_image(source, "JPEG", jpeg_quality=output.jpeg_quality)

    canvas = Image.new("RGBA", source.size, (255, 255, 255, 255))
    for region in record.mask_regions:
        box = pixel_box(region.rect, *source.size)
        if box[2] > box[0] and box[3] > box[1]:
            canvas.paste(source.crop(box), box[:2])

    return encode_image(canvas, "JPEG", jpeg_quality=output.jpeg_quality)


def generate_inpaint_mask(
    record: ImageRecord,
    region_id: Optional[str] = None,
    only_inpaint_method: bool = False,
    output: Optional[OutputConfig] = None,
) -> Optional[bytes]:
    """
    Builds the binary mask sent to the inpainting service.

    The mask is black (keep) at the image's native size with white (remove)
    rectangles. Which rectangles are whitened depends on the filter: a single
    region, every region using the inpaint method, or every region.

    Args:
        record: Image whose masks are rasterized
        region_id: Only whiten this region
        only_inpaint_method: Only whiten regions with method "inpaint"
        output: Encoding settings

    Returns:
        PNG bytes, or None if region_id does not exist

    Raises:
        ValidationError: If both filters are given
    """
    if region_id is not None and only_inpaint_method:
        raise ValidationError("region_id and only_inpaint_method are mutually exclusive")
    output = output or OutputConfig()

    if region_id is not None:
        region = record.find_region(region_id)
        if region is None:
            log_message(f"Inpaint mask: region {region_id} not found", always_print=True)
            return None
        regions = [region]
    elif only_inpaint_method:
        regions = [m for m in record.mask_regions if m.method == "inpaint"]
    else:
        regions = list(record.mask_regions)

    size = _record_size(record)
    mask = Image.new("L", size, 0)
    draw = ImageDraw.Draw(mask)
    for region in regions:
        left, top, right, bottom = (round(v) for v in rect_edges(region.rect, *size))
        left, top = max(0, left), max(0, top)
        right, bottom = min(size[0], right), min(size[1], bottom)
        if right > left and bottom > top:
            # PIL rectangles include the far edge
            draw.rectangle([left, top, right - 1, bottom - 1], fill=255)

    return encode_image(mask, "PNG", png_compression=output.png_compression)


def restore_region(
    record: ImageRecord, region_id: str, output: Optional[OutputConfig] = None
) -> Optional[bytes]:
    """
    Reverts one rectangle of the cleaned image back to the original pixels.

    Returns:
        PNG bytes of the restored image, or None if region_id does not exist
    """
    region = record.find_region(region_id)
    if region is None:
        log_message(f"Restore: region {region_id} not found", always_print=True)
        return None
    output = output or OutputConfig()

    size = _record_size(record)
    base = fit_to_size(load_image(record.cleaned_source or record.source), size)
    original = fit_to_size(load_image(record.pristine_source), size)
    box = pixel_box(region.rect, *size)
    if box[2] > box[0] and box[3] > box[1]:
        base.paste(original.crop(box), box[:2])

    return encode_image(base, "PNG", png_compression=output.png_compression)


def crop_region(image: Image.Image, rect: Rect) -> Image.Image:
    """Cuts the pixel box of a percentage rect out of an image."""
    box = pixel_box(rect, *image.size)
    return image.crop(box)


def composite_region(full: Image.Image, sub: Image.Image, rect: Rect) -> Image.Image:
    """
    Pastes a processed sub-image back at the rect it was cropped from.

    The sub-image is resized to the box if an external process changed its
    size. Pixels outside the box are left untouched.
    """
    box = pixel_box(rect, *full.size)
    box_w, box_h = box[2] - box[0], box[3] - box[1]
    result = full.copy()
    if box_w == 0 or box_h == 0:
        return result

    if sub.mode != result.mode:
        sub = sub.convert(result.mode)
    result.paste(fit_to_size(sub, (box_w, box_h)), box[:2])
    return result
