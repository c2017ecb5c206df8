from typing import Optional

from typesetter.config import MASK_SHAPES, ExportOptions
from typesetter.models import STAGE_STATUSES, ImageRecord
from utils.exceptions import ValidationError


def _validate_mask_style(
    shape: Optional[str],
    corner_radius: Optional[float],
    feather: Optional[float],
    owner: str,
) -> None:
    if shape is not None and shape not in MASK_SHAPES:
        raise ValidationError(
            f"{owner}: mask shape must be one of {', '.join(MASK_SHAPES)}, got '{shape}'."
        )
    if corner_radius is not None and not (0 <= float(corner_radius) <= 50):
        raise ValidationError(f"{owner}: mask corner radius must be between 0 and 50.")
    if feather is not None and not (0 <= float(feather) <= 100):
        raise ValidationError(f"{owner}: mask feather must be between 0 and 100.")


def validate_export_options(options: ExportOptions) -> ExportOptions:
    """
    Validates export options, raising ValidationError on invalid values.

    Args:
        options (ExportOptions): Options consumed from the editor.

    Returns:
        ExportOptions: The same options, for chaining.

    Raises:
        ValidationError: If a shape is unknown or a radius/feather is out of range.
    """
    _validate_mask_style(
        options.default_mask_shape,
        options.default_mask_corner_radius,
        options.default_mask_feather,
        "Export options",
    )
    return options


def validate_image_record(record: ImageRecord) -> ImageRecord:
    """
    Validates an image record before export.

    Raises:
        ValidationError: If dimensions are not positive, the record has no
                         source, a stage status is unknown, or a bubble or
                         mask has invalid geometry/style.
    """
    if not (isinstance(record.width, int) and record.width > 0):
        raise ValidationError(f"Image '{record.name}': width must be a positive integer.")
    if not (isinstance(record.height, int) and record.height > 0):
        raise ValidationError(f"Image '{record.name}': height must be a positive integer.")
    if not record.source:
        raise ValidationError(f"Image '{record.name}': no image source.")
    for label, status in (
        ("status", record.status),
        ("detection status", record.detection_status),
        ("inpainting status", record.inpainting_status),
    ):
        if status not in STAGE_STATUSES:
            raise ValidationError(
                f"Image '{record.name}': {label} must be one of "
                f"{', '.join(STAGE_STATUSES)}, got '{status}'."
            )

    seen_ids = set()
    for bubble in record.bubbles:
        owner = f"Image '{record.name}', bubble '{bubble.id}'"
        if bubble.id in seen_ids:
            raise ValidationError(f"{owner}: duplicate bubble id.")
        seen_ids.add(bubble.id)
        if bubble.font_size <= 0:
            raise ValidationError(f"{owner}: font size must be positive.")
        if bubble.line_height is not None and bubble.line_height <= 0:
            raise ValidationError(f"{owner}: line height must be positive.")
        _validate_mask_style(
            bubble.mask_shape, bubble.mask_corner_radius, bubble.mask_feather, owner
        )

    for region in record.mask_regions:
        if region.width < 0 or region.height < 0:
            raise ValidationError(
                f"Image '{record.name}', mask '{region.id}': size must not be negative."
            )
        if region.method not in (None, "inpaint", "fill"):
            raise ValidationError(
                f"Image '{record.name}', mask '{region.id}': unknown method '{region.method}'."
            )
    return record
