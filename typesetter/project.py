import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from typesetter.config import ExportOptions
from typesetter.models import ImageRecord, ImageSource
from utils.exceptions import ValidationError
from utils.logging import log_message

SOURCE_FIELDS = ("source", "original_source", "cleaned_source")


def _resolve_source(source: Optional[ImageSource], base_dir: Path) -> Optional[ImageSource]:
    """Turns a project-relative file path into an absolute one; embedded data is kept."""
    if not isinstance(source, str) or source.startswith("data:") or len(source) >= 4096:
        return source
    candidate = Path(source)
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    if candidate.is_file():
        return str(candidate.resolve())
    return source


def load_project(path: Union[str, Path], verbose: bool = False):
    """
    Loads image records (and optional export options) from a project file.

    The file holds either a list of image records or an object with an
    "images" list and an optional "options" object, in the editor's camelCase
    form.

    Returns:
        tuple[list[ImageRecord], ExportOptions]

    Raises:
        FileNotFoundError: If the project file does not exist.
        ValidationError: If the file is not valid JSON or lacks required fields.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Project file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Project file is not valid JSON: {e}") from e

    if isinstance(data, list):
        images, options_data = data, None
    elif isinstance(data, dict):
        images, options_data = data.get("images") or [], data.get("options")
    else:
        raise ValidationError("Project file must hold a list of images or an object with 'images'.")

    base_dir = path.parent.resolve()
    records: List[ImageRecord] = []
    for index, entry in enumerate(images):
        try:
            record = ImageRecord.from_dict(entry)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Image entry {index} is invalid: {e}") from e
        if record.source is None:
            raise ValidationError(f"Image entry {index} has no image source.")
        record = record.with_changes(
            **{name: _resolve_source(getattr(record, name), base_dir) for name in SOURCE_FIELDS}
        )
        records.append(record)

    log_message(f"Loaded {len(records)} images from {path.name}", verbose=verbose)
    return records, ExportOptions.from_dict(options_data)


def save_project(
    records: Sequence[ImageRecord],
    path: Union[str, Path],
    options: Optional[ExportOptions] = None,
) -> None:
    """Writes records (and options when given) back to a project file."""
    data: Dict[str, Any] = {"images": [record.to_dict() for record in records]}
    if options is not None:
        data["options"] = {
            "defaultMaskShape": options.default_mask_shape,
            "defaultMaskCornerRadius": options.default_mask_corner_radius,
            "defaultMaskFeather": options.default_mask_feather,
            "exportMethod": options.export_method.value,
        }
    Path(path).write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
