"""
Batch export orchestration.

Images are rendered strictly one after another with the selected strategy,
so the shared capture surface is never used by two renders at once.
"""

import io
import re
import time
import zipfile
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from typesetter.config import ExportOptions, OutputConfig
from typesetter.models import ImageRecord
from typesetter.rendering import Renderer, get_renderer
from utils.exceptions import ExportError
from utils.logging import log_message

ARCHIVE_NAME = OutputConfig().archive_name
ARCHIVE_FOLDER = OutputConfig().archive_folder

_EXTENSION_PATTERN = re.compile(r"\.[^/.]+$")
_UNSAFE_CHARS_PATTERN = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def output_stem(name: str) -> str:
    """File name without extension, reduced to characters safe in any archive."""
    stem = _EXTENSION_PATTERN.sub("", name.replace("\\", "/").rsplit("/", 1)[-1])
    stem = _UNSAFE_CHARS_PATTERN.sub("_", stem).strip()
    return stem or "image"


def single_export_filename(name: str) -> str:
    return f"typeset_{output_stem(name)}.png"


def export_one(
    record: ImageRecord,
    options: Optional[ExportOptions] = None,
    renderer: Optional[Renderer] = None,
    verbose: bool = False,
) -> bytes:
    """
    Renders a single image to PNG bytes.

    Raises:
        Any render failure, unchanged.
    """
    options = options or ExportOptions()
    renderer = renderer or get_renderer(options.export_method, verbose=verbose)
    return renderer.render(record, options)


def _build_archive(entries: List[Tuple[str, bytes]], folder: str) -> bytes:
    buffer = io.BytesIO()
    used = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for stem, data in entries:
            unique, suffix = stem, 2
            while unique in used:
                unique = f"{stem}_{suffix}"
                suffix += 1
            used.add(unique)
            archive.writestr(f"{folder}/{unique}.png", data)
    return buffer.getvalue()


def export_all(
    records: Sequence[ImageRecord],
    on_progress: Optional[Callable[[int, int], None]] = None,
    options: Optional[ExportOptions] = None,
    is_cancelled: Optional[Callable[[], bool]] = None,
    renderer: Optional[Renderer] = None,
    output: Optional[OutputConfig] = None,
    verbose: bool = False,
) -> Optional[bytes]:
    """
    Renders every image in order and packages the results as a ZIP archive.

    Args:
        records: Images to export, in order
        on_progress: Called with (current, total) before each render
        options: Export options; selects the render strategy
        is_cancelled: Polled before each image; never interrupts a render
        renderer: Strategy instance to use instead of the one options select;
            the caller keeps ownership and releases it
        output: Archive naming and encoding settings
        verbose: Whether to print detailed logs

    Returns:
        ZIP bytes with one PNG per successfully rendered image, or None when
        the export was cancelled

    Raises:
        ExportError: If no image could be rendered
    """
    options = options or ExportOptions()
    output = output or OutputConfig()
    owns_renderer = renderer is None
    if renderer is None:
        renderer = get_renderer(options.export_method, output=output, verbose=verbose)

    total = len(records)
    entries: List[Tuple[str, bytes]] = []
    failures = 0
    start_time = time.time()
    log_message(f"Starting export of {total} images...", always_print=True)

    try:
        for index, record in enumerate(records):
            if is_cancelled is not None and is_cancelled():
                log_message(
                    f"Export cancelled after {index} of {total} images", always_print=True
                )
                if on_progress:
                    on_progress(index, total)
                return None

            if on_progress:
                on_progress(index + 1, total)
            try:
                data = renderer.render(record, options)
            except Exception as e:
                failures += 1
                log_message(f"Error exporting {record.name}: {e}", always_print=True)
                continue
            entries.append((output_stem(record.name), data))
            log_message(f"Image {index + 1}/{total}: exported {record.name}", verbose=verbose)
    finally:
        if owns_renderer:
            renderer.release()

    if not entries:
        raise ExportError(f"Export failed: none of the {total} images could be rendered.")

    elapsed = time.time() - start_time
    log_message(
        f"Export complete: {len(entries)} of {total} images in {elapsed:.2f} seconds"
        + (f" ({failures} failed)" if failures else ""),
        always_print=True,
    )
    return _build_archive(entries, output.archive_folder)


def write_export(data: bytes, path: Union[str, Path]) -> Path:
    """Writes an export result to disk, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
