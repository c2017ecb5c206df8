import argparse
import sys
from pathlib import Path

from typesetter.caching import get_font_cache
from typesetter.config import MASK_SHAPES, ExportMethod, FontConfig, OutputConfig, TypesetConfig
from typesetter.export import export_all, export_one, single_export_filename, write_export
from typesetter.project import load_project
from typesetter.rendering import get_renderer
from typesetter.state import apply_background_detection
from typesetter.validation import validate_export_options, validate_image_record
from utils.exceptions import ValidationError
from utils.logging import log_message


def _select_image(records, key):
    for record in records:
        if record.id == key or record.name == key:
            return record
    return None


def main():
    parser = argparse.ArgumentParser(
        description="Export typeset manga pages from a project file"
    )
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to the project JSON file",
    )
    parser.add_argument(
        "--output",
        type=str,
        required=False,
        help="Path to save the PNG (with --image) or the ZIP archive",
    )
    parser.add_argument(
        "--image",
        type=str,
        default=None,
        help="Export only the image with this id or file name",
    )
    parser.add_argument(
        "--method",
        type=str,
        choices=[m.value for m in ExportMethod],
        default=None,
        help="Render strategy: 'canvas' (measured layout) or 'screenshot' (full-fidelity capture)",
    )
    parser.add_argument(
        "--mask-shape",
        type=str,
        choices=list(MASK_SHAPES),
        default=None,
        help="Default bubble background shape",
    )
    parser.add_argument(
        "--corner-radius",
        type=float,
        default=None,
        help="Default corner radius for rounded shapes, in percent of the bubble size (0-50)",
    )
    parser.add_argument(
        "--feather",
        type=float,
        default=None,
        help="Default feather intensity for bubble backgrounds (0-100)",
    )
    parser.add_argument(
        "--detect-backgrounds",
        action="store_true",
        help="Sample bubble background colors from the original page before export",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.set_defaults(verbose=False, detect_backgrounds=False)

    args = parser.parse_args()

    try:
        records, options = load_project(args.input, verbose=args.verbose)
    except (FileNotFoundError, ValidationError) as e:
        log_message(f"Error: {e}", always_print=True)
        sys.exit(1)

    # --- Command-line overrides ---
    if args.method is not None:
        options.export_method = ExportMethod(args.method)
    if args.mask_shape is not None:
        options.default_mask_shape = args.mask_shape
    if args.corner_radius is not None:
        options.default_mask_corner_radius = args.corner_radius
    if args.feather is not None:
        options.default_mask_feather = args.feather

    config = TypesetConfig(
        export=options, fonts=FontConfig(), output=OutputConfig(), verbose=args.verbose
    )

    try:
        validate_export_options(config.export)
        for record in records:
            validate_image_record(record)
    except ValidationError as e:
        parser.error(str(e))

    if args.image is not None:
        record = _select_image(records, args.image)
        if record is None:
            log_message(f"Error: No image '{args.image}' in {args.input}.", always_print=True)
            sys.exit(1)
        records = [record]

    if not records:
        log_message(f"Error: Project '{args.input}' has no images.", always_print=True)
        sys.exit(1)

    if args.detect_backgrounds:
        records = [apply_background_detection(r, verbose=args.verbose) for r in records]

    font_cache = get_font_cache(config.fonts, verbose=config.verbose)
    renderer = get_renderer(
        config.export.export_method,
        font_cache=font_cache,
        output=config.output,
        verbose=config.verbose,
    )

    # --- Execute ---
    try:
        if args.image is not None:
            output_path = Path(args.output or Path("./output") / single_export_filename(records[0].name))
            log_message(f"Exporting {records[0].name}...", always_print=True)
            data = export_one(records[0], config.export, renderer=renderer, verbose=config.verbose)
        else:
            output_path = Path(args.output or Path("./output") / config.output.archive_name)

            def report(current, total):
                log_message(f"Rendering image {current}/{total}", verbose=config.verbose)

            data = export_all(
                records,
                on_progress=report,
                options=config.export,
                renderer=renderer,
                output=config.output,
                verbose=config.verbose,
            )
        write_export(data, output_path)
        log_message(f"Export complete. Result saved to {output_path}", always_print=True)
    except Exception as e:
        log_message(f"Error exporting {args.input}: {e}", always_print=True)
        sys.exit(1)
    finally:
        renderer.release()


if __name__ == "__main__":
    main()
