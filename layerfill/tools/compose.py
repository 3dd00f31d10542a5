"""CLI for flattening project files and building inpainting masks."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

import cv2

from layerfill.export import EXPORT_FORMATS, export_image
from layerfill.layers.stack import LayerStack
from layerfill.project import ProjectFileError, load_project
from layerfill.selection.processor import process_selection
from layerfill.selection.shapes import selection_from_dict
from layerfill.selection.transform import ImageTransform
from layerfill.utils.cache import RasterCache
from layerfill.utils.config import LayerfillSettings, print_config_summary
from layerfill.utils.imaging import decode_image_base64, decode_image_bytes


def _load_settings(config: Path | None) -> LayerfillSettings:
    if config is None:
        return LayerfillSettings()
    return LayerfillSettings.from_yaml(config)


def _read_selection(value: str) -> dict:
    """Selection JSON given inline or as a path to a JSON file."""
    path = Path(value)
    if path.suffix.lower() == ".json" and path.exists():
        return json.loads(path.read_text())
    return json.loads(value)


def _export_project(args: argparse.Namespace) -> Path:
    project_path = Path(args.project)
    if not project_path.exists():
        raise FileNotFoundError(f"Project file not found: {project_path}")

    settings = _load_settings(args.config)
    fmt = args.format or settings.export_format
    quality = args.quality if args.quality is not None else settings.export_quality

    stack = LayerStack()
    project = load_project(project_path, stack)
    if project.base_image is None:
        raise ProjectFileError(f"Project has no base image: {project_path}")

    output = export_image(
        stack.get_layers_for_composite(),
        project.base_image,
        args.output,
        fmt=fmt,
        quality=quality,
        cache=RasterCache(settings.decode_cache_size),
    )
    print(f"Exported {len(stack)} layers to {output}")
    return output


def _write_mask(args: argparse.Namespace) -> Path | None:
    image_path = Path(args.image)
    if not image_path.exists():
        raise FileNotFoundError(f"Image not found: {image_path}")

    settings = _load_settings(args.config)
    image = decode_image_bytes(image_path.read_bytes())
    selection = selection_from_dict(_read_selection(args.selection))
    transform = ImageTransform(
        offset_x=args.offset_x,
        offset_y=args.offset_y,
        scale_x=args.scale,
        scale_y=args.scale,
    )

    processed = process_selection(
        selection,
        image,
        transform,
        use_full_image_context=args.full_context or settings.use_full_image_context,
        result_mask_blur=settings.result_mask_blur,
    )
    if processed is None:
        print("No usable selection (zero area or fewer than 3 polygon points)")
        return None

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(output), decode_image_base64(processed.mask)[..., 0])

    if args.crop_output:
        crop = decode_image_base64(processed.cropped_image)
        cv2.imwrite(str(args.crop_output), crop)
    if args.result_mask_output and processed.polygon_mask is not None:
        cv2.imwrite(
            str(args.result_mask_output),
            decode_image_base64(processed.polygon_mask)[..., 0],
        )

    b = processed.bounds
    print(f"Wrote {b.width}x{b.height} mask at ({b.x}, {b.y}) to {output}")
    return output


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Layerfill project export and mask utilities",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="YAML settings file"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Debug logging and a settings summary",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    export_parser = subparsers.add_parser(
        "export", help="Flatten a project file into one image"
    )
    export_parser.add_argument(
        "--project", type=Path, required=True, help="Project file"
    )
    export_parser.add_argument(
        "--output", type=Path, required=True, help="Output image path"
    )
    export_parser.add_argument(
        "--format",
        choices=list(EXPORT_FORMATS) + ["jpg"],
        default=None,
        help="Output format (default from settings)",
    )
    export_parser.add_argument(
        "--quality", type=int, default=None, help="JPEG/WEBP quality 0-100"
    )

    mask_parser = subparsers.add_parser(
        "mask", help="Write the inpainting mask for a selection"
    )
    mask_parser.add_argument(
        "--image", type=Path, required=True, help="Source image"
    )
    mask_parser.add_argument(
        "--selection",
        type=str,
        required=True,
        help="Selection JSON (inline or .json file), canvas coordinates",
    )
    mask_parser.add_argument(
        "--output", type=Path, required=True, help="Output mask PNG"
    )
    mask_parser.add_argument("--offset-x", type=float, default=0.0)
    mask_parser.add_argument("--offset-y", type=float, default=0.0)
    mask_parser.add_argument(
        "--scale", type=float, default=1.0, help="Canvas pixels per image pixel"
    )
    mask_parser.add_argument(
        "--full-context",
        action="store_true",
        help="Use the whole image as context for rectangle selections",
    )
    mask_parser.add_argument(
        "--crop-output", type=Path, default=None, help="Also write the cropped region"
    )
    mask_parser.add_argument(
        "--result-mask-output",
        type=Path,
        default=None,
        help="Also write the lasso result mask",
    )

    return parser


def main() -> None:
    """CLI entrypoint."""
    parser = _build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.verbose:
        print_config_summary(_load_settings(args.config).to_dict())

    if args.command == "export":
        _export_project(args)
        return

    if args.command == "mask":
        _write_mask(args)
        return

    parser.error(f"Unknown command: {args.command}")


if __name__ == "__main__":
    main()
