"""
Image export.

Writes the flattened composition, or a single layer's unprocessed source,
to an image file.
"""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from layerfill.compositing.compositor import composite
from layerfill.layers.models import Layer, LayerKind
from layerfill.project import BaseImage
from layerfill.utils.cache import RasterCache
from layerfill.utils.imaging import (
    decode_image_base64,
    encode_image,
    strip_data_url,
)

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("png", "jpeg", "webp")
DEFAULT_QUALITY = 92

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def normalize_format(fmt: str) -> str:
    """Lower-case export format with "jpg" folded into "jpeg"."""
    fmt = fmt.lower().lstrip(".")
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    return fmt


def layer_export_name(layer: Layer) -> str:
    """File stem for a single-layer export."""
    if layer.kind == LayerKind.BASE:
        return "background"
    return re.sub(r"[^a-zA-Z0-9]", "_", layer.name).lower()


def export_image(
    layers: Iterable[Layer],
    base_image: BaseImage,
    path: str | Path,
    fmt: str = "png",
    quality: int = DEFAULT_QUALITY,
    cache: RasterCache | None = None,
) -> Path:
    """
    Flatten the composition onto the base image and write it.

    The base image is always drawn first at full size, then every visible
    non-base layer in order. Layers that fail to decode are skipped.

    Args:
        layers: Layer stack.
        base_image: Source image; sets the output size.
        path: Destination file.
        fmt: png, jpeg (or jpg) or webp.
        quality: JPEG/WEBP quality 0-100.
        cache: Optional decoded-raster cache.

    Returns:
        Path written.
    """
    fmt = normalize_format(fmt)
    path = Path(path)

    base_layer = Layer(
        id="export_base",
        name="Background",
        kind=LayerKind.BASE,
        image_data=base_image.data,
        order=-1,
        x=0,
        y=0,
        width=base_image.width,
        height=base_image.height,
    )
    to_draw = [base_layer] + [layer for layer in layers if not layer.is_base]

    result = composite(to_draw, base_image.width, base_image.height, cache)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_image(result, fmt, quality))

    logger.info(f"Exported {base_image.width}x{base_image.height} {fmt} to {path}")
    return path


def export_layer_image(
    layer: Layer,
    base_image: BaseImage | None,
    path: str | Path,
) -> Path:
    """
    Write one layer's unprocessed source as PNG.

    The base layer exports the loaded base image. Other layers export
    ``original_image_data`` (the raw generation output) when retained,
    else ``image_data``.

    Raises:
        ValueError: If no image data is available for the layer.
    """
    path = Path(path)

    if layer.kind == LayerKind.BASE:
        if base_image is None:
            raise ValueError("Base image not available")
        data = base_image.data
    else:
        data = layer.original_image_data or layer.image_data

    if not data:
        raise ValueError("No image data available for this layer")

    raw = base64.b64decode(strip_data_url(data))
    if not raw.startswith(_PNG_SIGNATURE):
        raw = encode_image(decode_image_base64(data), "png")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(raw)
    logger.info(f"Exported layer {layer.id} to {path}")
    return path
