"""
Selection processing for generation requests.

Turns a canvas selection into the payload the generation service needs:
an image-space processing region, the cropped source pixels, the
inpainting mask and, for lasso selections, the mask that restores the
drawn outline on the returned rectangular patch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import cast

import cv2
import numpy as np

from layerfill.masks.mask_ops import (
    apply_alpha_mask,
    full_mask,
    inpainting_mask,
    result_polygon_mask,
)
from layerfill.selection.shapes import (
    Selection,
    extract_polygon_points,
    get_bounds_canvas,
    is_valid_polygon,
    translate_points,
)
from layerfill.selection.transform import (
    ImageTransform,
    PolygonPoint,
    SelectionBounds,
    points_to_image_space,
    to_image_space,
)
from layerfill.utils.imaging import decode_image_base64, encode_image_base64

logger = logging.getLogger(__name__)


@dataclass
class ProcessedSelection:
    """
    Selection prepared for the generation service.

    Attributes:
        bounds: Processing region in image space. The generated patch is
            placed here as a new layer.
        cropped_image: PNG base64 of the source pixels inside ``bounds``.
        mask: PNG base64 inpainting mask (255 = regenerate).
        polygon_mask: PNG base64 result mask for lasso selections, else None.
        relative_polygon_points: Lasso vertices relative to ``bounds``.
        inner_bounds: Rectangle selection relative to ``bounds`` when it is
            embedded in a larger context region.
    """

    bounds: SelectionBounds
    cropped_image: str
    mask: str
    polygon_mask: str | None = None
    relative_polygon_points: list[PolygonPoint] | None = None
    inner_bounds: SelectionBounds | None = None

    @property
    def is_polygon(self) -> bool:
        return self.relative_polygon_points is not None


def crop_image_to_bounds(image: np.ndarray, bounds: SelectionBounds) -> np.ndarray:
    """
    Copy the pixels inside ``bounds``.

    Args:
        image: Source image (H, W, C).
        bounds: Image-space bounds, already clamped to the image.

    Returns:
        Cropped copy (bounds.height, bounds.width, C).
    """
    return image[bounds.y : bounds.bottom, bounds.x : bounds.right].copy()


def process_selection(
    selection: Selection | None,
    image: np.ndarray,
    transform: ImageTransform,
    use_full_image_context: bool = False,
    result_mask_blur: float = 2.0,
) -> ProcessedSelection | None:
    """
    Prepare a canvas selection for an inpainting request.

    Args:
        selection: Rectangle or polygon selection in canvas space.
        image: Source image (H, W, 4) BGRA, usually the current composite.
        transform: Image placement in the canvas.
        use_full_image_context: Send the whole image as context for a
            rectangle selection, marking only the selection as editable.
        result_mask_blur: Edge blur radius of the lasso result mask.

    Returns:
        ProcessedSelection, or None when there is no usable selection
        (missing, zero-area, or a polygon with fewer than three points).

    Raises:
        OutOfBoundsSelectionError: If the selection lies outside the image.
    """
    canvas_bounds = get_bounds_canvas(selection)
    if canvas_bounds is None:
        logger.info("No selection to process")
        return None

    polygon = extract_polygon_points(selection)
    if polygon is not None and not is_valid_polygon(polygon):
        logger.info(f"Ignoring polygon selection with {len(polygon)} points")
        return None

    image_height, image_width = image.shape[:2]
    image_bounds = to_image_space(canvas_bounds, transform, image_width, image_height)
    logger.debug(f"Canvas bounds {canvas_bounds} -> image bounds {image_bounds}")

    relative_points: list[PolygonPoint] | None = None
    polygon_mask: str | None = None
    inner_bounds: SelectionBounds | None = None

    if polygon is not None:
        # Lasso selections keep their own bounds, with or without full context
        region = image_bounds
        relative_points = translate_points(
            points_to_image_space(polygon, transform), -region.x, -region.y
        )
        mask = inpainting_mask(
            region.width, region.height, polygon_points=relative_points
        )
        result_mask = cast(
            np.ndarray,
            result_polygon_mask(
                region.width, region.height, relative_points, result_mask_blur
            ),
        )
        polygon_mask = encode_image_base64(result_mask)
    elif use_full_image_context:
        region = SelectionBounds(0, 0, image_width, image_height)
        inner_bounds = image_bounds
        mask = inpainting_mask(region.width, region.height, inner_bounds=inner_bounds)
    else:
        region = image_bounds
        mask = full_mask(region.width, region.height)

    cropped = crop_image_to_bounds(image, region)

    return ProcessedSelection(
        bounds=region,
        cropped_image=encode_image_base64(cropped),
        mask=encode_image_base64(mask),
        polygon_mask=polygon_mask,
        relative_polygon_points=relative_points,
        inner_bounds=inner_bounds,
    )


def apply_polygon_mask_to_result(
    patch_base64: str,
    polygon_mask_base64: str,
    width: int,
    height: int,
) -> str:
    """
    Clip a generated rectangular patch to the original lasso outline.

    The patch is resized to the selection footprint, then kept only where
    the mask is opaque.

    Raises:
        ImageDecodeError: If either payload cannot be decoded.
    """
    patch = decode_image_base64(patch_base64)
    if patch.shape[:2] != (height, width):
        patch = cv2.resize(patch, (width, height), interpolation=cv2.INTER_LANCZOS4)

    mask = decode_image_base64(polygon_mask_base64)[..., 0]
    return encode_image_base64(apply_alpha_mask(patch, mask))
