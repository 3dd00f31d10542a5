"""
Mask Generation for inpainting and layer feathering.

All masks are single-channel uint8 rasters (H, W) sized exactly to the
processing footprint. For inpainting masks 255 marks the edit area and 0
the context to preserve. Masks used as alpha channels (sharp, feathered
and result masks) use 255 for "keep".

Feathered polygon masks are built by filling an inset copy of the polygon
and blurring it inside a zero-padded canvas, then cropping back. Without
the padding the blur would clip at the footprint edge and leave a hard
line exactly where softness was requested.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import cast

import cv2
import numpy as np

from layerfill.selection.shapes import is_valid_polygon, polygon_centroid
from layerfill.selection.transform import PolygonPoint, SelectionBounds

# Fixed-point bits used when rasterising polygons with sub-pixel vertices
SUBPIXEL_SHIFT = 4
MIN_INSET_RATIO = 0.1


def _fill_points(points: Sequence[PolygonPoint]) -> np.ndarray:
    """Convert vertices to the fixed-point int32 layout cv2.fillPoly expects."""
    pts = np.asarray(points, dtype=np.float64) * (1 << SUBPIXEL_SHIFT)
    return np.rint(pts).astype(np.int32).reshape(-1, 1, 2)


def _fill_polygon(
    mask: np.ndarray, points: Sequence[PolygonPoint], value: int = 255
) -> np.ndarray:
    cv2.fillPoly(
        mask,
        [_fill_points(points)],
        value,
        lineType=cv2.LINE_8,
        shift=SUBPIXEL_SHIFT,
    )
    return mask


def _scale_to_footprint(
    points: Sequence[PolygonPoint],
    width: int,
    height: int,
    layer_width: float | None,
    layer_height: float | None,
) -> list[PolygonPoint]:
    """Scale layer-relative vertices to the mask footprint."""
    scale_x = width / (layer_width or width)
    scale_y = height / (layer_height or height)
    return [PolygonPoint(p.x * scale_x, p.y * scale_y) for p in points]


def padded_blur(mask: np.ndarray, radius: float) -> np.ndarray:
    """
    Gaussian blur with symmetric zero padding of at least ``2 * radius``.

    Args:
        mask: Input mask (H, W) uint8.
        radius: Blur radius, used as the Gaussian sigma.

    Returns:
        Blurred mask cropped back to (H, W), uint8.
    """
    if radius <= 0:
        return mask.copy()

    pad = max(1, math.ceil(radius * 2))
    padded = cv2.copyMakeBorder(
        mask, pad, pad, pad, pad, cv2.BORDER_CONSTANT, value=0
    ).astype(np.float32)

    # Kernel radius equals the padding so only zeros are ever sampled past it
    ksize = 2 * pad + 1
    blurred = cv2.GaussianBlur(padded, (ksize, ksize), sigmaX=radius, sigmaY=radius)

    h, w = mask.shape[:2]
    cropped = blurred[pad : pad + h, pad : pad + w]
    return cast(np.ndarray, np.clip(np.rint(cropped), 0, 255).astype(np.uint8))


def full_mask(width: int, height: int) -> np.ndarray:
    """Mask where the whole region is the edit target (all 255)."""
    return np.full((height, width), 255, dtype=np.uint8)


def rectangle_inpaint_mask(
    width: int, height: int, inner_bounds: SelectionBounds
) -> np.ndarray:
    """
    Context mask with a white sub-rectangle at the selection position.

    Args:
        width: Processing region width.
        height: Processing region height.
        inner_bounds: Selection bounds relative to the processing region.
    """
    mask = np.zeros((height, width), dtype=np.uint8)
    x0 = max(0, inner_bounds.x)
    y0 = max(0, inner_bounds.y)
    x1 = min(width, inner_bounds.right)
    y1 = min(height, inner_bounds.bottom)
    if x1 > x0 and y1 > y0:
        mask[y0:y1, x0:x1] = 255
    return mask


def polygon_inpaint_mask(
    width: int, height: int, points: Sequence[PolygonPoint]
) -> np.ndarray:
    """Context mask with the polygon interior filled 255."""
    mask = np.zeros((height, width), dtype=np.uint8)
    if is_valid_polygon(points):
        _fill_polygon(mask, points)
    return mask


def inpainting_mask(
    width: int,
    height: int,
    polygon_points: Sequence[PolygonPoint] | None = None,
    inner_bounds: SelectionBounds | None = None,
) -> np.ndarray:
    """
    Build the mask sent to the generation service.

    Polygon points take precedence; otherwise a sub-rectangle is embedded
    when the selection sits inside a larger context region. With neither,
    the whole region is edited.

    Args:
        width: Processing region width.
        height: Processing region height.
        polygon_points: Lasso vertices relative to the processing region.
        inner_bounds: Rectangle selection relative to the processing region.

    Returns:
        Mask (H, W) uint8 with 255 = regenerate, 0 = preserve.
    """
    if is_valid_polygon(polygon_points):
        return polygon_inpaint_mask(width, height, cast(Sequence, polygon_points))
    if inner_bounds is not None:
        return rectangle_inpaint_mask(width, height, inner_bounds)
    return full_mask(width, height)


def sharp_polygon_mask(
    width: int,
    height: int,
    points: Sequence[PolygonPoint],
    layer_width: float | None = None,
    layer_height: float | None = None,
) -> np.ndarray | None:
    """
    Hard-edged alpha mask of a lasso cutout.

    Args:
        width: Mask width.
        height: Mask height.
        points: Vertices relative to the layer origin.
        layer_width: Layer width the vertices refer to. Default: ``width``.
        layer_height: Layer height the vertices refer to. Default: ``height``.

    Returns:
        Mask (H, W) uint8, or None for fewer than three points.
    """
    if not is_valid_polygon(points):
        return None

    scaled = _scale_to_footprint(points, width, height, layer_width, layer_height)
    return _fill_polygon(np.zeros((height, width), dtype=np.uint8), scaled)


def feather_inset_ratio(feather_radius: float, width: int, height: int) -> float:
    """Shrink factor of the hard-edge core for a given feather radius."""
    avg_dimension = (width + height) / 2
    return max(MIN_INSET_RATIO, 1 - (feather_radius * 2 / avg_dimension))


def feathered_polygon_mask(
    width: int,
    height: int,
    points: Sequence[PolygonPoint],
    feather_radius: float,
    layer_width: float | None = None,
    layer_height: float | None = None,
) -> np.ndarray | None:
    """
    Soft-edged alpha mask of a lasso cutout.

    The polygon is shrunk toward its centroid by ``feather_inset_ratio``,
    filled, blurred with sigma ``feather_radius`` inside a zero-padded
    canvas and cropped back to the footprint.

    Returns:
        Mask (H, W) uint8, or None when ``feather_radius <= 0`` or the
        polygon has fewer than three points.
    """
    if not is_valid_polygon(points) or feather_radius <= 0:
        return None

    scaled = _scale_to_footprint(points, width, height, layer_width, layer_height)
    cx, cy = polygon_centroid(scaled)
    inset = feather_inset_ratio(feather_radius, width, height)

    inset_points = [
        PolygonPoint(cx + (p.x - cx) * inset, cy + (p.y - cy) * inset)
        for p in scaled
    ]

    core = _fill_polygon(np.zeros((height, width), dtype=np.uint8), inset_points)
    return padded_blur(core, feather_radius)


def feathered_rectangle_mask(
    width: int, height: int, feather_radius: float
) -> np.ndarray:
    """
    Opaque mask with linear alpha ramps along all four edges.

    Each edge erases opacity from fully transparent at the border to
    untouched at ``feather_radius`` pixels inward. Overlapping ramps at
    corners multiply.
    """
    if feather_radius <= 0:
        return full_mask(width, height)

    xs = np.arange(width, dtype=np.float64) + 0.5
    ys = np.arange(height, dtype=np.float64) + 0.5

    alpha_x = np.clip(xs / feather_radius, 0, 1) * np.clip(
        (width - xs) / feather_radius, 0, 1
    )
    alpha_y = np.clip(ys / feather_radius, 0, 1) * np.clip(
        (height - ys) / feather_radius, 0, 1
    )

    alpha = np.outer(alpha_y, alpha_x) * 255
    return cast(np.ndarray, np.clip(np.rint(alpha), 0, 255).astype(np.uint8))


def result_polygon_mask(
    width: int,
    height: int,
    points: Sequence[PolygonPoint],
    blur_radius: float = 2.0,
) -> np.ndarray | None:
    """
    Mask restoring the lasso outline on a rectangular generated patch.

    Built for every lasso selection regardless of the layer feather
    radius: the full polygon is filled and given a light padded blur.

    Returns:
        Mask (H, W) uint8 with 255 = keep, or None for an invalid polygon.
    """
    if not is_valid_polygon(points):
        return None

    mask = _fill_polygon(np.zeros((height, width), dtype=np.uint8), points)
    return padded_blur(mask, blur_radius)


def apply_alpha_mask(image: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """
    Keep image pixels only where the mask is opaque ("destination-in").

    Args:
        image: BGRA image (H, W, 4) uint8.
        mask: Alpha mask uint8. Resized to the image if sizes differ.

    Returns:
        New BGRA image with alpha multiplied by ``mask / 255``.
    """
    h, w = image.shape[:2]
    if mask.shape[:2] != (h, w):
        mask = cv2.resize(mask, (w, h), interpolation=cv2.INTER_LINEAR)

    result = image.copy()
    alpha = result[..., 3].astype(np.float32) * (mask.astype(np.float32) / 255.0)
    result[..., 3] = np.clip(np.rint(alpha), 0, 255).astype(np.uint8)
    return result


def mask_coverage(mask: np.ndarray) -> float:
    """Average opacity of a mask in [0, 1]."""
    if mask.size == 0:
        return 0.0
    return float(mask.astype(np.float64).mean() / 255.0)
