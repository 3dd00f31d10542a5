"""
Selection geometry.

Provides the canvas/image coordinate transform, the rectangle and polygon
selection primitives, and aspect-ratio normalisation. Request preparation
lives in ``layerfill.selection.processor``.
"""

from layerfill.selection.aspect_ratio import (
    SUPPORTED_RATIOS,
    AspectRatioAdjustment,
    calculate_aspect_ratio_adjustment,
    get_closest_supported_ratio,
)
from layerfill.selection.shapes import (
    PolygonSelection,
    RectangleSelection,
    Selection,
    extract_polygon_points,
    get_bounds_canvas,
    is_valid_polygon,
    selection_from_dict,
)
from layerfill.selection.transform import (
    ImageTransform,
    OutOfBoundsSelectionError,
    PolygonPoint,
    SelectionBounds,
    points_to_canvas_space,
    points_to_image_space,
    to_canvas_space,
    to_image_space,
)

__all__ = [
    "SUPPORTED_RATIOS",
    "AspectRatioAdjustment",
    "ImageTransform",
    "OutOfBoundsSelectionError",
    "PolygonPoint",
    "PolygonSelection",
    "RectangleSelection",
    "Selection",
    "SelectionBounds",
    "calculate_aspect_ratio_adjustment",
    "extract_polygon_points",
    "get_bounds_canvas",
    "get_closest_supported_ratio",
    "is_valid_polygon",
    "points_to_canvas_space",
    "points_to_image_space",
    "selection_from_dict",
    "to_canvas_space",
    "to_image_space",
]
