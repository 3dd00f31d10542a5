"""
Coordinate Transform between canvas and image space.

The source image is displayed inside the canvas viewport at an origin
offset and a uniform scale. Selections are drawn in canvas space and must
be mapped back to source-image pixels before any crop or mask is built.

Bounds use floor at the near corner and ceil at the far corner, so a
partially covered boundary pixel is always included in the region.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


class OutOfBoundsSelectionError(ValueError):
    """Raised when a selection maps entirely outside the image."""


class PolygonPoint(NamedTuple):
    """Single polygon vertex."""

    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_any(cls, value: Any) -> PolygonPoint:
        """Build from a ``{"x", "y"}`` mapping or an ``(x, y)`` pair."""
        if isinstance(value, Mapping):
            return cls(float(value["x"]), float(value["y"]))
        x, y = value
        return cls(float(x), float(y))


@dataclass(frozen=True)
class ImageTransform:
    """
    Placement of the source image inside the canvas viewport.

    Attributes:
        offset_x: Canvas x of the image's left edge.
        offset_y: Canvas y of the image's top edge.
        scale_x: Canvas pixels per image pixel, horizontally.
        scale_y: Canvas pixels per image pixel, vertically.
    """

    offset_x: float = 0.0
    offset_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0

    def __post_init__(self) -> None:
        if not (self.scale_x > 0 and self.scale_y > 0):
            raise ValueError(
                "Transform scale must be positive, "
                f"got ({self.scale_x}, {self.scale_y})"
            )

    def to_dict(self) -> dict[str, float]:
        return {
            "offsetX": self.offset_x,
            "offsetY": self.offset_y,
            "scaleX": self.scale_x,
            "scaleY": self.scale_y,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ImageTransform:
        return cls(
            offset_x=float(data.get("offsetX", 0.0)),
            offset_y=float(data.get("offsetY", 0.0)),
            scale_x=float(data.get("scaleX", 1.0)),
            scale_y=float(data.get("scaleY", 1.0)),
        )


@dataclass(frozen=True)
class SelectionBounds:
    """
    Axis-aligned integer rectangle in canvas or image space.

    Call sites track which space a bounds value lives in.
    """

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Bounds size must be non-negative, got {self.width}x{self.height}"
            )

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_degenerate(self) -> bool:
        """True when the bounds cover no pixels."""
        return self.width == 0 or self.height == 0

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SelectionBounds:
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            width=int(data["width"]),
            height=int(data["height"]),
        )


def to_image_space(
    canvas_bounds: SelectionBounds,
    transform: ImageTransform,
    image_width: int,
    image_height: int,
) -> SelectionBounds:
    """
    Map canvas-space bounds to clamped image-space bounds.

    Args:
        canvas_bounds: Selection bounds in canvas space.
        transform: Current image placement in the canvas.
        image_width: Source image width in pixels.
        image_height: Source image height in pixels.

    Returns:
        Image-space bounds with ``x, y`` in ``[0, dim - 1]`` and the far
        corner in ``[0, dim]``.

    Raises:
        OutOfBoundsSelectionError: If the selection does not overlap the
            image, so clamping would collapse it.

    Example:
        >>> to_image_space(SelectionBounds(10, 20, 50, 50),
        ...                ImageTransform(0, 0, 2, 2), 200, 150)
        SelectionBounds(x=5, y=10, width=25, height=25)
    """
    x0 = math.floor((canvas_bounds.x - transform.offset_x) / transform.scale_x)
    y0 = math.floor((canvas_bounds.y - transform.offset_y) / transform.scale_y)
    x1 = math.ceil((canvas_bounds.right - transform.offset_x) / transform.scale_x)
    y1 = math.ceil((canvas_bounds.bottom - transform.offset_y) / transform.scale_y)

    if x0 >= image_width or y0 >= image_height or x1 <= 0 or y1 <= 0:
        logger.error(
            f"Selection {canvas_bounds} is outside image bounds "
            f"({image_width}x{image_height}) under {transform}"
        )
        raise OutOfBoundsSelectionError("Selection is outside image bounds")

    x0 = max(0, min(x0, image_width - 1))
    y0 = max(0, min(y0, image_height - 1))
    x1 = max(0, min(x1, image_width))
    y1 = max(0, min(y1, image_height))

    width = x1 - x0
    height = y1 - y0
    if width <= 0 or height <= 0:
        logger.error(f"Selection {canvas_bounds} collapsed to {width}x{height}")
        raise OutOfBoundsSelectionError("Selection is outside image bounds")

    return SelectionBounds(x0, y0, width, height)


def to_canvas_space(
    image_bounds: SelectionBounds,
    transform: ImageTransform,
) -> SelectionBounds:
    """
    Map image-space bounds forward to canvas space.

    The result covers every canvas pixel touched by the image region.
    """
    x0 = math.floor(transform.offset_x + image_bounds.x * transform.scale_x)
    y0 = math.floor(transform.offset_y + image_bounds.y * transform.scale_y)
    x1 = math.ceil(transform.offset_x + image_bounds.right * transform.scale_x)
    y1 = math.ceil(transform.offset_y + image_bounds.bottom * transform.scale_y)
    return SelectionBounds(x0, y0, max(0, x1 - x0), max(0, y1 - y0))


def points_to_image_space(
    points: Iterable[PolygonPoint],
    transform: ImageTransform,
) -> list[PolygonPoint]:
    """
    Apply the inverse transform to each vertex.

    No clamping is done here; masks clip to their own footprint.
    """
    return [
        PolygonPoint(
            (p.x - transform.offset_x) / transform.scale_x,
            (p.y - transform.offset_y) / transform.scale_y,
        )
        for p in points
    ]


def points_to_canvas_space(
    points: Iterable[PolygonPoint],
    transform: ImageTransform,
) -> list[PolygonPoint]:
    """Apply the forward transform to each vertex."""
    return [
        PolygonPoint(
            transform.offset_x + p.x * transform.scale_x,
            transform.offset_y + p.y * transform.scale_y,
        )
        for p in points
    ]
