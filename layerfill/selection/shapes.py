"""
Selection primitives drawn on the canvas.

A selection is a tagged variant: either an axis-aligned rectangle or a
closed free-form (lasso) polygon, both in canvas coordinates. Extraction
functions match on the variant explicitly.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

import numpy as np

from layerfill.selection.transform import PolygonPoint, SelectionBounds

MIN_POLYGON_POINTS = 3


@dataclass(frozen=True)
class RectangleSelection:
    """
    Axis-aligned rectangle selection in canvas space.

    Width and height may be negative when the rectangle was dragged
    up or left; the bounding rect is normalised.
    """

    x: float
    y: float
    width: float
    height: float

    def bounding_rect(self) -> tuple[float, float, float, float]:
        """Return (left, top, width, height) with non-negative size."""
        left = min(self.x, self.x + self.width)
        top = min(self.y, self.y + self.height)
        return (left, top, abs(self.width), abs(self.height))

    def expanded_to(self, width: float, height: float) -> RectangleSelection:
        """
        Resize to ``width x height`` keeping the centre fixed.

        Used after aspect-ratio normalisation, which only ever grows a
        selection, so the original area stays inside the new one.
        """
        left, top, cur_w, cur_h = self.bounding_rect()
        return RectangleSelection(
            x=left - (width - cur_w) / 2,
            y=top - (height - cur_h) / 2,
            width=width,
            height=height,
        )


@dataclass(frozen=True)
class PolygonSelection:
    """
    Closed free-form selection in canvas space.

    The first point is implicitly connected to the last.
    """

    points: tuple[PolygonPoint, ...] = field(default_factory=tuple)

    @classmethod
    def from_points(cls, points: Iterable[Any]) -> PolygonSelection:
        """Build from ``(x, y)`` pairs or ``{"x", "y"}`` mappings."""
        return cls(tuple(PolygonPoint.from_any(p) for p in points))

    def bounding_rect(self) -> tuple[float, float, float, float]:
        if not self.points:
            return (0.0, 0.0, 0.0, 0.0)
        xs = [p.x for p in self.points]
        ys = [p.y for p in self.points]
        return (min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def expanded_to(self, width: float, height: float) -> PolygonSelection:
        """Stretch the outline about its bounding-box centre."""
        left, top, cur_w, cur_h = self.bounding_rect()
        if cur_w <= 0 or cur_h <= 0:
            return self
        cx, cy = left + cur_w / 2, top + cur_h / 2
        sx, sy = width / cur_w, height / cur_h
        return PolygonSelection(
            tuple(
                PolygonPoint(cx + (p.x - cx) * sx, cy + (p.y - cy) * sy)
                for p in self.points
            )
        )

    def is_valid(self) -> bool:
        """Check if polygon has enough points to be filled."""
        return is_valid_polygon(self.points)


Selection = Union[RectangleSelection, PolygonSelection]


def get_bounds_canvas(selection: Selection | None) -> SelectionBounds | None:
    """
    Smallest canvas-space rectangle covering the selection.

    Left/top are floored, width/height are ceiled.

    Returns:
        Bounds, or None for a missing or zero-area selection. None means
        "no selection processed"; it is not an error.
    """
    if selection is None:
        return None

    left, top, width, height = selection.bounding_rect()
    bounds = SelectionBounds(
        x=math.floor(left),
        y=math.floor(top),
        width=math.ceil(width),
        height=math.ceil(height),
    )
    if bounds.is_degenerate:
        return None
    return bounds


def extract_polygon_points(selection: Selection | None) -> list[PolygonPoint] | None:
    """
    Canvas-space vertex list of a polygon selection.

    Returns:
        Vertex list for polygons, None for rectangles or no selection.
        Callers must still reject lists shorter than three points.
    """
    if isinstance(selection, PolygonSelection):
        return list(selection.points)
    return None


def is_valid_polygon(points: Sequence[PolygonPoint] | None) -> bool:
    """A polygon needs at least three vertices to enclose an area."""
    return points is not None and len(points) >= MIN_POLYGON_POINTS


def polygon_centroid(points: Sequence[PolygonPoint]) -> tuple[float, float]:
    """Vertex average of a polygon (not the area centroid)."""
    if not points:
        return (0.0, 0.0)
    pts = np.asarray(points, dtype=np.float64)
    return (float(pts[:, 0].mean()), float(pts[:, 1].mean()))


def translate_points(
    points: Iterable[PolygonPoint], dx: float, dy: float
) -> list[PolygonPoint]:
    """Shift every vertex by (dx, dy)."""
    return [PolygonPoint(p.x + dx, p.y + dy) for p in points]


def scale_points(
    points: Iterable[PolygonPoint], sx: float, sy: float | None = None
) -> list[PolygonPoint]:
    """Scale every vertex about the origin."""
    if sy is None:
        sy = sx
    return [PolygonPoint(p.x * sx, p.y * sy) for p in points]


def selection_from_dict(data: dict[str, Any]) -> Selection:
    """
    Parse a selection from its JSON form.

    Accepts ``{"type": "rectangle", "x", "y", "width", "height"}`` or
    ``{"type": "polygon", "points": [{"x", "y"}, ...]}``.
    """
    kind = data.get("type", "rectangle")
    if kind == "rectangle":
        return RectangleSelection(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )
    if kind == "polygon":
        return PolygonSelection.from_points(data.get("points") or [])
    raise ValueError(f"Unknown selection type: {kind}")
