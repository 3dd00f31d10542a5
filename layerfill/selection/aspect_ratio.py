"""
Aspect Ratio Normalisation for generation requests.

When reference images are attached, the generation service only accepts
patches at a fixed set of aspect ratios. A selection is snapped to the
nearest supported ratio by expanding one axis; it is never shrunk, so no
user-selected content is cropped away.
"""

from __future__ import annotations

from dataclasses import dataclass

# Supported (name, width, height) ratios, widest first
SUPPORTED_RATIOS: tuple[tuple[str, int, int], ...] = (
    ("21:9", 21, 9),
    ("16:9", 16, 9),
    ("5:4", 5, 4),
    ("4:3", 4, 3),
    ("3:2", 3, 2),
    ("1:1", 1, 1),
    ("4:5", 4, 5),
    ("3:4", 3, 4),
    ("2:3", 2, 3),
    ("9:16", 9, 16),
)

DEFAULT_TOLERANCE = 0.01


@dataclass(frozen=True)
class AspectRatioAdjustment:
    """
    Result of snapping a selection size to a supported ratio.

    Attributes:
        original_width: Width before adjustment.
        original_height: Height before adjustment.
        adjusted_width: Width after expansion (>= original_width).
        adjusted_height: Height after expansion (>= original_height).
        original_ratio: Display string of the input ratio, e.g. "3.00:1".
        closest_ratio: Name of the nearest supported ratio, e.g. "3:2".
        needs_adjustment: False when already within tolerance.
    """

    original_width: int
    original_height: int
    adjusted_width: int
    adjusted_height: int
    original_ratio: str
    closest_ratio: str
    needs_adjustment: bool

    @property
    def width_diff(self) -> int:
        return self.adjusted_width - self.original_width

    @property
    def height_diff(self) -> int:
        return self.adjusted_height - self.original_height


def _closest_ratio(ratio: float) -> tuple[str, float, float]:
    """Return (name, value, difference) of the nearest supported ratio."""
    best_name, best_w, best_h = SUPPORTED_RATIOS[0]
    best_value = best_w / best_h
    best_diff = abs(ratio - best_value)

    for name, w, h in SUPPORTED_RATIOS[1:]:
        value = w / h
        diff = abs(ratio - value)
        if diff < best_diff:
            best_name, best_value, best_diff = name, value, diff

    return best_name, best_value, best_diff


def format_ratio(ratio: float) -> str:
    """Format a ratio as "W:H" when it matches a supported ratio, else "R.RR:1"."""
    for name, w, h in SUPPORTED_RATIOS:
        if abs(ratio - w / h) < DEFAULT_TOLERANCE:
            return name
    return f"{ratio:.2f}:1"


def get_closest_supported_ratio(width: int, height: int) -> str:
    """Name of the supported ratio closest to ``width / height``."""
    if height <= 0 or width <= 0:
        raise ValueError(f"Dimensions must be positive, got {width}x{height}")
    name, _, _ = _closest_ratio(width / height)
    return name


def calculate_aspect_ratio_adjustment(
    width: int,
    height: int,
    tolerance: float = DEFAULT_TOLERANCE,
) -> AspectRatioAdjustment:
    """
    Compute the expansion that snaps ``width x height`` to a supported ratio.

    If the target ratio is wider than the current one, width grows to
    ``round(height * target)``; otherwise height grows to
    ``round(width / target)``.

    Args:
        width: Selection width (> 0).
        height: Selection height (> 0).
        tolerance: Maximum ratio difference treated as already matching.

    Returns:
        AspectRatioAdjustment describing the change.

    Example:
        >>> adj = calculate_aspect_ratio_adjustment(160, 100)
        >>> adj.closest_ratio, adj.adjusted_width, adj.adjusted_height
        ('3:2', 160, 107)
    """
    if height <= 0 or width <= 0:
        raise ValueError(f"Dimensions must be positive, got {width}x{height}")

    current = width / height
    name, target, diff = _closest_ratio(current)

    if diff <= tolerance:
        return AspectRatioAdjustment(
            original_width=width,
            original_height=height,
            adjusted_width=width,
            adjusted_height=height,
            original_ratio=format_ratio(current),
            closest_ratio=name,
            needs_adjustment=False,
        )

    if target > current:
        adjusted_width = round(height * target)
        adjusted_height = height
    else:
        adjusted_width = width
        adjusted_height = round(width / target)

    return AspectRatioAdjustment(
        original_width=width,
        original_height=height,
        adjusted_width=adjusted_width,
        adjusted_height=adjusted_height,
        original_ratio=format_ratio(current),
        closest_ratio=name,
        needs_adjustment=True,
    )
