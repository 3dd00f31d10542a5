"""
Layer blending functions.

Implements straight-alpha "source-over" painting of BGRA patches onto a
compositing canvas:

- source_over: Paint one patch at an integer offset, clipped to the canvas
- new_canvas / canvas_to_uint8: float32 [0, 1] working canvas conversions

The working canvas is float32 (H, W, 4) in [0, 1] with straight (not
premultiplied) alpha, matching what encoders expect on output.
"""

from __future__ import annotations

import numpy as np


def new_canvas(width: int, height: int) -> np.ndarray:
    """Fully transparent float32 BGRA canvas."""
    return np.zeros((height, width, 4), dtype=np.float32)


def canvas_to_uint8(canvas: np.ndarray) -> np.ndarray:
    """Convert a float32 [0, 1] canvas to uint8 BGRA."""
    return np.clip(np.rint(canvas * 255.0), 0, 255).astype(np.uint8)


def _clip_region(
    canvas_shape: tuple[int, ...], patch_shape: tuple[int, ...], x: int, y: int
) -> tuple[slice, slice, slice, slice] | None:
    """Overlapping (canvas rows, canvas cols, patch rows, patch cols) or None."""
    ch, cw = canvas_shape[:2]
    ph, pw = patch_shape[:2]

    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(cw, x + pw), min(ch, y + ph)
    if x1 <= x0 or y1 <= y0:
        return None

    return (
        slice(y0, y1),
        slice(x0, x1),
        slice(y0 - y, y1 - y),
        slice(x0 - x, x1 - x),
    )


def source_over(
    canvas: np.ndarray,
    image: np.ndarray,
    x: int = 0,
    y: int = 0,
    opacity: float = 1.0,
) -> np.ndarray:
    """
    Paint a BGRA patch over the canvas in place.

    Porter-Duff source-over with straight alpha. The patch alpha is scaled
    by ``opacity`` before blending. Parts of the patch outside the canvas
    are clipped.

    Args:
        canvas: Working canvas (H, W, 4) float32 [0, 1], modified in place.
        image: Patch (h, w, 4) uint8 BGRA.
        x: Canvas column of the patch's left edge (may be negative).
        y: Canvas row of the patch's top edge (may be negative).
        opacity: Global paint alpha in [0, 1].

    Returns:
        The canvas, for chaining.

    Example:
        >>> canvas = new_canvas(200, 100)
        >>> source_over(canvas, patch, x=10, y=20, opacity=0.5)
        >>> result = canvas_to_uint8(canvas)
    """
    opacity = float(np.clip(opacity, 0.0, 1.0))
    if opacity <= 0:
        return canvas

    region = _clip_region(canvas.shape, image.shape, x, y)
    if region is None:
        return canvas
    cy, cx, py, px = region

    src = image[py, px].astype(np.float32) / 255.0
    dst = canvas[cy, cx]

    src_a = src[..., 3:4] * opacity
    dst_a = dst[..., 3:4]
    out_a = src_a + dst_a * (1.0 - src_a)

    premult = src[..., :3] * src_a + dst[..., :3] * dst_a * (1.0 - src_a)
    out_rgb = np.divide(
        premult, out_a, out=np.zeros_like(premult), where=out_a > 0
    )

    canvas[cy, cx, :3] = out_rgb
    canvas[cy, cx, 3:4] = out_a
    return canvas
