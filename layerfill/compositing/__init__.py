"""Layerfill compositing - Layer stack rendering and feathering."""

from layerfill.compositing.blending import canvas_to_uint8, new_canvas, source_over
from layerfill.compositing.compositor import (
    LayerCompositor,
    StaleCompositeError,
    apply_feathering,
    apply_sharp_polygon_mask,
    composite,
    composite_to_base64,
    refeather_layer,
)

__all__ = [
    "LayerCompositor",
    "StaleCompositeError",
    "apply_feathering",
    "apply_sharp_polygon_mask",
    "canvas_to_uint8",
    "composite",
    "composite_to_base64",
    "new_canvas",
    "refeather_layer",
    "source_over",
]
