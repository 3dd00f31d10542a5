"""
Mask generation for inpainting regions and layer feathering.

Masks:
    - full_mask: whole region is the edit target
    - inpainting_mask: context mask with polygon or sub-rectangle edit area
    - sharp_polygon_mask: hard-edged lasso cutout
    - feathered_polygon_mask: inset + padded blur lasso cutout
    - feathered_rectangle_mask: linear edge ramps for rectangular patches
    - result_polygon_mask: lasso outline restored on generated patches
"""

from layerfill.masks.mask_ops import (
    apply_alpha_mask,
    feather_inset_ratio,
    feathered_polygon_mask,
    feathered_rectangle_mask,
    full_mask,
    inpainting_mask,
    mask_coverage,
    padded_blur,
    polygon_inpaint_mask,
    rectangle_inpaint_mask,
    result_polygon_mask,
    sharp_polygon_mask,
)

__all__ = [
    "apply_alpha_mask",
    "feather_inset_ratio",
    "feathered_polygon_mask",
    "feathered_rectangle_mask",
    "full_mask",
    "inpainting_mask",
    "mask_coverage",
    "padded_blur",
    "polygon_inpaint_mask",
    "rectangle_inpaint_mask",
    "result_polygon_mask",
    "sharp_polygon_mask",
]
