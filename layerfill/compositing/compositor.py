"""
Layer Compositor.

Paints an ordered layer stack onto one BGRA raster and re-applies per-layer
feathering when a layer's feather radius changes.

Composite passes can be triggered far more often than they finish (every
layer edit schedules one). ``LayerCompositor`` keeps at most one pass in
flight per instance and aborts a pass whose inputs were invalidated by a
``reset()`` while it was running.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

import cv2
import numpy as np

from layerfill.compositing.blending import canvas_to_uint8, new_canvas, source_over
from layerfill.layers.models import Layer
from layerfill.layers.stack import LayerNotFoundError, LayerStack
from layerfill.masks.mask_ops import (
    apply_alpha_mask,
    feathered_polygon_mask,
    feathered_rectangle_mask,
    sharp_polygon_mask,
)
from layerfill.utils.cache import RasterCache
from layerfill.utils.imaging import (
    ImageDecodeError,
    decode_image_base64,
    encode_image_base64,
)

logger = logging.getLogger(__name__)


class StaleCompositeError(RuntimeError):
    """Raised inside a composite pass whose inputs were invalidated."""


def _decode(data: str, cache: RasterCache | None) -> np.ndarray:
    if cache is None:
        return decode_image_base64(data)
    return cache.get_or_decode(data, decode_image_base64)


def _layer_size(layer: Layer, image: np.ndarray) -> tuple[int, int]:
    """Target (width, height), defaulting to the raster's native size."""
    h, w = image.shape[:2]
    width = int(round(layer.width)) if layer.width else w
    height = int(round(layer.height)) if layer.height else h
    return max(1, width), max(1, height)


def _fit(image: np.ndarray, width: int, height: int) -> np.ndarray:
    if image.shape[:2] == (height, width):
        return image
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


def _render_layer(layer: Layer, cache: RasterCache | None) -> np.ndarray:
    """
    Decode a visible layer and apply its feathered polygon mask if any.

    Feathered layers are masked from their unmasked source so the mask is
    never applied on top of an already-feathered raster.
    """
    feathered = layer.has_polygon and layer.feather_radius > 0
    source = layer.image_data
    if feathered and layer.original_image_data:
        source = layer.original_image_data

    image = _decode(source, cache)
    width, height = _layer_size(layer, image)
    image = _fit(image, width, height)

    if feathered:
        mask = feathered_polygon_mask(
            width,
            height,
            layer.polygon_points or [],
            layer.feather_radius,
            layer.width,
            layer.height,
        )
        if mask is not None:
            image = apply_alpha_mask(image, mask)

    return image


def composite(
    layers: Iterable[Layer],
    canvas_width: int,
    canvas_height: int,
    cache: RasterCache | None = None,
    check: Callable[[], None] | None = None,
) -> np.ndarray:
    """
    Composite layers bottom to top onto a transparent canvas.

    Invisible layers are skipped without decoding. A layer whose raster
    cannot be decoded is logged and skipped; the rest still composite.

    Args:
        layers: Layers in any order; sorted by ``order`` here.
        canvas_width: Output width in pixels.
        canvas_height: Output height in pixels.
        cache: Optional decoded-raster cache.
        check: Called before each layer; may raise StaleCompositeError.

    Returns:
        BGRA image (canvas_height, canvas_width, 4) uint8.
    """
    canvas = new_canvas(canvas_width, canvas_height)

    for layer in sorted(layers, key=lambda item: item.order):
        if check is not None:
            check()
        if not layer.visible:
            continue

        try:
            image = _render_layer(layer, cache)
        except ImageDecodeError as e:
            logger.warning(f"Skipping layer {layer.id} ({layer.name}): {e}")
            continue

        x = int(round(layer.x or 0))
        y = int(round(layer.y or 0))
        source_over(canvas, image, x, y, layer.opacity / 100.0)

    return canvas_to_uint8(canvas)


def composite_to_base64(
    layers: Iterable[Layer],
    canvas_width: int,
    canvas_height: int,
    cache: RasterCache | None = None,
) -> str:
    """Composite layers and encode the result as PNG base64."""
    return encode_image_base64(composite(layers, canvas_width, canvas_height, cache))


def apply_feathering(layer: Layer, cache: RasterCache | None = None) -> str | None:
    """
    Recompute a layer's feathered raster from its clean source.

    Uses ``original_image_data`` when retained, otherwise ``image_data``.
    Lasso layers get the feathered polygon mask, all others the feathered
    rectangle mask.

    Returns:
        PNG base64 of the feathered raster, or None when the radius is 0
        (the caller shows the sharp-masked or unmasked source instead).

    Raises:
        ImageDecodeError: If the source raster cannot be decoded.
    """
    if layer.feather_radius <= 0:
        return None

    image = _decode(layer.original_image_data or layer.image_data, cache)
    width, height = _layer_size(layer, image)
    image = _fit(image, width, height)

    if layer.has_polygon:
        mask = feathered_polygon_mask(
            width,
            height,
            layer.polygon_points or [],
            layer.feather_radius,
            layer.width,
            layer.height,
        )
        if mask is None:
            return None
    else:
        mask = feathered_rectangle_mask(width, height, layer.feather_radius)

    return encode_image_base64(apply_alpha_mask(image, mask))


def apply_sharp_polygon_mask(
    layer: Layer, cache: RasterCache | None = None
) -> str | None:
    """
    Cut the lasso outline from a layer's unmasked source with a hard edge.

    Returns:
        PNG base64, or None when the layer has no polygon or no retained
        original.
    """
    if not layer.has_polygon or not layer.original_image_data:
        return None

    image = _decode(layer.original_image_data, cache)
    width, height = _layer_size(layer, image)
    image = _fit(image, width, height)

    mask = sharp_polygon_mask(
        width, height, layer.polygon_points or [], layer.width, layer.height
    )
    if mask is None:
        return None
    return encode_image_base64(apply_alpha_mask(image, mask))


def refeather_layer(
    stack: LayerStack, layer_id: str, cache: RasterCache | None = None
) -> str:
    """
    Refresh a layer's displayed raster after its feather radius changed.

    Falls back to the sharp lasso cutout, then to the unmasked original,
    whenever feathering is inapplicable or fails. A feathering failure
    never blocks the update.

    Returns:
        The image data written to the layer.
    """
    layer = stack.get_layer(layer_id)
    if layer is None:
        raise LayerNotFoundError(layer_id)

    result: str | None = None
    try:
        result = apply_feathering(layer, cache)
        if result is None:
            result = apply_sharp_polygon_mask(layer, cache)
    except (ImageDecodeError, cv2.error, ValueError) as e:
        logger.warning(f"Feathering failed for layer {layer_id}, using original: {e}")

    if result is None:
        result = layer.original_image_data or layer.image_data

    stack.update_layer(layer_id, image_data=result)
    return result


class LayerCompositor:
    """
    Guarded composite runner.

    At most one pass runs at a time: a trigger that arrives while a pass
    is in flight is dropped and returns None. ``reset()`` bumps a version
    counter; a running pass that sees the newer version aborts and returns
    None instead of publishing a stale raster. When a stack is attached,
    replacing its base image or loading a project resets automatically.

    Args:
        cache_size: Decoded-raster LRU size. Default: 64.
        stack: Optional layer stack whose resets invalidate running passes.

    Example:
        >>> compositor = LayerCompositor(stack=stack)
        >>> image = compositor.run(stack.get_layers_for_composite(), 800, 600)
        >>> if image is None:
        ...     pass  # Dropped or superseded; a later pass will publish
    """

    def __init__(
        self, cache_size: int = 64, stack: LayerStack | None = None
    ) -> None:
        self.cache = RasterCache(max_size=cache_size)
        self._lock = threading.Lock()
        self._in_flight = False
        self._version = 0

        self._stack_reset_version = 0
        self._unsubscribe: Callable[[], None] | None = None
        if stack is not None:
            self._stack_reset_version = stack.reset_version
            self._unsubscribe = stack.subscribe(self._on_stack_changed)

    def _on_stack_changed(self, stack: LayerStack) -> None:
        if stack.reset_version != self._stack_reset_version:
            self._stack_reset_version = stack.reset_version
            self.reset()

    def close(self) -> None:
        """Stop observing the attached stack."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def version(self) -> int:
        return self._version

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def reset(self) -> None:
        """Invalidate any running pass and drop cached rasters."""
        with self._lock:
            self._version += 1
        self.cache.clear()
        logger.debug(f"Compositor reset to version {self._version}")

    def _begin(self) -> int | None:
        with self._lock:
            if self._in_flight:
                return None
            self._in_flight = True
            return self._version

    def _end(self) -> None:
        with self._lock:
            self._in_flight = False

    def run(
        self,
        layers: Iterable[Layer],
        canvas_width: int,
        canvas_height: int,
    ) -> np.ndarray | None:
        """
        Composite unless a pass is already running.

        Returns:
            BGRA raster, or None when dropped or aborted as stale.
        """
        started = self._begin()
        if started is None:
            logger.debug("Composite already in flight, dropping trigger")
            return None

        def check() -> None:
            if self._version != started:
                raise StaleCompositeError(
                    f"Composite version {started} superseded by {self._version}"
                )

        try:
            result = composite(
                layers, canvas_width, canvas_height, cache=self.cache, check=check
            )
            check()
            return result
        except StaleCompositeError as e:
            logger.debug(f"Aborted stale composite: {e}")
            return None
        finally:
            self._end()

    def run_to_base64(
        self,
        layers: Iterable[Layer],
        canvas_width: int,
        canvas_height: int,
    ) -> str | None:
        result = self.run(layers, canvas_width, canvas_height)
        if result is None:
            return None
        return encode_image_base64(result)
