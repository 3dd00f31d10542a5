"""
Generation pipeline.

Runs one inpainting round trip against an external generation service:

1. Process selection: snap to a supported aspect ratio when reference
   images are attached, composite the visible layers, build the crop and
   the inpainting mask.
2. Generate: hand the request to the service.
3. Apply result: clip a lasso result to the drawn outline and commit it
   as a new edit layer.

The service itself (transport, credentials) lives outside this package;
anything implementing ``GenerationService`` can be plugged in.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

from layerfill.compositing.compositor import composite, refeather_layer
from layerfill.layers.models import Layer, LayerKind
from layerfill.layers.stack import LayerStack
from layerfill.selection.aspect_ratio import (
    AspectRatioAdjustment,
    calculate_aspect_ratio_adjustment,
)
from layerfill.selection.processor import (
    apply_polygon_mask_to_result,
    process_selection,
)
from layerfill.selection.shapes import Selection, get_bounds_canvas
from layerfill.selection.transform import ImageTransform, OutOfBoundsSelectionError
from layerfill.utils.cache import RasterCache
from layerfill.utils.config import LayerfillSettings
from layerfill.utils.imaging import ImageDecodeError, decode_image_base64

logger = logging.getLogger(__name__)

GENERATION_STAGES = (
    "Processing selection",
    "Generating with AI",
    "Applying result",
)

LAYER_NAME_LENGTH = 25


class GenerationError(RuntimeError):
    """Raised when a generation round trip cannot produce a layer."""


@dataclass(frozen=True)
class GenerationRequest:
    """Payload sent to the generation service. Images are PNG base64."""

    model: str
    prompt: str
    image: str
    mask: str
    reference_images: tuple[str, ...] = ()
    image_size: str = "1K"


@dataclass
class GenerationResult:
    """Service response. ``image`` is a base64 rectangular patch on success."""

    success: bool
    image: str | None = None
    error: str | None = None


class GenerationService(Protocol):
    """External inpainting service."""

    def generate(self, request: GenerationRequest) -> GenerationResult: ...


def layer_name_from_prompt(prompt: str) -> str:
    """First 25 characters of the prompt, with "..." when truncated."""
    if len(prompt) > LAYER_NAME_LENGTH:
        return prompt[:LAYER_NAME_LENGTH] + "..."
    return prompt


@dataclass
class PreparedSelection:
    """Selection after optional aspect-ratio expansion."""

    selection: Selection
    adjustment: AspectRatioAdjustment | None = None
    reference_images: list[str] = field(default_factory=list)


class GenerationPipeline:
    """
    Inpainting flow from canvas selection to committed edit layer.

    Args:
        stack: Layer stack to read from and add the result to.
        service: Generation service.
        settings: Editor settings. Default: LayerfillSettings().
        cache: Decoded-raster cache shared with the compositor.

    Example:
        >>> pipeline = GenerationPipeline(stack, service)
        >>> layer_id = pipeline.run(selection, "a red balloon", transform)
    """

    def __init__(
        self,
        stack: LayerStack,
        service: GenerationService,
        settings: LayerfillSettings | None = None,
        cache: RasterCache | None = None,
    ) -> None:
        self.stack = stack
        self.service = service
        self.settings = settings or LayerfillSettings()
        self.cache = cache

    def prepare_selection(
        self,
        selection: Selection,
        reference_images: Sequence[str] = (),
    ) -> PreparedSelection:
        """
        Snap the selection to a supported aspect ratio if required.

        The service only accepts reference-guided requests at fixed ratios,
        so with reference images attached (and full-image context off) the
        selection is expanded about its centre. It never shrinks.
        """
        references = [img for img in reference_images if img]
        prepared = PreparedSelection(selection=selection, reference_images=references)

        if not references or self.settings.use_full_image_context:
            return prepared

        bounds = get_bounds_canvas(selection)
        if bounds is None:
            return prepared

        adjustment = calculate_aspect_ratio_adjustment(
            bounds.width, bounds.height, self.settings.aspect_ratio_tolerance
        )
        if not adjustment.needs_adjustment:
            return prepared

        logger.info(
            f"Adjusting selection {adjustment.original_ratio} -> "
            f"{adjustment.closest_ratio} ({adjustment.adjusted_width}x"
            f"{adjustment.adjusted_height})"
        )
        prepared.selection = selection.expanded_to(
            adjustment.adjusted_width, adjustment.adjusted_height
        )
        prepared.adjustment = adjustment
        return prepared

    def _base_layer(self) -> Layer:
        layers = self.stack.get_layers_for_composite()
        if not layers or layers[0].kind != LayerKind.BASE:
            raise GenerationError("No image loaded.")
        return layers[0]

    def _source_image(self, base: Layer) -> np.ndarray:
        """Composite of the visible layers, or the base image when it is alone."""
        visible = self.stack.get_visible_layers()
        width = int(base.width or 0)
        height = int(base.height or 0)
        try:
            if [layer.id for layer in visible] == [base.id]:
                return decode_image_base64(base.image_data)
            return composite(visible, width, height, cache=self.cache)
        except ImageDecodeError as e:
            raise GenerationError(f"Failed to decode source image: {e}") from e

    def run(
        self,
        selection: Selection | None,
        prompt: str,
        transform: ImageTransform,
        reference_images: Sequence[str] = (),
        confirm_adjustment: Callable[[AspectRatioAdjustment], bool] | None = None,
        on_stage: Callable[[int, str], None] | None = None,
    ) -> str:
        """
        Generate a fill for the selection and add it as a new layer.

        Args:
            selection: Canvas selection.
            prompt: Text instruction for the service.
            transform: Image placement in the canvas.
            reference_images: Optional base64 reference images.
            confirm_adjustment: Asked before an aspect-ratio expansion;
                returning False cancels the run.
            on_stage: Progress callback ``(index, label)``.

        Returns:
            Id of the new layer, which becomes active.

        Raises:
            GenerationError: On any failure of the round trip.
        """

        def stage(index: int) -> None:
            if on_stage is not None:
                on_stage(index, GENERATION_STAGES[index])

        base = self._base_layer()
        if selection is None:
            raise GenerationError("Please make a selection first")
        if not prompt.strip():
            raise GenerationError("Please enter a prompt")

        prepared = self.prepare_selection(selection, reference_images)
        if (
            prepared.adjustment is not None
            and confirm_adjustment is not None
            and not confirm_adjustment(prepared.adjustment)
        ):
            raise GenerationError("Aspect ratio adjustment declined")

        stage(0)
        image = self._source_image(base)
        try:
            processed = process_selection(
                prepared.selection,
                image,
                transform,
                use_full_image_context=self.settings.use_full_image_context,
                result_mask_blur=self.settings.result_mask_blur,
            )
        except OutOfBoundsSelectionError as e:
            raise GenerationError(str(e)) from e
        if processed is None:
            raise GenerationError("Failed to process selection")

        stage(1)
        request = GenerationRequest(
            model=self.settings.model,
            prompt=prompt,
            image=processed.cropped_image,
            mask=processed.mask,
            reference_images=tuple(prepared.reference_images),
            image_size=self.settings.image_size,
        )
        try:
            result = self.service.generate(request)
        except Exception as e:
            logger.exception("Generation service call failed")
            raise GenerationError(f"Generation service error: {e}") from e

        if not result.success or not result.image:
            raise GenerationError(result.error or "Generation failed")

        stage(2)
        final_image = result.image
        if processed.polygon_mask is not None:
            try:
                final_image = apply_polygon_mask_to_result(
                    result.image,
                    processed.polygon_mask,
                    processed.bounds.width,
                    processed.bounds.height,
                )
            except ImageDecodeError as e:
                raise GenerationError(f"Invalid generation result: {e}") from e

        bounds = processed.bounds
        layer_id = self.stack.add_layer(
            Layer(
                id="",
                name=layer_name_from_prompt(prompt),
                kind=LayerKind.EDIT,
                image_data=final_image,
                original_image_data=result.image,
                x=bounds.x,
                y=bounds.y,
                width=bounds.width,
                height=bounds.height,
                polygon_points=processed.relative_polygon_points,
                feather_radius=self.settings.default_feather_radius,
            )
        )
        if self.settings.default_feather_radius > 0:
            refeather_layer(self.stack, layer_id, self.cache)

        logger.info(f"Generation complete, added layer {layer_id}")
        return layer_id
