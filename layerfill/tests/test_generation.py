"""Tests for the generation pipeline with a fake service."""

import numpy as np
import pytest

from layerfill.generation.pipeline import (
    GENERATION_STAGES,
    GenerationError,
    GenerationPipeline,
    GenerationResult,
    layer_name_from_prompt,
)
from layerfill.layers.models import Layer, LayerKind
from layerfill.layers.stack import LayerStack
from layerfill.selection.shapes import PolygonSelection, RectangleSelection
from layerfill.selection.transform import ImageTransform, PolygonPoint
from layerfill.utils.config import LayerfillSettings
from layerfill.utils.imaging import decode_image_base64, encode_image_base64

BLUE = (255, 0, 0, 255)
RED = (0, 0, 255, 255)


class FakeService:
    """Records requests and answers with a solid patch."""

    def __init__(self, patch=None, error=None, raises=None):
        self.patch = patch
        self.error = error
        self.raises = raises
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return GenerationResult(success=False, error=self.error)
        return GenerationResult(success=True, image=self.patch)


@pytest.fixture
def stack(gradient_image):
    stack = LayerStack()
    stack.set_base_layer(encode_image_base64(gradient_image), 200, 150)
    return stack


@pytest.fixture
def service(make_image_b64):
    return FakeService(patch=make_image_b64(25, 25, BLUE))


@pytest.fixture
def pipeline(stack, service):
    return GenerationPipeline(stack, service)


SELECTION = RectangleSelection(10, 20, 50, 50)
ZOOMED = ImageTransform(0, 0, 2, 2)
WIDE = RectangleSelection(0, 0, 160, 100)


class TestRun:
    """End-to-end runs through the pipeline."""

    def test_rectangle_generation(self, pipeline, stack, service):
        stages = []
        layer_id = pipeline.run(
            SELECTION,
            "a blue square",
            ZOOMED,
            on_stage=lambda index, label: stages.append((index, label)),
        )

        layer = stack.get_layer(layer_id)
        assert layer.kind is LayerKind.EDIT
        assert layer.name == "a blue square"
        assert (layer.x, layer.y, layer.width, layer.height) == (5, 10, 25, 25)
        assert layer.original_image_data == service.patch
        assert layer.polygon_points is None
        assert stack.active_layer_id == layer_id
        assert stages == list(enumerate(GENERATION_STAGES))

        request = service.requests[0]
        assert request.prompt == "a blue square"
        assert request.model == "nano-banana-pro"
        assert request.image_size == "1K"
        assert request.reference_images == ()
        assert np.all(decode_image_base64(request.mask)[..., 0] == 255)

    def test_polygon_result_clipped(self, stack, make_image_b64):
        """A lasso result is resized and cut to the drawn outline."""
        service = FakeService(patch=make_image_b64(40, 30, BLUE))
        pipeline = GenerationPipeline(stack, service)
        triangle = PolygonSelection.from_points([(20, 20), (100, 20), (60, 80)])

        layer = stack.get_layer(pipeline.run(triangle, "fill", ImageTransform()))

        assert layer.polygon_points == [
            PolygonPoint(0, 0),
            PolygonPoint(80, 0),
            PolygonPoint(40, 60),
        ]
        image = decode_image_base64(layer.image_data)
        assert image.shape == (60, 80, 4)
        assert image[59, 0, 3] == 0
        assert image[20, 40, 3] == 255

    def test_source_is_composite(self, stack, service, make_image_b64):
        """The crop is taken from all visible layers, not the base alone."""
        cover = Layer(
            id="",
            name="cover",
            kind=LayerKind.EDIT,
            image_data=make_image_b64(200, 150, RED),
            x=0,
            y=0,
        )
        stack.add_layer(cover)
        GenerationPipeline(stack, service).run(SELECTION, "x", ZOOMED)

        crop = decode_image_base64(service.requests[0].image)
        assert crop.shape == (25, 25, 4)
        assert np.all(crop == RED)

    def test_default_feather_applied(self, stack, service):
        settings = LayerfillSettings(default_feather_radius=5.0)
        pipeline = GenerationPipeline(stack, service, settings)

        layer = stack.get_layer(pipeline.run(SELECTION, "x", ZOOMED))

        assert layer.feather_radius == 5.0
        assert layer.image_data != layer.original_image_data
        assert decode_image_base64(layer.image_data)[0, 0, 3] < 255


class TestRunErrors:
    def test_no_image(self, service):
        pipeline = GenerationPipeline(LayerStack(), service)
        with pytest.raises(GenerationError, match="No image loaded"):
            pipeline.run(SELECTION, "x", ZOOMED)

    def test_no_selection(self, pipeline):
        with pytest.raises(GenerationError, match="make a selection"):
            pipeline.run(None, "x", ZOOMED)

    def test_empty_prompt(self, pipeline):
        with pytest.raises(GenerationError, match="enter a prompt"):
            pipeline.run(SELECTION, "   ", ZOOMED)

    def test_degenerate_selection(self, pipeline):
        with pytest.raises(GenerationError, match="Failed to process"):
            pipeline.run(RectangleSelection(10, 10, 0, 0), "x", ZOOMED)

    def test_out_of_bounds(self, pipeline):
        with pytest.raises(GenerationError):
            pipeline.run(RectangleSelection(1000, 1000, 10, 10), "x", ZOOMED)

    def test_service_exception(self, stack):
        service = FakeService(raises=ConnectionError("down"))
        pipeline = GenerationPipeline(stack, service)
        with pytest.raises(GenerationError, match="down"):
            pipeline.run(SELECTION, "x", ZOOMED)
        assert len(stack) == 1

    def test_service_failure(self, stack):
        pipeline = GenerationPipeline(stack, FakeService(error="quota exceeded"))
        with pytest.raises(GenerationError, match="quota exceeded"):
            pipeline.run(SELECTION, "x", ZOOMED)
        assert len(stack) == 1


class TestAspectRatio:
    """Selections are snapped only when reference images are attached."""

    def test_no_references_no_adjustment(self, pipeline):
        prepared = pipeline.prepare_selection(WIDE, ["", ""])
        assert prepared.adjustment is None
        assert prepared.reference_images == []

    def test_references_expand_selection(self, pipeline):
        prepared = pipeline.prepare_selection(WIDE, ["ref"])

        assert prepared.adjustment.closest_ratio == "3:2"
        assert prepared.selection.width == 160
        assert prepared.selection.height == 107

    def test_full_context_skips_adjustment(self, stack, service):
        settings = LayerfillSettings(use_full_image_context=True)
        pipeline = GenerationPipeline(stack, service, settings)
        prepared = pipeline.prepare_selection(WIDE, ["ref"])
        assert prepared.adjustment is None

    def test_declined_adjustment(self, pipeline, service):
        with pytest.raises(GenerationError, match="declined"):
            pipeline.run(
                RectangleSelection(10, 10, 160, 100),
                "x",
                ImageTransform(),
                reference_images=["ref"],
                confirm_adjustment=lambda adjustment: False,
            )
        assert service.requests == []

    def test_confirmed_adjustment_sends_references(self, pipeline, service):
        pipeline.run(
            RectangleSelection(10, 10, 160, 100),
            "x",
            ImageTransform(),
            reference_images=["ref"],
            confirm_adjustment=lambda adjustment: True,
        )
        request = service.requests[0]
        assert request.reference_images == ("ref",)


def test_layer_name_from_prompt():
    assert layer_name_from_prompt("short") == "short"
    assert layer_name_from_prompt("x" * 30) == "x" * 25 + "..."
