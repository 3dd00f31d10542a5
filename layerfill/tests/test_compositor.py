"""Tests for the layer compositor and feathering refresh."""

import logging

import numpy as np
import pytest

from layerfill.compositing import compositor as compositor_module
from layerfill.compositing.compositor import (
    LayerCompositor,
    apply_feathering,
    apply_sharp_polygon_mask,
    composite,
    composite_to_base64,
    refeather_layer,
)
from layerfill.layers.models import Layer, LayerKind
from layerfill.layers.stack import LayerNotFoundError, LayerStack
from layerfill.utils.imaging import decode_image_base64

RED = (0, 0, 255, 255)
BLUE = (255, 0, 0, 255)
CORRUPT = "bm90IGFuIGltYWdl"  # base64 of "not an image"
SQUARE = [(0, 0), (100, 0), (100, 100), (0, 100)]


def _layer(layer_id, image_data, order=0, kind=LayerKind.EDIT, **kwargs):
    return Layer(
        id=layer_id,
        name=layer_id,
        kind=kind,
        image_data=image_data,
        order=order,
        **kwargs,
    )


@pytest.fixture
def base_and_patch(make_image_b64):
    base = _layer("base", make_image_b64(10, 10, RED), 0, LayerKind.BASE, x=0, y=0)
    patch = _layer("patch", make_image_b64(4, 4, BLUE), 1, x=2, y=3)
    return base, patch


class TestComposite:
    """Tests for the composite function."""

    def test_layers_painted_in_order(self, base_and_patch):
        base, patch = base_and_patch
        # Input order does not matter, ``order`` does
        result = composite([patch, base], 10, 10)

        assert result.shape == (10, 10, 4)
        assert tuple(result[0, 0]) == RED
        assert tuple(result[3, 2]) == BLUE
        assert tuple(result[6, 5]) == BLUE
        assert tuple(result[7, 6]) == RED

    def test_opacity(self, base_and_patch):
        base, patch = base_and_patch
        patch.opacity = 50
        result = composite([base, patch], 10, 10)
        assert tuple(result[3, 2]) == (128, 0, 128, 255)

    def test_hidden_layer_not_decoded(self, base_and_patch, caplog):
        """Hidden layers are skipped before their raster is touched."""
        base, _ = base_and_patch
        hidden = _layer("hidden", CORRUPT, 1, visible=False)

        with caplog.at_level(logging.WARNING):
            result = composite([base, hidden], 10, 10)

        assert np.all(result == RED)
        assert not caplog.records

    def test_corrupt_layer_skipped(self, base_and_patch, caplog):
        base, patch = base_and_patch
        broken = _layer("broken", CORRUPT, 2)

        with caplog.at_level(logging.WARNING):
            result = composite([base, patch, broken], 10, 10)

        assert tuple(result[3, 2]) == BLUE
        assert any("broken" in record.message for record in caplog.records)

    def test_layer_resized_to_placement(self, make_image_b64):
        layer = _layer("big", make_image_b64(5, 5), width=10, height=10, x=0, y=0)
        result = composite([layer], 10, 10)
        assert np.all(result[..., 3] == 255)

    def test_empty_stack_is_transparent(self):
        result = composite([], 8, 6)
        assert result.shape == (6, 8, 4)
        assert not result.any()

    def test_repeatable(self, make_image_b64):
        """The same stack always flattens to the same pixels and bytes."""
        patch = make_image_b64(20, 20, BLUE)
        layers = [
            _layer("base", make_image_b64(40, 40, RED), 0, LayerKind.BASE, x=0, y=0),
            _layer("rect", make_image_b64(12, 10, BLUE), 1, x=5, y=7, opacity=60),
            _layer(
                "lasso",
                patch,
                2,
                original_image_data=patch,
                x=15,
                y=12,
                width=20,
                height=20,
                polygon_points=[(0, 0), (20, 0), (10, 20)],
                feather_radius=3,
                opacity=80,
            ),
        ]
        cache = LayerCompositor().cache

        first = composite(layers, 40, 40, cache=cache)
        second = composite(layers, 40, 40, cache=cache)
        uncached = composite(layers, 40, 40)

        assert np.array_equal(first, second)
        assert np.array_equal(first, uncached)
        assert composite_to_base64(layers, 40, 40, cache) == composite_to_base64(
            layers, 40, 40, cache
        )

    def test_feathered_polygon_uses_original(self, make_image_b64):
        """Feathered lasso layers are masked from their unmasked source."""
        layer = _layer(
            "lasso",
            CORRUPT,
            original_image_data=make_image_b64(100, 100),
            x=0,
            y=0,
            width=100,
            height=100,
            polygon_points=SQUARE,
            feather_radius=5,
        )
        result = composite([layer], 100, 100)

        assert result[50, 50, 3] == 255
        assert result[0, 0, 3] < 255


class TestLayerCompositor:
    """Tests for the guarded composite runner."""

    def test_run_populates_cache(self, base_and_patch):
        compositor = LayerCompositor(cache_size=8)
        result = compositor.run(list(base_and_patch), 10, 10)

        assert result is not None
        assert len(compositor.cache) == 2
        assert not compositor.in_flight

    def test_trigger_during_pass_is_dropped(self, base_and_patch, monkeypatch):
        compositor = LayerCompositor()
        nested = []

        def reentrant(layers, width, height, cache=None, check=None):
            nested.append(compositor.run(layers, width, height))
            return composite(layers, width, height, cache=cache, check=check)

        monkeypatch.setattr(compositor_module, "composite", reentrant)

        result = compositor.run(list(base_and_patch), 10, 10)

        assert result is not None
        assert nested == [None]

    def test_reset_aborts_running_pass(self, base_and_patch, monkeypatch):
        """A pass superseded by reset() publishes nothing."""
        compositor = LayerCompositor()

        def superseded(layers, width, height, cache=None, check=None):
            compositor.reset()
            return composite(layers, width, height, cache=cache, check=check)

        monkeypatch.setattr(compositor_module, "composite", superseded)
        assert compositor.run(list(base_and_patch), 10, 10) is None
        assert compositor.version == 1

        # The guard is released, so the next pass runs
        monkeypatch.setattr(compositor_module, "composite", composite)
        assert compositor.run(list(base_and_patch), 10, 10) is not None

    def test_base_replacement_aborts_running_pass(self, make_image_b64, monkeypatch):
        """Replacing the base image mid-pass supersedes the running composite."""
        stack = LayerStack()
        stack.set_base_layer(make_image_b64(10, 10, RED), 10, 10)
        compositor = LayerCompositor(stack=stack)

        def replaced(layers, width, height, cache=None, check=None):
            stack.set_base_layer(make_image_b64(10, 10, BLUE), 10, 10)
            return composite(layers, width, height, cache=cache, check=check)

        monkeypatch.setattr(compositor_module, "composite", replaced)
        assert compositor.run(stack.get_layers_for_composite(), 10, 10) is None
        assert compositor.version == 1

        monkeypatch.setattr(compositor_module, "composite", composite)
        result = compositor.run(stack.get_layers_for_composite(), 10, 10)
        assert tuple(result[0, 0]) == BLUE
        compositor.close()

    def test_ordinary_edits_do_not_reset(self, make_image_b64):
        stack = LayerStack()
        stack.set_base_layer(make_image_b64(10, 10, RED), 10, 10)
        compositor = LayerCompositor(stack=stack)

        stack.set_opacity(stack.layers[0].id, 50)
        assert compositor.version == 0

        compositor.close()
        stack.set_base_layer(make_image_b64(10, 10, BLUE), 10, 10)
        assert compositor.version == 0

    def test_run_to_base64(self, base_and_patch):
        data = LayerCompositor().run_to_base64(list(base_and_patch), 10, 10)
        assert decode_image_base64(data).shape == (10, 10, 4)

    def test_reset_clears_cache(self, base_and_patch):
        compositor = LayerCompositor()
        compositor.run(list(base_and_patch), 10, 10)
        compositor.reset()
        assert len(compositor.cache) == 0


class TestFeathering:
    """Tests for feather application and refresh."""

    def test_zero_radius(self, make_image_b64):
        layer = _layer("a", make_image_b64(20, 20))
        assert apply_feathering(layer) is None

    def test_rectangle_feathering(self, make_image_b64):
        layer = _layer("a", make_image_b64(100, 50), feather_radius=10)
        image = decode_image_base64(apply_feathering(layer))

        assert image[25, 50, 3] == 255
        assert image[0, 0, 3] <= 1

    def test_sharp_polygon_requires_original(self, make_image_b64):
        layer = _layer("a", make_image_b64(100, 100), polygon_points=SQUARE)
        assert apply_sharp_polygon_mask(layer) is None

    def test_sharp_polygon_cutout(self, make_image_b64):
        triangle = [(0, 0), (100, 0), (0, 100)]
        layer = _layer(
            "a",
            make_image_b64(100, 100),
            original_image_data=make_image_b64(100, 100),
            polygon_points=triangle,
        )
        image = decode_image_base64(apply_sharp_polygon_mask(layer))

        assert image[10, 10, 3] == 255
        assert image[95, 95, 3] == 0


class TestRefeatherLayer:
    @pytest.fixture
    def stack(self, make_image_b64):
        stack = LayerStack()
        stack.set_base_layer(make_image_b64(100, 100), 100, 100)
        return stack

    def test_writes_feathered_raster(self, stack, make_image_b64):
        original = make_image_b64(100, 50)
        layer_id = stack.add_layer(
            _layer("edit", original, original_image_data=original, feather_radius=10)
        )

        result = refeather_layer(stack, layer_id)

        assert stack.get_layer(layer_id).image_data == result
        assert decode_image_base64(result)[0, 0, 3] <= 1

    def test_zero_radius_restores_original(self, stack, make_image_b64):
        original = make_image_b64(30, 30)
        layer_id = stack.add_layer(
            _layer("edit", make_image_b64(30, 30, BLUE), original_image_data=original)
        )

        assert refeather_layer(stack, layer_id) == original
        assert stack.get_layer(layer_id).image_data == original

    def test_failure_falls_back_to_original(self, stack, caplog):
        layer_id = stack.add_layer(
            _layer("edit", CORRUPT, original_image_data=CORRUPT, feather_radius=4)
        )

        with caplog.at_level(logging.WARNING):
            result = refeather_layer(stack, layer_id)

        assert result == CORRUPT
        assert any("Feathering failed" in r.message for r in caplog.records)

    def test_unknown_layer(self, stack):
        with pytest.raises(LayerNotFoundError):
            refeather_layer(stack, "missing")
