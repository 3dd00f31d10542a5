"""Shared fixtures for layerfill tests."""

from __future__ import annotations

import numpy as np
import pytest

from layerfill.utils.imaging import encode_image_base64

RED = (0, 0, 255, 255)
BLUE = (255, 0, 0, 255)


@pytest.fixture
def make_image():
    """Factory for solid BGRA rasters."""

    def _make(width: int, height: int, color=RED) -> np.ndarray:
        image = np.zeros((height, width, 4), dtype=np.uint8)
        image[:] = color
        return image

    return _make


@pytest.fixture
def make_image_b64(make_image):
    """Factory for solid BGRA rasters encoded as PNG base64."""

    def _make(width: int, height: int, color=RED) -> str:
        return encode_image_base64(make_image(width, height, color))

    return _make


@pytest.fixture
def gradient_image() -> np.ndarray:
    """200x150 opaque BGRA image with distinct pixel values."""
    ys, xs = np.mgrid[0:150, 0:200]
    image = np.zeros((150, 200, 4), dtype=np.uint8)
    image[..., 0] = (xs % 256).astype(np.uint8)
    image[..., 1] = (ys % 256).astype(np.uint8)
    image[..., 2] = ((xs + ys) % 256).astype(np.uint8)
    image[..., 3] = 255
    return image
