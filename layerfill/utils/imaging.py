"""
Raster encoding helpers.

Every raster that crosses a component boundary travels as a base64-encoded
single image (PNG for masks and composites). Internally rasters are numpy
arrays: colour images are uint8 (H, W, 4) in BGRA order, masks are uint8
(H, W).
"""

from __future__ import annotations

import base64
import binascii
from typing import cast

import cv2
import numpy as np

_FORMAT_EXTENSIONS = {
    "png": ".png",
    "jpg": ".jpg",
    "jpeg": ".jpg",
    "webp": ".webp",
}


class ImageDecodeError(ValueError):
    """Raised when base64 or image bytes cannot be decoded to a raster."""


def strip_data_url(data: str) -> str:
    """Strip a ``data:image/...;base64,`` prefix if present."""
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    return data


def to_bgra(image: np.ndarray) -> np.ndarray:
    """
    Convert a decoded image to 4-channel BGRA.

    Args:
        image: Grayscale (H, W), BGR (H, W, 3) or BGRA (H, W, 4) uint8 image.

    Returns:
        BGRA image (H, W, 4) uint8.
    """
    if image.ndim == 2:
        return cast(np.ndarray, cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA))
    if image.shape[2] == 1:
        return cast(np.ndarray, cv2.cvtColor(image[..., 0], cv2.COLOR_GRAY2BGRA))
    if image.shape[2] == 3:
        return cast(np.ndarray, cv2.cvtColor(image, cv2.COLOR_BGR2BGRA))
    return image


def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes to a BGRA raster.

    Raises:
        ImageDecodeError: If the bytes are not a decodable image.
    """
    buffer = np.frombuffer(data, dtype=np.uint8)
    if buffer.size == 0:
        raise ImageDecodeError("Empty image data")

    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageDecodeError("Failed to decode image data")

    if image.dtype != np.uint8:
        # 16-bit PNGs are scaled down to 8 bits per channel
        image = (image / 257).astype(np.uint8)

    return to_bgra(image)


def decode_image_base64(data: str) -> np.ndarray:
    """
    Decode a base64 image (raw or data URL) to a BGRA raster.

    Raises:
        ImageDecodeError: If the payload is not valid base64 or not an image.
    """
    try:
        raw = base64.b64decode(strip_data_url(data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Failed to decode base64: {e}") from e
    return decode_image_bytes(raw)


def encode_image(image: np.ndarray, fmt: str = "png", quality: int = 92) -> bytes:
    """
    Encode a raster to image bytes.

    Args:
        image: Mask (H, W), BGR or BGRA uint8 image.
        fmt: One of png, jpg, jpeg, webp.
        quality: JPEG/WEBP quality (0-100). Ignored for PNG.

    Returns:
        Encoded image bytes.
    """
    ext = _FORMAT_EXTENSIONS.get(fmt.lower())
    if ext is None:
        raise ValueError(f"Unsupported image format: {fmt}")

    params: list[int] = []
    if ext == ".jpg":
        if image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
        params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
    elif ext == ".webp":
        params = [cv2.IMWRITE_WEBP_QUALITY, max(1, int(quality))]

    ok, encoded = cv2.imencode(ext, image, params)
    if not ok:
        raise ValueError(f"Failed to encode image as {fmt}")
    return encoded.tobytes()


def encode_image_base64(
    image: np.ndarray, fmt: str = "png", quality: int = 92
) -> str:
    """Encode a raster to a base64 string without data URL prefix."""
    return base64.b64encode(encode_image(image, fmt, quality)).decode("ascii")
