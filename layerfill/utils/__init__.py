"""Layerfill Utilities - Configuration, raster codecs and helpers."""

from layerfill.utils.cache import RasterCache
from layerfill.utils.config import (
    CONFIG_SCHEMA,
    LayerfillSettings,
    get_default_config,
    load_config_with_validation,
    print_config_summary,
    validate_config,
)
from layerfill.utils.debounce import Debouncer
from layerfill.utils.imaging import (
    ImageDecodeError,
    decode_image_base64,
    encode_image,
    encode_image_base64,
    to_bgra,
)

__all__ = [
    "CONFIG_SCHEMA",
    "Debouncer",
    "ImageDecodeError",
    "LayerfillSettings",
    "RasterCache",
    "decode_image_base64",
    "encode_image",
    "encode_image_base64",
    "get_default_config",
    "load_config_with_validation",
    "print_config_summary",
    "to_bgra",
    "validate_config",
]
