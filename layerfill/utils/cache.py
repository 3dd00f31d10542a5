"""
LRU Cache for Decoded Layer Rasters.

Layer rasters are stored as base64 strings; decoding the same payload on
every recomposite pass is wasteful, so decoded arrays are cached by content
hash.
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from collections.abc import Callable

import numpy as np


class RasterCache:
    """
    Least Recently Used (LRU) cache of decoded rasters.

    Keys are SHA-256 hashes of the encoded payload, so two layers that
    share image data also share the decoded array. Cached arrays are
    marked read-only; callers copy before mutating.

    Args:
        max_size: Maximum number of rasters to keep. Default: 64.

    Example:
        >>> cache = RasterCache(max_size=8)
        >>> image = cache.get_or_decode(layer.image_data, decode_image_base64)
    """

    def __init__(self, max_size: int = 64) -> None:
        self.max_size = max_size
        self._cache: OrderedDict[str, np.ndarray] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.RLock()

    @staticmethod
    def _compute_hash(data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def get(self, data: str) -> np.ndarray | None:
        """Return the cached raster for an encoded payload, or None."""
        key = self._compute_hash(data)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                self._hits += 1
                return self._cache[key]
            self._misses += 1
            return None

    def put(self, data: str, image: np.ndarray) -> None:
        """Store a decoded raster for an encoded payload."""
        if self.max_size <= 0:
            return

        key = self._compute_hash(data)
        image.setflags(write=False)

        with self._lock:
            while len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)

            self._cache[key] = image
            self._cache.move_to_end(key)

    def get_or_decode(
        self,
        data: str,
        decoder: Callable[[str], np.ndarray],
    ) -> np.ndarray:
        """
        Return the cached raster, decoding and storing it on a miss.

        Decoder exceptions propagate and nothing is cached.
        """
        cached = self.get(data)
        if cached is not None:
            return cached

        image = decoder(data)
        self.put(data, image)
        return image

    def clear(self) -> None:
        """Clear all cached rasters."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def stats(self) -> dict[str, int | float]:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = self._hits / total if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": hit_rate,
            }
