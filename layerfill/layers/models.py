"""
Layer data model.

A layer is one raster in the composition stack. Rasters are held as
base64-encoded images so layers serialise to project files and history
snapshots without conversion.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from layerfill.selection.transform import PolygonPoint


class LayerKind(str, Enum):
    """Origin of a layer."""

    BASE = "base"  # Loaded source image, always order 0
    EDIT = "edit"  # Committed generation result
    SHAPE = "shape"  # Committed drawn shape


# Fields compared when deciding whether two stacks differ for history
HISTORY_FIELDS = (
    "id",
    "visible",
    "opacity",
    "order",
    "name",
    "x",
    "y",
    "width",
    "height",
    "image_data",
)


def generate_layer_id() -> str:
    """Opaque unique layer identifier."""
    return f"layer_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass
class Layer:
    """
    Single raster layer.

    Attributes:
        id: Unique identifier.
        name: Display name.
        kind: base, edit or shape.
        image_data: Displayed raster (PNG base64), post-masking if feathered.
        original_image_data: Unmasked source raster, kept so feathering can
            be re-applied from a clean source.
        visible: Hidden layers are skipped entirely by the compositor.
        opacity: 0..100.
        order: Paint order, bottom (0) to top.
        x, y, width, height: Placement in image space. None means the
            layer fills the canvas at its native size.
        polygon_points: Lasso outline relative to (x, y), if any.
        feather_radius: Edge softness in pixels. 0 means sharp.
    """

    id: str
    name: str
    kind: LayerKind
    image_data: str
    original_image_data: str | None = None
    visible: bool = True
    opacity: float = 100
    order: int = 0
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    polygon_points: list[PolygonPoint] | None = None
    feather_radius: float = 0.0

    def __post_init__(self) -> None:
        self.kind = LayerKind(self.kind)
        if self.polygon_points is not None:
            self.polygon_points = [
                PolygonPoint.from_any(p) for p in self.polygon_points
            ]

    @property
    def is_base(self) -> bool:
        return self.kind == LayerKind.BASE

    @property
    def has_polygon(self) -> bool:
        return self.polygon_points is not None and len(self.polygon_points) >= 3

    def copy(self, **changes: Any) -> Layer:
        """Deep copy, optionally with field changes."""
        points = changes.pop("polygon_points", self.polygon_points)
        return replace(
            self,
            polygon_points=list(points) if points is not None else None,
            **changes,
        )

    def same_content(self, other: Layer) -> bool:
        """True when every history-relevant field matches."""
        return all(getattr(self, f) == getattr(other, f) for f in HISTORY_FIELDS)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the project-file layout. Unset optional fields are omitted."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.kind.value,
            "imageData": self.image_data,
            "visible": self.visible,
            "opacity": self.opacity,
            "order": self.order,
        }
        optional = {
            "originalImageData": self.original_image_data,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.polygon_points is not None:
            data["polygonPoints"] = [p.to_dict() for p in self.polygon_points]
        if self.feather_radius:
            data["featherRadius"] = self.feather_radius
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Layer:
        """Deserialize from the project-file layout."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            kind=LayerKind(data.get("type", data.get("kind", "edit"))),
            image_data=data["imageData"],
            original_image_data=data.get("originalImageData"),
            visible=bool(data.get("visible", True)),
            opacity=data.get("opacity", 100),
            order=int(data.get("order", 0)),
            x=data.get("x"),
            y=data.get("y"),
            width=data.get("width"),
            height=data.get("height"),
            polygon_points=data.get("polygonPoints"),
            feather_radius=float(data.get("featherRadius", 0.0)),
        )


def clone_layers(layers: list[Layer]) -> list[Layer]:
    """Deep copy of a layer list."""
    return [layer.copy() for layer in layers]


def layers_differ(a: list[Layer], b: list[Layer]) -> bool:
    """
    Per-layer comparison used to filter history recordings.

    Stacks differ when their lengths differ or any position differs in a
    history-relevant field.
    """
    if len(a) != len(b):
        return True
    return any(not la.same_content(lb) for la, lb in zip(a, b))


@dataclass
class LayerStackSnapshot:
    """Copy of a stack's layers and active layer at one instant."""

    layers: list[Layer] = field(default_factory=list)
    active_layer_id: str | None = None
    version: int = 0
