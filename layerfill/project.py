"""
Project files.

A project file is a JSON document holding the base image, the canvas view
and the full layer stack, so an editing session can be saved and resumed
with every layer (including unmasked originals) intact.

Layout::

    {
      "version": "1.0",
      "meta": {"appName": "Layerfill", "createdAt": 1718000000000},
      "canvas": {"zoom": 1.0, "panX": 0, "panY": 0},
      "baseImage": {"width": 800, "height": 600, "format": "png", "data": "..."},
      "layers": [{"id": "...", "type": "base", "imageData": "...", ...}]
    }
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from layerfill.history.manager import HistoryManager
from layerfill.layers.models import Layer
from layerfill.layers.stack import LayerStack
from layerfill.utils.io import read_json_locked, write_json_locked

logger = logging.getLogger(__name__)

APP_NAME = "Layerfill"
PROJECT_VERSION = "1.0"
PROJECT_EXTENSION = ".lfproj"


class ProjectFileError(ValueError):
    """Raised for unreadable, foreign or incomplete project files."""


@dataclass
class BaseImage:
    """Source image as loaded. ``data`` is base64 in ``format``."""

    width: int
    height: int
    format: str
    data: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BaseImage:
        return cls(
            width=int(data["width"]),
            height=int(data["height"]),
            format=str(data.get("format", "png")),
            data=data["data"],
        )


@dataclass
class CanvasView:
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"zoom": self.zoom, "panX": self.pan_x, "panY": self.pan_y}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasView:
        return cls(
            zoom=float(data.get("zoom", 1.0)),
            pan_x=float(data.get("panX", 0.0)),
            pan_y=float(data.get("panY", 0.0)),
        )


@dataclass
class ProjectFile:
    """In-memory project document."""

    base_image: BaseImage | None
    layers: list[Layer] = field(default_factory=list)
    canvas: CanvasView = field(default_factory=CanvasView)
    version: str = PROJECT_VERSION
    app_name: str = APP_NAME
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "meta": {"appName": self.app_name, "createdAt": self.created_at},
            "canvas": self.canvas.to_dict(),
            "layers": [layer.to_dict() for layer in self.layers],
        }
        if self.base_image is not None:
            data["baseImage"] = self.base_image.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectFile:
        """
        Parse a project document.

        Raises:
            ProjectFileError: If the document is not a project of this
                application or a layer entry is malformed.
        """
        meta = data.get("meta") or {}
        if meta.get("appName") != APP_NAME:
            raise ProjectFileError("Invalid project file")

        try:
            base = data.get("baseImage")
            return cls(
                base_image=BaseImage.from_dict(base) if base else None,
                layers=[Layer.from_dict(item) for item in data.get("layers") or []],
                canvas=CanvasView.from_dict(data.get("canvas") or {}),
                version=str(data.get("version", PROJECT_VERSION)),
                app_name=meta["appName"],
                created_at=int(meta.get("createdAt", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProjectFileError(f"Malformed project file: {e}") from e


def build_project(
    stack: LayerStack,
    base_image: BaseImage | None,
    canvas: CanvasView | None = None,
) -> ProjectFile:
    """
    Capture the current session as a project document.

    Raises:
        ProjectFileError: If no image is loaded.
    """
    if base_image is None:
        raise ProjectFileError("No image loaded to save")
    return ProjectFile(
        base_image=base_image,
        layers=stack.layers,
        canvas=canvas or CanvasView(),
    )


def save_project(
    path: str | Path,
    stack: LayerStack,
    base_image: BaseImage | None,
    canvas: CanvasView | None = None,
) -> Path:
    """
    Write the session to a project file.

    Returns:
        Path written.

    Raises:
        ProjectFileError: If no image is loaded or the write fails.
    """
    path = Path(path)
    project = build_project(stack, base_image, canvas)
    if not write_json_locked(path, project.to_dict()):
        raise ProjectFileError(f"Failed to write project file {path}")
    logger.info(f"Saved project with {len(project.layers)} layers to {path}")
    return path


def load_project(
    path: str | Path,
    stack: LayerStack,
    history: HistoryManager | None = None,
) -> ProjectFile:
    """
    Load a project file into the stack.

    Layers are restored with the first one active. When the file carries no
    layers but has a base image, a fresh base layer is created. History is
    reset so the loaded state is the earliest undo target.

    Raises:
        ProjectFileError: If the file is missing, unreadable or foreign.
    """
    path = Path(path)
    data = read_json_locked(path)
    if data is None:
        raise ProjectFileError(f"Cannot read project file {path}")

    project = ProjectFile.from_dict(data)

    if project.layers:
        stack.restore_layers(project.layers, project.layers[0].id, reset=True)
    elif project.base_image is not None:
        stack.set_base_layer(
            project.base_image.data, project.base_image.width, project.base_image.height
        )

    if history is not None:
        history.reset()

    logger.info(f"Loaded project {path} ({len(project.layers)} layers)")
    return project
