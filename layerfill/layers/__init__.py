"""Layerfill layers - Layer model and the stack that owns it."""

from layerfill.layers.models import (
    Layer,
    LayerKind,
    LayerStackSnapshot,
    clone_layers,
    generate_layer_id,
    layers_differ,
)
from layerfill.layers.stack import LayerNotFoundError, LayerStack

__all__ = [
    "Layer",
    "LayerKind",
    "LayerNotFoundError",
    "LayerStack",
    "LayerStackSnapshot",
    "clone_layers",
    "generate_layer_id",
    "layers_differ",
]
