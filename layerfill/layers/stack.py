"""
Layer stack.

Single owner of the ordered layer list and the active layer. Every
mutation goes through a method here, bumps ``version`` and notifies
subscribers, which is how the history manager and compositor learn about
changes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from layerfill.layers.models import (
    Layer,
    LayerKind,
    LayerStackSnapshot,
    clone_layers,
    generate_layer_id,
)

logger = logging.getLogger(__name__)

Listener = Callable[["LayerStack"], None]

BASE_LAYER_NAME = "Background"


class LayerNotFoundError(KeyError):
    """Raised when an operation names a layer id that is not in the stack."""


class LayerStack:
    """
    Ordered layer collection, bottom (order 0) to top.

    The base layer, when present, is pinned at order 0: it cannot be
    removed, duplicated or moved, and no layer can be moved below it.
    After every operation ``order`` values are exactly ``0..N-1``.

    Example:
        >>> stack = LayerStack()
        >>> stack.set_base_layer(base_b64, 800, 600)
        >>> edit_id = stack.add_layer(Layer(id="", name="Sky", kind="edit",
        ...                                 image_data=patch_b64))
        >>> stack.move_layer_down(edit_id)  # No-op: base stays at the bottom
    """

    def __init__(self) -> None:
        self._layers: list[Layer] = []
        self._active_layer_id: str | None = None
        self._version = 0
        self._reset_version = 0
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def layers(self) -> list[Layer]:
        """Copy of the layers in paint order."""
        with self._lock:
            return clone_layers(self._layers)

    @property
    def active_layer_id(self) -> str | None:
        return self._active_layer_id

    @property
    def version(self) -> int:
        """Incremented on every mutation."""
        return self._version

    @property
    def reset_version(self) -> int:
        """Incremented when the base image is replaced or the stack cleared."""
        return self._reset_version

    def __len__(self) -> int:
        return len(self._layers)

    def get_layer(self, layer_id: str) -> Layer | None:
        with self._lock:
            for layer in self._layers:
                if layer.id == layer_id:
                    return layer.copy()
        return None

    def get_visible_layers(self) -> list[Layer]:
        """Visible layers sorted by order."""
        with self._lock:
            visible = [layer.copy() for layer in self._layers if layer.visible]
        return sorted(visible, key=lambda layer: layer.order)

    def get_layers_for_composite(self) -> list[Layer]:
        """All layers sorted by order. The compositor skips hidden ones."""
        with self._lock:
            return sorted(clone_layers(self._layers), key=lambda layer: layer.order)

    def snapshot(self) -> LayerStackSnapshot:
        """Deep copy of the current state."""
        with self._lock:
            return LayerStackSnapshot(
                layers=clone_layers(self._layers),
                active_layer_id=self._active_layer_id,
                version=self._version,
            )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Listeners are called after every mutation, outside the stack lock,
        with the stack as the only argument.

        Returns:
            Callable that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self)
            except Exception as e:
                logger.exception(f"Layer stack listener failed: {e}")

    def _commit(self, reset: bool = False) -> None:
        """Renumber orders, bump versions and notify. Caller holds no lock."""
        with self._lock:
            for i, layer in enumerate(self._layers):
                layer.order = i
            self._version += 1
            if reset:
                self._reset_version += 1
        self._notify()

    def _index_of(self, layer_id: str) -> int:
        for i, layer in enumerate(self._layers):
            if layer.id == layer_id:
                return i
        raise LayerNotFoundError(layer_id)

    def _has_base(self) -> bool:
        return bool(self._layers) and self._layers[0].is_base

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_base_layer(self, image_data: str, width: int, height: int) -> str:
        """
        Replace the whole stack with a single base layer.

        Returns:
            Id of the new base layer, which becomes active.
        """
        layer_id = generate_layer_id()
        base = Layer(
            id=layer_id,
            name=BASE_LAYER_NAME,
            kind=LayerKind.BASE,
            image_data=image_data,
            order=0,
            x=0,
            y=0,
            width=width,
            height=height,
        )
        with self._lock:
            self._layers = [base]
            self._active_layer_id = layer_id
        logger.info(f"Base layer set ({width}x{height})")
        self._commit(reset=True)
        return layer_id

    def add_layer(self, layer: Layer) -> str:
        """
        Append a layer on top and make it active.

        A fresh id is assigned when ``layer.id`` is empty or already taken.

        Returns:
            Id of the added layer.
        """
        with self._lock:
            taken = {existing.id for existing in self._layers}
            layer_id = layer.id
            if not layer_id or layer_id in taken:
                layer_id = generate_layer_id()
            self._layers.append(layer.copy(id=layer_id, order=len(self._layers)))
            self._active_layer_id = layer_id
        logger.debug(f"Added layer {layer_id} ({layer.name})")
        self._commit()
        return layer_id

    def remove_layer(self, layer_id: str) -> bool:
        """
        Remove a non-base layer.

        If it was active, the new top layer becomes active.

        Returns:
            False when the layer is the base layer.
        """
        with self._lock:
            index = self._index_of(layer_id)
            if self._layers[index].is_base:
                logger.warning("Refusing to remove the base layer")
                return False
            del self._layers[index]
            if self._active_layer_id == layer_id:
                self._active_layer_id = self._layers[-1].id if self._layers else None
        self._commit()
        return True

    def update_layer(self, layer_id: str, **changes: Any) -> None:
        """
        Update fields of a layer.

        ``id``, ``order`` and ``kind`` cannot be changed here.
        """
        forbidden = {"id", "order", "kind"} & changes.keys()
        if forbidden:
            raise ValueError(f"Cannot update layer fields: {sorted(forbidden)}")

        with self._lock:
            index = self._index_of(layer_id)
            self._layers[index] = self._layers[index].copy(**changes)
        self._commit()

    def set_active_layer(self, layer_id: str | None) -> None:
        with self._lock:
            if layer_id is not None:
                self._index_of(layer_id)
            self._active_layer_id = layer_id
        self._commit()

    def toggle_visibility(self, layer_id: str) -> bool:
        """Flip visibility. Returns the new state."""
        with self._lock:
            layer = self._layers[self._index_of(layer_id)]
            layer.visible = not layer.visible
            visible = layer.visible
        self._commit()
        return visible

    def set_opacity(self, layer_id: str, opacity: float) -> None:
        """Set opacity, clamped to 0..100."""
        with self._lock:
            layer = self._layers[self._index_of(layer_id)]
            layer.opacity = max(0, min(100, opacity))
        self._commit()

    def reorder_layers(self, from_index: int, to_index: int) -> bool:
        """
        Move the layer at ``from_index`` to ``to_index``.

        Returns:
            False when the move is out of range or would displace the base
            layer from the bottom.
        """
        with self._lock:
            count = len(self._layers)
            if not (0 <= from_index < count and 0 <= to_index < count):
                return False
            if from_index == to_index:
                return False
            if self._has_base() and (from_index == 0 or to_index == 0):
                logger.debug("Base layer stays at the bottom")
                return False
            moved = self._layers.pop(from_index)
            self._layers.insert(to_index, moved)
        self._commit()
        return True

    def move_layer_up(self, layer_id: str) -> bool:
        with self._lock:
            index = self._index_of(layer_id)
        return self.reorder_layers(index, index + 1)

    def move_layer_down(self, layer_id: str) -> bool:
        with self._lock:
            index = self._index_of(layer_id)
        return self.reorder_layers(index, index - 1)

    def rename_layer(self, layer_id: str, name: str) -> None:
        with self._lock:
            self._layers[self._index_of(layer_id)].name = name
        self._commit()

    def duplicate_layer(self, layer_id: str) -> str | None:
        """
        Copy a layer onto the top of the stack and make the copy active.

        Returns:
            Id of the copy, or None for the base layer.
        """
        with self._lock:
            source = self._layers[self._index_of(layer_id)]
            if source.is_base:
                return None
            new_id = generate_layer_id()
            self._layers.append(
                source.copy(
                    id=new_id,
                    name=f"{source.name} (copy)",
                    order=len(self._layers),
                )
            )
            self._active_layer_id = new_id
        self._commit()
        return new_id

    def update_layer_transform(
        self, layer_id: str, x: float, y: float, width: float, height: float
    ) -> None:
        """Move or resize a layer in image space."""
        with self._lock:
            layer = self._layers[self._index_of(layer_id)]
            layer.x, layer.y, layer.width, layer.height = x, y, width, height
        self._commit()

    def set_feather_radius(self, layer_id: str, radius: float) -> None:
        if radius < 0:
            raise ValueError(f"Feather radius must be >= 0, got {radius}")
        with self._lock:
            self._layers[self._index_of(layer_id)].feather_radius = float(radius)
        self._commit()

    def clear_layers(self) -> None:
        with self._lock:
            self._layers = []
            self._active_layer_id = None
        self._commit(reset=True)

    def restore_layers(
        self,
        layers: Iterable[Layer],
        active_layer_id: str | None,
        reset: bool = False,
    ) -> None:
        """
        Replace the stack wholesale, e.g. from history or a project file.

        The base layer is pinned to the bottom whatever its stored order.

        Args:
            layers: Layers to install, in any order.
            active_layer_id: Layer to make active, if present.
            reset: Treat this as a new document (project load), bumping
                ``reset_version``.
        """
        restored = sorted(
            clone_layers(list(layers)),
            key=lambda layer: (not layer.is_base, layer.order),
        )
        with self._lock:
            self._layers = restored
            ids = {layer.id for layer in restored}
            self._active_layer_id = active_layer_id if active_layer_id in ids else None
        self._commit(reset=reset)
