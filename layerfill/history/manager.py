"""
Undo/redo history over the layer stack.

The manager subscribes to ``LayerStack`` change events. Bursts of events
(a slider drag, a multi-step commit) are coalesced by a debouncer into one
recording, and recordings that do not change any history-relevant field
are dropped. Undo and redo restore a deep copy of a snapshot; the restore
itself fires a change event, so recording is suppressed until the restore
has settled.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

from layerfill.layers.models import Layer, clone_layers, layers_differ
from layerfill.layers.stack import LayerStack
from layerfill.utils.config import LayerfillSettings
from layerfill.utils.debounce import Debouncer

logger = logging.getLogger(__name__)


class HistoryState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TIME_TRAVELING = "time_traveling"


@dataclass
class HistorySnapshot:
    """Deep copy of the layer stack at one point in time."""

    layers: list[Layer]
    active_layer_id: str | None
    timestamp: float = field(default_factory=time.time)


class HistoryManager:
    """
    Bounded linear undo/redo history.

    ``past[-1]`` is always the state currently shown, so undo needs at
    least two entries. Recording a new state clears the redo future.

    Args:
        stack: Layer stack to observe and restore.
        max_size: Maximum number of snapshots kept in ``past``. Default: 50.
        debounce_ms: Quiet period before a burst of changes is recorded.
        settle_ms: Time after an undo/redo during which a firing recording
            is skipped.

    Example:
        >>> history = HistoryManager(stack)
        >>> stack.set_opacity(layer_id, 40)
        >>> history.flush()  # Record now instead of after the debounce
        >>> history.undo()
    """

    def __init__(
        self,
        stack: LayerStack,
        max_size: int = 50,
        debounce_ms: float = 100,
        settle_ms: float = 50,
    ) -> None:
        if max_size < 2:
            raise ValueError(f"max_size must be >= 2, got {max_size}")

        self.stack = stack
        self.max_size = max_size
        self.settle_ms = settle_ms

        self.past: list[HistorySnapshot] = []
        self.future: list[HistorySnapshot] = []

        self._time_traveling = False
        self._restoring = False
        self._settle_timer: threading.Timer | None = None
        self._lock = threading.RLock()
        self._debouncer = Debouncer(delay=debounce_ms / 1000.0)
        self._reset_version = stack.reset_version
        self._unsubscribe = stack.subscribe(self._on_stack_changed)

    @classmethod
    def from_settings(
        cls, stack: LayerStack, settings: LayerfillSettings
    ) -> HistoryManager:
        """Build a manager with the history limits and timings from settings."""
        return cls(
            stack,
            max_size=settings.history_max_size,
            debounce_ms=settings.history_debounce_ms,
            settle_ms=settings.history_settle_ms,
        )

    @property
    def state(self) -> HistoryState:
        if self._time_traveling:
            return HistoryState.TIME_TRAVELING
        if self._debouncer.pending:
            return HistoryState.RECORDING
        return HistoryState.IDLE

    @property
    def is_time_traveling(self) -> bool:
        return self._time_traveling

    def _on_stack_changed(self, stack: LayerStack) -> None:
        if stack.reset_version != self._reset_version:
            # New base image or project: the old history no longer applies
            self.reset()
            return
        if self._restoring:
            return
        # The time-travel guard is checked when the recording fires
        self._debouncer.call(self._record_current)

    def _record_current(self) -> None:
        snap = self.stack.snapshot()
        self.record_state(snap.layers, snap.active_layer_id)

    def record_state(self, layers: list[Layer], active_layer_id: str | None) -> bool:
        """
        Push a snapshot unless it is redundant.

        Skipped while time-traveling, for an empty stack, and when no layer
        differs from the latest snapshot in a history-relevant field.

        Returns:
            True if a snapshot was recorded.
        """
        with self._lock:
            if self._time_traveling or not layers:
                return False

            if self.past and not layers_differ(self.past[-1].layers, layers):
                return False

            self.past.append(HistorySnapshot(clone_layers(layers), active_layer_id))
            if len(self.past) > self.max_size:
                del self.past[: len(self.past) - self.max_size]
            self.future.clear()

            logger.debug(f"Recorded history state ({len(self.past)} entries)")
            return True

    def can_undo(self) -> bool:
        return len(self.past) >= 2

    def can_redo(self) -> bool:
        return len(self.future) > 0

    def undo(self) -> bool:
        """Restore the previous snapshot. Returns False if there is none."""
        with self._lock:
            # The last restore has landed, so a pending recording is a real
            # edit on the current state; land it first
            self._release_guard()
            self._debouncer.flush()
            if not self.can_undo():
                return False

            self._begin_time_travel()
            current = self.past.pop()
            previous = self.past[-1]
            self.future.insert(0, current)
            self._restore(previous)
            return True

    def redo(self) -> bool:
        """Restore the next snapshot. Returns False if there is none."""
        with self._lock:
            self._release_guard()
            self._debouncer.flush()
            if not self.can_redo():
                return False

            self._begin_time_travel()
            following = self.future.pop(0)
            self.past.append(following)
            self._restore(following)
            return True

    def _restore(self, snapshot: HistorySnapshot) -> None:
        self._restoring = True
        try:
            self.stack.restore_layers(
                clone_layers(snapshot.layers), snapshot.active_layer_id
            )
        finally:
            self._restoring = False
        self._end_time_travel()

    def _release_guard(self) -> None:
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None
        self._time_traveling = False

    def _begin_time_travel(self) -> None:
        self._release_guard()
        self._time_traveling = True

    def _end_time_travel(self) -> None:
        """Release the time-travel guard after the settle period."""
        if self.settle_ms <= 0:
            self._time_traveling = False
            return

        def release() -> None:
            with self._lock:
                self._time_traveling = False
                self._settle_timer = None

        self._settle_timer = threading.Timer(self.settle_ms / 1000.0, release)
        self._settle_timer.daemon = True
        self._settle_timer.start()

    def flush(self) -> bool:
        """Run a pending recording now. Returns True if one was pending."""
        return self._debouncer.flush()

    def reset(self) -> None:
        """
        Forget all history and take the current stack as the new baseline.

        Runs automatically when the stack reports a new base image or a
        project load, so the loaded state is the earliest undo target.
        """
        self._debouncer.cancel()
        with self._lock:
            self._release_guard()
            self._reset_version = self.stack.reset_version
            self.past.clear()
            self.future.clear()
        self._record_current()

    def close(self) -> None:
        """Stop observing the stack and cancel pending timers."""
        self._unsubscribe()
        self._debouncer.cancel()
        with self._lock:
            self._release_guard()
