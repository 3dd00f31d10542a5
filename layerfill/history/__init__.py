"""Layerfill history - Undo/redo over the layer stack."""

from layerfill.history.manager import HistoryManager, HistorySnapshot, HistoryState

__all__ = ["HistoryManager", "HistorySnapshot", "HistoryState"]
