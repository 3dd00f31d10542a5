"""Tests for the undo/redo history manager."""

import time

import pytest

from layerfill.history.manager import HistoryManager, HistoryState
from layerfill.layers.models import Layer, LayerKind
from layerfill.layers.stack import LayerStack
from layerfill.utils.config import LayerfillSettings


def _edit(name):
    return Layer(id="", name=name, kind=LayerKind.EDIT, image_data=f"data-{name}")


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def stack():
    return LayerStack()


@pytest.fixture
def history(stack):
    """History that only records on explicit flush."""
    manager = HistoryManager(stack, debounce_ms=10_000, settle_ms=0)
    stack.set_base_layer("base-data", 100, 100)
    manager.flush()
    yield manager
    manager.close()


class TestRecording:
    def test_baseline_is_not_undoable(self, history):
        assert len(history.past) == 1
        assert not history.can_undo()
        assert not history.can_redo()
        assert not history.undo()

    def test_burst_coalesced(self, history, stack):
        """Changes inside the debounce window become one entry."""
        layer_id = stack.add_layer(_edit("A"))
        for opacity in (90, 70, 50):
            stack.set_opacity(layer_id, opacity)

        assert history.state is HistoryState.RECORDING
        assert history.flush()
        assert len(history.past) == 2
        assert history.past[-1].layers[1].opacity == 50
        assert history.state is HistoryState.IDLE

    def test_identical_state_skipped(self, history, stack):
        assert not history.record_state(stack.layers, stack.active_layer_id)
        assert len(history.past) == 1

    def test_empty_stack_skipped(self, history):
        assert not history.record_state([], None)

    def test_non_history_fields_skipped(self, history, stack):
        """Feather radius alone does not create an undo step."""
        layer_id = stack.add_layer(_edit("A"))
        history.flush()
        stack.set_feather_radius(layer_id, 8)
        history.flush()
        assert len(history.past) == 2

    def test_bounded(self, stack):
        history = HistoryManager(stack, max_size=3, debounce_ms=10_000, settle_ms=0)
        try:
            stack.set_base_layer("base", 10, 10)
            history.flush()
            for name in "ABCD":
                stack.add_layer(_edit(name))
                history.flush()

            assert len(history.past) == 3
            assert [len(s.layers) for s in history.past] == [3, 4, 5]
        finally:
            history.close()

    def test_max_size_validated(self, stack):
        with pytest.raises(ValueError):
            HistoryManager(stack, max_size=1)


class TestUndoRedo:
    """Tests for time travel."""

    def test_undo_redo(self, history, stack):
        layer_id = stack.add_layer(_edit("A"))
        history.flush()

        assert history.undo()
        assert len(stack) == 1
        assert history.can_redo()

        assert history.redo()
        assert len(stack) == 2
        assert stack.active_layer_id == layer_id
        assert not history.can_redo()

    def test_undo_lands_pending_change_first(self, history, stack):
        """An unflushed edit is recorded before it is undone."""
        stack.add_layer(_edit("A"))

        assert history.undo()
        assert len(stack) == 1
        assert len(history.past) == 1
        assert len(history.future) == 1

    def test_restore_is_not_recorded(self, history, stack):
        stack.add_layer(_edit("A"))
        history.flush()
        history.undo()

        assert history.state is HistoryState.IDLE
        assert not history.flush()
        assert len(history.past) == 1

    def test_new_change_clears_future(self, history, stack):
        stack.add_layer(_edit("A"))
        history.flush()
        history.undo()

        stack.add_layer(_edit("B"))
        history.flush()

        assert not history.can_redo()
        assert [layer.name for layer in stack.layers][-1] == "B"

    def test_multiple_undo(self, history, stack):
        for name in "ABC":
            stack.add_layer(_edit(name))
            history.flush()

        assert history.undo()
        assert history.undo()
        assert [layer.name for layer in stack.layers][1:] == ["A"]
        assert len(history.future) == 2

    def test_reset_takes_current_baseline(self, history, stack):
        stack.add_layer(_edit("A"))
        history.flush()
        history.undo()

        history.reset()

        assert len(history.past) == 1
        assert not history.can_redo()
        assert len(history.past[0].layers) == len(stack)


class TestStackResets:
    """History follows base-image replacement on the stack."""

    def test_new_base_image_resets_history(self, history, stack):
        stack.add_layer(_edit("A"))
        history.flush()
        assert history.can_undo()

        stack.set_base_layer("other", 20, 20)

        assert len(history.past) == 1
        assert not history.can_undo()
        assert not history.can_redo()
        assert history.past[0].layers[0].image_data == "other"
        assert history.state is HistoryState.IDLE

    def test_cleared_stack_drops_history(self, history, stack):
        stack.add_layer(_edit("A"))
        history.flush()

        stack.clear_layers()

        assert history.past == []
        assert not history.undo()

    def test_from_settings(self, stack):
        settings = LayerfillSettings(
            history_max_size=5, history_debounce_ms=0, history_settle_ms=0
        )
        history = HistoryManager.from_settings(stack, settings)
        try:
            assert history.max_size == 5
            assert history.settle_ms == 0
        finally:
            history.close()


class TestTiming:
    """Tests with real timers."""

    def test_debounced_recording(self, stack):
        history = HistoryManager(stack, debounce_ms=20, settle_ms=0)
        try:
            stack.set_base_layer("base", 10, 10)
            assert _wait_for(lambda: len(history.past) == 1)
            stack.add_layer(_edit("A"))
            assert _wait_for(lambda: len(history.past) == 2)
        finally:
            history.close()

    def test_edit_while_settling_is_recorded(self, stack):
        """An edit right after undo lands once the debounce fires."""
        history = HistoryManager(stack, debounce_ms=100, settle_ms=50)
        try:
            stack.set_base_layer("base", 10, 10)
            stack.add_layer(_edit("A"))
            history.flush()

            history.undo()
            assert history.is_time_traveling
            assert history.state is HistoryState.TIME_TRAVELING

            stack.add_layer(_edit("B"))

            assert _wait_for(lambda: len(history.past) == 2)
            assert not history.can_redo()
            assert history.past[-1].layers[-1].name == "B"
            assert not history.is_time_traveling
        finally:
            history.close()

    def test_undo_while_settling_keeps_edit(self, stack):
        history = HistoryManager(stack, debounce_ms=10_000, settle_ms=10_000)
        try:
            stack.set_base_layer("base", 10, 10)
            stack.add_layer(_edit("A"))
            history.flush()
            history.undo()

            stack.add_layer(_edit("B"))
            assert history.undo()

            assert len(stack) == 1
            assert len(history.future) == 1
            assert history.future[0].layers[-1].name == "B"
        finally:
            history.close()
