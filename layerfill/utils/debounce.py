"""
Debounce utility.

Provides:
- Debouncer: Coalesces bursts of calls into a single delayed call.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any


class Debouncer:
    """
    Debounce utility to limit frequency of function calls.

    Every new call cancels the pending-but-unfired timer before scheduling
    a fresh one, so rapid successive events collapse into one call carrying
    the latest arguments.

    Example:
        >>> debouncer = Debouncer(delay=0.1)
        >>> debouncer.call(record, layers_v1)  # Scheduled
        >>> debouncer.call(record, layers_v2)  # Replaces previous schedule
        >>> # ... 0.1s later ...
        >>> # record(layers_v2) runs once
    """

    def __init__(self, delay: float = 0.1) -> None:
        """
        Initialize debouncer.

        Args:
            delay: Delay in seconds before executing the call.
        """
        self.delay = delay
        self._timer: threading.Timer | None = None
        self._pending: tuple[Callable[..., Any], tuple, dict] | None = None
        self._lock = threading.Lock()

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """
        Schedule a function call, replacing any pending one.

        Args:
            func: Function to call.
            *args: Positional arguments.
            **kwargs: Keyword arguments.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()

            self._pending = (func, args, kwargs)
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            pending = self._pending
            self._pending = None
            self._timer = None

        if pending is not None:
            func, args, kwargs = pending
            func(*args, **kwargs)

    @property
    def pending(self) -> bool:
        """True while a scheduled call has not fired yet."""
        with self._lock:
            return self._pending is not None

    def flush(self) -> bool:
        """
        Run the pending call immediately on the calling thread.

        Returns:
            True if a pending call was executed.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            pending = self._pending
            self._pending = None

        if pending is None:
            return False

        func, args, kwargs = pending
        func(*args, **kwargs)
        return True

    def cancel(self) -> None:
        """Cancel any pending call."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None
