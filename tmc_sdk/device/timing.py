"""Cancellable settle delays."""
from __future__ import annotations

import threading


class Delay:
    """Millisecond sleep that reports whether it ran to completion.

    cancel() may be called from another thread. It interrupts the sleep in
    progress and makes every later sleep return immediately as interrupted,
    until reset() is called.
    """

    def __init__(self):
        self._cancelled = threading.Event()

    def sleep_ms(self, ms: int) -> bool:
        """Sleep for `ms` milliseconds.

        Returns:
            True if the full delay elapsed, False if it was cancelled
        """
        if ms <= 0:
            return not self._cancelled.is_set()
        return not self._cancelled.wait(ms / 1000.0)

    def cancel(self) -> None:
        self._cancelled.set()

    def reset(self) -> None:
        self._cancelled.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()
