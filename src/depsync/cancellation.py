"""Cooperative cancellation token shared between a caller and running work."""

from __future__ import annotations

import threading
from typing import Optional


class Cancellation:
    """Thread-safe flag checked between units of work.

    Cancelling never interrupts work that already started; it only stops new
    work from being picked up.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; returns the flag."""
        return self._event.wait(timeout)
