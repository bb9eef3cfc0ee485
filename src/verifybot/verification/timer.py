"""Monotonic deadlines for verification sessions."""

import asyncio
from typing import Callable, Optional


class DeadlineTimer:
    """Fires ``callback`` once when the deadline passes.

    Uses the running loop's monotonic clock. ``cancel`` is idempotent and a
    cancelled or fired timer never fires (again).
    """

    def __init__(self, callback: Callable[[], None]):
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.deadline: Optional[float] = None
        self.fired = False
        self.cancelled = False

    def start(self, seconds: float) -> float:
        """Arm the timer; returns the absolute deadline on the loop clock."""
        if self._handle is not None or self.cancelled:
            raise RuntimeError("DeadlineTimer can only be started once")
        self._loop = asyncio.get_running_loop()
        self.deadline = self._loop.time() + seconds
        self._handle = self._loop.call_at(self.deadline, self._fire)
        return self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None if not armed."""
        if self.deadline is None or self._loop is None:
            return None
        return max(0.0, self.deadline - self._loop.time())

    def cancel(self) -> None:
        if self.cancelled or self.fired:
            return
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()

    def _fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self._callback()
