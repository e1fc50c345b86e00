"""
Periodic tasks with explicit cancellation.

Used for the display-refresh render loop and for position reporting. The
cancellation token is checked on every iteration, and stop() does not
return until the loop thread has exited, so a stopped loop can never touch
a resource that is torn down right after.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class FrameLoop:
    """Runs a callback every `interval` seconds on a daemon thread."""

    def __init__(self, callback: Callable[[], None], interval: float, name: str = "frame-loop"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self._thread: Optional[threading.Thread] = None
        self._cancelled: Optional[threading.Event] = None
        self._lock = threading.Lock()
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._cancelled.is_set()

    def start(self) -> None:
        """Start the loop; a no-op if it is already running."""
        with self._lock:
            if self.running:
                return
            # Each run gets its own token so a late thread from a previous
            # run can never observe a fresh, un-set event.
            cancelled = threading.Event()
            self._cancelled = cancelled
            self._thread = threading.Thread(target=self._run, args=(cancelled,), name=self.name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Cancel the loop and wait for the pending tick to finish."""
        with self._lock:
            thread, cancelled = self._thread, self._cancelled
            self._thread = None
        if cancelled is not None:
            cancelled.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self, cancelled: threading.Event) -> None:
        next_tick = time.monotonic()
        while not cancelled.is_set():
            try:
                self.callback()
            except Exception:
                logger.exception("Error in %s tick", self.name)
            self.ticks += 1

            next_tick += self.interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind; skip missed frames instead of bursting
                next_tick = time.monotonic()
                delay = 0
            cancelled.wait(delay)
