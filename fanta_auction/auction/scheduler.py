"""
Server-side deadline timers.

The process hosting the auction is the only timeout authority: it arms one
timer per deadline and fires the matching transition when it elapses.
Callbacks are expected to re-check the state they were armed for, so a timer
that outlived its deadline is harmless.
"""

import logging
import threading
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class DeadlineScheduler:
    """Arms threading.Timer objects at absolute epoch times."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._lock = threading.Lock()
        self._timers: Dict[int, threading.Timer] = {}
        self._next_id = 0
        self._closed = False

    def schedule(self, at: float, callback: Callable, *args) -> int:
        """
        Run callback(*args) at epoch time `at` (immediately if already past).

        Returns:
            Handle usable with cancel()
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Scheduler is shut down")
            handle = self._next_id
            self._next_id += 1

            delay = max(0.0, at - self.clock())
            timer = threading.Timer(delay, self._fire, args=(handle, callback, args))
            timer.daemon = True
            self._timers[handle] = timer
            timer.start()

        logger.debug(f"Scheduled {getattr(callback, '__name__', callback)} in {delay:.2f}s")
        return handle

    def _fire(self, handle: int, callback: Callable, args: tuple) -> None:
        with self._lock:
            if self._timers.pop(handle, None) is None:
                return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Scheduled callback failed: {e}", exc_info=True)

    def cancel(self, handle: int) -> None:
        with self._lock:
            timer = self._timers.pop(handle, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        """Cancel every pending timer."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.debug(f"Cancelled {len(timers)} pending timers")

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        self.cancel_all()
        with self._lock:
            self._closed = True
