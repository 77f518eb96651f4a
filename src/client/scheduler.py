"""
Timer scheduling for the coordinator (settle delay, polling, indicator timeouts).
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from util.logging import logger


class TimerHandle:
    """Handle returned by a scheduler; pass it back to cancel()."""

    def __init__(self, interval: Optional[float] = None):
        self.interval = interval
        self.cancelled = False
        self._timer: Optional[threading.Timer] = None


class Scheduler(ABC):
    """One-shot and repeating timers."""

    @abstractmethod
    def call_later(self, delay: float, func: Callable[[], None]) -> TimerHandle:
        pass

    @abstractmethod
    def call_every(self, interval: float, func: Callable[[], None]) -> TimerHandle:
        """Run `func` every `interval` seconds, first run after one interval."""
        pass

    @abstractmethod
    def cancel(self, handle: Optional[TimerHandle]) -> None:
        pass


class ThreadingScheduler(Scheduler):
    """Scheduler backed by daemon threading.Timer objects."""

    def _run(self, handle: TimerHandle, func: Callable[[], None]) -> None:
        if handle.cancelled:
            return
        try:
            func()
        except Exception as e:
            # Timer threads have no caller to propagate to
            logger.error(f"Scheduled callback {getattr(func, '__name__', func)} failed: {e}")
        if handle.interval is not None and not handle.cancelled:
            self._arm(handle, handle.interval, func)

    def _arm(self, handle: TimerHandle, delay: float, func: Callable[[], None]) -> None:
        timer = threading.Timer(delay, self._run, args=(handle, func))
        timer.daemon = True
        handle._timer = timer
        timer.start()

    def call_later(self, delay: float, func: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()
        self._arm(handle, delay, func)
        return handle

    def call_every(self, interval: float, func: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(interval)
        self._arm(handle, interval, func)
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancelled = True
        if handle._timer is not None:
            handle._timer.cancel()
