"""Cancellable timers for the capture pipeline."""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle to a scheduled callback."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._cancelled = False
        self._fired = False

    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call more than once."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        """True until the timer fires or is cancelled."""
        return not (self._cancelled or self._fired)

    def _fire(self) -> None:
        if not self.active:
            return
        self._fired = True
        self._callback()


class Scheduler(ABC):
    """Source of time and deferred callbacks."""

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds unless cancelled."""

    def shutdown(self) -> None:
        """Release any resources held by pending timers."""


class _ThreadingHandle(TimerHandle):
    def __init__(self, delay: float, callback: Callable[[], None]):
        super().__init__(delay, callback)
        self._timer: Optional[threading.Timer] = None

    def cancel(self) -> None:
        super().cancel()
        if self._timer is not None:
            self._timer.cancel()


class ThreadingScheduler(Scheduler):
    """Real-time scheduler backed by ``threading.Timer``."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: set[_ThreadingHandle] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ThreadingHandle(delay, callback)

        def run():
            with self._lock:
                self._handles.discard(handle)
            try:
                handle._fire()
            except Exception as e:
                logger.error(f"Timer callback error: {e}", exc_info=True)

        timer = threading.Timer(max(delay, 0.0), run)
        timer.daemon = True
        handle._timer = timer
        with self._lock:
            self._handles.add(handle)
        timer.start()
        return handle

    def shutdown(self) -> None:
        with self._lock:
            handles = list(self._handles)
            self._handles.clear()
        for handle in handles:
            handle.cancel()


class ManualScheduler(Scheduler):
    """Virtual clock that only moves when :meth:`advance` is called.

    Callbacks run synchronously in the thread calling ``advance``, in due-time
    order, so timer-driven behaviour can be tested deterministically.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(delay, callback)
        heapq.heappush(self._queue, (self._now + max(delay, 0.0), next(self._seq), handle))
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that becomes due."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            handle._fire()
        self._now = target

    def pending(self) -> list[TimerHandle]:
        """Active timers, soonest first."""
        return [h for _, _, h in sorted(self._queue) if h.active]

    def pending_delays(self) -> list[float]:
        """Delays of the active timers, soonest first."""
        return [h.delay for h in self.pending()]
