"""
Deferred-action scheduling for the emotion gate.

The gate arms several one-shot timers (escalation, lock tick, popup auto-close,
processing release). Timers are cancellable handles; cancelling a timer that
already fired or was already cancelled does nothing.

ThreadingScheduler backs the running service with threading.Timer.
ManualScheduler keeps a virtual millisecond clock that only moves when
advance()/advance_to() is called, which makes gate behaviour reproducible in
tests and simulations.
"""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle for one deferred callback."""

    def __init__(self, callback: Callable[[], None], due_ms: float):
        self._callback = callback
        self.due_ms = due_ms
        self._cancelled = False
        self._fired = False
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        """Idempotent; a no-op after firing."""
        with self._lock:
            if self._fired or self._cancelled:
                return
            self._cancelled = True
            timer = self._timer
        if timer is not None:
            timer.cancel()

    def _run(self) -> None:
        with self._lock:
            if self._cancelled or self._fired:
                return
            self._fired = True
        try:
            self._callback()
        except Exception as e:
            logger.warning("Timer callback failed: %s", e)


class Scheduler(ABC):
    """Clock plus deferred one-shot callbacks."""

    @abstractmethod
    def now_ms(self) -> float:
        pass

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        pass

    def shutdown(self) -> None:
        """Release scheduler resources. Default implementation does nothing."""
        pass


class ThreadingScheduler(Scheduler):
    """Real-time scheduler: monotonic clock, one daemon threading.Timer per callback."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay_ms = max(0.0, float(delay_ms))
        handle = TimerHandle(callback, self.now_ms() + delay_ms)
        timer = threading.Timer(delay_ms / 1000.0, handle._run)
        timer.daemon = True
        handle._timer = timer
        timer.start()
        return handle


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler.

    Usage:
        sched = ManualScheduler()
        gate = EmotionGateController(scheduler=sched, ...)
        gate.ingest(-15)
        sched.advance(3000)   # fires the escalation timer
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(callback, self._now + max(0.0, float(delay_ms)))
        heapq.heappush(self._queue, (handle.due_ms, next(self._seq), handle))
        return handle

    def pending(self) -> int:
        """Number of armed, not yet fired or cancelled timers."""
        return sum(1 for _, _, h in self._queue if h.active)

    def advance(self, delta_ms: float) -> int:
        return self.advance_to(self._now + float(delta_ms))

    def advance_to(self, target_ms: float) -> int:
        """
        Move the clock to target_ms, firing due timers in (due time, arm order).

        Timers armed by callbacks are fired in the same pass when they fall due
        before target_ms. Returns the number of callbacks run.
        """
        fired = 0
        while self._queue and self._queue[0][0] <= target_ms:
            due, _, handle = heapq.heappop(self._queue)
            if not handle.active:
                continue
            self._now = max(self._now, due)
            handle._run()
            fired += 1
        self._now = max(self._now, float(target_ms))
        return fired

    def shutdown(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()
