from __future__ import annotations

import threading
import time
from typing import Callable


class RefreshScheduler:
    """
    Gate loop iterations to a fixed display refresh clock.

    wait_next() blocks until the next refresh tick after the call and returns
    False if cancel() was called. A refresh_hz of 0 or less disables gating.
    """

    def __init__(self, refresh_hz: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.refresh_hz = refresh_hz
        self._clock = clock
        self._cond = threading.Condition()
        self._cancelled = False
        self._epoch = clock()

    @property
    def period(self) -> float:
        return 1.0 / self.refresh_hz if self.refresh_hz > 0 else 0.0

    def next_tick(self, now: float) -> float:
        period = self.period
        if period <= 0:
            return now
        ticks = int((now - self._epoch) / period) + 1
        return self._epoch + ticks * period

    def wait_next(self) -> bool:
        with self._cond:
            if self._cancelled:
                return False
            if self.period <= 0:
                return True
            deadline = self.next_tick(self._clock())
            while not self._cancelled:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            return not self._cancelled

    def cancel(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def reset(self) -> None:
        with self._cond:
            self._cancelled = False
            self._epoch = self._clock()
