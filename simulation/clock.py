"""SimClock — simulated time and one-shot deferred callbacks.

Nothing in the ops layer ever sleeps.  Every wait (auto-respawn delay,
mission settle delay, zone-watch deadline) is a TimerHandle registered
here and fired when the owner advances simulated time.  Timers fire in
due-time order; timers due at the same instant fire in the order they
were scheduled.
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass(eq=False)
class TimerHandle:
    """Cancel token for a scheduled callback."""

    due: float
    callback: Callable[[], Any]
    name: str = ""
    cancelled: bool = False
    fired: bool = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        """Cancel the timer. Returns False if it already fired or was cancelled."""
        if not self.active:
            return False
        self.cancelled = True
        return True


@dataclass(order=True)
class _Entry:
    due: float
    order: int
    handle: TimerHandle = field(compare=False)


class SimClock:
    """Monotonic simulated clock with a timer heap."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._heap: list[_Entry] = []
        self._order = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def next_due(self) -> float | None:
        self._discard_cancelled()
        return self._heap[0].due if self._heap else None

    def schedule(self, delay: float, callback: Callable[[], Any], name: str = "") -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, float(delay)), callback, name)
        heapq.heappush(self._heap, _Entry(handle.due, next(self._order), handle))
        return handle

    def pop_due(self, until: float) -> TimerHandle | None:
        """Remove and return the next active timer due at or before *until*.

        The clock is moved forward to that timer's due time.  Returns None
        (and leaves the clock untouched) when nothing is due.
        """
        self._discard_cancelled()
        if not self._heap or self._heap[0].due > until:
            return None
        entry = heapq.heappop(self._heap)
        self._now = max(self._now, entry.due)
        entry.handle.fired = True
        return entry.handle

    def advance_to(self, t: float, dispatch: Callable[[TimerHandle], Any] | None = None) -> int:
        """Fire every timer due up to *t*, then set the clock to *t*.

        *dispatch* receives each due handle; without one the callback is
        called directly.  Returns the number of timers fired.
        """
        fired = 0
        while True:
            handle = self.pop_due(t)
            if handle is None:
                break
            if dispatch is None:
                handle.callback()
            else:
                dispatch(handle)
            fired += 1
        self._now = max(self._now, float(t))
        return fired

    def _discard_cancelled(self) -> None:
        while self._heap and self._heap[0].handle.cancelled:
            heapq.heappop(self._heap)
