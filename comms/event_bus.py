"""EventBus — run-to-completion pub/sub for the simulated battlespace.

This is the core messaging primitive used by SimulatedWorld, Spawner,
AreaOfOperations and Mission.  The world publishes entity events here
(group spawned, unit dead, zone entered, timer fired) and listeners
react to them.

Delivery model
--------------
Events go into a FIFO queue and are delivered one at a time.  A handler
always runs to completion before the next event is taken off the queue.
Publishing from inside a handler never recurses into delivery; the new
event is appended to the queue and the outer drain loop picks it up.
That way a death handler that schedules a respawn cannot see the respawn
happen halfway through its own execution.

A subscriber that raises is logged and skipped; the remaining subscribers
of that event still run and the queue keeps draining.
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

GROUP_SPAWNED = "group_spawned"
UNIT_DEAD = "unit_dead"
GROUP_DEAD = "group_dead"
GROUP_REMOVED = "group_removed"
ZONE_ENTERED = "zone_entered"
TIMER_FIRED = "timer_fired"

# Subscribing to this receives every event type.
ALL_EVENTS = "*"

_DEFERRED = "_deferred"


@dataclass
class Event:
    """A single notification travelling through the bus."""

    type: str
    data: dict = field(default_factory=dict)
    seq: int = 0


@dataclass(eq=False)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    event_type: str
    callback: Callable[[Event], Any]
    active: bool = True


class EventBus:
    """Single-owner event queue with typed subscriptions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = {}
        self._queue: deque[Event] = deque()
        self._seq = itertools.count(1)
        self._dispatching = False
        self.delivered = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def dispatching(self) -> bool:
        return self._dispatching

    def subscribe(self, event_type: str, callback: Callable[[Event], Any]) -> Subscription:
        sub = Subscription(event_type, callback)
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.active = False
        with self._lock:
            try:
                self._subscribers.get(sub.event_type, []).remove(sub)
            except ValueError:
                pass

    def publish(self, event_type: str, data: dict | None = None) -> Event:
        """Queue an event and deliver it unless a delivery is already running."""
        event = Event(event_type, dict(data or {}), next(self._seq))
        self._queue.append(event)
        if not self._dispatching:
            self.drain()
        return event

    def defer(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run *callback* after the current event turn completes."""
        self.publish(_DEFERRED, {"callback": callback, "args": args})

    def drain(self) -> int:
        """Deliver queued events until the queue is empty. Returns the count."""
        if self._dispatching:
            return 0
        self._dispatching = True
        count = 0
        try:
            while self._queue:
                event = self._queue.popleft()
                self._deliver(event)
                count += 1
        finally:
            self._dispatching = False
        return count

    def _deliver(self, event: Event) -> None:
        self.delivered += 1
        if event.type == _DEFERRED:
            event.data["callback"](*event.data["args"])
            return
        with self._lock:
            subs = list(self._subscribers.get(event.type, ()))
            subs.extend(self._subscribers.get(ALL_EVENTS, ()))
        for sub in subs:
            # A handler earlier in this turn may have unsubscribed it.
            if not sub.active:
                continue
            try:
                sub.callback(event)
            except Exception:
                logger.exception(f"EventBus: subscriber failed on {event.type} event")
