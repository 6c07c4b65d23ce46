"""ZoneWatch — a timed race between arrival, destruction and timeout.

A watch is scoped to a group-name prefix and binds to the *first*
matching instance offered to it (normally from an AO's spawn handler).
Binding starts the zone's trigger watch, subscribes to zone entry for
that instance and arms a deadline timer.  From then on three branches
race:

  arrived    — the instance entered the target zone
  destroyed  — a group matching the prefix was reported fully dead
  timed_out  — the deadline elapsed first

The first terminal transition wins.  It retires every other branch
(zone-entry subscription, deadline timer, zone watch) before the outcome
callback runs, and every branch checks the terminal state on entry, so a
late event can never resolve the watch twice.

Outcome mapping::

    end_on_arrival=True  (escort):    arrived -> success, otherwise failure
    end_on_arrival=False (interdict): arrived -> failure, otherwise success
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from app.config import settings
from ops.zones import Zone
from simulation.units import GroupInstance

if TYPE_CHECKING:
    from comms.event_bus import Subscription
    from simulation.clock import TimerHandle
    from simulation.world import WorldInterface


class WatchState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    ARRIVED = "arrived"
    DESTROYED = "destroyed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self in (WatchState.ARRIVED, WatchState.DESTROYED, WatchState.TIMED_OUT)


# (watch, success) -> None
OutcomeCallback = Callable[["ZoneWatch", bool], Any]


class ZoneWatch:
    """Watch one prefix-matched group against a target zone."""

    def __init__(
        self,
        world: WorldInterface,
        zone: Zone,
        prefix: str,
        end_on_arrival: bool,
        time_limit: float | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        self.zone = zone
        self.prefix = prefix
        self.end_on_arrival = end_on_arrival
        self.time_limit = settings.watch_time_limit if time_limit is None else time_limit
        self.state = WatchState.IDLE
        self.target: GroupInstance | None = None
        self.resolved_at: float | None = None
        self._world = world
        self._on_outcome = on_outcome
        self._entry_sub: Subscription | None = None
        self._deadline: TimerHandle | None = None
        self._holds_zone = False

    @property
    def resolved(self) -> bool:
        return self.state.terminal

    @property
    def success(self) -> bool | None:
        """Outcome of the race, None while unresolved."""
        if not self.resolved:
            return None
        arrived = self.state is WatchState.ARRIVED
        return arrived if self.end_on_arrival else not arrived

    def matches(self, instance: GroupInstance) -> bool:
        return instance.name.startswith(self.prefix)

    def offer(self, instance: GroupInstance) -> bool:
        """Bind to *instance* if the watch is idle and the name matches.

        Returns True when the instance became the watch target.
        """
        if self.state is not WatchState.IDLE or not self.matches(instance):
            return False

        self.zone.begin_watch()
        self._holds_zone = True
        self.state = WatchState.WATCHING
        self.target = instance
        logger.debug(f"ZoneWatch: Found target group = {instance.name}, watching zone '{self.zone.name}'")

        self._deadline = self._world.schedule_timer(
            self.time_limit, self._timed_out, f"ZoneWatch:{self.zone.name}:deadline"
        )
        sub = self._world.subscribe_zone_entry(self.zone, instance, self._arrived)
        if self.resolved:
            # Already inside the zone when the subscription was made
            self._world.unsubscribe(sub)
        else:
            self._entry_sub = sub
        return True

    def group_destroyed(self, instance: GroupInstance) -> bool:
        """Report a fully dead group. Returns True if it resolved the watch.

        Any prefix match counts, bound target or not.
        """
        if self.resolved or not self.matches(instance):
            return False
        self._resolve(WatchState.DESTROYED, "Target group has been destroyed before reaching endzone.")
        return True

    def cancel(self) -> None:
        """Tear the watch down without an outcome."""
        if not self.resolved:
            self._retire()
            self.state = WatchState.IDLE
            self.target = None

    def _arrived(self, instance: GroupInstance) -> None:
        if self.resolved:
            return
        self._resolve(WatchState.ARRIVED, "Target group has reached endzone.")

    def _timed_out(self) -> None:
        self._deadline = None
        if self.resolved:
            return
        self._resolve(WatchState.TIMED_OUT, f"Timelimit expired. {self.prefix} never reached endzone.")

    def _resolve(self, state: WatchState, message: str) -> None:
        self.state = state
        self.resolved_at = self._world.now
        self._retire()
        success = self.success
        logger.info(f"ZoneWatch: {message} Mission {'success' if success else 'failure'}.")
        if self._on_outcome is not None:
            self._on_outcome(self, success)

    def _retire(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        if self._entry_sub is not None:
            self._world.unsubscribe(self._entry_sub)
            self._entry_sub = None
        if self._holds_zone:
            self.zone.stop_watch()
            self._holds_zone = False

    def __repr__(self) -> str:
        return f"ZoneWatch({self.prefix!r} -> {self.zone.name!r}, state={self.state.value})"
