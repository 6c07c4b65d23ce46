"""Mission — goal-oriented state machine on top of an AreaOfOperations.

Lifecycle::

    created -> started -> resolving -> resolved -> finished

A goal is configured before start().  Each goal setter installs its
bindings on the owned AO's handler slots:

  DESTROY_ALL      success on the AO's on_all_dead
  DESTROY_TARGETS  success on the first dead group matching a prefix
  ESCORT           ZoneWatch with end_on_arrival=True
  INTERDICT        ZoneWatch with end_on_arrival=False
  PROTECT          not implemented; raises GoalNotImplemented

success()/failure() decide the outcome immediately and schedule the
outcome handler plus finish() after a settle delay.  A mission resolves
at most once; later resolution calls are no-ops.  finish() calls on_end
exactly once and moves the mission from the registry's active map to
its completed map.

Mission codes are short numbers made of digits 1-7, unique among the
active missions of one MissionRegistry.
"""

from __future__ import annotations

import random
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from app.config import settings
from ops.area import AreaOfOperations, call_handler
from ops.errors import GoalNotImplemented, SetupSession, ZoneMissing
from ops.zone_watch import ZoneWatch
from ops.zones import CircleZone, Zone
from simulation.units import GroupInstance, Point

if TYPE_CHECKING:
    from ops.catalog import TemplateCatalog
    from simulation.clock import TimerHandle
    from simulation.world import WorldInterface


class Goal(IntEnum):
    DESTROY_ALL = 1
    DESTROY_TARGETS = 2
    PROTECT = 3
    ESCORT = 4
    INTERDICT = 5


class MissionState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FINISHED = "finished"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class MissionRegistry:
    """Issues mission codes and tracks active and completed missions."""

    def __init__(self, rng: random.Random | None = None, digits: int | None = None) -> None:
        self.rng = rng or random.Random()
        self.digits = max(1, digits if digits is not None else settings.mission_code_digits)
        self.active: dict[int, Mission] = {}
        self.completed: dict[int, Mission] = {}

    @property
    def capacity(self) -> int:
        return 7 ** self.digits

    def generate_code(self) -> int:
        if len(self.active) >= self.capacity:
            raise RuntimeError(f"Unable to generate mission code: {len(self.active)} missions active")
        while True:
            code = 0
            for _ in range(self.digits):
                code = code * 10 + self.rng.randint(1, 7)
            if code not in self.active:
                return code

    def register(self, mission: Mission) -> int:
        code = self.generate_code()
        self.active[code] = mission
        return code

    def complete(self, mission: Mission) -> None:
        if self.active.get(mission.code) is mission:
            del self.active[mission.code]
        self.completed[mission.code] = mission

    def get(self, code: int) -> Mission | None:
        return self.active.get(code) or self.completed.get(code)


MissionHandler = Callable[["Mission"], Any]


class Mission:
    """One goal-driven mission owning one AreaOfOperations."""

    def __init__(self, world: WorldInterface, area: AreaOfOperations,
                 registry: MissionRegistry | None = None) -> None:
        self.registry = registry or MissionRegistry()
        self.area = area
        self.code = self.registry.register(self)
        self.goal: Goal | None = None
        self.state = MissionState.CREATED
        self.outcome: Outcome | None = None
        self.resolved_at: float | None = None
        self.ended_at: float | None = None
        self.zone_watch: ZoneWatch | None = None
        self.settle_delay = settings.mission_settle_delay
        self._world = world
        self._tag = f"OpsMssn|{self.code}"
        self._settle_timer: TimerHandle | None = None
        self._on_start: MissionHandler | None = None
        self._on_success: MissionHandler | None = None
        self._on_failure: MissionHandler | None = None
        self._on_end: MissionHandler | None = None
        logger.info(f"{self._tag}: Initializing OpsMission")

    @classmethod
    def with_zone(cls, world: WorldInterface, zone_name: str, area_name: str | None = None,
                  registry: MissionRegistry | None = None,
                  session: SetupSession | None = None) -> Mission:
        """Mission whose AO is every group template inside a world zone."""
        area = AreaOfOperations.with_zone(area_name or zone_name, world, zone_name, session)
        area.scan_for_group_templates()
        return cls(world, area, registry)

    @classmethod
    def from_catalog(cls, world: WorldInterface, catalog: TemplateCatalog, area_name: str,
                     template_set: str, zone: Zone | str | None = None,
                     registry: MissionRegistry | None = None,
                     session: SetupSession | None = None) -> Mission:
        area = AreaOfOperations.from_catalog(area_name, world, catalog, template_set,
                                             zone=zone, session=session)
        return cls(world, area, registry)

    # -- Goals --------------------------------------------------------------

    def set_goal_destroy_all(self) -> None:
        self.goal = Goal.DESTROY_ALL
        logger.info(f"{self._tag}: GOAL destroy all groups in {self.area.name}")
        self.area.on_all_dead(lambda ao: self.success())

    def set_goal_destroy_targets(self, prefix: str) -> None:
        self.goal = Goal.DESTROY_TARGETS
        logger.info(f"{self._tag}: GOAL destroy groups named '{prefix}*'")

        def _group_dead(ao: AreaOfOperations, group: GroupInstance) -> None:
            if group.name.startswith(prefix):
                self.success()

        self.area.on_group_dead(_group_dead)

    def set_goal_protect(self, *args: Any, **kwargs: Any) -> None:
        raise GoalNotImplemented("PROTECT goal is not implemented")

    def set_goal_escort(self, prefix: str, destination: str | Zone | Point,
                        radius: float | None = None, time_limit: float | None = None) -> ZoneWatch:
        """Succeed when the group reaches *destination*, fail if it dies or time runs out."""
        self.goal = Goal.ESCORT
        endzone = self._make_zone(destination, radius)
        logger.info(f"{self._tag}: GOAL escort group '{prefix}' to zone: '{endzone.name}'")
        return self._watch_endzone(prefix, endzone, True, time_limit)

    def set_goal_interdict(self, prefix: str, destination: str | Zone | Point,
                           radius: float | None = None, time_limit: float | None = None) -> ZoneWatch:
        """Succeed when the group dies or time runs out, fail if it reaches *destination*."""
        self.goal = Goal.INTERDICT
        endzone = self._make_zone(destination, radius)
        logger.info(f"{self._tag}: GOAL interdict group '{prefix}' from reaching zone: '{endzone.name}'")
        return self._watch_endzone(prefix, endzone, False, time_limit)

    def set_goal(self, goal: Goal | int, *args: Any, **kwargs: Any) -> ZoneWatch | None:
        """Dispatch to the setter for *goal*."""
        goal = Goal(goal)
        if goal is Goal.DESTROY_ALL:
            self.set_goal_destroy_all()
        elif goal is Goal.DESTROY_TARGETS:
            self.set_goal_destroy_targets(*args, **kwargs)
        elif goal is Goal.ESCORT:
            return self.set_goal_escort(*args, **kwargs)
        elif goal is Goal.INTERDICT:
            return self.set_goal_interdict(*args, **kwargs)
        else:
            self.set_goal_protect(*args, **kwargs)
        return None

    def _make_zone(self, destination: str | Zone | Point, radius: float | None) -> Zone:
        if isinstance(destination, Zone):
            return destination
        if isinstance(destination, str):
            zone = self._world.find_zone(destination)
            if zone is None:
                logger.error(f"{self._tag}: Can't find endzone named '{destination}'")
                raise ZoneMissing(f"Can't find zone named '{destination}'")
            return zone
        if isinstance(destination, (tuple, list)) and len(destination) == 2:
            r = settings.endzone_radius if radius is None else radius
            return CircleZone(f"endzone-{self.code}", (destination[0], destination[1]), r)
        logger.error(f"{self._tag}: Cannot create endzone with construction param {destination!r}")
        raise TypeError(f"Unsupported endzone destination: {destination!r}")

    def _watch_endzone(self, prefix: str, endzone: Zone, end_on_arrival: bool,
                       time_limit: float | None) -> ZoneWatch:
        if self.zone_watch is not None:
            self.zone_watch.cancel()
        watch = ZoneWatch(self._world, endzone, prefix, end_on_arrival, time_limit,
                          on_outcome=lambda w, ok: self.success() if ok else self.failure())
        self.zone_watch = watch
        self.area.on_group_spawned(lambda ao, group: watch.offer(group))
        self.area.on_group_dead(lambda ao, group: watch.group_destroyed(group))
        return watch

    # -- Handlers -----------------------------------------------------------

    def on_start(self, handler: MissionHandler | None) -> None:
        self._on_start = handler

    def on_success(self, handler: MissionHandler | None) -> None:
        self._on_success = handler

    def on_failure(self, handler: MissionHandler | None) -> None:
        self._on_failure = handler

    def on_end(self, handler: MissionHandler | None) -> None:
        self._on_end = handler

    # -- Lifecycle ----------------------------------------------------------

    @property
    def resolved(self) -> bool:
        return self.outcome is not None

    def start(self) -> list[GroupInstance]:
        """Spawn the AO and call on_start. Returns the spawned groups."""
        if self.state is not MissionState.CREATED:
            logger.warning(f"{self._tag}: Mission already {self.state.value}, ignoring start")
            return []
        logger.info(f"{self._tag}: Starting mission.")
        if self.goal is None:
            logger.warning(f"{self._tag}: No mission goal defined, defaulting to DESTROY_ALL.")
            self.set_goal_destroy_all()
        self.state = MissionState.STARTED
        groups = self.area.spawn_all()
        call_handler(self._on_start, self)
        return groups

    def success(self, delay: float | None = None) -> bool:
        """Resolve as a success. Returns False if already resolved."""
        return self._resolve(Outcome.SUCCESS, self._on_success, delay)

    def failure(self, delay: float | None = None) -> bool:
        """Resolve as a failure. Returns False if already resolved."""
        return self._resolve(Outcome.FAILURE, self._on_failure, delay)

    def _resolve(self, outcome: Outcome, handler: MissionHandler | None, delay: float | None) -> bool:
        if self.resolved or self.state is MissionState.FINISHED:
            logger.debug(f"{self._tag}: Already resolved, ignoring {outcome.value}")
            return False
        self.outcome = outcome
        self.state = MissionState.RESOLVING
        self.resolved_at = self._world.now
        logger.info(f"{self._tag}: Mission {outcome.value}.")

        def _settle() -> None:
            self._settle_timer = None
            self.state = MissionState.RESOLVED
            call_handler(handler, self)
            self.finish()

        delay = self.settle_delay if delay is None else delay
        self._settle_timer = self._world.schedule_timer(delay, _settle, f"{self._tag}:{outcome.value}")
        return True

    def finish(self) -> bool:
        """Call on_end. Returns False if the mission already finished."""
        if self.state is MissionState.FINISHED:
            return False
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None
        self.state = MissionState.FINISHED
        self.ended_at = self._world.now
        if self.zone_watch is not None:
            self.zone_watch.cancel()
        self.registry.complete(self)
        logger.info(f"{self._tag}: Mission finished.")
        call_handler(self._on_end, self)
        return True

    def despawn_all_groups(self) -> int:
        return self.area.destroy_spawned_groups()

    def __repr__(self) -> str:
        return f"Mission({self.code}, goal={self.goal.name if self.goal else None}, state={self.state.value})"
