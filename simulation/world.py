"""World Simulation Interface and its in-memory implementation.

Architecture
------------
The ops layer (spawners, areas of operations, missions) never touches
entities directly.  It talks to a WorldInterface: spawn and destroy
groups, subscribe to per-group death and zone-entry feeds, register
timers, query zone membership.  SimulatedWorld is the in-memory
implementation used by tests and by the scripted mission runner.

SimulatedWorld owns three collaborators:

  EventBus  — every notification (unit dead, zone entered, timer fired)
              is published here and delivered run-to-completion.
  SimClock  — simulated time.  Timers are popped in due order and
              delivered as ``timer_fired`` events, so a timer callback is
              just another event turn.
  TemplateCatalog — resolves template names for find_template().

Time only moves when the owner calls advance()/advance_to().  Each call
walks forward in ``tick`` steps: timers due inside a step fire at their
own due time, then groups move along their routes and zone-entry
watchers are re-evaluated at the end of the step.

Zero-delay timers are special: they fire right after the current event
turn without anyone advancing time.  This is what makes "auto-respawn
with delay 0" immediate yet never re-entrant.
"""

from __future__ import annotations

import itertools
import random
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable

from loguru import logger

from comms.event_bus import (
    GROUP_REMOVED,
    GROUP_SPAWNED,
    TIMER_FIRED,
    UNIT_DEAD,
    ZONE_ENTERED,
    Event,
    EventBus,
    Subscription,
)

from .clock import SimClock, TimerHandle
from .units import Coalition, GroupInstance, Point, StaticObject, Unit

if TYPE_CHECKING:
    from ops.catalog import TemplateCatalog, TemplateDescriptor
    from ops.zones import Zone


class WorldInterface(ABC):
    """The narrow contract the ops layer consumes."""

    @property
    @abstractmethod
    def now(self) -> float:
        """Current simulated time in seconds."""

    @abstractmethod
    def find_template(self, name: str) -> TemplateDescriptor:
        """Resolve a template. Raises TemplateNotFound / TemplateInvalid."""

    @abstractmethod
    def templates(self) -> list[TemplateDescriptor]:
        """Every group template the world knows about."""

    @abstractmethod
    def spawn_instance(self, descriptor: TemplateDescriptor, location: Point | None = None) -> GroupInstance:
        """Realise one group from *descriptor*, lead unit at *location*."""

    @abstractmethod
    def spawn_static(self, descriptor: TemplateDescriptor) -> StaticObject:
        """Realise a static decoration at its authored position."""

    @abstractmethod
    def destroy_instance(self, handle: GroupInstance, generate_event: bool = True) -> None:
        """Destroy every unit of *handle*; silently when generate_event is False."""

    @abstractmethod
    def destroy_static(self, obj: StaticObject) -> None:
        """Remove a static decoration."""

    @abstractmethod
    def subscribe_death(self, handle: GroupInstance, callback: Callable[[Unit], Any]) -> Subscription:
        """Call *callback* with each unit of *handle* that dies."""

    @abstractmethod
    def subscribe_zone_entry(self, zone: Zone, handle: GroupInstance,
                             callback: Callable[[GroupInstance], Any]) -> Subscription:
        """Call *callback* when *handle* moves from outside to inside *zone*."""

    @abstractmethod
    def unsubscribe(self, sub: Subscription) -> None:
        """Retire a death or zone-entry subscription."""

    @abstractmethod
    def schedule_timer(self, delay: float, callback: Callable[[], Any], name: str = "") -> TimerHandle:
        """One-shot callback after *delay* simulated seconds."""

    def is_point_in_zone(self, zone: Zone, point: Point) -> bool:
        return zone.contains_point(point)

    @abstractmethod
    def groups_in_zone(self, zone: Zone, coalitions: Iterable[Coalition] | None = None) -> list[GroupInstance]:
        """Alive groups (spawned by anyone) with at least one unit in *zone*."""

    @abstractmethod
    def statics_in_zone(self, zone: Zone, coalitions: Iterable[Coalition] | None = None) -> list[StaticObject]:
        """Alive statics inside *zone*."""

    @abstractmethod
    def find_zone(self, name: str) -> Zone | None:
        """Look up a named zone authored in the world."""

    @abstractmethod
    def zones_with_prefix(self, prefix: str) -> list[Zone]:
        """Named zones whose name starts with *prefix* ("" matches all)."""

    @abstractmethod
    def group_position(self, name: str) -> Point | None:
        """Current position of a named alive group, None if unknown or dead."""


@dataclass(eq=False)
class _ZoneEntryWatch:
    watch_id: int
    zone: Zone
    handle: GroupInstance
    sub: Subscription
    inside: bool = False


class SimulatedWorld(WorldInterface):
    """In-memory battlespace driven by explicit calls and simulated time."""

    DEFAULT_TICK = 1.0

    def __init__(
        self,
        catalog: TemplateCatalog | None = None,
        bus: EventBus | None = None,
        clock: SimClock | None = None,
        tick: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.catalog = catalog
        self.bus = bus or EventBus()
        self.clock = clock or SimClock()
        self.tick = tick or self.DEFAULT_TICK
        self.rng = rng or random.Random()
        # Live groups only; fully dead or removed groups are dropped.
        self._groups: dict[str, GroupInstance] = {}
        self._units: dict[str, GroupInstance] = {}
        self._statics: dict[str, StaticObject] = {}
        self._zones: dict[str, Zone] = {}
        self._aliases: dict[str, int] = defaultdict(int)
        self._watch_ids = itertools.count(1)
        self._zone_watches: dict[int, _ZoneEntryWatch] = {}
        self._zero_flush_pending = False
        self.bus.subscribe(TIMER_FIRED, self._on_timer_fired)

    # -- Queries ------------------------------------------------------------

    @property
    def now(self) -> float:
        return self.clock.now

    def find_template(self, name: str) -> TemplateDescriptor:
        if self.catalog is None:
            from ops.errors import TemplateNotFound
            raise TemplateNotFound(name, f"No catalog loaded; can't find template named {name}")
        return self.catalog.find(name)

    def templates(self) -> list[TemplateDescriptor]:
        return self.catalog.groups() if self.catalog is not None else []

    def group(self, name: str) -> GroupInstance | None:
        return self._groups.get(name)

    def groups(self) -> list[GroupInstance]:
        return [g for g in self._groups.values() if g.alive]

    def statics(self) -> list[StaticObject]:
        return [s for s in self._statics.values() if s.alive]

    def group_position(self, name: str) -> Point | None:
        g = self._groups.get(name)
        if g is None or not g.alive:
            return None
        return g.position

    def groups_in_zone(self, zone: Zone, coalitions: Iterable[Coalition] | None = None) -> list[GroupInstance]:
        allowed = set(coalitions) if coalitions is not None else None
        return [
            g for g in self.groups()
            if (allowed is None or g.coalition in allowed)
            and any(self.is_point_in_zone(zone, u.position) for u in g.alive_units())
        ]

    def statics_in_zone(self, zone: Zone, coalitions: Iterable[Coalition] | None = None) -> list[StaticObject]:
        allowed = set(coalitions) if coalitions is not None else None
        return [
            s for s in self.statics()
            if (allowed is None or s.coalition in allowed) and self.is_point_in_zone(zone, s.position)
        ]

    # -- Zones --------------------------------------------------------------

    def add_zone(self, zone: Zone) -> Zone:
        self._zones[zone.name] = zone
        return zone

    def find_zone(self, name: str) -> Zone | None:
        return self._zones.get(name)

    def zones_with_prefix(self, prefix: str) -> list[Zone]:
        return [z for name, z in self._zones.items() if name.startswith(prefix)]

    # -- Spawning -----------------------------------------------------------

    def spawn_instance(self, descriptor: TemplateDescriptor, location: Point | None = None) -> GroupInstance:
        self._aliases[descriptor.name] += 1
        name = f"{descriptor.name}#{self._aliases[descriptor.name]:03d}"
        ox, oy = descriptor.origin
        dx, dy = (0.0, 0.0) if location is None else (location[0] - ox, location[1] - oy)
        units = [
            Unit(
                name=f"{name}-{i + 1:02d}",
                unit_type=u.unit_type,
                position=(u.position[0] + dx, u.position[1] + dy),
            )
            for i, u in enumerate(descriptor.units)
        ]
        group = GroupInstance(
            name=name,
            template_name=descriptor.name,
            coalition=descriptor.coalition,
            category=descriptor.category,
            units=units,
            speed=descriptor.speed,
        )
        self._groups[name] = group
        for u in units:
            self._units[u.name] = group
        logger.debug(f"World: spawned {name} ({len(units)} units) at {group.position}")
        self.bus.publish(GROUP_SPAWNED, {"group": name, "template": descriptor.name})
        return group

    def spawn_static(self, descriptor: TemplateDescriptor) -> StaticObject:
        self._aliases[descriptor.name] += 1
        name = f"{descriptor.name}#{self._aliases[descriptor.name]:03d}"
        obj = StaticObject(
            name=name,
            template_name=descriptor.name,
            coalition=descriptor.coalition,
            category=descriptor.category,
            position=descriptor.origin,
        )
        self._statics[name] = obj
        logger.debug(f"World: spawned static {name}")
        return obj

    # -- Destruction --------------------------------------------------------

    def kill_unit(self, unit_name: str) -> bool:
        """Kill one unit and publish its death. Returns False if it was not alive."""
        g = self._units.get(unit_name)
        if g is None:
            return False
        u = g.unit(unit_name)
        if not u.alive or g.removed:
            return False
        u.alive = False
        self._publish_deaths(g, [u])
        return True

    def kill_group(self, group_name: str) -> int:
        """Kill every alive unit of a group. Returns the number killed."""
        g = self._groups.get(group_name)
        if g is None or not g.alive:
            return 0
        victims = g.alive_units()
        for u in victims:
            u.alive = False
        self._publish_deaths(g, victims)
        return len(victims)

    def destroy_instance(self, handle: GroupInstance, generate_event: bool = True) -> None:
        if not handle.alive:
            return
        if generate_event:
            self.kill_group(handle.name)
            return
        for u in handle.units:
            u.alive = False
        handle.removed = True
        self._forget(handle)
        self.bus.publish(GROUP_REMOVED, {"group": handle.name})

    def destroy_static(self, obj: StaticObject) -> None:
        obj.alive = False

    def _publish_deaths(self, group: GroupInstance, victims: list[Unit]) -> None:
        # Every victim is marked dead before the first event goes out, so
        # handlers see one consistent snapshot of the group.
        if not group.alive:
            self._forget(group)
        for u in victims:
            self.bus.publish(UNIT_DEAD, {"group": group.name, "unit": u.name})

    def _forget(self, group: GroupInstance) -> None:
        self._groups.pop(group.name, None)
        for u in group.units:
            self._units.pop(u.name, None)

    # -- Subscriptions ------------------------------------------------------

    def subscribe_death(self, handle: GroupInstance, callback: Callable[[Unit], Any]) -> Subscription:
        def _on_unit_dead(event: Event) -> None:
            if event.data.get("group") == handle.name:
                callback(handle.unit(event.data["unit"]))

        return self.bus.subscribe(UNIT_DEAD, _on_unit_dead)

    def subscribe_zone_entry(self, zone: Zone, handle: GroupInstance,
                             callback: Callable[[GroupInstance], Any]) -> Subscription:
        watch_id = next(self._watch_ids)

        def _on_zone_entered(event: Event) -> None:
            if event.data.get("watch_id") == watch_id:
                callback(handle)

        sub = self.bus.subscribe(ZONE_ENTERED, _on_zone_entered)
        watch = _ZoneEntryWatch(watch_id, zone, handle, sub)
        self._zone_watches[watch_id] = watch
        self._check_zone_watch(watch)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self.bus.unsubscribe(sub)
        for wid, watch in list(self._zone_watches.items()):
            if watch.sub is sub:
                del self._zone_watches[wid]

    def _check_zones(self) -> None:
        for wid, watch in list(self._zone_watches.items()):
            if not watch.sub.active:
                del self._zone_watches[wid]
                continue
            self._check_zone_watch(watch)

    def _check_zone_watch(self, watch: _ZoneEntryWatch) -> None:
        inside = any(self.is_point_in_zone(watch.zone, u.position) for u in watch.handle.alive_units())
        if inside and not watch.inside:
            self.bus.publish(ZONE_ENTERED, {
                "watch_id": watch.watch_id,
                "group": watch.handle.name,
                "zone": watch.zone.name,
            })
        watch.inside = inside

    # -- Timers -------------------------------------------------------------

    def schedule_timer(self, delay: float, callback: Callable[[], Any], name: str = "") -> TimerHandle:
        handle = self.clock.schedule(delay, callback, name)
        if delay <= 0 and not self._zero_flush_pending:
            self._zero_flush_pending = True
            self.bus.defer(self._flush_zero_delay)
        return handle

    def _flush_zero_delay(self) -> None:
        self._zero_flush_pending = False
        self.clock.advance_to(self.clock.now, self._dispatch_timer)

    def _dispatch_timer(self, handle: TimerHandle) -> None:
        self.bus.publish(TIMER_FIRED, {"name": handle.name, "handle": handle, "time": self.clock.now})

    def _on_timer_fired(self, event: Event) -> None:
        event.data["handle"].callback()

    # -- Movement / time ----------------------------------------------------

    def move_group(self, group_name: str, point: Point) -> None:
        """Teleport a group's lead unit to *point* and re-check zone entry."""
        g = self._groups.get(group_name)
        if g is None or not g.alive:
            logger.warning(f"World: can't move unknown or dead group {group_name}")
            return
        g.teleport(point)
        self._check_zones()

    def set_route(self, group_name: str, waypoints: list[Point], speed: float | None = None) -> None:
        g = self._groups.get(group_name)
        if g is None:
            logger.warning(f"World: can't route unknown group {group_name}")
            return
        g.set_route(waypoints, speed)

    def advance(self, dt: float) -> None:
        """Move simulated time forward by *dt* seconds."""
        target = self.clock.now + dt
        while self.clock.now < target:
            start = self.clock.now
            step_end = min(start + self.tick, target)
            self.clock.advance_to(step_end, self._dispatch_timer)
            for g in self.groups():
                g.tick(step_end - start)
            self._check_zones()
        # Timers exactly at target when dt == 0
        self.clock.advance_to(target, self._dispatch_timer)

    def advance_to(self, t: float) -> None:
        self.advance(max(0.0, t - self.clock.now))
