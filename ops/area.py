"""AreaOfOperations — a living range of spawnable groups bound to a zone.

Architecture
------------
An AO owns:

  - one Spawner per registered group template (keyed by template name),
  - named spawn zones inside its main zone,
  - static decorations and effects that spawn_all() places alongside
    the groups.

Every Spawner is wired back to the AO.  The spawn listener marks the AO
alive and calls the ``on_group_spawned`` handler.  The death listener
runs once per instance, after the last unit of that instance died; it
calls ``on_group_dead`` and then checks whether the AO as a whole went
from alive to dead.  On that transition ``on_all_dead`` fires and, when
auto-respawn is enabled, the last spawn operation is replayed through a
world timer.  A timer is used even for a zero delay, so the replay runs
after the current death turn has completed.

Handler slots hold one callable each; registering again replaces the
previous handler.

The last spawn operation is a SpawnOperation value (kind plus
parameters) rather than a closure, and replay_last_spawn() dispatches
on its kind.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

from loguru import logger

from app.config import settings
from ops.catalog import MenuEntry, TemplateCatalog, TemplateDescriptor
from ops.errors import (
    DuplicateRegistration,
    OutsideZone,
    RegistrationError,
    SetupSession,
    TemplateInvalid,
    ZoneMissing,
)
from ops.spawner import Spawner
from ops.zones import CircleZone, Zone, enclosing_circle
from simulation.units import Coalition, GroupInstance

if TYPE_CHECKING:
    from simulation.clock import TimerHandle
    from simulation.world import WorldInterface


def call_handler(handler: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke a user handler; a failing handler is logged, never propagated."""
    if handler is None:
        return
    try:
        handler(*args)
    except Exception:
        logger.exception(f"Error calling handler {getattr(handler, '__name__', handler)!r}")


class SpawnKind(str, Enum):
    ALL = "all"
    ALL_RANDOM = "all_random"
    SINGLE = "single"
    IN_ZONE = "in_zone"
    IN_RANDOM_ZONE = "in_random_zone"
    RANDOM_GROUP_IN_ZONE = "random_group_in_zone"
    RANDOM_GROUP_IN_RANDOM_ZONE = "random_group_in_random_zone"


@dataclass(frozen=True)
class SpawnOperation:
    """A replayable record of the most recent spawn call."""

    kind: SpawnKind
    template_name: str | None = None
    zone: Zone | None = None


class AreaOfOperations:
    """Spawners, spawn zones and statics bound to one (optional) zone."""

    def __init__(
        self,
        name: str,
        world: WorldInterface,
        zone: Zone | None = None,
        session: SetupSession | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.zone = zone
        self.session = session or SetupSession()
        self.rng = rng or random.Random()
        self.alive = False
        self.menu_labels: dict[str, str] = {}
        self._world = world
        self._tag = f"OpsArea|{name}"
        self._spawners: dict[str, Spawner] = {}
        self._spawn_zones: dict[str, Zone] = {}
        self._statics: list[TemplateDescriptor] = []
        self._effects: list[TemplateDescriptor] = []
        self._auto_respawn_delay: float | None = None
        self._respawn_timer: TimerHandle | None = None
        self._last_spawn: SpawnOperation | None = None
        self._on_group_spawned: Callable[[AreaOfOperations, GroupInstance], Any] | None = None
        self._on_group_dead: Callable[[AreaOfOperations, GroupInstance], Any] | None = None
        self._on_all_dead: Callable[[AreaOfOperations], Any] | None = None
        logger.info(f"{self._tag}: Initializing AO")

    # -- Construction -------------------------------------------------------

    @classmethod
    def with_zone(cls, name: str, world: WorldInterface, zone_name: str,
                  session: SetupSession | None = None) -> AreaOfOperations:
        """AO whose main zone is a zone authored in the world."""
        zone = world.find_zone(zone_name)
        if zone is None:
            raise ZoneMissing(f"Can't find zone named '{zone_name}'")
        return cls(name, world, zone, session)

    @classmethod
    def from_catalog(
        cls,
        name: str,
        world: WorldInterface,
        catalog: TemplateCatalog,
        template_set: str,
        zone: Zone | str | None = None,
        create_zone: bool = True,
        spawn_zone_prefix: str | None = None,
        menu_labels: dict[str, MenuEntry] | None = None,
        session: SetupSession | None = None,
    ) -> AreaOfOperations:
        """Build an AO from every template of a catalog template set.

        With no *zone* an enclosing circle around all the set's units is
        created and named ``OpsArea-<name>``; ``create_zone=False`` leaves
        the AO zoneless instead.  Groups are registered without the zone
        check.  Sidecar entries marked not spawnable are skipped.
        """
        ao = cls(name, world, session=session)
        try:
            descriptors = catalog.template_set(template_set)
        except RegistrationError as e:
            logger.warning(f"{ao._tag}: {e}")
            ao.session.report.record(e)
            descriptors = []

        if isinstance(zone, str):
            ao.zone = world.find_zone(zone)
            if ao.zone is None:
                logger.warning(f"{ao._tag}: Can't find zone named '{zone}'")
        elif isinstance(zone, Zone):
            ao.zone = zone
        if ao.zone is None and create_zone:
            positions = [p for d in descriptors for p in d.positions]
            if positions:
                center, radius = enclosing_circle(positions)
                ao.zone = CircleZone(f"OpsArea-{name}", center, radius)
                logger.info(f"{ao._tag}: Creating an enclosing zone named '{ao.zone.name}' around template groups.")

        if spawn_zone_prefix is not None and ao.zone is not None:
            ao.scan_for_spawn_zones(spawn_zone_prefix)

        for d in descriptors:
            if d.category.is_group:
                label = None
                if menu_labels and d.name in menu_labels:
                    entry = menu_labels[d.name]
                    label = entry.name
                    if not entry.spawnable:
                        logger.debug(f"{ao._tag}: Skipping non-spawnable group {d.name}")
                        continue
                ao.register_template(d.name, label or d.menu_label, bypass_zone_check=True)
            else:
                ao.register_static(d.name)

        logger.info(f"{ao._tag}: Registered {len(ao._spawners)} group templates.")
        return ao

    # -- Registration -------------------------------------------------------

    def register_template(self, name: str, menu_label: str | None = None,
                          bypass_zone_check: bool = False) -> Spawner | None:
        """Register a group template as spawnable in this AO.

        Returns the Spawner, the existing one for a duplicate name, or None
        when the template was rejected.  Rejections are logged and recorded
        in the session report; they never abort setup.
        """
        if name in self._spawners:
            logger.info(f"{self._tag}: Ignoring group named {name}. Already registered.")
            self.session.report.record(DuplicateRegistration(name))
            return self._spawners[name]

        try:
            descriptor = self._world.find_template(name)
            if not bypass_zone_check and self.zone is not None \
                    and not self._world.is_point_in_zone(self.zone, descriptor.origin):
                raise OutsideZone(name, f"Attempting to add group {name} not in zone.",
                                  descriptor.category.value)
            spawner = Spawner(
                descriptor,
                self._world,
                on_spawn=self._after_group_spawned,
                on_dead=self._after_group_dead,
                rng=self.rng,
            )
        except RegistrationError as e:
            logger.warning(f"{self._tag}: {e}")
            self.session.report.record(e)
            return None

        self._spawners[name] = spawner
        self.menu_labels[name] = menu_label or descriptor.menu_label or name
        logger.debug(f"{self._tag}: Registering group named {name} ({self.menu_labels[name]})")
        return spawner

    def register_templates(self, names: Iterable[str], bypass_zone_check: bool = False) -> int:
        """Register several templates. Returns how many are now registered."""
        return sum(1 for n in names if self.register_template(n, bypass_zone_check=bypass_zone_check))

    def register_static(self, name: str) -> TemplateDescriptor | None:
        try:
            descriptor = self._world.find_template(name)
            if descriptor.category.is_group:
                raise TemplateInvalid(name, f"'{name}' is a group template, not a static",
                                      descriptor.category.value)
        except RegistrationError as e:
            logger.warning(f"{self._tag}: {e}")
            self.session.report.record(e)
            return None
        if descriptor.category.value == "effect":
            logger.debug(f"{self._tag}: Registering effect named {name}")
            self._effects.append(descriptor)
        else:
            logger.debug(f"{self._tag}: Registering static named {name}")
            self._statics.append(descriptor)
        return descriptor

    def add_spawn_zone(self, zone: Zone | str) -> Zone | None:
        if isinstance(zone, str):
            found = self._world.find_zone(zone)
            if found is None:
                logger.warning(f"{self._tag}: Can't find spawn zone named '{zone}'")
                return None
            zone = found
        logger.info(f"{self._tag}: Adding zone named: {zone.name}")
        self._spawn_zones[zone.name] = zone
        return zone

    def scan_for_spawn_zones(self, prefix: str | None = None) -> int:
        """Register world zones inside the main zone as spawn zones.

        *prefix* defaults to ``settings.spawn_zone_prefix``; "" disables
        filtering.  Returns the number of spawn zones afterwards.
        """
        zone = self._require_zone("scan for spawn zones")
        logger.info(f"{self._tag}: Auto registering all spawnzones in zone.")
        prefix = settings.spawn_zone_prefix if prefix is None else prefix
        for candidate in self._world.zones_with_prefix(prefix):
            if candidate.name == zone.name:
                continue
            if self._world.is_point_in_zone(zone, candidate.center):
                self.add_spawn_zone(candidate)
        return len(self._spawn_zones)

    def scan_for_group_templates(self) -> int:
        """Register every group template with at least one unit in the main zone."""
        zone = self._require_zone("scan for group templates")
        logger.info(f"{self._tag}: Auto registering all group templates in zone.")
        for d in self._world.templates():
            if any(self._world.is_point_in_zone(zone, p) for p in d.positions):
                self.register_template(d.name, d.menu_label, bypass_zone_check=True)
        logger.info(f"{self._tag}: Registered {len(self._spawners)} group templates.")
        return len(self._spawners)

    def auto_scan(self) -> AreaOfOperations:
        self.scan_for_spawn_zones()
        self.scan_for_group_templates()
        return self

    # -- Accessors ----------------------------------------------------------

    @property
    def spawners(self) -> dict[str, Spawner]:
        return dict(self._spawners)

    @property
    def spawn_zones(self) -> dict[str, Zone]:
        return dict(self._spawn_zones)

    @property
    def statics(self) -> list[TemplateDescriptor]:
        return list(self._statics) + list(self._effects)

    @property
    def last_spawn(self) -> SpawnOperation | None:
        return self._last_spawn

    @property
    def auto_respawn_delay(self) -> float | None:
        return self._auto_respawn_delay

    def is_alive(self) -> bool:
        return any(s.has_live_instances() for s in self._spawners.values())

    def live_groups(self) -> list[GroupInstance]:
        return [h for s in self._spawners.values() for h in s.live_instances]

    # -- Spawning -----------------------------------------------------------

    def spawn_all(self) -> list[GroupInstance]:
        """Spawn every group and static at its authored location.

        Does not check whether a group is already alive, so repeated calls
        can produce overlapping groups.
        """
        logger.info(f"{self._tag}: Spawning all groups in {self.name}")
        groups = [self._spawn(s) for s in list(self._spawners.values())]
        for d in self._statics + self._effects:
            logger.debug(f"{self._tag}: Spawning static {d.name}")
            self._world.spawn_static(d)
        self._last_spawn = SpawnOperation(SpawnKind.ALL)
        return groups

    def spawn_all_randomly(self) -> list[GroupInstance]:
        """Spawn every group at a random point of the main zone. No statics."""
        if self.zone is None:
            logger.warning(f"{self._tag}: Can't spawn randomly, AO has no zone")
            return []
        logger.info(f"{self._tag}: Spawning all groups RANDOMLY in {self.name}")
        groups = [self._spawn(s, self.zone) for s in list(self._spawners.values())]
        self._last_spawn = SpawnOperation(SpawnKind.ALL_RANDOM)
        return groups

    def respawn_all(self) -> list[GroupInstance]:
        """Spawn, at its authored location, every group with no live instance."""
        logger.info(f"{self._tag}: Respawning all dead groups in {self.name}")
        groups = []
        for name, spawner in list(self._spawners.items()):
            if spawner.has_live_instances():
                logger.debug(f"{self._tag}: Skipping respawn for alive group {name}")
                continue
            groups.append(self._spawn(spawner))
        return groups

    def spawn(self, template_name: str) -> GroupInstance | None:
        spawner = self._spawner(template_name)
        if spawner is None:
            return None
        self._last_spawn = SpawnOperation(SpawnKind.SINGLE, template_name)
        return self._spawn(spawner)

    def spawn_in_zone(self, template_name: str, zone: Zone | str) -> GroupInstance | None:
        spawner = self._spawner(template_name)
        resolved = self._resolve_zone(zone)
        if spawner is None or resolved is None:
            return None
        self._last_spawn = SpawnOperation(SpawnKind.IN_ZONE, template_name, resolved)
        return self._spawn(spawner, resolved)

    def spawn_in_random_zone(self, template_name: str) -> GroupInstance | None:
        spawner = self._spawner(template_name)
        if spawner is None or not self._has_spawn_zones():
            return None
        self._last_spawn = SpawnOperation(SpawnKind.IN_RANDOM_ZONE, template_name)
        return self._spawn(spawner, self._random_spawn_zone())

    def spawn_random_group_in_zone(self, zone: Zone | str) -> GroupInstance | None:
        resolved = self._resolve_zone(zone)
        if resolved is None or not self._spawners:
            return None
        self._last_spawn = SpawnOperation(SpawnKind.RANDOM_GROUP_IN_ZONE, zone=resolved)
        return self._spawn(self._random_spawner(), resolved)

    def spawn_random_group_in_random_zone(self) -> GroupInstance | None:
        if not self._spawners or not self._has_spawn_zones():
            return None
        self._last_spawn = SpawnOperation(SpawnKind.RANDOM_GROUP_IN_RANDOM_ZONE)
        return self._spawn(self._random_spawner(), self._random_spawn_zone())

    def replay_last_spawn(self) -> list[GroupInstance]:
        """Re-run the most recent spawn operation."""
        op = self._last_spawn
        if op is None:
            logger.info(f"{self._tag}: Nothing to replay, no spawn recorded")
            return []
        if op.kind is SpawnKind.ALL:
            return self.spawn_all()
        if op.kind is SpawnKind.ALL_RANDOM:
            return self.spawn_all_randomly()
        if op.kind is SpawnKind.SINGLE:
            result = self.spawn(op.template_name)
        elif op.kind is SpawnKind.IN_ZONE:
            result = self.spawn_in_zone(op.template_name, op.zone)
        elif op.kind is SpawnKind.IN_RANDOM_ZONE:
            result = self.spawn_in_random_zone(op.template_name)
        elif op.kind is SpawnKind.RANDOM_GROUP_IN_ZONE:
            result = self.spawn_random_group_in_zone(op.zone)
        else:
            result = self.spawn_random_group_in_random_zone()
        return [result] if result is not None else []

    def _spawn(self, spawner: Spawner, location: Zone | None = None) -> GroupInstance:
        where = f" in zone: {location.name}" if location is not None else ""
        logger.debug(f"{self._tag}: Spawning {spawner.name}{where}")
        return spawner.spawn(location)

    def _spawner(self, template_name: str) -> Spawner | None:
        spawner = self._spawners.get(template_name)
        if spawner is None:
            logger.warning(f"{self._tag}: No group named {template_name} is registered")
        return spawner

    def _random_spawner(self) -> Spawner:
        spawners = list(self._spawners.values())
        weights = [max(s.descriptor.weight, 0.0) for s in spawners]
        if not any(weights):
            return self.rng.choice(spawners)
        return self.rng.choices(spawners, weights=weights)[0]

    def _has_spawn_zones(self) -> bool:
        if not self._spawn_zones:
            logger.warning(f"{self._tag}: No spawn zones registered")
            return False
        return True

    def _random_spawn_zone(self) -> Zone:
        return self.rng.choice(list(self._spawn_zones.values()))

    def _resolve_zone(self, zone: Zone | str | None) -> Zone | None:
        if isinstance(zone, Zone):
            return zone
        if isinstance(zone, str):
            found = self._spawn_zones.get(zone) or self._world.find_zone(zone)
            if found is None:
                logger.warning(f"{self._tag}: Can't find zone named '{zone}'")
            return found
        return None

    def _require_zone(self, action: str) -> Zone:
        if self.zone is None:
            raise ZoneMissing(f"{self._tag}: can't {action} without a zone")
        return self.zone

    # -- Destruction --------------------------------------------------------

    def destroy_spawned_groups(self, coalition: Coalition | None = None) -> int:
        """Silently remove live groups spawned by this AO, optionally one coalition only.

        Static decorations are left alone.  No death handlers fire.
        """
        if coalition is not None:
            logger.info(f"{self._tag}: Destroying all alive spawned groups in coalition {coalition.value}")
        else:
            logger.info(f"{self._tag}: Destroying all alive spawned groups")
        count = 0
        for spawner in self._spawners.values():
            for handle in spawner.live_instances:
                if coalition is None or handle.coalition == coalition:
                    count += spawner.destroy(handle, generate_death_event=False)
        self.alive = self.is_alive()
        return count

    def destroy_all_in_zone(self, zone: Zone | str | None,
                            coalitions: Iterable[Coalition] | None = None) -> int:
        """Silently remove every active group and static inside *zone*.

        Unlike destroy_spawned_groups() this also sweeps groups this AO
        did not spawn.
        """
        resolved = self._resolve_zone(zone)
        if resolved is None:
            raise ZoneMissing(f"{self._tag}: can't destroy units without a zone")
        coals = list(coalitions) if coalitions is not None else list(Coalition)
        logger.info(f"{self._tag}: Destroying all units in zone {resolved.name}.")
        groups = self._world.groups_in_zone(resolved, coals)
        for g in groups:
            self._world.destroy_instance(g, generate_event=False)
        statics = self._world.statics_in_zone(resolved, coals)
        for s in statics:
            self._world.destroy_static(s)
        for spawner in self._spawners.values():
            spawner.prune()
        self.alive = self.is_alive()
        return len(groups) + len(statics)

    # -- Auto-respawn -------------------------------------------------------

    def set_auto_respawn(self, delay: float | None) -> None:
        """Enable auto-respawn after *delay* seconds, or disable it with None."""
        if delay is None:
            self.auto_respawn_off()
        else:
            self.auto_respawn_on(delay)

    def auto_respawn_on(self, delay: float = 0.0) -> None:
        self._auto_respawn_delay = max(0.0, float(delay))
        logger.debug(f"{self._tag}: Setting Auto-Respawn to ON with delay={self._auto_respawn_delay}")

    def auto_respawn_off(self) -> None:
        self._auto_respawn_delay = None
        if self._respawn_timer is not None:
            self._respawn_timer.cancel()
            self._respawn_timer = None
        logger.debug(f"{self._tag}: Setting Auto-Respawn to OFF")

    def _auto_respawn(self) -> None:
        self._respawn_timer = None
        logger.info(f"{self._tag}: Auto-respawning range now.")
        self.replay_last_spawn()

    # -- Handlers -----------------------------------------------------------

    def on_group_spawned(self, handler: Callable[[AreaOfOperations, GroupInstance], Any] | None) -> None:
        """Called with (ao, group) after each group spawns."""
        self._on_group_spawned = handler

    def on_group_dead(self, handler: Callable[[AreaOfOperations, GroupInstance], Any] | None) -> None:
        """Called with (ao, group) once the last unit of a group dies."""
        self._on_group_dead = handler

    def on_all_dead(self, handler: Callable[[AreaOfOperations], Any] | None) -> None:
        """Called with (ao) when every group of this AO is dead."""
        self._on_all_dead = handler

    def _after_group_spawned(self, handle: GroupInstance) -> None:
        self.alive = True
        logger.debug(f"{self._tag}: Spawned {handle.name}")
        call_handler(self._on_group_spawned, self, handle)

    def _after_group_dead(self, handle: GroupInstance) -> None:
        logger.debug(f"{self._tag}: GROUP DEAD: {handle.name}")
        call_handler(self._on_group_dead, self, handle)
        if self.alive and not self.is_alive():
            self._handle_all_dead()

    def _handle_all_dead(self) -> None:
        self.alive = False
        logger.debug(f"{self._tag}: All groups dead.")
        call_handler(self._on_all_dead, self)

        if self._auto_respawn_delay is not None:
            logger.info(f"{self._tag}: Auto-respawning range in {self._auto_respawn_delay} seconds.")
            if self._respawn_timer is not None:
                self._respawn_timer.cancel()
            self._respawn_timer = self._world.schedule_timer(
                self._auto_respawn_delay, self._auto_respawn, f"{self._tag}:respawn"
            )

    def __repr__(self) -> str:
        return f"AreaOfOperations({self.name!r}, spawners={len(self._spawners)}, alive={self.alive})"
