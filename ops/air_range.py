"""AirRange — an on-demand adversary range bound to one zone.

A range holds a list of group templates that players can spawn, one
formation at a time, at a fixed spawn point.  Each spawn request names a
template and a formation size (1 to 4 units); the template's units are
repeated or truncated to that size, so one template can serve every
size.  Instances of the same template share its alias counter, whatever
the size.

Lifecycle
---------
The range starts cold.  Any spawn makes it hot.  While hot, a repeating
world timer sweeps for leakers: live groups with no alive unit inside the
range zone are destroyed with death events.  destroy_all_adversaries()
destroys every live group the range spawned and makes it cold again, so
the sweep idles until the next spawn.

Sizes are cached per (template, size) as separate Spawners.
"""

from __future__ import annotations

import random
from dataclasses import replace
from typing import TYPE_CHECKING, Iterable

from loguru import logger

from app.config import settings
from ops.catalog import TemplateDescriptor
from ops.errors import RegistrationError, SetupSession, TemplateInvalid, ZoneMissing
from ops.spawner import Spawner
from ops.zones import PolygonZone, Zone
from simulation.units import GroupInstance, Point

if TYPE_CHECKING:
    from simulation.clock import TimerHandle
    from simulation.world import WorldInterface

MAX_FORMATION = 4
# Meters between repeats of the template's formation.
ELEMENT_SPACING = 50.0


def formation(descriptor: TemplateDescriptor, unit_count: int) -> TemplateDescriptor:
    """Copy of *descriptor* with exactly *unit_count* units.

    Extra units repeat the template's formation, shifted north by
    ELEMENT_SPACING per repeat.
    """
    n = descriptor.unit_count
    units = tuple(
        replace(
            descriptor.units[i % n],
            name=f"{descriptor.name}-{i + 1}",
            position=(
                descriptor.units[i % n].position[0],
                descriptor.units[i % n].position[1] + (i // n) * ELEMENT_SPACING,
            ),
        )
        for i in range(unit_count)
    )
    return replace(descriptor, units=units)


class AirRange:
    """Spawnable adversary formations, cleaned up when they leave the zone."""

    def __init__(
        self,
        name: str,
        world: WorldInterface,
        zone: Zone,
        spawn_point: Point,
        session: SetupSession | None = None,
        rng: random.Random | None = None,
        sweep_interval: float | None = None,
    ) -> None:
        self.name = name
        self.zone = zone
        self.spawn_point = spawn_point
        self.session = session or SetupSession()
        self.rng = rng or random.Random()
        self.active = False
        self.sweep_interval = sweep_interval if sweep_interval is not None else settings.air_range_sweep_interval
        if self.sweep_interval <= 0:
            raise ValueError(f"sweep_interval must be positive, got {self.sweep_interval}")
        self.menu_labels: dict[str, str] = {}
        self._world = world
        self._tag = f"AirRange|{name}"
        self._templates: dict[str, TemplateDescriptor] = {}
        self._spawners: dict[tuple[str, int], Spawner] = {}
        self._sweep_timer: TimerHandle | None = None
        logger.info(f"{self._tag}: Initializing Air Range")
        self._schedule_sweep()

    @classmethod
    def with_zones(cls, world: WorldInterface, zone_name: str, spawn_zone_name: str,
                   name: str | None = None, **kwargs) -> AirRange:
        """Range bounded by one authored zone, spawning at the center of another."""
        zones = {}
        for zn in (zone_name, spawn_zone_name):
            zones[zn] = world.find_zone(zn)
            if zones[zn] is None:
                logger.error(f"AirRange|{name or zone_name}: Unable to find zone '{zn}'")
                raise ZoneMissing(f"Can't find zone named '{zn}'")
        return cls(name or zone_name, world, zones[zone_name], zones[spawn_zone_name].center, **kwargs)

    @classmethod
    def from_points(cls, name: str, world: WorldInterface, vertices: Iterable[Point],
                    spawn_point: Point, **kwargs) -> AirRange:
        """Range bounded by a polygon built from *vertices*."""
        return cls(name, world, PolygonZone(name, vertices), spawn_point, **kwargs)

    # -- Registration -------------------------------------------------------

    @property
    def templates(self) -> list[str]:
        return list(self._templates)

    def add_group_template(self, name: str, menu_label: str | None = None) -> TemplateDescriptor | None:
        """Make a group template spawnable here. Returns None if it was rejected."""
        try:
            descriptor = self._world.find_template(name)
            descriptor.validate()
            if not descriptor.category.is_group:
                raise TemplateInvalid(name, f"'{name}' is not a group template", descriptor.category.value)
        except RegistrationError as e:
            logger.warning(f"{self._tag}: Could not add group template '{name}': {e}")
            self.session.report.record(e)
            return None
        logger.debug(f"{self._tag}: Adding group template '{name}'")
        self._templates[name] = descriptor
        self.menu_labels[name] = menu_label or name
        return descriptor

    # -- Spawning -----------------------------------------------------------

    def spawn(self, template_name: str, unit_count: int = 1) -> GroupInstance | None:
        """Spawn a formation of *unit_count* units at the spawn point. Makes the range hot."""
        descriptor = self._templates.get(template_name)
        if descriptor is None:
            logger.warning(f"{self._tag}: No group template named '{template_name}' in this range")
            return None
        if not 1 <= unit_count <= MAX_FORMATION:
            raise ValueError(f"unit_count must be between 1 and {MAX_FORMATION}, got {unit_count}")

        key = (template_name, unit_count)
        spawner = self._spawners.get(key)
        if spawner is None:
            spawner = Spawner(formation(descriptor, unit_count), self._world, rng=self.rng)
            self._spawners[key] = spawner
        group = spawner.spawn(self.spawn_point)
        logger.info(f"{self._tag}: Adversary '{group.name}' spawned ({unit_count} units)")
        self.active = True
        return group

    def live_groups(self) -> list[GroupInstance]:
        return [h for s in self._spawners.values() for h in s.live_instances]

    # -- Destruction --------------------------------------------------------

    def destroy_all_adversaries(self) -> int:
        """Destroy every live group this range spawned and make the range cold."""
        count = 0
        for spawner in list(self._spawners.values()):
            for handle in spawner.live_instances:
                logger.info(f"{self._tag}: Destroying group '{handle.name}'")
                if spawner.destroy(handle, generate_death_event=True):
                    count += 1
        self.active = False
        return count

    def destroy_leakers(self) -> int:
        """Destroy live groups with no alive unit in the zone. No-op while cold."""
        if not self.active:
            return 0
        count = 0
        for spawner in list(self._spawners.values()):
            for handle in spawner.live_instances:
                if self._in_zone(handle):
                    continue
                logger.info(f"{self._tag}: Destroying leaker group '{handle.name}'")
                if spawner.destroy(handle, generate_death_event=True):
                    count += 1
        return count

    def _in_zone(self, handle: GroupInstance) -> bool:
        return any(self._world.is_point_in_zone(self.zone, u.position) for u in handle.alive_units())

    # -- Sweep --------------------------------------------------------------

    def _schedule_sweep(self) -> None:
        self._sweep_timer = self._world.schedule_timer(
            self.sweep_interval, self._sweep, f"{self._tag}:sweep"
        )

    def _sweep(self) -> None:
        self._schedule_sweep()
        self.destroy_leakers()

    def stop(self) -> None:
        """Cancel the leaker sweep. Live groups are left alone."""
        if self._sweep_timer is not None:
            self._sweep_timer.cancel()
            self._sweep_timer = None
        logger.debug(f"{self._tag}: Leaker sweep stopped")

    def __repr__(self) -> str:
        return f"AirRange({self.name!r}, templates={len(self._templates)}, active={self.active})"
