"""Spawner — realises instances of one template and tracks which are alive.

The spawner owns the GroupInstances it creates (never the template).
For each instance it:

  1. subscribes to the world's death feed for that instance,
  2. calls its spawn listener exactly once with the new handle,
  3. evicts the handle from its live set exactly once, when the last
     unit of the instance is reported dead, and then calls its death
     listener.

Silent destruction (``destroy_all(generate_death_event=False)``) and
prune() drop handles without calling the death listener.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any, Callable

from loguru import logger

from ops.catalog import TemplateDescriptor
from ops.errors import TemplateInvalid
from ops.zones import Zone
from simulation.units import GroupInstance, Point, Unit

if TYPE_CHECKING:
    from comms.event_bus import Subscription
    from simulation.world import WorldInterface

InstanceListener = Callable[[GroupInstance], Any]


class Spawner:
    """Manager of the live instances of one group template."""

    def __init__(
        self,
        descriptor: TemplateDescriptor,
        world: WorldInterface,
        on_spawn: InstanceListener | None = None,
        on_dead: InstanceListener | None = None,
        rng: random.Random | None = None,
    ) -> None:
        descriptor.validate()
        if not descriptor.category.is_group:
            raise TemplateInvalid(descriptor.name, f"'{descriptor.name}' is not a group template",
                                  descriptor.category.value)
        self.descriptor = descriptor
        self._world = world
        self._on_spawn = on_spawn
        self._on_dead = on_dead
        self._rng = rng or random.Random()
        self._live: list[GroupInstance] = []
        self._death_subs: dict[str, Subscription] = {}
        self.spawn_count = 0

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def live_instances(self) -> tuple[GroupInstance, ...]:
        return tuple(self._live)

    def has_live_instances(self) -> bool:
        return bool(self._live)

    def spawn(self, location: Point | Zone | None = None) -> GroupInstance:
        """Spawn one instance.

        Args:
            location: None for the authored origin, a point for the lead
                unit's position, or a Zone to pick a random point inside it.
        """
        if isinstance(location, Zone):
            point = location.random_point(self._rng)
        else:
            point = location
        handle = self._world.spawn_instance(self.descriptor, point)
        self._live.append(handle)
        self.spawn_count += 1
        self._death_subs[handle.name] = self._world.subscribe_death(
            handle, lambda unit, h=handle: self._unit_died(h, unit)
        )
        if self._on_spawn is not None:
            self._on_spawn(handle)
        return handle

    def for_each_live(self, fn: Callable[[GroupInstance], Any]) -> None:
        for handle in list(self._live):
            fn(handle)

    def destroy(self, handle: GroupInstance, generate_death_event: bool = False) -> bool:
        """Destroy one live instance. Returns False if it was not live."""
        if handle not in self._live:
            return False
        if generate_death_event:
            # Eviction happens through the normal death path.
            self._world.destroy_instance(handle, generate_event=True)
        else:
            self._evict(handle)
            self._world.destroy_instance(handle, generate_event=False)
        return True

    def destroy_all(self, generate_death_event: bool = False) -> int:
        """Destroy every live instance. Returns how many were destroyed."""
        return sum(1 for handle in list(self._live) if self.destroy(handle, generate_death_event))

    def prune(self) -> int:
        """Silently drop handles the world no longer reports alive."""
        stale = [h for h in self._live if not h.alive]
        for handle in stale:
            self._evict(handle)
        return len(stale)

    def _unit_died(self, handle: GroupInstance, unit: Unit | None) -> None:
        if handle not in self._live:
            return
        logger.debug(
            f"Death in group: {handle.name} ({handle.alive_count} alive units)"
            + (f" - unit {unit.name}" if unit is not None else "")
        )
        if handle.alive_count > 0:
            return
        self._evict(handle)
        if self._on_dead is not None:
            self._on_dead(handle)

    def _evict(self, handle: GroupInstance) -> None:
        try:
            self._live.remove(handle)
        except ValueError:
            return
        sub = self._death_subs.pop(handle.name, None)
        if sub is not None:
            self._world.unsubscribe(sub)

    def __repr__(self) -> str:
        return f"Spawner({self.name!r}, live={len(self._live)})"
