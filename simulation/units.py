"""Battlespace entities — units, spawned groups, static objects.

Architecture
------------
A GroupInstance is what a Spawner hands out when it realises a template:
a named group of Units that share a coalition and a category.  Units are
the things that die; a group is dead only when every one of its units
is dead.  Like the rest of the simulation these are flat dataclasses,
type differences (ground vs air, static vs effect) live in enum values,
not subclasses.

Movement is waypoint following, the same model the level loader uses:
the whole group moves as a formation, each unit keeping its offset from
the lead unit.  Dead units stay where they fell.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

Point = tuple[float, float]


class Coalition(str, Enum):
    RED = "red"
    BLUE = "blue"
    NEUTRAL = "neutral"


class TemplateCategory(str, Enum):
    GROUND = "ground"
    AIR = "air"
    SHIP = "ship"
    STATIC = "static"
    EFFECT = "effect"

    @property
    def is_group(self) -> bool:
        return self in (TemplateCategory.GROUND, TemplateCategory.AIR, TemplateCategory.SHIP)


@dataclass
class Unit:
    """A single vehicle, aircraft or soldier inside a group."""

    name: str
    unit_type: str
    position: Point
    alive: bool = True


@dataclass(eq=False)
class GroupInstance:
    """A live group realised from a template.

    Lifecycle:
      active -> dead (every unit killed, death events generated)
      active -> removed (destroyed silently, no death events)
    """

    name: str
    template_name: str
    coalition: Coalition
    category: TemplateCategory
    units: list[Unit]
    speed: float = 0.0  # meters/second along the route
    route: list[Point] = field(default_factory=list)
    _route_index: int = 0
    removed: bool = False

    @property
    def alive(self) -> bool:
        return not self.removed and any(u.alive for u in self.units)

    @property
    def alive_count(self) -> int:
        if self.removed:
            return 0
        return sum(1 for u in self.units if u.alive)

    @property
    def position(self) -> Point:
        """Position of the lead alive unit (the first unit if all are dead)."""
        for u in self.units:
            if u.alive:
                return u.position
        return self.units[0].position

    def alive_units(self) -> list[Unit]:
        if self.removed:
            return []
        return [u for u in self.units if u.alive]

    def unit(self, name: str) -> Unit | None:
        for u in self.units:
            if u.name == name:
                return u
        return None

    def translate(self, dx: float, dy: float) -> None:
        for u in self.units:
            if u.alive:
                u.position = (u.position[0] + dx, u.position[1] + dy)

    def teleport(self, point: Point) -> None:
        lead = self.position
        self.translate(point[0] - lead[0], point[1] - lead[1])

    def tick(self, dt: float) -> None:
        """Advance along the route by *dt* seconds."""
        if not self.alive or self.speed <= 0 or self._route_index >= len(self.route):
            return
        tx, ty = self.route[self._route_index]
        x, y = self.position
        dx, dy = tx - x, ty - y
        dist = math.hypot(dx, dy)
        step = self.speed * dt
        if dist <= step:
            self.translate(dx, dy)
            self._route_index += 1
            return
        self.translate(dx / dist * step, dy / dist * step)

    def set_route(self, waypoints: list[Point], speed: float | None = None) -> None:
        self.route = list(waypoints)
        self._route_index = 0
        if speed is not None:
            self.speed = speed

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "template": self.template_name,
            "coalition": self.coalition.value,
            "category": self.category.value,
            "position": {"x": self.position[0], "y": self.position[1]},
            "alive_units": self.alive_count,
            "units": len(self.units),
        }


@dataclass(eq=False)
class StaticObject:
    """A spawned static decoration (building, wreck, smoke column)."""

    name: str
    template_name: str
    coalition: Coalition
    category: TemplateCategory
    position: Point
    alive: bool = True
