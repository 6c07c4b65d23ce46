"""Zones — named spatial regions for containment, random placement and triggers.

Three geometries share one interface:

  CircleZone  — center + radius.
  PolygonZone — arbitrary polygon, even-odd ray casting.
  GroupZone   — a "shadow" circle that follows a tracked group; its
                center is looked up from the world on every query.

A zone also carries a trigger state (idle / watching / stopped).  Only
one watch may run on a zone instance at a time; a second begin_watch()
raises ZoneBusy until the first watch calls stop_watch().
"""

from __future__ import annotations

import math
import random
from enum import Enum
from typing import Callable, Iterable

from ops.errors import ZoneBusy

Point = tuple[float, float]


class TriggerState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    STOPPED = "stopped"


class Zone:
    """Base class for all zone geometries."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.trigger_state = TriggerState.IDLE

    # -- Geometry (overridden) ----------------------------------------------

    @property
    def center(self) -> Point:
        raise NotImplementedError

    @property
    def radius(self) -> float:
        """Radius of a circle around center that encloses the zone."""
        raise NotImplementedError

    def contains_point(self, point: Point) -> bool:
        raise NotImplementedError

    def random_point(self, rng: random.Random | None = None) -> Point:
        """Uniformly random point inside the zone (rejection sampled)."""
        rng = rng or random
        cx, cy = self.center
        r = self.radius
        for _ in range(1000):
            p = (rng.uniform(cx - r, cx + r), rng.uniform(cy - r, cy + r))
            if self.contains_point(p):
                return p
        return self.center

    # -- Trigger state ------------------------------------------------------

    @property
    def watching(self) -> bool:
        return self.trigger_state is TriggerState.WATCHING

    def begin_watch(self) -> None:
        if self.watching:
            raise ZoneBusy(f"Zone '{self.name}' is already being watched")
        self.trigger_state = TriggerState.WATCHING

    def stop_watch(self) -> None:
        if self.watching:
            self.trigger_state = TriggerState.STOPPED

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class CircleZone(Zone):
    def __init__(self, name: str, center: Point, radius: float) -> None:
        super().__init__(name)
        self._center = (float(center[0]), float(center[1]))
        self._radius = float(radius)

    @property
    def center(self) -> Point:
        return self._center

    @property
    def radius(self) -> float:
        return self._radius

    def contains_point(self, point: Point) -> bool:
        return math.dist(point, self._center) <= self._radius

    def random_point(self, rng: random.Random | None = None) -> Point:
        rng = rng or random
        # sqrt keeps the distribution uniform over the disc area
        r = self._radius * math.sqrt(rng.random())
        theta = rng.uniform(0.0, 2 * math.pi)
        return (self._center[0] + r * math.cos(theta), self._center[1] + r * math.sin(theta))


class PolygonZone(Zone):
    def __init__(self, name: str, vertices: Iterable[Point]) -> None:
        super().__init__(name)
        self.vertices = [(float(x), float(y)) for x, y in vertices]

    @property
    def center(self) -> Point:
        return centroid(self.vertices)

    @property
    def radius(self) -> float:
        c = self.center
        return max((math.dist(c, v) for v in self.vertices), default=0.0)

    def contains_point(self, point: Point) -> bool:
        n = len(self.vertices)
        if n < 3:
            return False
        x, y = point
        inside = False
        j = n - 1
        for i in range(n):
            xi, yi = self.vertices[i]
            xj, yj = self.vertices[j]
            if ((yi > y) != (yj > y)) and (x < (xj - xi) * (y - yi) / (yj - yi) + xi):
                inside = not inside
            j = i
        return inside


class GroupZone(Zone):
    """Circle of *radius* around wherever the tracked group currently is."""

    def __init__(self, name: str, group_name: str, radius: float,
                 locate: Callable[[str], Point | None]) -> None:
        super().__init__(name)
        self.group_name = group_name
        self._radius = float(radius)
        self._locate = locate
        self._last_known: Point = (0.0, 0.0)

    @property
    def center(self) -> Point:
        pos = self._locate(self.group_name)
        if pos is not None:
            self._last_known = pos
        return self._last_known

    @property
    def radius(self) -> float:
        return self._radius

    def contains_point(self, point: Point) -> bool:
        return math.dist(point, self.center) <= self._radius


def centroid(points: Iterable[Point]) -> Point:
    pts = list(points)
    if not pts:
        return (0.0, 0.0)
    return (sum(p[0] for p in pts) / len(pts), sum(p[1] for p in pts) / len(pts))


def enclosing_circle(points: Iterable[Point]) -> tuple[Point, float]:
    """Circle around the bounding box of *points*.

    Guaranteed to contain every point, not guaranteed to be the smallest
    such circle.
    """
    pts = list(points)
    if not pts:
        raise ValueError("enclosing_circle() needs at least one point")
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    min_x, max_x, min_y, max_y = min(xs), max(xs), min(ys), max(ys)
    center = ((min_x + max_x) / 2, (min_y + max_y) / 2)
    return center, math.dist((min_x, min_y), (max_x, max_y)) / 2
