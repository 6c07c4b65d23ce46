"""Battlespace simulation — simulated time, entities and the world interface.

Package layout:
  clock.py  — SimClock (simulated time, one-shot timers)
  units.py  — Unit / GroupInstance / StaticObject dataclasses
  world.py  — WorldInterface contract and the in-memory SimulatedWorld
"""

from .clock import SimClock, TimerHandle
from .units import Coalition, GroupInstance, StaticObject, TemplateCategory, Unit
from .world import SimulatedWorld, WorldInterface

__all__ = [
    "SimClock",
    "TimerHandle",
    "Coalition",
    "GroupInstance",
    "StaticObject",
    "TemplateCategory",
    "Unit",
    "SimulatedWorld",
    "WorldInterface",
]
