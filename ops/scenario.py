"""Scripted mission runs against the simulated world.

A MissionScript describes one mission (area, template set, goal,
auto-respawn) plus a timeline of actions that stand in for players and
AI: kill a group, kill a unit, move or route a group, despawn or respawn
the area.  run_script() builds a SimulatedWorld from a catalog, plays the
timeline in simulated time and returns a ScriptResult with the outcome
and an event log.

Actions address groups by name or name prefix ("Convoy" matches
"Convoy#001"), since spawned instance names are assigned by the world.
"""

from __future__ import annotations

import json
import random
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from app.config import settings
from comms.event_bus import ALL_EVENTS, Event
from ops.catalog import TemplateCatalog
from ops.errors import SetupSession
from ops.mission import Goal, Mission, MissionRegistry
from ops.zones import CircleZone, PolygonZone, Zone
from simulation.units import Coalition, GroupInstance
from simulation.world import SimulatedWorld


class ActionKind(str, Enum):
    """Timeline actions a script can perform."""

    KILL_GROUP = "kill_group"
    KILL_UNIT = "kill_unit"
    MOVE_GROUP = "move_group"
    ROUTE_GROUP = "route_group"
    DESTROY_SPAWNED = "destroy_spawned"
    RESPAWN_ALL = "respawn_all"


class ZoneSpec(BaseModel):
    """A named zone to author into the world before setup."""

    name: str
    center: tuple[float, float] | None = None
    radius: float = 0.0
    vertices: list[tuple[float, float]] = Field(default_factory=list)

    def build(self) -> Zone:
        if self.vertices:
            return PolygonZone(self.name, self.vertices)
        if self.center is None:
            raise ValueError(f"Zone '{self.name}' needs a center or vertices")
        return CircleZone(self.name, self.center, self.radius)


class GoalSpec(BaseModel):
    """Mission goal; prefix/destination only apply to the goals that use them."""

    kind: str = "destroy_all"
    prefix: str | None = None
    destination: str | tuple[float, float] | None = None
    radius: float | None = None
    time_limit: float | None = None

    @property
    def goal(self) -> Goal:
        return Goal[self.kind.upper()]


class ScriptAction(BaseModel):
    """A single action in the script timeline."""

    time: float  # Simulated seconds from mission start
    kind: ActionKind
    target: str | None = None  # Group (or unit) name or prefix
    point: tuple[float, float] | None = None
    waypoints: list[tuple[float, float]] = Field(default_factory=list)
    speed: float | None = None
    coalition: Coalition | None = None


class MissionScript(BaseModel):
    """A complete scripted mission."""

    name: str
    area: str
    template_set: str
    zone: str | None = None
    zones: list[ZoneSpec] = Field(default_factory=list)
    goal: GoalSpec | None = None
    auto_respawn: float | None = None  # Delay in seconds, None = off
    settle_delay: float | None = None
    actions: list[ScriptAction] = Field(default_factory=list)
    until: float = 3600.0  # Stop simulating at this time

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MissionScript:
        return cls(**data)


class ScriptLogEntry(BaseModel):
    time: float
    kind: str
    text: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class ScriptResult(BaseModel):
    """Outcome of one scripted mission run."""

    script_name: str
    mission_code: int = 0
    goal: str | None = None
    outcome: str | None = None
    resolved_at: float | None = None
    ended_at: float | None = None
    finished: bool = False
    end_time: float = 0.0
    setup_errors: list[str] = Field(default_factory=list)
    log: list[ScriptLogEntry] = Field(default_factory=list)

    def entries(self, kind: str) -> list[ScriptLogEntry]:
        return [e for e in self.log if e.kind == kind]


def load_mission_script(path: str | Path) -> MissionScript:
    """Load a mission script from JSON."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Mission script not found: {path}")
    with open(path) as f:
        data = json.load(f)
    return MissionScript.from_dict(data)


def _plain(data: dict) -> dict[str, Any]:
    return {k: v for k, v in data.items() if isinstance(v, (str, int, float, bool))}


def _find_group(world: SimulatedWorld, target: str | None) -> GroupInstance | None:
    if not target:
        return None
    group = world.group(target)
    if group is not None and group.alive:
        return group
    for g in world.groups():
        if g.name.startswith(target):
            return g
    return None


def _apply(action: ScriptAction, world: SimulatedWorld, mission: Mission, result: ScriptResult) -> None:
    text = f"{action.kind.value} {action.target or ''}".strip()
    logger.info(f"Script t={world.now:.1f}: {text}")

    if action.kind is ActionKind.KILL_UNIT:
        if not world.kill_unit(action.target or ""):
            logger.warning(f"Script: no alive unit named {action.target}")
    elif action.kind is ActionKind.DESTROY_SPAWNED:
        mission.area.destroy_spawned_groups(action.coalition)
    elif action.kind is ActionKind.RESPAWN_ALL:
        mission.area.respawn_all()
    else:
        group = _find_group(world, action.target)
        if group is None:
            logger.warning(f"Script: no alive group matching {action.target}")
        elif action.kind is ActionKind.KILL_GROUP:
            world.kill_group(group.name)
        elif action.kind is ActionKind.MOVE_GROUP and action.point is not None:
            world.move_group(group.name, action.point)
        elif action.kind is ActionKind.ROUTE_GROUP:
            world.set_route(group.name, list(action.waypoints), action.speed)

    result.log.append(ScriptLogEntry(time=world.now, kind="action", text=text))


def run_script(script: MissionScript, catalog: TemplateCatalog,
               rng: random.Random | None = None, tick: float | None = None) -> ScriptResult:
    """Play *script* in a fresh SimulatedWorld and report what happened."""
    rng = rng or random.Random()
    world = SimulatedWorld(catalog, tick=tick or settings.sim_tick, rng=rng)
    for zone_spec in script.zones:
        world.add_zone(zone_spec.build())

    result = ScriptResult(script_name=script.name)

    def _record(event: Event) -> None:
        result.log.append(ScriptLogEntry(time=world.now, kind=event.type, data=_plain(event.data)))

    world.bus.subscribe(ALL_EVENTS, _record)

    session = SetupSession()
    mission = Mission.from_catalog(world, catalog, script.area, script.template_set,
                                   zone=script.zone, registry=MissionRegistry(rng), session=session)
    session.report.log_summary(script.name)
    result.setup_errors = session.report.summary()
    result.mission_code = mission.code

    if script.goal is not None:
        g = script.goal
        if g.goal in (Goal.ESCORT, Goal.INTERDICT):
            mission.set_goal(g.goal, g.prefix, g.destination, g.radius, g.time_limit)
        elif g.goal is Goal.DESTROY_TARGETS:
            mission.set_goal(g.goal, g.prefix)
        else:
            mission.set_goal(g.goal)
    if script.auto_respawn is not None:
        mission.area.auto_respawn_on(script.auto_respawn)

    def _outcome(kind: str):
        def _handler(m: Mission) -> None:
            result.log.append(ScriptLogEntry(time=world.now, kind=kind, text=f"mission {m.code}"))
        return _handler

    mission.on_success(_outcome("success"))
    mission.on_failure(_outcome("failure"))
    mission.on_end(_outcome("end"))

    if script.settle_delay is not None:
        mission.settle_delay = script.settle_delay

    mission.start()
    result.log.append(ScriptLogEntry(time=world.now, kind="start", text=f"mission {mission.code}"))

    for action in sorted(script.actions, key=lambda a: a.time):
        if action.time > script.until:
            break
        world.advance_to(action.time)
        _apply(action, world, mission, result)

    world.advance_to(script.until)

    result.goal = mission.goal.name if mission.goal is not None else None
    result.outcome = mission.outcome.value if mission.outcome is not None else None
    result.resolved_at = mission.resolved_at
    result.ended_at = mission.ended_at
    result.finished = mission.ended_at is not None
    result.end_time = world.now
    logger.info(
        f"Script {script.name}: outcome={result.outcome} resolved_at={result.resolved_at} "
        f"ended_at={result.ended_at}"
    )
    return result
