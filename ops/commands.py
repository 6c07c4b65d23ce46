"""Named commands for a UI or CLI layer.

Each builder returns an ordered ``{label: callable}`` mapping.  Labels
are slash-separated menu paths ("Spawn/Spawn All").  Every command takes
no arguments, logs what it did and returns a short user-facing message.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger

from app.config import settings
from ops.air_range import MAX_FORMATION, AirRange
from ops.area import AreaOfOperations
from ops.errors import ZoneMissing
from ops.mission import Mission, MissionState
from ops.zones import Zone
from simulation.units import Coalition

Command = Callable[[], str]


def _groups_message(verb: str, count: int, where: str) -> str:
    return f"{verb} {count} group{'s' if count != 1 else ''} in {where}"


def area_commands(ao: AreaOfOperations) -> dict[str, Command]:
    """Commands for one area of operations."""
    commands: dict[str, Command] = {}

    def spawn_all() -> str:
        return _groups_message("Spawned", len(ao.spawn_all()), ao.name)

    def spawn_all_randomly() -> str:
        return _groups_message("Randomly spawned", len(ao.spawn_all_randomly()), ao.name)

    def respawn_all() -> str:
        return _groups_message("Respawned", len(ao.respawn_all()), ao.name)

    commands["Spawn/Spawn All"] = spawn_all
    if ao.zone is not None:
        commands["Spawn/Spawn All Randomly"] = spawn_all_randomly
    commands["Spawn/Respawn All"] = respawn_all

    for template_name, label in ao.menu_labels.items():
        commands.update(_group_commands(ao, template_name, label))

    def despawn(coalition: Coalition | None) -> Command:
        def _run() -> str:
            n = ao.destroy_spawned_groups(coalition)
            side = f"{coalition.value.upper()} " if coalition is not None else ""
            return _groups_message(f"Despawned {side}".rstrip(), n, ao.name)
        return _run

    for coalition in Coalition:
        commands[f"Destroy/Despawn all {coalition.value.upper()} groups"] = despawn(coalition)
    commands["Destroy/Despawn all groups"] = despawn(None)
    if ao.zone is not None:
        commands["Destroy/Destroy entire zone"] = _destroy_in_zone(ao, ao.zone, None)

    for zone_name, zone in ao.spawn_zones.items():
        commands[f"Zones/{zone_name}/Spawn Random Group"] = _spawn_random_in(ao, zone)
        for coalition in Coalition:
            commands[f"Zones/{zone_name}/Destroy all {coalition.value.upper()} groups"] = \
                _destroy_in_zone(ao, zone, [coalition])
        commands[f"Zones/{zone_name}/Destroy all groups"] = _destroy_in_zone(ao, zone, None)

    def auto_respawn_on() -> str:
        ao.auto_respawn_on(settings.auto_respawn_delay)
        return f"Auto-Respawn ON for {ao.name}"

    def auto_respawn_off() -> str:
        ao.auto_respawn_off()
        return f"Auto-Respawn OFF for {ao.name}"

    commands["Auto-Respawn/Auto-Respawn ON"] = auto_respawn_on
    commands["Auto-Respawn/Auto-Respawn OFF"] = auto_respawn_off
    return commands


def _group_commands(ao: AreaOfOperations, template_name: str, label: str) -> dict[str, Command]:
    base = f"Spawn/Spawn Group/{label}"
    commands: dict[str, Command] = {}

    def spawned(group) -> str:
        return f"Spawned {group.name}" if group is not None else f"Could not spawn {template_name}"

    commands[f"{base}/Spawn (original loc)"] = lambda: spawned(ao.spawn(template_name))
    if ao.zone is not None:
        commands[f"{base}/Spawn (random loc)"] = lambda: spawned(ao.spawn_in_zone(template_name, ao.zone))
    if ao.spawn_zones:
        commands[f"{base}/Spawn In Random Zone"] = lambda: spawned(ao.spawn_in_random_zone(template_name))
        for zone_name in ao.spawn_zones:
            commands[f"{base}/Spawn In Named Zone/{zone_name}"] = \
                lambda z=zone_name: spawned(ao.spawn_in_zone(template_name, z))
    return commands


def _spawn_random_in(ao: AreaOfOperations, zone: Zone) -> Command:
    def _run() -> str:
        group = ao.spawn_random_group_in_zone(zone)
        if group is None:
            return f"Nothing to spawn in {zone.name}"
        return f"Spawned {group.name} in {zone.name}"
    return _run


def _destroy_in_zone(ao: AreaOfOperations, zone: Zone | None,
                     coalitions: list[Coalition] | None) -> Command:
    def _run() -> str:
        try:
            n = ao.destroy_all_in_zone(zone, coalitions)
        except ZoneMissing as e:
            logger.warning(f"Command failed: {e}")
            return f"Cannot destroy units: {ao.name} has no zone"
        return f"Destroyed {n} objects in {zone.name}"
    return _run


def mission_commands(mission: Mission, debug: bool = False) -> dict[str, Command]:
    """Commands for one mission; the debug set mirrors the developer menu."""
    prefix = f"[{mission.code}] {mission.area.name}"
    commands: dict[str, Command] = {}

    def start() -> str:
        if mission.state is not MissionState.CREATED:
            return f"{prefix}: already {mission.state.value}"
        groups = mission.start()
        return f"{prefix}: mission started, {len(groups)} groups spawned"

    commands[f"{prefix}/Start"] = start

    if debug:
        def despawn_all() -> str:
            return f"{prefix}: despawned {mission.despawn_all_groups()} groups"

        def finish() -> str:
            return f"{prefix}: finished" if mission.finish() else f"{prefix}: already finished"

        def despawn_and_finish() -> str:
            n = mission.despawn_all_groups()
            mission.finish()
            return f"{prefix}: despawned {n} groups and finished"

        commands[f"{prefix}/[DBG] DEBUG/Despawn All"] = despawn_all
        commands[f"{prefix}/[DBG] DEBUG/Finish"] = finish
        commands[f"{prefix}/[DBG] DEBUG/Despawn All and Finish"] = despawn_and_finish
    return commands


def air_range_commands(air_range: AirRange) -> dict[str, Command]:
    """Spawn x1..x4 per template, plus a confirmed destroy-all."""
    base = air_range.name
    commands: dict[str, Command] = {}

    def spawn(template_name: str, count: int) -> Command:
        def _run() -> str:
            group = air_range.spawn(template_name, count)
            if group is None:
                return f"Could not spawn {template_name}"
            return f"Spawned {group.name} in {base}"
        return _run

    for template_name, label in air_range.menu_labels.items():
        for count in range(1, MAX_FORMATION + 1):
            commands[f"{base}/Spawn Group/{label}/Spawn {label} x{count}"] = spawn(template_name, count)

    def destroy_all() -> str:
        return _groups_message("Destroyed", air_range.destroy_all_adversaries(), base)

    commands[f"{base}/Destroy all adversaries/Nevermind"] = lambda: "Nothing destroyed"
    commands[f"{base}/Destroy all adversaries/Confirm Destroy All"] = destroy_all
    return commands
