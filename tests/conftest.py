"""Shared fixtures for SORTIE tests."""

from __future__ import annotations

import random

import pytest
from loguru import logger

from ops.catalog import TemplateCatalog, TemplateDescriptor, UnitTemplate
from ops.zones import CircleZone
from simulation.units import Coalition, TemplateCategory
from simulation.world import SimulatedWorld


def make_descriptor(
    name: str,
    positions: list[tuple[float, float]],
    coalition: Coalition = Coalition.RED,
    category: TemplateCategory = TemplateCategory.GROUND,
    **kwargs,
) -> TemplateDescriptor:
    """Build a descriptor with one unit per position."""
    units = tuple(
        UnitTemplate(name=f"{name}-{i + 1}", unit_type="T-72", position=p)
        for i, p in enumerate(positions)
    )
    return TemplateDescriptor(name=name, category=category, coalition=coalition, units=units, **kwargs)


@pytest.fixture
def catalog() -> TemplateCatalog:
    """Templates around a checkpoint at (150, 150) and a convoy far to the west.

    T1       red, 2 units, inside zone Z
    T2       red, 1 unit, inside zone Z
    Convoy   blue, 2 units, speed 10, outside Z
    Outside  red, 1 unit, far outside every zone
    Bunker   red static inside Z
    Smoke    effect inside Z
    Broken   group with no units
    """
    cat = TemplateCatalog([
        make_descriptor("T1", [(100, 100), (110, 100)], menu_label="Armor platoon"),
        make_descriptor("T2", [(200, 200)]),
        make_descriptor("Convoy", [(-1000, 0), (-1020, 0)], coalition=Coalition.BLUE, speed=10.0),
        make_descriptor("Outside", [(5000, 5000)]),
        make_descriptor("Bunker", [(150, 150)], category=TemplateCategory.STATIC),
        make_descriptor("Smoke", [(160, 160)], category=TemplateCategory.EFFECT, effect_preset=1),
        TemplateDescriptor(name="Broken", category=TemplateCategory.GROUND,
                           coalition=Coalition.RED, units=()),
    ])
    cat.add_set("Checkpoint", ["T1", "T2", "Bunker"])
    cat.add_set("Convoy", ["Convoy"])
    return cat


@pytest.fixture
def world(catalog) -> SimulatedWorld:
    """SimulatedWorld with the checkpoint zone Z, three spawn zones and endzone Z2."""
    w = SimulatedWorld(catalog, rng=random.Random(1))
    w.add_zone(CircleZone("Z", (150, 150), 300))
    w.add_zone(CircleZone("Spawnzone-A", (120, 120), 20))
    w.add_zone(CircleZone("Spawnzone-B", (250, 250), 30))
    w.add_zone(CircleZone("Spawnzone-Far", (9000, 9000), 10))
    w.add_zone(CircleZone("Z2", (3000, 0), 500))
    return w


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
