"""Template Catalog — named, spawnable entity descriptors.

The catalog is a pure data source: it resolves template names to
TemplateDescriptor records and performs no simulation logic.  Records
come from a JSON document with this shape::

    {
      "templates": [
        {"name": "T1", "category": "ground", "coalition": "red",
         "units": [{"name": "T1-1", "type": "T-72", "x": 10, "y": 20}, ...],
         "weight": 1, "speed": 8.0},
        ...
      ],
      "sets": {"Checkpoint": ["T1", "T2", "Bunker-1"]}
    }

Template *sets* group the templates of one authored scene so an area of
operations can be built from them in one call.  An optional menu sidecar
maps group names to a descriptive label and a spawnable flag::

    {"T1": {"name": "Armor platoon", "spawnable": true}}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from ops.errors import TemplateInvalid, TemplateNotFound
from ops.zones import centroid
from simulation.units import Coalition, TemplateCategory

Point = tuple[float, float]


@dataclass(frozen=True)
class UnitTemplate:
    name: str
    unit_type: str
    position: Point


@dataclass(frozen=True)
class TemplateDescriptor:
    """An immutable, registered template."""

    name: str
    category: TemplateCategory
    coalition: Coalition
    units: tuple[UnitTemplate, ...]
    weight: float = 1.0
    menu_label: str | None = None
    spawnable: bool = True
    speed: float = 0.0
    effect_preset: int | None = None

    @property
    def positions(self) -> list[Point]:
        return [u.position for u in self.units]

    @property
    def unit_count(self) -> int:
        return len(self.units)

    @property
    def origin(self) -> Point:
        """Authored position of the template (its lead unit)."""
        return self.units[0].position

    @property
    def center(self) -> Point:
        return centroid(self.positions)

    def validate(self) -> None:
        if not self.name:
            raise TemplateInvalid(self.name, "template has no name", self.category.value)
        if not self.units:
            raise TemplateInvalid(self.name, f"template '{self.name}' has no units",
                                  self.category.value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TemplateDescriptor:
        units = tuple(
            UnitTemplate(
                name=u.get("name", f"{data['name']}-{i + 1}"),
                unit_type=u.get("type", "unknown"),
                position=(float(u.get("x", 0.0)), float(u.get("y", 0.0))),
            )
            for i, u in enumerate(data.get("units", []))
        )
        return cls(
            name=data["name"],
            category=TemplateCategory(data.get("category", "ground")),
            coalition=Coalition(data.get("coalition", "red")),
            units=units,
            weight=float(data.get("weight", 1.0)),
            menu_label=data.get("menu_label"),
            spawnable=bool(data.get("spawnable", True)),
            speed=float(data.get("speed", 0.0)),
            effect_preset=data.get("effect_preset"),
        )


@dataclass
class MenuEntry:
    name: str
    spawnable: bool = True


class TemplateCatalog:
    """In-memory index of templates and template sets."""

    def __init__(self, templates: list[TemplateDescriptor] | None = None) -> None:
        self._templates: dict[str, TemplateDescriptor] = {}
        self._sets: dict[str, list[str]] = {}
        for t in templates or []:
            self.add(t)

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def add(self, descriptor: TemplateDescriptor) -> None:
        self._templates[descriptor.name] = descriptor

    def add_set(self, set_name: str, template_names: list[str]) -> None:
        self._sets[set_name] = list(template_names)

    def find(self, name: str) -> TemplateDescriptor:
        """Return the named template.

        Raises:
            TemplateNotFound: no template has that name.
            TemplateInvalid: the record exists but is malformed.
        """
        descriptor = self._templates.get(name)
        if descriptor is None:
            raise TemplateNotFound(name, f"Can't find template named {name}")
        descriptor.validate()
        return descriptor

    def all(self) -> list[TemplateDescriptor]:
        return list(self._templates.values())

    def groups(self) -> list[TemplateDescriptor]:
        return [t for t in self._templates.values() if t.category.is_group]

    def statics(self) -> list[TemplateDescriptor]:
        return [t for t in self._templates.values() if not t.category.is_group]

    def template_set(self, set_name: str) -> list[TemplateDescriptor]:
        """Descriptors of a template set; unknown members are skipped with a warning."""
        if set_name not in self._sets:
            raise TemplateNotFound(set_name, f"Can't find template set named {set_name}", "set")
        out = []
        for name in self._sets[set_name]:
            descriptor = self._templates.get(name)
            if descriptor is None:
                logger.warning(f"Template set '{set_name}' lists unknown template '{name}'")
                continue
            out.append(descriptor)
        return out

    def set_names(self) -> list[str]:
        return list(self._sets)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TemplateCatalog:
        catalog = cls()
        for raw in data.get("templates", []):
            try:
                catalog.add(TemplateDescriptor.from_dict(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed template record {raw.get('name', '?')}: {e}")
        for set_name, names in data.get("sets", {}).items():
            catalog.add_set(set_name, names)
        return catalog


def load_catalog(path: str | Path) -> TemplateCatalog:
    """Read a catalog JSON file.

    Raises:
        FileNotFoundError: If path does not exist.
        json.JSONDecodeError: If file is not valid JSON.
    """
    with open(path) as f:
        data = json.load(f)
    catalog = TemplateCatalog.from_dict(data)
    logger.info(f"Loaded {len(catalog)} templates from {path}")
    return catalog


def load_menu_labels(path: str | Path) -> dict[str, MenuEntry] | None:
    """Read a menu sidecar file. Returns None if the file does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path) as f:
        data = json.load(f)
    return {
        group: MenuEntry(name=entry.get("name", group), spawnable=entry.get("spawnable", True))
        for group, entry in data.items()
    }
