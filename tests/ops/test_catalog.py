"""Unit tests for the TemplateCatalog and its JSON loaders."""
from __future__ import annotations

import json

import pytest

from ops.catalog import TemplateCatalog, TemplateDescriptor, load_catalog, load_menu_labels
from ops.errors import TemplateInvalid, TemplateNotFound
from simulation.units import Coalition, TemplateCategory

CATALOG_DATA = {
    "templates": [
        {"name": "T1", "category": "ground", "coalition": "red", "weight": 2,
         "units": [{"name": "T1-a", "type": "T-72", "x": 10, "y": 20},
                   {"type": "BMP-2", "x": 30, "y": 20}]},
        {"name": "Heli", "category": "air", "coalition": "blue", "speed": 60,
         "units": [{"x": 0, "y": 0}]},
        {"name": "Tent", "category": "static", "units": [{"x": 5, "y": 5}]},
        {"name": "Bad", "category": "submarine", "units": [{"x": 5, "y": 5}]},
        {"category": "ground"},
    ],
    "sets": {"Camp": ["T1", "Tent", "Ghost"]},
}


@pytest.mark.unit
class TestTemplateDescriptor:

    def test_from_dict(self):
        d = TemplateDescriptor.from_dict(CATALOG_DATA["templates"][0])
        assert d.name == "T1"
        assert d.category is TemplateCategory.GROUND
        assert d.coalition is Coalition.RED
        assert d.weight == 2.0
        assert d.unit_count == 2
        assert d.units[1].name == "T1-2"
        assert d.units[1].unit_type == "BMP-2"
        assert d.origin == (10.0, 20.0)
        assert d.center == (20.0, 20.0)

    def test_defaults(self):
        d = TemplateDescriptor.from_dict({"name": "X", "units": [{"x": 1, "y": 2}]})
        assert d.category is TemplateCategory.GROUND
        assert d.coalition is Coalition.RED
        assert d.spawnable is True
        assert d.menu_label is None

    def test_validate_rejects_empty(self):
        d = TemplateDescriptor(name="E", category=TemplateCategory.GROUND, coalition=Coalition.RED, units=())
        with pytest.raises(TemplateInvalid) as exc:
            d.validate()
        assert exc.value.template_name == "E"
        assert exc.value.category == "ground"


@pytest.mark.unit
class TestTemplateCatalog:

    def test_from_dict_skips_malformed(self):
        cat = TemplateCatalog.from_dict(CATALOG_DATA)
        assert len(cat) == 3
        assert "Bad" not in cat

    def test_find(self):
        cat = TemplateCatalog.from_dict(CATALOG_DATA)
        assert cat.find("Heli").speed == 60.0

    def test_find_missing(self):
        cat = TemplateCatalog.from_dict(CATALOG_DATA)
        with pytest.raises(TemplateNotFound) as exc:
            cat.find("Nope")
        assert exc.value.template_name == "Nope"
        assert exc.value.reason == "missing"

    def test_find_invalid(self, catalog):
        with pytest.raises(TemplateInvalid):
            catalog.find("Broken")

    def test_groups_and_statics(self):
        cat = TemplateCatalog.from_dict(CATALOG_DATA)
        assert {d.name for d in cat.groups()} == {"T1", "Heli"}
        assert [d.name for d in cat.statics()] == ["Tent"]

    def test_template_set_skips_unknown(self, log_messages):
        cat = TemplateCatalog.from_dict(CATALOG_DATA)
        assert [d.name for d in cat.template_set("Camp")] == ["T1", "Tent"]
        assert any("Ghost" in m for m in log_messages)

    def test_unknown_template_set(self):
        cat = TemplateCatalog.from_dict(CATALOG_DATA)
        with pytest.raises(TemplateNotFound):
            cat.template_set("Nowhere")
        assert cat.set_names() == ["Camp"]


@pytest.mark.unit
class TestLoaders:

    def test_load_catalog(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps(CATALOG_DATA))
        cat = load_catalog(path)
        assert "T1" in cat

    def test_load_catalog_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalog(tmp_path / "nope.json")

    def test_load_menu_labels(self, tmp_path):
        path = tmp_path / "Camp.mnu"
        path.write_text(json.dumps({
            "T1": {"name": "Armor platoon", "spawnable": True},
            "T2": {"spawnable": False},
        }))
        labels = load_menu_labels(path)
        assert labels["T1"].name == "Armor platoon"
        assert labels["T2"].name == "T2"
        assert labels["T2"].spawnable is False

    def test_load_menu_labels_missing_file(self, tmp_path):
        assert load_menu_labels(tmp_path / "none.mnu") is None
