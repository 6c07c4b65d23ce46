"""Tests for scripted mission runs and the run_mission CLI."""
from __future__ import annotations

import json
import random

import pytest
from pydantic import ValidationError

from ops.catalog import TemplateCatalog
from ops.scenario import ActionKind, MissionScript, load_mission_script, run_script

CATALOG = {
    "templates": [
        {"name": "Convoy", "category": "ground", "coalition": "blue", "speed": 10,
         "units": [{"x": 0, "y": 0}, {"x": -20, "y": 0}]},
        {"name": "Ambush", "category": "ground", "coalition": "red",
         "units": [{"x": 1500, "y": 200}, {"x": 1510, "y": 210}]},
        {"name": "Bunker", "category": "static", "coalition": "red",
         "units": [{"x": 1520, "y": 190}]},
        {"name": "Broken", "category": "ground", "coalition": "red", "units": []},
    ],
    "sets": {"Highway": ["Convoy", "Ambush", "Bunker"], "Ghosts": ["Convoy", "Broken"]},
}

FOB = {"name": "FOB", "center": [3000, 0], "radius": 500}


def _script(**overrides):
    data = {
        "name": "convoy",
        "area": "Highway",
        "template_set": "Highway",
        "zones": [FOB],
        "goal": {"kind": "escort", "prefix": "Convoy", "destination": "FOB", "time_limit": 600},
        "actions": [{"time": 1, "kind": "route_group", "target": "Convoy", "waypoints": [[3000, 0]]}],
        "until": 700,
    }
    data.update(overrides)
    return MissionScript.from_dict(data)


@pytest.fixture
def catalog():
    return TemplateCatalog.from_dict(CATALOG)


@pytest.mark.unit
class TestMissionScript:

    def test_parse(self):
        script = _script()
        assert script.goal.prefix == "Convoy"
        assert script.actions[0].kind is ActionKind.ROUTE_GROUP
        assert script.actions[0].waypoints == [(3000.0, 0.0)]
        assert script.zones[0].build().contains_point((2600, 0))

    def test_point_destination(self):
        script = _script(goal={"kind": "interdict", "prefix": "Convoy", "destination": [3000, 0]})
        assert script.goal.destination == (3000.0, 0.0)

    def test_rejects_unknown_action(self):
        with pytest.raises(ValidationError):
            _script(actions=[{"time": 1, "kind": "teleport"}])

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_mission_script(tmp_path / "nope.json")

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps(_script().model_dump()))
        assert load_mission_script(path).name == "convoy"


@pytest.mark.unit
class TestRunScript:

    def test_escort_arrives(self, catalog):
        result = run_script(_script(), catalog, rng=random.Random(1))
        assert result.goal == "ESCORT"
        assert result.outcome == "success"
        # Lead unit reaches the 500 m ring 250 s after the route starts at t=1
        assert result.resolved_at == pytest.approx(251.0)
        assert result.ended_at == pytest.approx(261.0)
        assert result.finished
        assert result.end_time == 700.0
        assert [e.kind for e in result.entries("end")] == ["end"]

    def test_escort_destroyed(self, catalog):
        actions = [
            {"time": 1, "kind": "route_group", "target": "Convoy", "waypoints": [[3000, 0]], "speed": 5},
            {"time": 200, "kind": "kill_group", "target": "Convoy"},
        ]
        result = run_script(_script(actions=actions), catalog, rng=random.Random(1))
        assert result.outcome == "failure"
        assert result.resolved_at == 200.0
        assert result.ended_at == 210.0

    def test_interdict_timeout(self, catalog):
        script = _script(goal={"kind": "interdict", "prefix": "Convoy", "destination": "FOB",
                               "time_limit": 100}, actions=[])
        result = run_script(script, catalog, rng=random.Random(1))
        assert result.outcome == "success"
        assert result.resolved_at == 100.0

    def test_default_goal_destroy_all(self, catalog):
        script = _script(goal=None, actions=[
            {"time": 10, "kind": "kill_group", "target": "Convoy"},
            {"time": 20, "kind": "kill_unit", "target": "Ambush#001-01"},
            {"time": 30, "kind": "kill_unit", "target": "Ambush#001-02"},
        ], settle_delay=5)
        result = run_script(script, catalog, rng=random.Random(1))
        assert result.goal == "DESTROY_ALL"
        assert result.outcome == "success"
        assert result.resolved_at == 30.0
        assert result.ended_at == 35.0

    def test_auto_respawn(self, catalog):
        script = _script(goal={"kind": "destroy_targets", "prefix": "Nothing"}, auto_respawn=15, actions=[
            {"time": 10, "kind": "destroy_spawned"},
            {"time": 20, "kind": "respawn_all"},
            {"time": 30, "kind": "kill_group", "target": "Convoy"},
            {"time": 30, "kind": "kill_group", "target": "Ambush"},
        ], until=100)
        result = run_script(script, catalog, rng=random.Random(1))
        spawned = [(e.time, e.data["group"]) for e in result.entries("group_spawned")]
        # Respawn at 20 is manual, the one at 45 replays the opening spawn_all
        assert spawned == [
            (0.0, "Convoy#001"), (0.0, "Ambush#001"),
            (20.0, "Convoy#002"), (20.0, "Ambush#002"),
            (45.0, "Convoy#003"), (45.0, "Ambush#003"),
        ]
        assert result.outcome is None

    def test_event_log(self, catalog):
        result = run_script(_script(), catalog, rng=random.Random(1))
        kinds = [e.kind for e in result.log]
        assert kinds.index("start") < kinds.index("zone_entered") < kinds.index("success")
        assert result.entries("action")[0].text == "route_group Convoy"

    def test_setup_errors_reported(self, catalog):
        result = run_script(_script(template_set="Ghosts", goal=None, actions=[], until=10),
                            catalog, rng=random.Random(1))
        assert result.setup_errors == ["1 invalid vehicle group templates"]
        assert [e.data["group"] for e in result.entries("group_spawned")] == ["Convoy#001"]
        assert result.outcome is None

    def test_unknown_template_set_reported(self, catalog):
        script = MissionScript(name="typo", area="A", template_set="Typo", until=10)
        result = run_script(script, catalog, rng=random.Random(1))
        assert result.setup_errors == ["Missing 1 template sets"]
        assert result.entries("group_spawned") == []
        assert result.goal == "DESTROY_ALL"
        assert result.outcome is None


@pytest.mark.unit
class TestRunMissionCli:

    def test_main(self, tmp_path, capsys):
        from run_mission import main

        catalog_path = tmp_path / "catalog.json"
        catalog_path.write_text(json.dumps(CATALOG))
        script_path = tmp_path / "script.json"
        script_path.write_text(json.dumps(_script().model_dump()))

        code = main([str(catalog_path), str(script_path), "--log-level", "WARNING", "--seed", "1"])
        out = capsys.readouterr().out
        assert code == 0
        assert "Outcome:     success" in out
