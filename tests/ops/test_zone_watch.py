"""Unit tests for ZoneWatch — the arrival / destruction / timeout race."""
from __future__ import annotations

import pytest

from ops.errors import ZoneBusy
from ops.zone_watch import WatchState, ZoneWatch
from ops.zones import TriggerState


def _watch(world, end_on_arrival=True, time_limit=600, prefix="Convoy"):
    outcomes = []
    watch = ZoneWatch(world, world.find_zone("Z2"), prefix, end_on_arrival, time_limit,
                      on_outcome=lambda w, ok: outcomes.append((world.now, ok)))
    return watch, outcomes


def _convoy(world, location=None):
    return world.spawn_instance(world.find_template("Convoy"), location)


@pytest.mark.unit
class TestBinding:

    def test_binds_first_matching_instance(self, world):
        watch, _ = _watch(world)
        other = world.spawn_instance(world.find_template("T1"))
        first = _convoy(world)
        second = _convoy(world)
        assert watch.offer(other) is False
        assert watch.offer(first) is True
        assert watch.offer(second) is False
        assert watch.target is first
        assert watch.state is WatchState.WATCHING
        assert watch.zone.trigger_state is TriggerState.WATCHING

    def test_default_time_limit(self, world):
        watch = ZoneWatch(world, world.find_zone("Z2"), "Convoy", True)
        assert watch.time_limit == 3600

    def test_zone_busy(self, world):
        watch, _ = _watch(world)
        rival, _ = _watch(world)
        watch.offer(_convoy(world))
        with pytest.raises(ZoneBusy):
            rival.offer(_convoy(world))
        assert rival.state is WatchState.IDLE


@pytest.mark.unit
class TestEscortRace:

    def test_arrival_before_deadline_succeeds(self, world):
        watch, outcomes = _watch(world)
        g = _convoy(world)
        watch.offer(g)
        world.advance_to(300)
        world.move_group(g.name, (3000, 0))
        assert watch.state is WatchState.ARRIVED
        assert outcomes == [(300.0, True)]
        assert watch.resolved_at == 300.0

        world.kill_group(g.name)
        assert watch.group_destroyed(g) is False
        world.advance_to(1000)
        assert outcomes == [(300.0, True)]
        assert watch.zone.trigger_state is TriggerState.STOPPED

    def test_destruction_before_arrival_fails(self, world):
        watch, outcomes = _watch(world)
        g = _convoy(world)
        watch.offer(g)
        world.advance_to(200)
        world.kill_group(g.name)
        assert watch.group_destroyed(g) is True
        assert watch.state is WatchState.DESTROYED
        world.advance_to(1000)
        assert outcomes == [(200.0, False)]

    def test_deadline_fails_exactly_once(self, world):
        watch, outcomes = _watch(world)
        g = _convoy(world)
        watch.offer(g)
        world.advance_to(599)
        assert outcomes == []
        world.advance_to(600)
        assert watch.state is WatchState.TIMED_OUT
        assert outcomes == [(600.0, False)]

        world.move_group(g.name, (3000, 0))
        world.advance_to(2000)
        assert outcomes == [(600.0, False)]

    def test_already_inside_when_bound(self, world):
        watch, outcomes = _watch(world)
        g = _convoy(world, (3000, 0))
        watch.offer(g)
        assert watch.state is WatchState.ARRIVED
        assert outcomes == [(0.0, True)]
        world.advance_to(1000)
        assert len(outcomes) == 1

    def test_destroyed_prefix_match_resolves_even_if_not_target(self, world):
        watch, outcomes = _watch(world)
        target = _convoy(world)
        spare = _convoy(world)
        watch.offer(target)
        world.kill_group(spare.name)
        assert watch.group_destroyed(spare) is True
        assert watch.state is WatchState.DESTROYED
        assert outcomes == [(0.0, False)]

    def test_destroyed_other_prefix_ignored(self, world):
        watch, _ = _watch(world)
        watch.offer(_convoy(world))
        other = world.spawn_instance(world.find_template("T1"))
        world.kill_group(other.name)
        assert watch.group_destroyed(other) is False
        assert watch.state is WatchState.WATCHING


@pytest.mark.unit
class TestInterdictMapping:

    def test_arrival_fails(self, world):
        watch, outcomes = _watch(world, end_on_arrival=False)
        g = _convoy(world)
        watch.offer(g)
        world.move_group(g.name, (3000, 0))
        assert outcomes == [(0.0, False)]

    def test_destruction_succeeds(self, world):
        watch, outcomes = _watch(world, end_on_arrival=False)
        g = _convoy(world)
        watch.offer(g)
        world.kill_group(g.name)
        watch.group_destroyed(g)
        assert outcomes == [(0.0, True)]
        assert watch.success is True

    def test_timeout_succeeds(self, world):
        watch, outcomes = _watch(world, end_on_arrival=False, time_limit=60)
        watch.offer(_convoy(world))
        world.advance_to(60)
        assert outcomes == [(60.0, True)]


@pytest.mark.unit
class TestCancel:

    def test_cancel_retires_everything(self, world):
        watch, outcomes = _watch(world)
        g = _convoy(world)
        watch.offer(g)
        watch.cancel()
        assert watch.state is WatchState.IDLE
        assert watch.zone.trigger_state is TriggerState.STOPPED
        world.move_group(g.name, (3000, 0))
        world.advance_to(1000)
        assert outcomes == []

    def test_success_unknown_while_unresolved(self, world):
        watch, _ = _watch(world)
        assert watch.success is None
        assert not watch.resolved
