"""Unit tests for zone geometry, random placement and trigger state."""
from __future__ import annotations

import math
import random

import pytest

from ops.errors import ZoneBusy
from ops.zones import CircleZone, GroupZone, PolygonZone, TriggerState, centroid, enclosing_circle

SQUARE = [(0, 0), (100, 0), (100, 100), (0, 100)]


@pytest.mark.unit
class TestCircleZone:

    def test_contains_point(self):
        z = CircleZone("c", (0, 0), 10)
        assert z.contains_point((3, 4))
        assert z.contains_point((10, 0))  # boundary is inside
        assert not z.contains_point((10, 1))

    def test_random_points_inside(self):
        z = CircleZone("c", (50, -20), 30)
        rng = random.Random(7)
        for _ in range(200):
            assert z.contains_point(z.random_point(rng))

    def test_center_and_radius(self):
        z = CircleZone("c", (1, 2), 3)
        assert z.center == (1.0, 2.0)
        assert z.radius == 3.0


@pytest.mark.unit
class TestPolygonZone:

    def test_contains_point(self):
        z = PolygonZone("sq", SQUARE)
        assert z.contains_point((50, 50))
        assert not z.contains_point((150, 50))
        assert not z.contains_point((-1, -1))

    def test_concave_polygon(self):
        # U shape: the notch at the top middle is outside
        z = PolygonZone("u", [(0, 0), (30, 0), (30, 30), (20, 30), (20, 10), (10, 10), (10, 30), (0, 30)])
        assert z.contains_point((5, 20))
        assert not z.contains_point((15, 20))

    def test_degenerate_polygon_contains_nothing(self):
        assert not PolygonZone("line", [(0, 0), (10, 10)]).contains_point((5, 5))

    def test_center_and_radius(self):
        z = PolygonZone("sq", SQUARE)
        assert z.center == (50, 50)
        assert z.radius == pytest.approx(math.dist((50, 50), (0, 0)))

    def test_random_points_inside(self):
        z = PolygonZone("sq", SQUARE)
        rng = random.Random(3)
        for _ in range(100):
            assert z.contains_point(z.random_point(rng))


@pytest.mark.unit
class TestGroupZone:

    def test_follows_located_group(self):
        positions = {"Convoy#001": (100, 0)}
        z = GroupZone("shadow", "Convoy#001", 50, positions.get)
        assert z.contains_point((120, 0))
        positions["Convoy#001"] = (500, 0)
        assert not z.contains_point((120, 0))
        assert z.contains_point((520, 0))

    def test_keeps_last_known_position(self):
        positions = {"Convoy#001": (100, 0)}
        z = GroupZone("shadow", "Convoy#001", 50, positions.get)
        assert z.center == (100, 0)
        del positions["Convoy#001"]
        assert z.center == (100, 0)


@pytest.mark.unit
class TestTriggerState:

    def test_begin_and_stop(self):
        z = CircleZone("c", (0, 0), 10)
        assert z.trigger_state is TriggerState.IDLE
        z.begin_watch()
        assert z.watching
        z.stop_watch()
        assert z.trigger_state is TriggerState.STOPPED

    def test_second_watch_is_busy(self):
        z = CircleZone("c", (0, 0), 10)
        z.begin_watch()
        with pytest.raises(ZoneBusy):
            z.begin_watch()

    def test_watch_can_restart_after_stop(self):
        z = CircleZone("c", (0, 0), 10)
        z.begin_watch()
        z.stop_watch()
        z.begin_watch()
        assert z.watching

    def test_stop_when_idle_stays_idle(self):
        z = CircleZone("c", (0, 0), 10)
        z.stop_watch()
        assert z.trigger_state is TriggerState.IDLE


@pytest.mark.unit
class TestHelpers:

    def test_centroid(self):
        assert centroid([(0, 0), (10, 0), (10, 10), (0, 10)]) == (5, 5)
        assert centroid([]) == (0.0, 0.0)

    def test_enclosing_circle_contains_points(self):
        pts = [(100, 100), (110, 100), (200, 200), (150, 150)]
        center, radius = enclosing_circle(pts)
        assert center == (150, 150)
        zone = CircleZone("enc", center, radius)
        assert all(zone.contains_point(p) for p in pts)

    def test_enclosing_circle_single_point(self):
        assert enclosing_circle([(3, 4)]) == ((3, 4), 0.0)

    def test_enclosing_circle_empty(self):
        with pytest.raises(ValueError):
            enclosing_circle([])
