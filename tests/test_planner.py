"""
Test arc sampling, bounds clamping, arc-length resampling and pass layout
"""
import math

import pytest

from scanbot.coordinates import CoordinateMapper
from scanbot.models import AxisBounds, ScanDirection, ScanSettings, Waypoint
from scanbot.planner import (
    MIN_ARC_SAMPLES,
    build_arc,
    build_passes,
    clamp_to_bounds,
    count_total_steps,
    plan_waypoints,
    resample,
)

BOUNDS = AxisBounds(x_min=0, x_max=400, z_min=0, z_max=400)


def spacing(points):
    return [math.hypot(b.x - a.x, b.z - a.z) for a, b in zip(points, points[1:])]


class TestBuildArc:

    def test_quarter_arc_endpoints(self):
        arc = build_arc(320, origin=(0, 27))
        assert arc[0].x == pytest.approx(320)
        assert arc[0].z == pytest.approx(27)
        assert arc[-1].x == pytest.approx(0, abs=1e-9)
        assert arc[-1].z == pytest.approx(347)

    def test_density_grows_with_span(self):
        assert len(build_arc(10, start_deg=0, end_deg=5)) == MIN_ARC_SAMPLES
        assert len(build_arc(10, start_deg=0, end_deg=90)) == 361


class TestClampToBounds:

    def test_points_are_clamped(self):
        clamped = clamp_to_bounds(build_arc(500, origin=(0, 27)), BOUNDS)
        assert all(BOUNDS.x_min <= p.x <= BOUNDS.x_max for p in clamped)
        assert all(BOUNDS.z_min <= p.z <= BOUNDS.z_max for p in clamped)

    def test_collapsed_points_are_dropped(self):
        points = [Waypoint(x=500, z=10), Waypoint(x=600, z=10), Waypoint(x=300, z=10)]
        clamped = clamp_to_bounds(points, BOUNDS)
        assert clamped == [Waypoint(x=400, z=10), Waypoint(x=300, z=10)]


class TestResample:

    def test_empty_and_invalid_counts(self):
        assert resample([], 5) == []
        assert resample([Waypoint(x=0, z=0)], 0) == []

    def test_single_point(self):
        points = [Waypoint(x=1, z=2), Waypoint(x=3, z=4)]
        assert resample(points, 1) == [Waypoint(x=1, z=2)]

    def test_zero_length_path(self):
        points = [Waypoint(x=5, z=5), Waypoint(x=5, z=5)]
        assert resample(points, 3) == [Waypoint(x=5, z=5)] * 3

    def test_straight_line_even_spacing(self):
        points = [Waypoint(x=0, z=0), Waypoint(x=1, z=0), Waypoint(x=10, z=0)]
        result = resample(points, 5)
        assert [p.x for p in result] == pytest.approx([0, 2.5, 5, 7.5, 10])

    def test_endpoints_are_exact(self):
        arc = build_arc(320, origin=(0, 27))
        result = resample(arc, 9)
        assert result[0] == arc[0]
        assert result[-1] == arc[-1]

    def test_resampling_is_idempotent(self):
        once = resample(build_arc(320, origin=(0, 27)), 9)
        twice = resample(once, 9)
        for a, b in zip(once, twice):
            assert a.x == pytest.approx(b.x, abs=1e-6)
            assert a.z == pytest.approx(b.z, abs=1e-6)


class TestPlanWaypoints:

    @pytest.fixture
    def mapper(self):
        return CoordinateMapper()

    def test_exact_count_and_even_spacing(self, mapper):
        waypoints = plan_waypoints(ScanSettings(radius=320, waypoint_count=9), BOUNDS, mapper)
        assert len(waypoints) == 9
        gaps = spacing(waypoints)
        assert max(gaps) == pytest.approx(min(gaps), rel=1e-3)

    def test_reverse_start_direction(self, mapper):
        forward = plan_waypoints(ScanSettings(radius=320, waypoint_count=5), BOUNDS, mapper)
        reverse = plan_waypoints(
            ScanSettings(radius=320, waypoint_count=5, start_direction=ScanDirection.REVERSE),
            BOUNDS,
            mapper,
        )
        assert reverse == list(reversed(forward))

    def test_oversized_radius_stays_within_bounds(self, mapper):
        waypoints = plan_waypoints(ScanSettings(radius=1000, waypoint_count=7), BOUNDS, mapper)
        assert len(waypoints) == 7
        assert all(0 <= p.x <= 400 and 0 <= p.z <= 400 for p in waypoints)


class TestPasses:

    WAYPOINTS = [Waypoint(x=i, z=0) for i in range(5)]

    def test_cycles_alternate_sign(self):
        passes = build_passes(self.WAYPOINTS, repeats=2)
        assert [p.sign for p in passes] == [1, -1, 1, -1]
        assert [p.cycle for p in passes] == [0, 0, 1, 1]
        assert passes[1].waypoints == tuple(reversed(self.WAYPOINTS))
        assert count_total_steps(passes) == 20

    def test_start_at_center_shortens_first_pass_only(self):
        passes = build_passes(self.WAYPOINTS, repeats=2, start_at_center=True)
        assert passes[0].waypoints == tuple(self.WAYPOINTS[2:])
        assert len(passes[1]) == 5
        assert len(passes[2]) == 5
        assert count_total_steps(passes) == 18

    def test_labels(self):
        forward, reverse = build_passes(self.WAYPOINTS, repeats=1)
        assert forward.label == "forward"
        assert reverse.label == "reverse"

    def test_no_waypoints_no_passes(self):
        assert build_passes([], repeats=3) == []
