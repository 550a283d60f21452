"""
Waypoint planning for the quarter-circle scan arc.

The planner is stateless: it samples a dense arc around the scan origin,
clamps it into the legal axis range, and resamples the result by arc
length so that visits are evenly spaced along the path that the stages
will actually travel. It also lays the waypoints out into passes and
cycles for the sequencer.
"""
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .coordinates import CoordinateMapper, clamp
from .models import AxisBounds, ScanDirection, ScanSettings, Waypoint

MIN_ARC_SAMPLES = 64
SAMPLES_PER_DEGREE = 4
MIN_POINT_SPACING = 0.001


def build_arc(
    radius: float,
    origin: Tuple[float, float] = (0.0, 27.0),
    start_deg: float = 0.0,
    end_deg: float = 90.0,
) -> List[Waypoint]:
    """Sample an arc of the given radius centred on origin.

    Density grows with the angular span so that the later arc-length
    resampling stays accurate; never fewer than MIN_ARC_SAMPLES points.
    """
    span = end_deg - start_deg
    samples = max(MIN_ARC_SAMPLES, int(math.ceil(abs(span) * SAMPLES_PER_DEGREE)) + 1)
    origin_x, origin_z = origin
    points = []
    for i in range(samples):
        theta = math.radians(start_deg + span * i / (samples - 1))
        points.append(
            Waypoint(
                x=origin_x + radius * math.cos(theta),
                z=origin_z + radius * math.sin(theta),
            )
        )
    return points


def clamp_to_bounds(points: Sequence[Waypoint], bounds: AxisBounds) -> List[Waypoint]:
    """Clamp each point into bounds and drop points that collapse onto the previous one."""
    clamped: List[Waypoint] = []
    for point in points:
        candidate = Waypoint(
            x=clamp(point.x, bounds.x_min, bounds.x_max),
            z=clamp(point.z, bounds.z_min, bounds.z_max),
        )
        if clamped:
            last = clamped[-1]
            if math.hypot(candidate.x - last.x, candidate.z - last.z) < MIN_POINT_SPACING:
                continue
        clamped.append(candidate)
    return clamped


def resample(points: Sequence[Waypoint], count: int) -> List[Waypoint]:
    """Resample a polyline to exactly count points evenly spaced by arc length."""
    if not points or count < 1:
        return []
    if count == 1:
        return [points[0]]

    cumulative = [0.0]
    for prev, curr in zip(points, points[1:]):
        cumulative.append(cumulative[-1] + math.hypot(curr.x - prev.x, curr.z - prev.z))
    total = cumulative[-1]
    if total <= 0.0:
        return [points[0]] * count

    result: List[Waypoint] = []
    segment = 0
    last_segment = len(points) - 2
    for i in range(count):
        if i == count - 1:
            result.append(points[-1])
            break
        target = total * i / (count - 1)
        while segment < last_segment and cumulative[segment + 1] < target:
            segment += 1
        start, end = points[segment], points[segment + 1]
        seg_length = cumulative[segment + 1] - cumulative[segment]
        t = 0.0 if seg_length <= 0.0 else (target - cumulative[segment]) / seg_length
        t = clamp(t, 0.0, 1.0)
        result.append(
            Waypoint(
                x=start.x + (end.x - start.x) * t,
                z=start.z + (end.z - start.z) * t,
            )
        )
    return result


def plan_waypoints(
    scan_settings: ScanSettings, bounds: AxisBounds, mapper: CoordinateMapper
) -> List[Waypoint]:
    """Full planning pipeline: arc, clamp, resample, then apply start direction."""
    arc = build_arc(scan_settings.radius, origin=(mapper.origin_x, mapper.origin_z))
    waypoints = resample(clamp_to_bounds(arc, bounds), scan_settings.waypoint_count)
    if scan_settings.start_direction == ScanDirection.REVERSE:
        waypoints.reverse()
    return waypoints


# ========== Passes and cycles ==========

@dataclass(frozen=True)
class ScanPass:
    """Ordered traversal of waypoints with a fixed rotation sign."""

    cycle: int
    sign: int
    waypoints: Tuple[Waypoint, ...]

    @property
    def label(self) -> str:
        return "forward" if self.sign > 0 else "reverse"

    def __len__(self) -> int:
        return len(self.waypoints)


def build_passes(
    waypoints: Sequence[Waypoint], repeats: int, start_at_center: bool = False
) -> List[ScanPass]:
    """Lay out repeats cycles of a forward pass followed by its reversal.

    With start_at_center the first forward pass begins at the midpoint of
    the list; the reverse pass that follows still sweeps back to the first
    waypoint, so every cycle ends where the next one begins.
    """
    full = tuple(waypoints)
    if not full:
        return []
    passes: List[ScanPass] = []
    for cycle in range(repeats):
        forward = full
        if cycle == 0 and start_at_center:
            forward = full[len(full) // 2:]
        passes.append(ScanPass(cycle=cycle, sign=1, waypoints=forward))
        passes.append(ScanPass(cycle=cycle, sign=-1, waypoints=tuple(reversed(full))))
    return passes


def count_total_steps(passes: Sequence[ScanPass]) -> int:
    return sum(len(scan_pass) for scan_pass in passes)
