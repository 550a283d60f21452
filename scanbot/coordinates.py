"""
Conversions between scene space and controller position units.

Scene space is the 2D plane the operator sees: X grows towards the
operator's left, Z grows upwards, and the scan origin sits at
(scan_origin_x, scan_origin_z). The controller speaks its own integer-ish
step units for X, Z, P and R. Every function here is pure; clamping to
legal device ranges is the caller's responsibility.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import ConsoleSettings, settings as default_settings
from .models import AxisBounds


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def wrap180(angle: float) -> float:
    """Wrap an angle in degrees to (-180, 180]."""
    wrapped = math.fmod(angle, 360.0)
    if wrapped > 180.0:
        wrapped -= 360.0
    elif wrapped <= -180.0:
        wrapped += 360.0
    return wrapped


@dataclass(frozen=True)
class CoordinateMapper:
    """Affine scene/controller mapping plus P and R angle conventions."""

    x_origin: float = 1665.0
    x_scale: float = 5.0
    z_origin: float = 625.0
    z_scale: float = 25.0
    r_pos_per_rev: float = 3000.0
    p_full_scale: float = 255.0
    origin_x: float = 0.0
    origin_z: float = 27.0

    @classmethod
    def from_settings(cls, config: Optional[ConsoleSettings] = None) -> "CoordinateMapper":
        config = config or default_settings
        return cls(
            x_origin=config.pos_x_origin,
            x_scale=config.pos_x_scale,
            z_origin=config.pos_z_origin,
            z_scale=config.pos_z_scale,
            r_pos_per_rev=config.r_axis_pos_per_rev,
            p_full_scale=config.p_axis_full_scale,
            origin_x=config.scan_origin_x,
            origin_z=config.scan_origin_z,
        )

    # ========== Translation ==========

    def scene_to_pos(self, x_scene: float, z_scene: float) -> Tuple[float, float]:
        return (
            self.x_origin - self.x_scale * x_scene,
            self.z_origin - self.z_scale * z_scene,
        )

    def pos_to_scene(self, x_pos: float, z_pos: float) -> Tuple[float, float]:
        return (
            (self.x_origin - x_pos) / self.x_scale,
            (self.z_origin - z_pos) / self.z_scale,
        )

    def bounds_from_positions(
        self, x_pos_min: float, x_pos_max: float, z_pos_min: float, z_pos_max: float
    ) -> AxisBounds:
        """Convert device limits in controller units to scene-space AxisBounds.

        The mapping is decreasing on both axes, so the extremes swap.
        """
        x_a, z_a = self.pos_to_scene(x_pos_min, z_pos_min)
        x_b, z_b = self.pos_to_scene(x_pos_max, z_pos_max)
        return AxisBounds(
            x_min=min(x_a, x_b),
            x_max=max(x_a, x_b),
            z_min=min(z_a, z_b),
            z_max=max(z_a, z_b),
        )

    # ========== R axis ==========

    @property
    def revolution(self) -> float:
        return self.r_pos_per_rev

    def r_pos_to_degrees(self, pos: float) -> float:
        return pos * (360.0 / self.r_pos_per_rev)

    def r_degrees_to_pos(self, degrees: float) -> float:
        return degrees * (self.r_pos_per_rev / 360.0)

    def r_display_degrees(self, pos: float) -> float:
        """Accumulator wrapped to [0, 360) for display only."""
        return self.r_pos_to_degrees(pos) % 360.0

    # ========== P axis ==========

    def deflection_to_p_pos(self, deflection: float) -> float:
        return (-deflection / 90.0) * self.p_full_scale

    def p_pos_to_deflection(self, p_pos: float) -> float:
        return (-p_pos / self.p_full_scale) * 90.0

    @staticmethod
    def deflection_to_angle(deflection: float) -> float:
        """Joint deflection in [-90, 90] to an absolute heading in (-180, 180]."""
        return wrap180(deflection + 180.0)

    @staticmethod
    def angle_to_deflection(angle: float) -> float:
        """Inverse of deflection_to_angle, silently clamped to [-90, 90]."""
        return clamp(wrap180(angle - 180.0), -90.0, 90.0)

    def angle_to_origin(self, x: float, z: float) -> float:
        """Bearing in degrees from (x, z) to the scan origin."""
        return math.degrees(math.atan2(self.origin_z - z, self.origin_x - x))

    def lock_origin_deflection(self, x: float, z: float) -> float:
        """Deflection that keeps the rangefinder aimed at the scan origin."""
        return self.angle_to_deflection(self.angle_to_origin(x, z))
