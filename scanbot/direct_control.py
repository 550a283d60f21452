"""
Direct control of the rig from an operator-edited target.

When enabled, a periodic pusher sends the manual target to the controller
as an absolute move, but only when the payload changed since the last
successful send. Direct control is only available while the controller
reports status "ok" and is homed; losing availability switches it off.
With lock-origin set, the P deflection is derived from the target
position so the rangefinder keeps pointing at the scan origin.
"""
import asyncio
import logging
import math
from typing import Any, Dict, Optional

from .config import settings
from .controller_client import ControllerTransportError
from .coordinates import CoordinateMapper, clamp
from .models import DirectControlStatus, ManualTarget

logger = logging.getLogger(__name__)

MIN_INTERVAL_S = 1.0
MAX_INTERVAL_S = 60.0


class RotationSoftLimit:
    """Upper soft limit of the R axis; the scan extends it, never shrinks it mid-run."""

    def __init__(self, value: float):
        self.value = float(value)

    def extend(self, required: float) -> bool:
        if required > self.value:
            logger.info(f"Extending R soft limit {self.value:.0f} -> {required:.0f}")
            self.value = float(required)
            return True
        return False

    def set(self, value: float) -> None:
        self.value = float(value)


class DirectControl:
    """Manual target, lock-origin mode and the periodic position pusher."""

    def __init__(
        self,
        controller: Any,
        mapper: CoordinateMapper,
        interval_s: Optional[float] = None,
        soft_limit: Optional[RotationSoftLimit] = None,
    ):
        self.controller = controller
        self.mapper = mapper
        self.interval_s = self.normalize_interval(
            interval_s if interval_s is not None else settings.direct_control_interval_s
        )
        self.soft_limit = soft_limit or RotationSoftLimit(settings.r_soft_limit)
        self.target = ManualTarget()
        self.lock_origin = False
        self.enabled = False
        self.last_status: Optional[str] = None
        self.last_homed: Optional[float] = None
        self._last_payload: Optional[Dict[str, int]] = None
        self._timer: Optional[asyncio.Task] = None

    # ========== Availability ==========

    @staticmethod
    def is_available(status: Optional[str], homed: Optional[float]) -> bool:
        if not status:
            return False
        return str(status).lower() == "ok" and homed is not None and float(homed) == 1

    @property
    def available(self) -> bool:
        return self.is_available(self.last_status, self.last_homed)

    def update_availability(self, status: Optional[str], homed: Optional[float]) -> None:
        """Status listener for the telemetry poller."""
        self.last_status = status
        self.last_homed = homed
        if not self.available and self.enabled:
            logger.warning("Direct control no longer available; disabling")
            self.disable()

    @staticmethod
    def normalize_interval(value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = settings.direct_control_interval_s
        if not math.isfinite(number):
            number = settings.direct_control_interval_s
        return clamp(number, MIN_INTERVAL_S, MAX_INTERVAL_S)

    # ========== Target ==========

    def set_target(self, target: ManualTarget) -> None:
        self.target = target

    def effective_deflection(self) -> float:
        if self.lock_origin:
            return self.mapper.lock_origin_deflection(self.target.x, self.target.z)
        return self.target.p

    def build_payload(self) -> Optional[Dict[str, int]]:
        """Manual target converted to rounded controller units, or None if not finite."""
        x_pos, y_pos = self.mapper.scene_to_pos(self.target.x, self.target.z)
        p_pos = self.mapper.deflection_to_p_pos(self.effective_deflection())
        r_pos = min(self.target.r, self.soft_limit.value)
        values = (x_pos, y_pos, p_pos, r_pos)
        if not all(math.isfinite(value) for value in values):
            return None
        return {axis: int(round(value)) for axis, value in zip(("x", "y", "p", "r"), values)}

    # ========== Pusher ==========

    async def tick(self) -> bool:
        """Send the target if enabled, available and changed. Returns True if sent."""
        if not self.enabled or not self.available:
            return False
        payload = self.build_payload()
        if payload is None or payload == self._last_payload:
            return False
        try:
            await self.controller.move_absolute(**payload)
        except ControllerTransportError as e:
            logger.warning(f"direct control moveabs failed: {e}")
            return False
        self._last_payload = payload
        return True

    async def _run(self) -> None:
        while self.enabled:
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in direct control tick: {e}", exc_info=True)
            await asyncio.sleep(self.interval_s)

    def enable(self) -> bool:
        if not self.available:
            logger.info("Direct control requested but controller is not ready/homed")
            return False
        self.enabled = True
        self._start_timer()
        logger.info(f"Direct control enabled (every {self.interval_s:.0f}s)")
        return True

    def disable(self) -> None:
        was_enabled = self.enabled
        self.enabled = False
        self._stop_timer()
        if was_enabled:
            logger.info("Direct control disabled")

    def _start_timer(self) -> None:
        self._stop_timer()
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; direct control pusher not scheduled")
            return
        self._timer = asyncio.create_task(self._run())

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def to_status(self) -> DirectControlStatus:
        return DirectControlStatus(
            enabled=self.enabled,
            available=self.available,
            lock_origin=self.lock_origin,
            interval_s=self.interval_s,
            rotation_soft_limit=self.soft_limit.value,
            target=self.target,
        )
