"""
Motion completion watching against best-effort telemetry.

The controller never reports "move N finished". Completion is inferred
from either the latest telemetry snapshot landing within tolerance of the
target, or the coordinated motion state dropping back to idle after it
was seen active. A wait that sees neither before its deadline times out;
callers treat that as advisory.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from .config import settings
from .controller_client import ControllerTransportError
from .models import CoordinatedMotionState, TelemetrySnapshot, Waypoint
from .task_manager import RunToken
from .telemetry import TelemetryCell

logger = logging.getLogger(__name__)


class MotionCompletionWatcher:
    """Polls telemetry and motion state until a move or rotation is confirmed."""

    def __init__(
        self,
        controller: Any,
        cell: TelemetryCell,
        translation_tolerance: Optional[float] = None,
        rotation_tolerance: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ):
        self.controller = controller
        self.cell = cell
        self.translation_tolerance = (
            translation_tolerance if translation_tolerance is not None else settings.translation_tolerance
        )
        self.rotation_tolerance = (
            rotation_tolerance if rotation_tolerance is not None else settings.rotation_tolerance
        )
        self.poll_interval_s = poll_interval_s if poll_interval_s is not None else settings.scan_poll_interval_s

    def move_reached(self, snapshot: Optional[TelemetrySnapshot], target: Waypoint) -> bool:
        if snapshot is None:
            return False
        position = snapshot.scene_position
        return (
            abs(position.x - target.x) <= self.translation_tolerance
            and abs(position.z - target.z) <= self.translation_tolerance
        )

    def rotation_reached(self, snapshot: Optional[TelemetrySnapshot], target_r: float) -> bool:
        if snapshot is None or snapshot.raw_position.r is None:
            return False
        return abs(snapshot.raw_position.r - target_r) <= self.rotation_tolerance

    async def wait_for_move(self, target: Waypoint, timeout_s: float, token: RunToken) -> bool:
        return await self._wait(
            f"move to ({target.x:.1f}, {target.z:.1f})",
            lambda snapshot: self.move_reached(snapshot, target),
            timeout_s,
            token,
        )

    async def wait_for_rotation(self, target_r: float, timeout_s: float, token: RunToken) -> bool:
        return await self._wait(
            f"rotation to r={target_r:.0f}",
            lambda snapshot: self.rotation_reached(snapshot, target_r),
            timeout_s,
            token,
        )

    async def _poll_motion_state(self) -> Optional[CoordinatedMotionState]:
        try:
            return await self.controller.poll_coordinated_motion_state()
        except ControllerTransportError as e:
            logger.debug(f"motion state poll failed: {e}")
            return None

    async def _wait(
        self,
        label: str,
        reached: Callable[[Optional[TelemetrySnapshot]], bool],
        timeout_s: float,
        token: RunToken,
    ) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        saw_active = False

        while True:
            if token.cancelled:
                return False

            if token.paused:
                paused_at = loop.time()
                if not await token.wait_while_paused(self.poll_interval_s):
                    return False
                # Time spent paused does not count against the timeout
                deadline += loop.time() - paused_at
                continue

            if reached(self.cell.snapshot):
                logger.debug(f"{label} reached within tolerance")
                return True

            state = await self._poll_motion_state()
            if state is not None:
                if state.is_active:
                    saw_active = True
                elif saw_active:
                    logger.debug(f"{label} reported idle by controller")
                    return True

            if loop.time() >= deadline:
                logger.warning(f"Timed out after {timeout_s:.1f}s waiting for {label}")
                return False

            await asyncio.sleep(self.poll_interval_s)
