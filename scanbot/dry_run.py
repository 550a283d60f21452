"""
Dry-run motion simulator.

Stands in for the live backend without touching the network: every
command is applied directly to the shared TelemetryCell (as the
"dry_run" writer) using the same coordinate conversions, followed by a
fixed settle delay that honours pause and stop exactly like a real wait.
"""
import logging
from datetime import datetime
from typing import List, Optional

from .config import settings
from .coordinates import CoordinateMapper
from .models import RawPosition, ScenePosition, TelemetrySnapshot, Waypoint
from .motion_backend import AxisCommand, MotionBackend
from .task_manager import RunToken
from .telemetry import DRY_RUN_WRITER, TelemetryCell

logger = logging.getLogger(__name__)


class DryRunSimulator(MotionBackend):
    """Fabricates motion completion by writing telemetry directly."""

    telemetry_writer = DRY_RUN_WRITER

    def __init__(
        self,
        cell: TelemetryCell,
        mapper: CoordinateMapper,
        settle_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ):
        self.cell = cell
        self.mapper = mapper
        self.settle_s = settle_s if settle_s is not None else settings.dry_run_settle_s
        self.poll_interval_s = poll_interval_s if poll_interval_s is not None else settings.scan_poll_interval_s
        self.commands: List[AxisCommand] = []

    def _apply(self, command: AxisCommand) -> None:
        scene_x, scene_z = self.mapper.pos_to_scene(command.x, command.y)
        snapshot = TelemetrySnapshot(
            scene_position=ScenePosition(x=scene_x, z=scene_z),
            raw_position=RawPosition(x=command.x, y=command.y, p=command.p, r=command.r),
            homed=1,
            status="dry_run",
            timestamp=datetime.now().isoformat(),
        )
        if not self.cell.write(snapshot, DRY_RUN_WRITER):
            logger.warning(f"Dry run does not own telemetry (owner: {self.cell.owner}); snapshot dropped")
        self.commands.append(command)

    async def move(
        self, target: Waypoint, command: AxisCommand, timeout_s: float, token: RunToken
    ) -> bool:
        if token.cancelled:
            return False
        logger.debug(f"DRY RUN: move to scene ({target.x:.1f}, {target.z:.1f})")
        self._apply(command)
        return await token.sleep(self.settle_s, self.poll_interval_s)

    async def rotate(self, command: AxisCommand, timeout_s: float, token: RunToken) -> bool:
        if token.cancelled:
            return False
        logger.debug(f"DRY RUN: rotate to r={command.r:.0f}")
        self._apply(command)
        return await token.sleep(self.settle_s, self.poll_interval_s)
