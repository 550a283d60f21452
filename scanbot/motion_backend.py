"""
Motion backends used by the scan run loop.

A backend performs the two physical primitives of a waypoint step:
a translational move and a rotation. The live backend sends commands to
the controller and waits for confirmation; the dry-run simulator (see
dry_run.py) fabricates telemetry instead. The run loop is identical for
both, so pause, stop and progress behave the same with or without hardware.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from .controller_client import ControllerTransportError
from .models import Waypoint
from .task_manager import RunToken
from .watcher import MotionCompletionWatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AxisCommand:
    """Absolute target for all four axes in controller units."""

    x: float
    y: float
    p: float
    r: float


class MotionBackend(ABC):
    """Executes moves and rotations for the scan run loop."""

    #: Telemetry writer that must own the cell while this backend runs, if any
    telemetry_writer: Optional[str] = None

    @abstractmethod
    async def move(
        self, target: Waypoint, command: AxisCommand, timeout_s: float, token: RunToken
    ) -> bool:
        """Move X/Z/P while holding R. Returns True when completion was confirmed."""

    @abstractmethod
    async def rotate(self, command: AxisCommand, timeout_s: float, token: RunToken) -> bool:
        """Rotate to command.r while holding X/Z/P. Returns True when confirmed."""


class LiveMotionBackend(MotionBackend):
    """Sends commands to the motion controller and waits via the completion watcher."""

    def __init__(self, controller: Any, watcher: MotionCompletionWatcher):
        self.controller = controller
        self.watcher = watcher
        self.transport_failures = 0

    async def _send(self, command: AxisCommand) -> bool:
        try:
            await self.controller.move_absolute(command.x, command.y, command.p, command.r)
            return True
        except ControllerTransportError as e:
            # The controller may still execute a previously accepted command
            self.transport_failures += 1
            logger.warning(f"moveabs failed, continuing with completion wait: {e}")
            return False

    async def move(
        self, target: Waypoint, command: AxisCommand, timeout_s: float, token: RunToken
    ) -> bool:
        if token.cancelled:
            return False
        await self._send(command)
        return await self.watcher.wait_for_move(target, timeout_s, token)

    async def rotate(self, command: AxisCommand, timeout_s: float, token: RunToken) -> bool:
        if token.cancelled:
            return False
        await self._send(command)
        return await self.watcher.wait_for_rotation(command.r, timeout_s, token)
