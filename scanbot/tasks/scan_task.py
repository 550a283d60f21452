"""Scan task executor: walks the planned passes one waypoint step at a time."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from scanbot.coordinates import CoordinateMapper
from scanbot.mode_arbiter import ModeLease
from scanbot.models import ScanSettings, Waypoint
from scanbot.motion_backend import AxisCommand, MotionBackend
from scanbot.planner import ScanPass
from scanbot.progress import ProgressEstimator
from scanbot.task_manager import RunToken, Task, TaskManager
from scanbot.tasks.base_task import BaseTaskExecutor, OperationCancelledException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanTimeouts:
    move_s: float = 20.0
    rotate_s: float = 25.0


@dataclass(frozen=True)
class ScanPlan:
    """Everything a run needs, fixed at start time."""

    settings: ScanSettings
    waypoints: List[Waypoint]
    passes: List[ScanPass]
    total_steps: int


class ScanTaskExecutor(BaseTaskExecutor):
    """Task executor for scan runs.

    The R accumulator lives here for the duration of a run. It moves by
    exactly one revolution per visited waypoint, with the sign of the
    current pass, and is never wrapped.
    """

    def __init__(
        self,
        task_manager: TaskManager,
        mapper: CoordinateMapper,
        progress: ProgressEstimator,
        initial_r: float,
        lease: Optional[ModeLease] = None,
        timeouts: ScanTimeouts = ScanTimeouts(),
        broadcast_callback: Optional[Callable[[dict], asyncio.Future]] = None,
        poll_interval_s: float = 0.05,
    ):
        super().__init__(task_manager, broadcast_callback, poll_interval_s)
        self.mapper = mapper
        self.progress = progress
        self.lease = lease
        self.timeouts = timeouts
        self.initial_r = initial_r
        self.current_r = initial_r
        self.move_timeouts = 0
        self.rotate_timeouts = 0

    async def execute_operation(
        self, task: Task, request: ScanPlan, controller: MotionBackend
    ) -> dict[str, Any]:
        """Run every pass of the plan.

        Args:
            task: Task instance
            request: ScanPlan built at start
            controller: Motion backend (live or dry run)

        Raises:
            OperationCancelledException: If the scan is stopped
        """
        plan = request
        logger.info(
            f"Starting scan task {task.task_id}: {len(plan.waypoints)} waypoints, "
            f"{len(plan.passes)} passes, {plan.total_steps} steps"
            f"{' (dry run)' if plan.settings.dry_run else ''}"
        )

        for pass_index, scan_pass in enumerate(plan.passes):
            logger.debug(
                f"Pass {pass_index + 1}/{len(plan.passes)} "
                f"(cycle {scan_pass.cycle + 1}, {scan_pass.label}, {len(scan_pass)} waypoints)"
            )
            for waypoint_index, waypoint in enumerate(scan_pass.waypoints):
                await self.checkpoint(task, "before waypoint step")

                self.current_r = await self.execute_waypoint(
                    waypoint, scan_pass.sign, task.token, controller
                )

                await self.broadcast_progress(
                    task.task_id,
                    self._progress_payload(scan_pass, pass_index, waypoint_index),
                )

        return {
            "completed_steps": self.progress.completed_steps,
            "total_steps": self.progress.total_steps,
            "initial_r": self.initial_r,
            "final_r": self.current_r,
            "move_timeouts": self.move_timeouts,
            "rotate_timeouts": self.rotate_timeouts,
            "dry_run": plan.settings.dry_run,
        }

    async def execute_waypoint(
        self, waypoint: Waypoint, sign: int, token: RunToken, backend: MotionBackend
    ) -> float:
        """Visit one waypoint: move there aimed at the origin, then spin one revolution.

        Returns the new accumulator value.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()

        deflection = self.mapper.lock_origin_deflection(waypoint.x, waypoint.z)
        x_pos, y_pos = self.mapper.scene_to_pos(waypoint.x, waypoint.z)
        p_pos = self.mapper.deflection_to_p_pos(deflection)

        move = AxisCommand(x=x_pos, y=y_pos, p=p_pos, r=self.current_r)
        if not await backend.move(waypoint, move, self.timeouts.move_s, token):
            if token.cancelled:
                raise OperationCancelledException("Scan stopped during move")
            self.move_timeouts += 1

        next_r = self.current_r + sign * self.mapper.revolution
        if self.lease is not None:
            self.lease.extend_rotation_limit(next_r)

        rotation = AxisCommand(x=x_pos, y=y_pos, p=p_pos, r=next_r)
        if not await backend.rotate(rotation, self.timeouts.rotate_s, token):
            if token.cancelled:
                raise OperationCancelledException("Scan stopped during rotation")
            self.rotate_timeouts += 1

        # A pause that landed at the tail of the step holds the step open
        if not await token.wait_while_paused(self.poll_interval_s):
            raise OperationCancelledException("Scan stopped while paused")

        self.progress.record_step(loop.time() - started)
        logger.debug(
            f"Waypoint ({waypoint.x:.1f}, {waypoint.z:.1f}) done, "
            f"r {self.current_r:.0f} -> {next_r:.0f}"
        )
        return next_r

    def _progress_payload(self, scan_pass: ScanPass, pass_index: int, waypoint_index: int) -> dict:
        return {
            "completed_steps": self.progress.completed_steps,
            "total_steps": self.progress.total_steps,
            "percentage": round(self.progress.percentage, 2),
            "eta_seconds": self.progress.eta_s,
            "eta_display": self.progress.eta_display(),
            "cycle": scan_pass.cycle + 1,
            "pass_index": pass_index,
            "direction": scan_pass.label,
            "waypoint_index": waypoint_index,
            "current_r": self.current_r,
            "current_r_degrees": round(self.mapper.r_display_degrees(self.current_r), 2),
        }
