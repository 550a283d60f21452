"""
Scan sequencer: the operator-facing state machine for scan runs.

Idle -> Running <-> Paused -> Idle, with Stopping reachable from Running
or Paused. start() snapshots the settings, plans the waypoints, takes a
mode lease and hands the run to a ScanTaskExecutor on the event loop;
pause(), resume() and stop() only flip the run token, which every wait
point inside a step checks. Cleanup (lease release, telemetry writer
hand-back) always runs when the run coroutine finishes, however it ends.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional

from .config import ConsoleSettings, settings as default_settings
from .coordinates import CoordinateMapper
from .direct_control import DirectControl
from .dry_run import DryRunSimulator
from .mode_arbiter import ModeArbiter, ModeLease
from .models import (
    AxisBounds,
    PreviewResponse,
    ScanPhase,
    ScanSettings,
    ScanStateResponse,
    Waypoint,
)
from .motion_backend import LiveMotionBackend, MotionBackend
from .planner import build_passes, count_total_steps, plan_waypoints
from .progress import ProgressEstimator
from .task_manager import OperationType, Task, TaskManager, TaskStatus
from .tasks.scan_task import ScanPlan, ScanTaskExecutor, ScanTimeouts
from .telemetry import TelemetryCell
from .watcher import MotionCompletionWatcher

logger = logging.getLogger(__name__)


class ScanValidationError(ValueError):
    """Raised when scan settings cannot produce a runnable plan."""

    pass


class ScanSequencer:
    """Owns scan runs: planning, lifecycle control and the exposed scan state."""

    def __init__(
        self,
        controller: Any,
        cell: TelemetryCell,
        direct_control: DirectControl,
        mapper: Optional[CoordinateMapper] = None,
        bounds: Optional[AxisBounds] = None,
        task_manager: Optional[TaskManager] = None,
        config: Optional[ConsoleSettings] = None,
        live_backend: Optional[MotionBackend] = None,
        dry_run_backend: Optional[MotionBackend] = None,
        broadcast_callback: Optional[Callable[[dict], asyncio.Future]] = None,
    ):
        config = config or default_settings
        self.config = config
        self.cell = cell
        self.direct_control = direct_control
        self.mapper = mapper or CoordinateMapper.from_settings(config)
        self.bounds = bounds or self.mapper.bounds_from_positions(
            config.x_pos_min, config.x_pos_max, config.z_pos_min, config.z_pos_max
        )
        self.task_manager = task_manager or TaskManager()
        self.arbiter = ModeArbiter(direct_control)
        self.progress = ProgressEstimator(window=config.progress_window)
        self.timeouts = ScanTimeouts(move_s=config.move_timeout_s, rotate_s=config.rotate_timeout_s)
        self.poll_interval_s = config.scan_poll_interval_s
        self.broadcast_callback = broadcast_callback

        self.live_backend = live_backend or LiveMotionBackend(
            controller,
            MotionCompletionWatcher(
                controller,
                cell,
                translation_tolerance=config.translation_tolerance,
                rotation_tolerance=config.rotation_tolerance,
                poll_interval_s=config.scan_poll_interval_s,
            ),
        )
        self.dry_run_backend = dry_run_backend or DryRunSimulator(
            cell,
            self.mapper,
            settle_s=config.dry_run_settle_s,
            poll_interval_s=config.scan_poll_interval_s,
        )

        self._task: Optional[Task] = None
        self._settings: Optional[ScanSettings] = None
        self._lease: Optional[ModeLease] = None
        self._executor: Optional[ScanTaskExecutor] = None
        self._runner: Optional[asyncio.Task] = None
        self._last_r: Optional[float] = None
        self._preview = PreviewResponse()

    # ========== Planning ==========

    def build_plan(self, scan_settings: ScanSettings) -> ScanPlan:
        """Plan waypoints and passes for settings.

        Raises:
            ScanValidationError: If no waypoint survives planning
        """
        waypoints = plan_waypoints(scan_settings, self.bounds, self.mapper)
        if not waypoints:
            raise ScanValidationError(
                f"No waypoints for radius {scan_settings.radius} within bounds {self.bounds}"
            )
        passes = build_passes(waypoints, scan_settings.repeats, scan_settings.start_at_center)
        return ScanPlan(
            settings=scan_settings,
            waypoints=waypoints,
            passes=passes,
            total_steps=count_total_steps(passes),
        )

    def preview(self, scan_settings: ScanSettings) -> PreviewResponse:
        """Recompute the path preview; independent of any active run."""
        plan = self.build_plan(scan_settings)
        self._preview = PreviewResponse(
            settings=scan_settings,
            waypoints=plan.waypoints,
            total_steps=plan.total_steps,
        )
        return self._preview

    @property
    def last_preview(self) -> PreviewResponse:
        return self._preview

    # ========== Lifecycle ==========

    @property
    def active(self) -> bool:
        return self._task is not None

    def _initial_r(self) -> float:
        snapshot = self.cell.snapshot
        if snapshot is not None and snapshot.raw_position.r is not None:
            return snapshot.raw_position.r
        return self.direct_control.target.r

    def start(self, scan_settings: ScanSettings) -> Optional[Task]:
        """Start a scan run. A no-op returning None while any task is active.

        Must be called from within the running event loop.

        Raises:
            ScanValidationError: If the settings produce no plan
        """
        if self.active or self.task_manager.has_active_task():
            logger.warning("Scan start ignored: another run is active")
            return None

        plan = self.build_plan(scan_settings)
        self._preview = PreviewResponse(
            settings=scan_settings, waypoints=plan.waypoints, total_steps=plan.total_steps
        )

        task = self.task_manager.create_task(
            OperationType.SCAN, request_data=scan_settings.model_dump(mode="json")
        )
        self.progress.reset(plan.total_steps)

        backend = self.dry_run_backend if scan_settings.dry_run else self.live_backend
        if backend.telemetry_writer:
            self.cell.claim(backend.telemetry_writer)

        initial_r = self._initial_r()
        self._lease = self.arbiter.acquire()
        self._executor = ScanTaskExecutor(
            self.task_manager,
            self.mapper,
            self.progress,
            initial_r=initial_r,
            lease=self._lease,
            timeouts=self.timeouts,
            broadcast_callback=self.broadcast_callback,
            poll_interval_s=self.poll_interval_s,
        )
        self._task = task
        self._settings = scan_settings
        self._last_r = initial_r
        self.task_manager.update_status(task.task_id, TaskStatus.RUNNING)

        self._runner = asyncio.create_task(self._run(task, plan, backend))
        logger.info(
            f"Scan {task.task_id} started: radius={scan_settings.radius}, "
            f"waypoints={len(plan.waypoints)}, repeats={scan_settings.repeats}, "
            f"steps={plan.total_steps}, dry_run={scan_settings.dry_run}"
        )
        return task

    async def _run(self, task: Task, plan: ScanPlan, backend: MotionBackend) -> None:
        executor = self._executor
        try:
            await executor.execute(task.task_id, plan, backend)
        finally:
            self._last_r = executor.current_r
            if self._lease is not None:
                self._lease.release()
            if backend.telemetry_writer:
                self.cell.release(backend.telemetry_writer)
            self._lease = None
            self._task = None
            self._settings = None
            logger.info(f"Scan {task.task_id} finished with status {task.status.value}")

    def pause(self) -> bool:
        if self._task is None or self._task.status != TaskStatus.RUNNING:
            return False
        self.task_manager.pause_task(self._task.task_id)
        logger.info(f"Scan {self._task.task_id} paused")
        return True

    def resume(self) -> bool:
        if self._task is None or self._task.status != TaskStatus.PAUSED:
            return False
        self.task_manager.resume_task(self._task.task_id)
        logger.info(f"Scan {self._task.task_id} resumed")
        return True

    def stop(self, emergency: bool = False) -> bool:
        """Request a stop; returns False when there is no run to stop.

        An emergency stop also keeps direct control off once the run unwinds.
        """
        if emergency and self._lease is not None:
            self._lease.forfeit_direct_control()
        if self._task is None or self._task.status not in (
            TaskStatus.PENDING, TaskStatus.RUNNING, TaskStatus.PAUSED
        ):
            return False
        self.task_manager.cancel_task(self._task.task_id)
        logger.info(f"Scan {self._task.task_id} stop requested")
        return True

    async def wait_until_idle(self) -> None:
        if self._runner is not None:
            await asyncio.shield(self._runner)

    # ========== Exposed state ==========

    @property
    def phase(self) -> ScanPhase:
        if self._task is None:
            return ScanPhase.IDLE
        status = self._task.status
        if status == TaskStatus.PAUSED:
            return ScanPhase.PAUSED
        if status == TaskStatus.STOPPING:
            return ScanPhase.STOPPING
        return ScanPhase.RUNNING

    @property
    def current_r(self) -> Optional[float]:
        if self._executor is not None and self._task is not None:
            return self._executor.current_r
        return self._last_r

    @property
    def waypoints(self) -> List[Waypoint]:
        return list(self._preview.waypoints)

    def state(self) -> ScanStateResponse:
        phase = self.phase
        current_r = self.current_r
        snapshot = self._lease.snapshot if self._lease is not None else None
        return ScanStateResponse(
            phase=phase,
            active=phase != ScanPhase.IDLE,
            paused=phase == ScanPhase.PAUSED,
            dry_run=bool(self._settings and self._settings.dry_run),
            task_id=self._task.task_id if self._task else None,
            current_r=current_r,
            current_r_degrees=(
                round(self.mapper.r_display_degrees(current_r), 2) if current_r is not None else None
            ),
            previous_lock_origin=snapshot.lock_origin if snapshot else None,
            previous_direct_control_enabled=snapshot.direct_control_enabled if snapshot else None,
            previous_rotation_soft_limit=snapshot.rotation_soft_limit if snapshot else None,
        )
