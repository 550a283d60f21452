"""Registry of long-running console operations.

Scan runs and one-shot axis moves are tracked as tasks. At most one task
is active at a time because they share the controller's single move
channel; the direct-control pusher is kept out of the way by the mode
arbiter rather than by this registry. Finished tasks stay queryable in a
bounded history.
"""

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (
    TaskStatus.PENDING,
    TaskStatus.RUNNING,
    TaskStatus.PAUSED,
    TaskStatus.STOPPING,
)
TERMINAL_STATUSES = (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)
CANCELLABLE_STATUSES = (TaskStatus.PENDING, TaskStatus.RUNNING, TaskStatus.PAUSED)


class OperationType(str, Enum):
    SCAN = "scan"
    AXIS_MOVEMENT = "axis_movement"


class RunToken:
    """Cancellation and pause token handed to every suspension point of a run."""

    def __init__(self):
        self._cancelled = asyncio.Event()
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    def cancel(self) -> None:
        self._cancelled.set()
        # Wake anything blocked on a pause so it can unwind
        self._resumed.set()

    def pause(self) -> None:
        if not self.cancelled:
            self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    async def wait_while_paused(self, poll_interval: float) -> bool:
        """Block cooperatively while paused.

        Returns False if the run was cancelled, True otherwise.
        """
        while self.paused and not self.cancelled:
            try:
                await asyncio.wait_for(self._resumed.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass
        return not self.cancelled

    async def sleep(self, seconds: float, poll_interval: float) -> bool:
        """Sleep for seconds of unpaused time, waking early on cancellation.

        Returns False if cancelled.
        """
        if seconds <= 0:
            await asyncio.sleep(0)
            return not self.cancelled
        loop = asyncio.get_running_loop()
        remaining = seconds
        while remaining > 0:
            if not await self.wait_while_paused(poll_interval):
                return False
            chunk = min(poll_interval, remaining)
            started = loop.time()
            await asyncio.sleep(chunk)
            remaining -= loop.time() - started
        return not self.cancelled


@dataclass
class Task:
    """One tracked operation.

    Attributes:
        task_id: UUID assigned at creation
        operation_type: Scan run or axis movement
        status: Lifecycle status
        progress: Latest progress payload (merged, operation specific)
        result: Summary once COMPLETED
        error: Failure message once FAILED
        token: Pause and cancellation token shared with the executor
        request_data: Settings or move request that started the task
    """

    task_id: str
    operation_type: OperationType
    status: TaskStatus = TaskStatus.PENDING
    progress: dict[str, Any] = field(default_factory=dict)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    token: RunToken = field(default_factory=RunToken)
    request_data: Optional[dict[str, Any]] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict[str, Any]:
        def stamp(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "task_id": self.task_id,
            "operation_type": self.operation_type.value,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "created_at": stamp(self.created_at),
            "started_at": stamp(self.started_at),
            "completed_at": stamp(self.completed_at),
        }


class TaskManager:
    """Single-active-task registry with a bounded, insertion-ordered history."""

    def __init__(self, max_history_size: int = 100):
        self._current: Optional[Task] = None
        self._history: "OrderedDict[str, Task]" = OrderedDict()
        self._max_history_size = max_history_size

    def create_task(
        self,
        operation_type: OperationType,
        request_data: Optional[dict[str, Any]] = None,
    ) -> Task:
        """Register a new PENDING task and make it current.

        Raises:
            RuntimeError: If another task is still active
        """
        if self.has_active_task():
            current = self._current
            raise RuntimeError(
                f"{current.operation_type.value} task {current.task_id} is still "
                f"{current.status.value}; wait for it to finish or stop it first"
            )

        task = Task(task_id=str(uuid.uuid4()), operation_type=operation_type, request_data=request_data)
        self._current = task
        self._history[task.task_id] = task
        while len(self._history) > self._max_history_size:
            self._history.popitem(last=False)
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        if self._current is not None and self._current.task_id == task_id:
            return self._current
        return self._history.get(task_id)

    def get_current_task(self) -> Optional[Task]:
        return self._current

    def has_active_task(self) -> bool:
        return self._current is not None and self._current.is_active

    def _require(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise ValueError(f"Unknown task {task_id}")
        return task

    def update_status(self, task_id: str, status: TaskStatus) -> None:
        """Set status, stamping started/completed times.

        Raises:
            ValueError: If the task is unknown
        """
        task = self._require(task_id)
        task.status = status
        if status == TaskStatus.RUNNING and task.started_at is None:
            task.started_at = _now()
        elif status in TERMINAL_STATUSES:
            task.completed_at = _now()

    def update_progress(self, task_id: str, progress: dict[str, Any]) -> None:
        self._require(task_id).progress.update(progress)

    def complete_task(self, task_id: str, result: dict[str, Any]) -> None:
        self._require(task_id).result = result
        self.update_status(task_id, TaskStatus.COMPLETED)

    def fail_task(self, task_id: str, error: str) -> None:
        self._require(task_id).error = error
        self.update_status(task_id, TaskStatus.FAILED)

    # ========== Run control ==========

    def pause_task(self, task_id: str) -> None:
        """Raises ValueError unless the task is RUNNING."""
        task = self._require(task_id)
        if task.status != TaskStatus.RUNNING:
            raise ValueError(f"Cannot pause task {task_id} while {task.status.value}")
        task.token.pause()
        task.status = TaskStatus.PAUSED

    def resume_task(self, task_id: str) -> None:
        """Raises ValueError unless the task is PAUSED."""
        task = self._require(task_id)
        if task.status != TaskStatus.PAUSED:
            raise ValueError(f"Cannot resume task {task_id} while {task.status.value}")
        task.token.resume()
        task.status = TaskStatus.RUNNING

    def cancel_task(self, task_id: str) -> None:
        """Request cancellation; the executor moves the task to CANCELLED once it unwinds.

        Raises:
            ValueError: If the task is unknown or already stopping/finished
        """
        task = self._require(task_id)
        if task.status not in CANCELLABLE_STATUSES:
            raise ValueError(f"Cannot cancel task {task_id} while {task.status.value}")
        task.token.cancel()
        task.status = TaskStatus.STOPPING

    def clear_current_task(self) -> None:
        if self._current is not None and self._current.status in TERMINAL_STATUSES:
            self._current = None

    def get_task_history(
        self, limit: int = 10, operation_type: Optional[OperationType] = None
    ) -> List[Task]:
        """Most recent tasks first, optionally filtered by operation type."""
        tasks = [
            task for task in reversed(self._history.values())
            if operation_type is None or task.operation_type == operation_type
        ]
        return tasks[:limit]
