"""Executor base class shared by scan runs and one-shot moves.

An executor owns the lifecycle of one registered Task: it marks the task
running, awaits the subclass operation, and records how it ended. Stops
surface as OperationCancelledException from a checkpoint or a wait and
end the task as CANCELLED; anything else ends it as FAILED. Either way
the registry is freed for the next task.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from scanbot.task_manager import Task, TaskManager, TaskStatus

logger = logging.getLogger(__name__)


class OperationCancelledException(Exception):
    """Raised inside an operation once its run token has been cancelled."""

    pass


class BaseTaskExecutor(ABC):

    def __init__(
        self,
        task_manager: TaskManager,
        broadcast_callback: Optional[Callable[[dict], asyncio.Future]] = None,
        poll_interval_s: float = 0.05,
    ):
        """
        Args:
            task_manager: Registry holding the task
            broadcast_callback: Coroutine function fed progress messages (WebSocket fan-out)
            poll_interval_s: Cadence of cooperative pause polling
        """
        self.task_manager = task_manager
        self.broadcast_callback = broadcast_callback
        self.poll_interval_s = poll_interval_s

    @abstractmethod
    async def execute_operation(
        self, task: Task, request: Any, controller: Any
    ) -> dict[str, Any]:
        """Run the operation and return its result summary.

        controller is whatever the operation drives: the controller client
        for plain moves, a MotionBackend for scans.

        Raises:
            OperationCancelledException: When the run token is cancelled
        """

    async def execute(
        self, task_id: str, request: Any, controller: Any
    ) -> Optional[dict[str, Any]]:
        """Drive the task to a terminal status; returns the result or None.

        Raises:
            ValueError: If task_id is unknown
        """
        task = self.task_manager.get_task(task_id)
        if task is None:
            raise ValueError(f"Unknown task {task_id}")
        kind = task.operation_type.value

        try:
            # A stop may already have landed before the coroutine got scheduled
            if task.status == TaskStatus.PENDING:
                self.task_manager.update_status(task_id, TaskStatus.RUNNING)
            await self.broadcast_progress(task_id, {"message": f"{kind} started"})

            result = await self.execute_operation(task, request, controller)
        except OperationCancelledException as e:
            self.task_manager.update_status(task_id, TaskStatus.CANCELLED)
            logger.info(f"{kind} task {task_id} cancelled: {e}")
            await self.broadcast_progress(task_id, {"message": f"{kind} cancelled"})
            return None
        except Exception as e:
            self.task_manager.fail_task(task_id, str(e))
            logger.error(f"{kind} task {task_id} failed: {e}", exc_info=True)
            await self.broadcast_progress(task_id, {"message": f"{kind} failed: {e}"})
            return None
        else:
            self.task_manager.complete_task(task_id, result)
            logger.info(f"{kind} task {task_id} completed")
            await self.broadcast_progress(task_id, {"message": f"{kind} completed"})
            return result
        finally:
            self.task_manager.clear_current_task()

    def should_cancel(self, task: Task) -> bool:
        return task.token.cancelled

    async def checkpoint(self, task: Task, where: str = "") -> None:
        """Wait out a pause, then raise OperationCancelledException if stopped."""
        if not await task.token.wait_while_paused(self.poll_interval_s):
            raise OperationCancelledException(f"stopped {where}".strip())

    async def broadcast_progress(self, task_id: str, progress_data: dict[str, Any]) -> None:
        """Merge progress into the task and push it to WebSocket listeners."""
        self.task_manager.update_progress(task_id, progress_data)
        if self.broadcast_callback is None:
            return

        task = self.task_manager.get_task(task_id)
        if task is None:
            return
        try:
            await self.broadcast_callback({
                "type": "task_progress",
                "task_id": task_id,
                "operation_type": task.operation_type.value,
                "status": task.status.value,
                "progress": dict(task.progress),
            })
        except Exception as e:
            logger.error(f"Progress broadcast failed: {e}")
