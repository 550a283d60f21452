"""Motion task executor for one-shot absolute moves."""

import logging
from typing import Any

from scanbot.coordinates import CoordinateMapper
from scanbot.models import Waypoint
from scanbot.task_manager import Task, TaskManager
from scanbot.tasks.base_task import BaseTaskExecutor, OperationCancelledException
from scanbot.watcher import MotionCompletionWatcher

logger = logging.getLogger(__name__)


class MotionTaskExecutor(BaseTaskExecutor):
    """Task executor for a single absolute move of all four axes."""

    def __init__(
        self,
        task_manager: TaskManager,
        watcher: MotionCompletionWatcher,
        mapper: CoordinateMapper,
        timeout_s: float = 20.0,
        **kwargs,
    ):
        super().__init__(task_manager, **kwargs)
        self.watcher = watcher
        self.mapper = mapper
        self.timeout_s = timeout_s

    async def execute_operation(
        self, task: Task, request: dict, controller: Any
    ) -> dict[str, Any]:
        """Execute absolute movement.

        Args:
            task: Task instance
            request: Dictionary with x, y, p, r in controller units
            controller: Motion controller client

        Returns:
            Result dictionary with movement information

        Raises:
            OperationCancelledException: If operation is cancelled
            ControllerTransportError: If the move could not be delivered
        """
        x, y = request["x"], request["y"]
        p, r = request.get("p", 0.0), request.get("r", 0.0)

        logger.info(f"Starting absolute movement task {task.task_id} to x={x} y={y} p={p} r={r}")

        await controller.move_absolute(x, y, p, r)
        await self.broadcast_progress(task.task_id, {"message": "Movement command accepted"})

        scene_x, scene_z = self.mapper.pos_to_scene(x, y)
        reached = await self.watcher.wait_for_move(
            Waypoint(x=scene_x, z=scene_z), self.timeout_s, task.token
        )
        if self.should_cancel(task):
            raise OperationCancelledException("Movement was cancelled")

        return {
            "success": reached,
            "target": {"x": x, "y": y, "p": p, "r": r},
            "timed_out": not reached,
        }
