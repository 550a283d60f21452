"""
Motion control endpoints (one-shot absolute moves and stops)
"""
import asyncio
import logging

from fastapi import APIRouter, HTTPException, status

from ..models import MoveAbsoluteRequest, StopAxisRequest, TaskResponse
from ..dependencies import ControllerDep, DirectControlDep, SequencerDep
from ..controller_client import STOP_AXES, ControllerTransportError
from ..task_manager import CANCELLABLE_STATUSES, OperationType
from ..tasks.motion_task import MotionTaskExecutor
from ..watcher import MotionCompletionWatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/move", tags=["Motion Control"])


@router.post("/absolute", status_code=status.HTTP_202_ACCEPTED, response_model=TaskResponse)
async def move_absolute_async(
    request: MoveAbsoluteRequest,
    controller: ControllerDep,
    sequencer: SequencerDep,
    direct_control: DirectControlDep,
):
    """
    Move all axes to an absolute position (async with task tracking).

    Returns immediately with 202 Accepted and task_id.
    Rejected while direct control is pushing positions.
    """
    if direct_control.enabled:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Direct control is enabled; disable it before issuing moves"
        )

    request_data = request.model_dump()
    try:
        task = sequencer.task_manager.create_task(
            operation_type=OperationType.AXIS_MOVEMENT,
            request_data=request_data,
        )
    except RuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    executor = MotionTaskExecutor(
        task_manager=sequencer.task_manager,
        watcher=MotionCompletionWatcher(controller, sequencer.cell),
        mapper=sequencer.mapper,
        timeout_s=sequencer.timeouts.move_s,
        broadcast_callback=sequencer.broadcast_callback,
    )
    asyncio.create_task(executor.execute(task.task_id, request_data, controller))

    return TaskResponse(
        task_id=task.task_id,
        operation_type=task.operation_type.value,
        status=task.status.value,
        status_url=f"/scan/status/{task.task_id}",
        message="Movement task created and execution started"
    )


@router.post("/stop/{task_id}")
async def stop_movement_task(task_id: str, sequencer: SequencerDep):
    """Cancel a running movement task."""
    task = sequencer.task_manager.get_task(task_id)

    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task {task_id} not found"
        )

    try:
        sequencer.task_manager.cancel_task(task_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return {
        "success": True,
        "task_id": task_id,
        "status": task.status.value,
        "message": "Cancellation requested"
    }


# ========== Direct Stops (bypass the task system) ==========

@router.post("/stop")
async def stop_axis_direct(request: StopAxisRequest, controller: ControllerDep):
    """Immediately stop movement of the specified axis."""
    try:
        await controller.stop(request.axis)
    except ControllerTransportError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )

    return {
        "success": True,
        "axis": request.axis,
        "message": "Axis stopped"
    }


@router.post("/emergency_stop")
async def emergency_stop(controller: ControllerDep, sequencer: SequencerDep, direct_control: DirectControlDep):
    """
    Emergency stop all axes immediately.

    Cancels any running task, disables direct control and stops every axis.
    Direct control stays off after an interrupted scan unwinds.
    """
    sequencer.stop(emergency=True)
    current_task = sequencer.task_manager.get_current_task()
    if current_task and current_task.status in CANCELLABLE_STATUSES:
        sequencer.task_manager.cancel_task(current_task.task_id)
    direct_control.disable()

    results = await asyncio.gather(
        *(controller.stop(axis) for axis in STOP_AXES),
        return_exceptions=True,
    )
    failed = [axis for axis, result in zip(STOP_AXES, results) if isinstance(result, Exception)]
    if failed:
        logger.error(f"Emergency stop failed for axes: {', '.join(failed)}")

    return {
        "success": not failed,
        "failed_axes": failed,
        "message": "Emergency stop executed" if not failed else "Emergency stop incomplete"
    }
