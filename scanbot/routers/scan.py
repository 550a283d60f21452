"""
Scan control endpoints

Scan runs use the async task pattern:
- 202 Accepted responses with task_id
- Non-blocking background execution
- Pause/resume/stop through the run token
- Task status polling
"""
from fastapi import APIRouter, HTTPException, status

from ..models import (
    PreviewResponse,
    ProgressResponse,
    ScanSettings,
    ScanStateResponse,
    TaskResponse,
    TaskStatusResponse,
)
from ..dependencies import SequencerDep
from ..sequencer import ScanValidationError

router = APIRouter(prefix="/scan", tags=["Scan"])


@router.post("/start", status_code=status.HTTP_202_ACCEPTED, response_model=TaskResponse)
async def start_scan(request: ScanSettings, sequencer: SequencerDep):
    """
    Start a scan run (async with task tracking).

    Returns immediately with 202 Accepted and task_id.
    Use GET /scan/progress or /scan/status/{task_id} to follow it.
    """
    try:
        task = sequencer.start(request)
    except ScanValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    if task is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A scan or movement task is already active. Only one task can run at a time."
        )

    return TaskResponse(
        task_id=task.task_id,
        operation_type=task.operation_type.value,
        status=task.status.value,
        status_url=f"/scan/status/{task.task_id}",
        message="Scan task created and execution started"
    )


@router.post("/pause", response_model=ScanStateResponse)
async def pause_scan(sequencer: SequencerDep):
    """Pause the running scan at the next wait point"""
    if not sequencer.pause():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Scan cannot be paused while {sequencer.phase.value}"
        )
    return sequencer.state()


@router.post("/resume", response_model=ScanStateResponse)
async def resume_scan(sequencer: SequencerDep):
    """Resume a paused scan"""
    if not sequencer.resume():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Scan cannot be resumed while {sequencer.phase.value}"
        )
    return sequencer.state()


@router.post("/stop", response_model=ScanStateResponse)
async def stop_scan(sequencer: SequencerDep):
    """
    Request the scan to stop.

    The run unwinds within one polling interval; cooperating modes are restored.
    Stopping an idle sequencer is not an error.
    """
    sequencer.stop()
    return sequencer.state()


@router.get("/state", response_model=ScanStateResponse)
async def get_scan_state(sequencer: SequencerDep):
    return sequencer.state()


@router.get("/progress", response_model=ProgressResponse)
async def get_scan_progress(sequencer: SequencerDep):
    return sequencer.progress.to_response()


@router.post("/preview", response_model=PreviewResponse)
async def preview_scan(request: ScanSettings, sequencer: SequencerDep):
    """Plan the waypoint list for settings without starting a run"""
    try:
        return sequencer.preview(request)
    except ScanValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )


@router.get("/preview", response_model=PreviewResponse)
async def get_last_preview(sequencer: SequencerDep):
    return sequencer.last_preview


@router.get("/status/{task_id}", response_model=TaskStatusResponse)
async def get_scan_task_status(task_id: str, sequencer: SequencerDep):
    """Status, progress and result of a scan or movement task"""
    task = sequencer.task_manager.get_task(task_id)

    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task {task_id} not found"
        )

    return TaskStatusResponse(**task.to_dict())
