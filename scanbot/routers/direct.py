"""
Direct control endpoints (manual target, lock-origin, periodic pusher)
"""
from fastapi import APIRouter, HTTPException, status

from ..models import DirectControlStatus, LockOriginRequest, ManualTarget
from ..dependencies import DirectControlDep, SequencerDep

router = APIRouter(prefix="/direct", tags=["Direct Control"])


@router.get("", response_model=DirectControlStatus)
async def get_direct_control(direct_control: DirectControlDep):
    return direct_control.to_status()


@router.get("/target", response_model=ManualTarget)
async def get_target(direct_control: DirectControlDep):
    return direct_control.target


@router.put("/target", response_model=DirectControlStatus)
async def set_target(request: ManualTarget, direct_control: DirectControlDep):
    """Update the manual target; the pusher sends it on its next tick"""
    direct_control.set_target(request)
    return direct_control.to_status()


@router.post("/enable", response_model=DirectControlStatus)
async def enable_direct_control(direct_control: DirectControlDep, sequencer: SequencerDep):
    """Start pushing the manual target to the controller"""
    if sequencer.task_manager.has_active_task():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Direct control is unavailable while a scan or move is running"
        )
    if not direct_control.enable():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Controller is not ready or not homed"
        )
    return direct_control.to_status()


@router.post("/disable", response_model=DirectControlStatus)
async def disable_direct_control(direct_control: DirectControlDep):
    direct_control.disable()
    return direct_control.to_status()


@router.post("/lock-origin", response_model=DirectControlStatus)
async def set_lock_origin(request: LockOriginRequest, direct_control: DirectControlDep, sequencer: SequencerDep):
    """Toggle lock-origin mode (forced on while a scan is running)"""
    if sequencer.active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Lock-origin is held by the running scan"
        )
    direct_control.lock_origin = request.enabled
    return direct_control.to_status()
