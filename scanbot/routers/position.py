"""
Position query endpoints
"""
from fastapi import APIRouter, HTTPException

from ..models import TelemetrySnapshot
from ..dependencies import SequencerDep

router = APIRouter(prefix="/position", tags=["Position"])


@router.get("", response_model=TelemetrySnapshot)
async def get_position(sequencer: SequencerDep):
    """Latest telemetry snapshot (live poller or dry-run simulator)"""
    snapshot = sequencer.cell.snapshot

    if snapshot is None:
        raise HTTPException(status_code=404, detail="No telemetry received yet")

    return snapshot
