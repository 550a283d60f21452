"""
Controller connection status endpoints
"""
from fastapi import APIRouter

from ..models import ApiStatusResponse
from ..dependencies import PollerDep

router = APIRouter(prefix="/connection", tags=["Connection"])


@router.get("/status", response_model=ApiStatusResponse)
async def get_connection_status(poller: PollerDep):
    """Online/offline state of the motion controller API and time in that state"""
    return poller.api_status.to_response(writer=poller.cell.owner)
