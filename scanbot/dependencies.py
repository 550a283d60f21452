"""
FastAPI Dependencies for the scan console
Centralized dependency injection for the console components with proper error handling
"""
import logging
from typing import Annotated, Any

from fastapi import HTTPException, Depends

from .direct_control import DirectControl
from .sequencer import ScanSequencer
from .telemetry import TelemetryPoller

logger = logging.getLogger(__name__)


def _not_ready(component: str) -> HTTPException:
    logger.error(f"{component} not initialized")
    return HTTPException(
        status_code=503,
        detail=f"{component} not initialized. Service is starting up or encountered an error."
    )


def get_controller_dependency() -> Any:
    """FastAPI dependency for the global motion controller instance."""
    from .main import controller

    if controller is None:
        raise _not_ready("Controller")
    return controller


def get_sequencer_dependency() -> ScanSequencer:
    from .main import sequencer

    if sequencer is None:
        raise _not_ready("Scan sequencer")
    return sequencer


def get_direct_control_dependency() -> DirectControl:
    from .main import direct_control

    if direct_control is None:
        raise _not_ready("Direct control")
    return direct_control


def get_poller_dependency() -> TelemetryPoller:
    from .main import poller

    if poller is None:
        raise _not_ready("Telemetry poller")
    return poller


# Type aliases for clean endpoint signatures
ControllerDep = Annotated[Any, Depends(get_controller_dependency)]
SequencerDep = Annotated[ScanSequencer, Depends(get_sequencer_dependency)]
DirectControlDep = Annotated[DirectControl, Depends(get_direct_control_dependency)]
PollerDep = Annotated[TelemetryPoller, Depends(get_poller_dependency)]
