"""
Factory for creating motion controller instances.

Chooses between the networked controller client and the simulated
controller based on configuration.
"""
import logging
from typing import Union

from .config import settings

logger = logging.getLogger(__name__)


def create_controller() -> Union["MotionControllerClient", "MockMotionController"]:
    """
    Create controller instance based on MOCK_MODE setting.

    Returns:
        MotionControllerClient if MOCK_MODE=false (real rig over HTTP)
        MockMotionController if MOCK_MODE=true (simulated rig, started)

    Environment Variables:
        SCANBOT_MOCK_MODE: Set to 'true' to enable mock mode
    """
    if settings.mock_mode:
        logger.info("MOCK MODE ENABLED - Using simulated motion controller")
        from .mock_controller import MockMotionController
        controller = MockMotionController()
        controller.start()
        return controller
    else:
        logger.info(f"Using motion controller service at {settings.controller_url}")
        from .controller_client import MotionControllerClient
        return MotionControllerClient(base_url=settings.controller_url)
