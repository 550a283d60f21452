"""
Scanbot Console Daemon
FastAPI application providing REST and WebSocket interfaces for scan orchestration
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, TYPE_CHECKING
from datetime import datetime

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .routers import connection, direct, motion, position, scan, websocket
from .config import settings
from .coordinates import CoordinateMapper
from .direct_control import DirectControl
from .factory import create_controller
from .sequencer import ScanSequencer
from .telemetry import TelemetryCell, TelemetryPoller

if TYPE_CHECKING:
    from .controller_client import MotionControllerClient
    from .mock_controller import MockMotionController

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global component instances
controller: Optional["MotionControllerClient | MockMotionController"] = None
telemetry_cell: Optional[TelemetryCell] = None
poller: Optional[TelemetryPoller] = None
direct_control: Optional[DirectControl] = None
sequencer: Optional[ScanSequencer] = None
# Shutdown flag to stop background tasks gracefully
is_shutting_down = False


# WebSocket fan-out for telemetry and task progress
class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket client connected ({len(self.active_connections)} open)")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info(f"WebSocket client disconnected ({len(self.active_connections)} open)")

    async def broadcast(self, message: dict):
        """Send message to every client; clients that fail are dropped."""
        for websocket_client in list(self.active_connections):
            try:
                await websocket_client.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping WebSocket client after send failure: {e}")
                self.disconnect(websocket_client)

    async def close_all(self, reason: str):
        await self.broadcast({
            "type": "server_shutdown",
            "message": reason,
            "timestamp": datetime.now().isoformat()
        })
        for websocket_client in list(self.active_connections):
            try:
                await websocket_client.close(code=1012, reason=reason)
            except Exception as e:
                logger.warning(f"Error closing WebSocket connection: {e}")
        self.active_connections.clear()


manager = ConnectionManager()


# Background task for streaming telemetry and scan state
async def telemetry_streaming_task():
    """Continuously stream telemetry, API status and scan progress via WebSocket"""
    while not is_shutting_down:
        try:
            if sequencer and poller and manager.active_connections:
                snapshot = telemetry_cell.snapshot if telemetry_cell else None
                await manager.broadcast({
                    "type": "telemetry_update",
                    "timestamp": datetime.now().isoformat(),
                    "telemetry": snapshot.model_dump(mode="json") if snapshot else None,
                    "api_status": poller.api_status.to_response(telemetry_cell.owner).model_dump(),
                    "scan": sequencer.state().model_dump(mode="json"),
                    "progress": sequencer.progress.to_response().model_dump(),
                    "direct_control": direct_control.to_status().model_dump() if direct_control else None,
                })

            await asyncio.sleep(1.0 / settings.ws_update_rate_hz)
        except Exception as e:
            if not is_shutting_down:
                logger.error(f"Error in telemetry streaming task: {e}")
            await asyncio.sleep(1)

    logger.info("Telemetry streaming task stopped")


# Application lifecycle
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup on startup/shutdown"""
    global controller, telemetry_cell, poller, direct_control, sequencer, is_shutting_down

    logger.info("Starting Scanbot Console Daemon...")
    logger.info(f"Controller URL: {settings.controller_url}")
    logger.info(f"MOCK MODE: {'ENABLED' if settings.mock_mode else 'DISABLED'}")
    is_shutting_down = False

    controller = create_controller()
    mapper = CoordinateMapper.from_settings(settings)
    telemetry_cell = TelemetryCell()
    direct_control = DirectControl(controller, mapper)
    poller = TelemetryPoller(
        controller,
        telemetry_cell,
        mapper,
        on_status=direct_control.update_availability,
    )
    sequencer = ScanSequencer(
        controller,
        telemetry_cell,
        direct_control,
        mapper=mapper,
        broadcast_callback=manager.broadcast,
    )

    # Start background tasks
    poller.start()
    streaming = asyncio.create_task(telemetry_streaming_task())
    logger.info("Background tasks started (telemetry polling, WebSocket streaming)")

    yield

    # Cleanup
    logger.info("Shutting down Scanbot Console Daemon...")
    is_shutting_down = True

    # A running scan unwinds through its lease so cooperating modes are restored
    if sequencer.stop():
        await sequencer.wait_until_idle()
    direct_control.disable()
    await poller.stop()
    streaming.cancel()

    if manager.active_connections:
        await manager.close_all("Scanbot console shutting down")
        logger.info("All WebSocket connections closed")

    await controller.close()


# Create FastAPI app
app = FastAPI(
    title="Scanbot Console API",
    description="REST and WebSocket API for orbital scan orchestration on a four-axis rig",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========== Root Endpoints ==========

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Scanbot Console Daemon",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check with controller reachability and scan phase"""
    return {
        "status": "healthy",
        "controller_online": poller.api_status.online if poller else False,
        "scan_phase": sequencer.phase.value if sequencer else None,
        "timestamp": datetime.now().isoformat()
    }


# ========== Include Routers ==========

app.include_router(connection.router)
app.include_router(position.router)
app.include_router(scan.router)
app.include_router(direct.router)
app.include_router(motion.router)
app.include_router(websocket.router)


# ========== Main Entry Point ==========

def run():
    """Entry point for the console script"""
    logger.info(f"Starting daemon on {settings.host}:{settings.port}")
    logger.info(f"WebSocket update rate: {settings.ws_update_rate_hz} Hz")
    uvicorn.run(
        "scanbot.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.reload
    )


if __name__ == "__main__":
    run()
