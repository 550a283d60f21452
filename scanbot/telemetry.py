"""
Telemetry snapshot ownership and live position polling.

The latest device state lives in a single TelemetryCell. Exactly one
writer owns the cell at any time: the live TelemetryPoller during normal
operation, or the dry-run simulator while a simulated scan is running.
Readers never wait for a fresh sample; they use whatever was last written.
"""
import asyncio
import logging
import math
import re
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .config import settings
from .controller_client import ControllerTransportError
from .coordinates import CoordinateMapper
from .models import ApiStatusResponse, RawPosition, ScenePosition, TelemetrySnapshot

logger = logging.getLogger(__name__)

LIVE_WRITER = "live"
DRY_RUN_WRITER = "dry_run"

_POS_LINE_PATTERN = re.compile(r"([a-zA-Z][a-zA-Z0-9]*)\s*[:=]\s*(-?\d+(?:\.\d+)?)")
_PAYLOAD_KEYS = ("x", "y", "z", "x1", "x2", "p", "r", "homed")


def read_numeric(value: Any) -> Optional[float]:
    """Finite float from a number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_pos_line(line: str) -> Dict[str, float]:
    """Parse "X:12 Y=40.5 ..." style status lines into lower-cased keys."""
    axes: Dict[str, float] = {}
    for key, raw in _POS_LINE_PATTERN.findall(line or ""):
        value = read_numeric(raw)
        if value is not None:
            axes[key.lower()] = value
    return axes


def extract_pos_from_payload(
    payload: Any, mapper: CoordinateMapper
) -> Optional[TelemetrySnapshot]:
    """Build a TelemetrySnapshot from a /pos response.

    Structured keys win over values parsed from the free-text "line".
    Returns None when x (or x1) or y is missing.
    """
    if not isinstance(payload, dict):
        return None

    axes: Dict[str, float] = {}
    for key in _PAYLOAD_KEYS:
        if key in payload:
            value = read_numeric(payload[key])
            if value is not None:
                axes[key] = value

    line = payload.get("line")
    if isinstance(line, str) and line:
        for key, value in parse_pos_line(line).items():
            axes.setdefault(key, value)

    raw_x = axes.get("x", axes.get("x1"))
    raw_y = axes.get("y")
    if raw_x is None or raw_y is None:
        return None

    # Controller y is the vertical stage; its own z is passed through untouched
    scene_x, scene_z = mapper.pos_to_scene(raw_x, raw_y)
    status = payload.get("status")
    return TelemetrySnapshot(
        scene_position=ScenePosition(x=scene_x, z=scene_z),
        raw_position=RawPosition(x=raw_x, y=raw_y, z=axes.get("z"), p=axes.get("p"), r=axes.get("r")),
        homed=axes.get("homed"),
        status=str(status) if status is not None else None,
        timestamp=datetime.now().isoformat(),
    )


class TelemetryCell:
    """Single-owner holder of the most recent TelemetrySnapshot."""

    def __init__(self, owner: str = LIVE_WRITER):
        self._owner = owner
        self._snapshot: Optional[TelemetrySnapshot] = None

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def snapshot(self) -> Optional[TelemetrySnapshot]:
        return self._snapshot

    def claim(self, writer: str) -> str:
        """Hand write access to writer; returns the previous owner."""
        previous = self._owner
        self._owner = writer
        if previous != writer:
            logger.info(f"Telemetry writer changed: {previous} -> {writer}")
        return previous

    def release(self, writer: str, restore_to: str = LIVE_WRITER) -> None:
        if self._owner == writer:
            self.claim(restore_to)

    def write(self, snapshot: TelemetrySnapshot, writer: str) -> bool:
        if writer != self._owner:
            return False
        self._snapshot = snapshot
        return True


class ApiStatus:
    """Online/offline indicator with time spent in the current state."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.online = False
        self._since: Optional[float] = None

    def mark(self, online: bool) -> None:
        if online != self.online or self._since is None:
            self._since = self._clock()
            logger.info(f"Motion controller API {'ONLINE' if online else 'OFFLINE'}")
        self.online = online

    def seconds_in_state(self) -> Optional[int]:
        if self._since is None:
            return None
        return max(0, int(self._clock() - self._since))

    def to_response(self, writer: Optional[str] = None) -> ApiStatusResponse:
        return ApiStatusResponse(
            online=self.online,
            seconds_in_state=self.seconds_in_state(),
            writer=writer,
        )


StatusListener = Callable[[Optional[str], Optional[float]], None]


class TelemetryPoller:
    """Background poller that keeps the TelemetryCell fed from the live controller."""

    def __init__(
        self,
        controller: Any,
        cell: TelemetryCell,
        mapper: CoordinateMapper,
        interval_s: Optional[float] = None,
        on_status: Optional[StatusListener] = None,
    ):
        self.controller = controller
        self.cell = cell
        self.mapper = mapper
        self.interval_s = interval_s if interval_s is not None else settings.telemetry_poll_interval_s
        self.on_status = on_status
        self.api_status = ApiStatus()
        self._in_flight = False
        self._stopping = False
        self._task: Optional[asyncio.Task] = None

    async def poll_once(self) -> Optional[TelemetrySnapshot]:
        if self._in_flight:
            return None
        self._in_flight = True
        try:
            try:
                data = await self.controller.poll_status(refresh=True)
            except ControllerTransportError as e:
                logger.debug(f"pos api poll failed: {e}")
                self.api_status.mark(False)
                self._notify("error", None)
                return None

            self.api_status.mark(True)
            snapshot = extract_pos_from_payload(data, self.mapper)
            self._notify(
                data.get("status") if isinstance(data, dict) else None,
                snapshot.homed if snapshot else None,
            )
            if snapshot is not None:
                self.cell.write(snapshot, LIVE_WRITER)
            return snapshot
        finally:
            self._in_flight = False

    def _notify(self, status: Optional[str], homed: Optional[float]) -> None:
        if self.on_status is None:
            return
        try:
            self.on_status(status, homed)
        except Exception as e:
            logger.error(f"Telemetry status listener failed: {e}", exc_info=True)

    async def run(self) -> None:
        logger.info("Telemetry polling task started")
        while not self._stopping:
            try:
                await self.poll_once()
            except Exception as e:
                if not self._stopping:
                    logger.error(f"Error in telemetry polling task: {e}")
            await asyncio.sleep(self.interval_s)
        logger.info("Telemetry polling task stopped")

    def start(self) -> asyncio.Task:
        self._stopping = False
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stopping = True
        if self._task is not None:
            await self._task
            self._task = None
