"""
Shared fixtures and fake controllers for the scan console tests.

The fakes expose the same async verbs as MotionControllerClient so they
can be handed to the poller, watcher, direct control and sequencer.
"""
from datetime import datetime
from typing import List, Optional

import pytest

from scanbot.config import ConsoleSettings
from scanbot.controller_client import ControllerTransportError
from scanbot.coordinates import CoordinateMapper
from scanbot.direct_control import DirectControl, RotationSoftLimit
from scanbot.models import CoordinatedMotionState, RawPosition, ScenePosition, TelemetrySnapshot
from scanbot.telemetry import LIVE_WRITER, TelemetryCell


class NoNetworkController:
    """Fails the test on any controller access."""

    async def move_absolute(self, x, y, p, r):
        raise AssertionError("move_absolute must not be called")

    async def stop(self, axis):
        raise AssertionError("stop must not be called")

    async def poll_status(self, refresh=True):
        raise AssertionError("poll_status must not be called")

    async def poll_coordinated_motion_state(self):
        raise AssertionError("poll_coordinated_motion_state must not be called")


class ScriptedController:
    """Records moves and replays a scripted list of motion states."""

    def __init__(self, states: Optional[List[CoordinatedMotionState]] = None, fail_moves: bool = False):
        self.states = list(states or [])
        self.fail_moves = fail_moves
        self.moves: List[tuple] = []
        self.stopped: List[str] = []
        self.state_polls = 0

    async def move_absolute(self, x, y, p, r):
        self.moves.append((x, y, p, r))
        if self.fail_moves:
            raise ControllerTransportError("moveabs failed: connection refused")
        return {"ok": True}

    async def stop(self, axis):
        self.stopped.append(axis)
        return {"ok": True}

    async def poll_status(self, refresh=True):
        return {"status": "ok", "homed": 1, "x": 1665, "y": 625, "p": 0, "r": 0}

    async def poll_coordinated_motion_state(self):
        self.state_polls += 1
        if self.states:
            return self.states.pop(0)
        return CoordinatedMotionState.IDLE


class EchoController(ScriptedController):
    """Behaves like a rig that arrives instantly: every move lands in the live telemetry."""

    def __init__(self, cell: TelemetryCell, mapper: CoordinateMapper):
        super().__init__()
        self.cell = cell
        self.mapper = mapper

    async def move_absolute(self, x, y, p, r):
        await super().move_absolute(x, y, p, r)
        scene_x, scene_z = self.mapper.pos_to_scene(x, y)
        self.cell.write(
            TelemetrySnapshot(
                scene_position=ScenePosition(x=scene_x, z=scene_z),
                raw_position=RawPosition(x=x, y=y, p=p, r=r),
                homed=1,
                status="ok",
                timestamp=datetime.now().isoformat(),
            ),
            LIVE_WRITER,
        )
        return {"ok": True}


def make_snapshot(mapper: CoordinateMapper, x: float, z: float, r: Optional[float] = 0.0) -> TelemetrySnapshot:
    x_pos, y_pos = mapper.scene_to_pos(x, z)
    return TelemetrySnapshot(
        scene_position=ScenePosition(x=x, z=z),
        raw_position=RawPosition(x=x_pos, y=y_pos, p=0.0, r=r),
        homed=1,
        status="ok",
    )


@pytest.fixture
def config():
    """Console settings with short timeouts and fast polling"""
    return ConsoleSettings(
        _env_file=None,
        move_timeout_s=0.05,
        rotate_timeout_s=0.05,
        dry_run_settle_s=0.0,
        scan_poll_interval_s=0.01,
        telemetry_poll_interval_s=0.01,
    )


@pytest.fixture
def mapper(config):
    return CoordinateMapper.from_settings(config)


@pytest.fixture
def cell():
    return TelemetryCell()


@pytest.fixture
def direct_control(mapper):
    control = DirectControl(NoNetworkController(), mapper, interval_s=5.0, soft_limit=RotationSoftLimit(3000.0))
    control.update_availability("ok", 1)
    return control
