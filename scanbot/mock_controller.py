"""
Mock Motion Controller for Development Without Hardware

This module provides a simulated motion controller service that:
- Exposes the same async verbs as MotionControllerClient
- Simulates gradual position changes on X, Y (vertical), P and R
- Reports coordinated motion state (idle/running) and homing status
- Enables console development and demos without the scanning rig

Usage:
    SCANBOT_MOCK_MODE=true python -m scanbot.main
"""
import logging
import threading
import time
from typing import Any, Dict, Optional

from .models import CoordinatedMotionState

logger = logging.getLogger(__name__)


class MockMotionController:
    """
    Simulated motion controller with per-axis speeds and a 20 Hz simulation thread.
    """

    # Axis configurations (speed in units/s, soft limits)
    AXIS_CONFIG = {
        "x": (500.0, -335.0, 1665.0),
        "y": (2500.0, -9375.0, 625.0),
        "p": (500.0, -255.0, 255.0),
        "r": (3000.0, float("-inf"), float("inf")),
    }
    TICK_S = 0.05

    def __init__(self, initial: Optional[Dict[str, float]] = None, homed: bool = True):
        self._lock = threading.RLock()
        self._positions: Dict[str, float] = {axis: 0.0 for axis in self.AXIS_CONFIG}
        if initial:
            self._positions.update(initial)
        self._targets: Dict[str, Optional[float]] = {axis: None for axis in self.AXIS_CONFIG}
        self._homed = homed
        self._queued = False
        self.move_count = 0

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        logger.info("MOCK: Initialized MockMotionController")

    # ========== Lifecycle ==========

    def start(self) -> None:
        """Start the movement simulation thread."""
        if self._thread is None or not self._thread.is_alive():
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._simulation_loop, daemon=True)
            self._thread.start()

    async def close(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        logger.info("MOCK: Motion controller simulation stopped")

    # ========== Verbs ==========

    async def move_absolute(self, x: float, y: float, p: float, r: float) -> Dict[str, Any]:
        with self._lock:
            requested = {"x": x, "y": y, "p": p, "r": r}
            for axis, value in requested.items():
                _, lower, upper = self.AXIS_CONFIG[axis]
                self._targets[axis] = min(upper, max(lower, float(round(value))))
            self._queued = True
            self.move_count += 1
            logger.info(f"MOCK: moveabs x={x:.0f} y={y:.0f} p={p:.0f} r={r:.0f}")
            return {"ok": True}

    async def stop(self, axis: str) -> Dict[str, Any]:
        with self._lock:
            if axis in self._targets:
                self._targets[axis] = None
            logger.info(f"MOCK: Stopped axis {axis}")
            return {"ok": True, "axis": axis}

    async def poll_status(self, refresh: bool = True) -> Dict[str, Any]:
        with self._lock:
            payload: Dict[str, Any] = {
                "status": "ok",
                "homed": 1 if self._homed else 0,
            }
            payload.update({axis: round(value, 3) for axis, value in self._positions.items()})
            return payload

    async def poll_coordinated_motion_state(self) -> CoordinatedMotionState:
        with self._lock:
            if any(target is not None for target in self._targets.values()):
                return CoordinatedMotionState.QUEUED if self._queued else CoordinatedMotionState.RUNNING
            return CoordinatedMotionState.IDLE

    # ========== Background Movement Simulation ==========

    def step(self, dt: float) -> None:
        """Advance the simulation by dt seconds."""
        with self._lock:
            self._queued = False
            for axis, target in self._targets.items():
                if target is None:
                    continue
                speed = self.AXIS_CONFIG[axis][0]
                current = self._positions[axis]
                distance = abs(target - current)
                if distance <= speed * dt or distance < 0.01:
                    self._positions[axis] = target
                    self._targets[axis] = None
                else:
                    direction = 1 if target > current else -1
                    self._positions[axis] = current + direction * speed * dt

    def _simulation_loop(self):
        logger.info("MOCK: Movement simulation thread started")
        last = time.monotonic()
        while not self._stop_event.is_set():
            now = time.monotonic()
            self.step(now - last)
            last = now
            time.sleep(self.TICK_S)
        logger.info("MOCK: Movement simulation thread stopped")
