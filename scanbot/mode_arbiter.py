"""
Arbitration between a scan run and the cooperating manual modes.

A scan and the direct-control pusher share the single move-command
channel, so they must never both be active. ModeArbiter.acquire() hands
out a ModeLease that forces lock-origin on, switches direct control off
and remembers the R soft limit; releasing the lease restores all three.
"""
import logging
from dataclasses import dataclass

from .direct_control import DirectControl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeSnapshot:
    lock_origin: bool
    direct_control_enabled: bool
    rotation_soft_limit: float


class ModeLease:
    """Scoped ownership of the cooperating modes for one scan run."""

    def __init__(self, direct_control: DirectControl, snapshot: ModeSnapshot):
        self._direct_control = direct_control
        self.snapshot = snapshot
        self.released = False
        self.restore_direct_control = snapshot.direct_control_enabled

    def extend_rotation_limit(self, required: float) -> bool:
        """Raise the R soft limit to cover required; never lowers it."""
        return self._direct_control.soft_limit.extend(required)

    def forfeit_direct_control(self) -> None:
        """Leave direct control off on release (emergency stop)."""
        if self.restore_direct_control:
            logger.info("Direct control will stay disabled after the scan")
        self.restore_direct_control = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        direct_control = self._direct_control
        direct_control.lock_origin = self.snapshot.lock_origin
        direct_control.soft_limit.set(self.snapshot.rotation_soft_limit)
        if self.restore_direct_control:
            if direct_control.available:
                direct_control.enable()
            else:
                logger.info("Direct control was enabled before the scan but is not available now")
        logger.info("Mode lease released; cooperating modes restored")

    def __enter__(self) -> "ModeLease":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class ModeArbiter:
    def __init__(self, direct_control: DirectControl):
        self.direct_control = direct_control

    def acquire(self) -> ModeLease:
        direct_control = self.direct_control
        snapshot = ModeSnapshot(
            lock_origin=direct_control.lock_origin,
            direct_control_enabled=direct_control.enabled,
            rotation_soft_limit=direct_control.soft_limit.value,
        )
        direct_control.lock_origin = True
        direct_control.disable()
        logger.info(
            f"Mode lease acquired (lock_origin={snapshot.lock_origin}, "
            f"direct_control={snapshot.direct_control_enabled}, "
            f"r_soft_limit={snapshot.rotation_soft_limit:.0f})"
        )
        return ModeLease(direct_control, snapshot)
