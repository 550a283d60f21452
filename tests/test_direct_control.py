"""
Test direct control payloads, the changed-only pusher and the mode arbiter
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from scanbot.controller_client import ControllerTransportError
from scanbot.coordinates import CoordinateMapper
from scanbot.direct_control import DirectControl, RotationSoftLimit
from scanbot.mode_arbiter import ModeArbiter
from scanbot.models import ManualTarget


def make_control(controller=None):
    control = DirectControl(
        controller or Mock(), CoordinateMapper(), interval_s=5.0, soft_limit=RotationSoftLimit(3000.0)
    )
    control.update_availability("ok", 1)
    return control


class TestAvailability:

    @pytest.mark.parametrize("status, homed, expected", [
        ("ok", 1, True),
        ("OK", 1.0, True),
        ("ok", 0, False),
        ("ok", None, False),
        ("error", 1, False),
        (None, 1, False),
    ])
    def test_is_available(self, status, homed, expected):
        assert DirectControl.is_available(status, homed) is expected

    def test_enable_requires_availability(self):
        control = make_control()
        control.update_availability("error", None)
        assert not control.enable()
        assert not control.enabled

    def test_losing_availability_disables(self):
        control = make_control()
        control.enabled = True
        control.update_availability("ok", 0)
        assert not control.enabled

    @pytest.mark.parametrize("value, expected", [
        (0.2, 1.0),
        (100, 60.0),
        ("abc", 5.0),
        (float("nan"), 5.0),
        (10, 10.0),
    ])
    def test_normalize_interval(self, value, expected):
        assert DirectControl.normalize_interval(value) == expected


class TestPayload:

    def test_default_target(self):
        assert make_control().build_payload() == {"x": 1665, "y": 625, "p": 0, "r": 0}

    def test_manual_deflection(self):
        control = make_control()
        control.set_target(ManualTarget(x=100, z=10, p=90, r=1500))
        assert control.build_payload() == {"x": 1165, "y": 375, "p": -255, "r": 1500}

    def test_lock_origin_overrides_p(self):
        control = make_control()
        control.set_target(ManualTarget(x=100, z=127, p=-90))
        control.lock_origin = True
        assert control.effective_deflection() == pytest.approx(45)
        assert control.build_payload()["p"] == round(-127.5)

    def test_r_is_clamped_to_soft_limit(self):
        control = make_control()
        control.set_target(ManualTarget(r=5000))
        assert control.build_payload()["r"] == 3000


class TestPusher:

    @pytest.mark.asyncio
    async def test_sends_only_when_changed(self):
        controller = Mock()
        controller.move_absolute = AsyncMock(return_value={"ok": True})
        control = make_control(controller)
        control.enabled = True

        assert await control.tick()
        assert not await control.tick()
        control.set_target(ManualTarget(x=10))
        assert await control.tick()

        assert controller.move_absolute.await_count == 2
        controller.move_absolute.assert_awaited_with(x=1615, y=625, p=0, r=0)

    @pytest.mark.asyncio
    async def test_disabled_does_not_send(self):
        controller = Mock()
        controller.move_absolute = AsyncMock()
        control = make_control(controller)

        assert not await control.tick()
        controller.move_absolute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_send_is_retried(self):
        controller = Mock()
        controller.move_absolute = AsyncMock(side_effect=[ControllerTransportError("down"), {"ok": True}])
        control = make_control(controller)
        control.enabled = True

        assert not await control.tick()
        assert await control.tick()

    @pytest.mark.asyncio
    async def test_enable_and_disable_timer(self):
        controller = Mock()
        controller.move_absolute = AsyncMock(return_value={"ok": True})
        control = make_control(controller)

        assert control.enable()
        assert control._timer is not None
        control.disable()
        await asyncio.sleep(0)
        assert control._timer is None
        assert not control.enabled


class TestRotationSoftLimit:

    def test_extend_never_lowers(self):
        limit = RotationSoftLimit(3000)
        assert limit.extend(6000)
        assert not limit.extend(4500)
        assert limit.value == 6000


class TestModeArbiter:

    def test_acquire_forces_scan_modes(self):
        control = make_control()
        control.enabled = True
        lease = ModeArbiter(control).acquire()

        assert control.lock_origin
        assert not control.enabled
        assert lease.snapshot.lock_origin is False
        assert lease.snapshot.direct_control_enabled is True
        assert lease.snapshot.rotation_soft_limit == 3000

    def test_release_restores_everything(self):
        control = make_control()
        with ModeArbiter(control).acquire() as lease:
            lease.extend_rotation_limit(27000)
            assert control.soft_limit.value == 27000

        assert control.soft_limit.value == 3000
        assert control.lock_origin is False
        assert not control.enabled

    def test_release_reenables_direct_control(self):
        control = make_control()
        control.enabled = True
        lease = ModeArbiter(control).acquire()
        lease.release()

        # Re-enabled even without an event loop to host the pusher
        assert control.enabled

    def test_release_skips_unavailable_direct_control(self):
        control = make_control()
        control.enabled = True
        lease = ModeArbiter(control).acquire()
        control.update_availability("error", None)
        lease.release()

        assert not control.enabled

    def test_forfeited_direct_control_stays_off(self):
        control = make_control()
        control.enabled = True
        lease = ModeArbiter(control).acquire()
        lease.forfeit_direct_control()
        lease.release()

        assert not control.enabled
        assert control.lock_origin is False
        assert control.soft_limit.value == 3000

    def test_release_is_idempotent(self):
        control = make_control()
        control.lock_origin = True
        lease = ModeArbiter(control).acquire()
        lease.release()
        control.lock_origin = False
        lease.release()

        assert control.lock_origin is False
