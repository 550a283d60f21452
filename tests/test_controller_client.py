"""
Test the HTTP motion controller client against a mocked transport
"""
import json

import httpx
import pytest

from scanbot.controller_client import STOP_AXES, ControllerTransportError, MotionControllerClient, parse_motion_state
from scanbot.models import CoordinatedMotionState


@pytest.mark.parametrize("payload, expected", [
    ({"state": "running"}, CoordinatedMotionState.RUNNING),
    ({"status": "IDLE"}, CoordinatedMotionState.IDLE),
    ("queued", CoordinatedMotionState.QUEUED),
    ({"state": "homing"}, None),
    (None, None),
])
def test_parse_motion_state(payload, expected):
    assert parse_motion_state(payload) == expected


def test_stop_axes_use_controller_names():
    assert STOP_AXES == ("x", "y", "p", "r", "x1", "x2")


def make_client(handler):
    return MotionControllerClient(
        base_url="http://rig.test/api",
        timeout_s=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestMotionControllerClient:

    @pytest.mark.asyncio
    async def test_move_absolute_rounds_payload(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        await client.move_absolute(100.4, 200.6, -127.5, 3000.2)
        await client.close()

        assert requests[0].url.path == "/api/moveabs"
        assert json.loads(requests[0].content) == {"x": 100, "y": 201, "p": -128, "r": 3000}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        client = make_client(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(ControllerTransportError, match="503"):
            await client.stop("x")
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        with pytest.raises(ControllerTransportError):
            await client.poll_status()
        await client.close()

    @pytest.mark.asyncio
    async def test_poll_status_text_body(self):
        def handler(request):
            assert request.url.params["refresh"] == "true"
            return httpx.Response(200, text="X:1 Z:2")

        client = make_client(handler)
        assert await client.poll_status() == {"line": "X:1 Z:2"}
        await client.close()

    @pytest.mark.asyncio
    async def test_motion_state(self):
        client = make_client(lambda request: httpx.Response(200, json={"state": "running"}))
        assert await client.poll_coordinated_motion_state() == CoordinatedMotionState.RUNNING
        await client.close()
