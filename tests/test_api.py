"""
Test the REST API against the simulated motion controller (mock mode)
"""
import time

import pytest
from fastapi.testclient import TestClient

from scanbot.config import settings


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "mock_mode", True)
    monkeypatch.setattr(settings, "dry_run_settle_s", 0.0)
    monkeypatch.setattr(settings, "scan_poll_interval_s", 0.01)
    monkeypatch.setattr(settings, "telemetry_poll_interval_s", 0.02)

    from scanbot.main import app

    with TestClient(app) as test_client:
        yield test_client


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(0.02)
    raise AssertionError("condition not reached in time")


def task_finished(client, task_id):
    def check():
        body = client.get(f"/scan/status/{task_id}").json()
        return body if body["status"] in ("completed", "failed", "cancelled") else None
    return check


class TestRootEndpoints:

    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "running"
        assert client.get("/health").json()["status"] == "healthy"


class TestScanEndpoints:

    def test_idle_state(self, client):
        state = client.get("/scan/state").json()
        assert state["phase"] == "idle"
        assert state["active"] is False

        progress = client.get("/scan/progress").json()
        assert progress["eta_display"] == "--"

    def test_preview(self, client):
        response = client.post("/scan/preview", json={"radius": 320, "waypoint_count": 9})
        assert response.status_code == 200
        body = response.json()
        assert len(body["waypoints"]) == 9
        assert body["total_steps"] == 18
        assert client.get("/scan/preview").json()["total_steps"] == 18

    def test_invalid_settings(self, client):
        assert client.post("/scan/preview", json={"radius": -1, "waypoint_count": 9}).status_code == 422
        assert client.post("/scan/start", json={"radius": 320, "waypoint_count": 0}).status_code == 422

    def test_dry_run_scan(self, client):
        response = client.post(
            "/scan/start", json={"radius": 320, "waypoint_count": 3, "dry_run": True}
        )
        assert response.status_code == 202
        task_id = response.json()["task_id"]

        body = wait_until(task_finished(client, task_id))
        assert body["status"] == "completed"
        assert body["result"]["completed_steps"] == 6

        progress = client.get("/scan/progress").json()
        assert progress["completed_steps"] == progress["total_steps"] == 6
        assert client.get("/connection/status").json()["writer"] == "live"

    def test_pause_resume_when_idle(self, client):
        assert client.post("/scan/pause").status_code == 409
        assert client.post("/scan/resume").status_code == 409
        assert client.post("/scan/stop").json()["phase"] == "idle"

    def test_unknown_task(self, client):
        assert client.get("/scan/status/does-not-exist").status_code == 404


class TestTelemetryEndpoints:

    def test_connection_and_position(self, client):
        wait_until(lambda: client.get("/connection/status").json()["online"])
        position = wait_until(lambda: client.get("/position").status_code == 200 and client.get("/position").json())
        assert position["status"] == "ok"
        assert position["homed"] == 1
        assert position["raw_position"]["y"] is not None


class TestDirectControlEndpoints:

    def test_target_and_lock_origin(self, client):
        response = client.put("/direct/target", json={"x": 100, "z": 50, "p": 10, "r": 0})
        assert response.status_code == 200
        assert client.get("/direct/target").json()["x"] == 100

        assert client.post("/direct/lock-origin", json={"enabled": True}).json()["lock_origin"] is True

    def test_deflection_out_of_range(self, client):
        assert client.put("/direct/target", json={"x": 0, "z": 0, "p": 120, "r": 0}).status_code == 422

    def test_enable_and_disable(self, client):
        wait_until(lambda: client.get("/direct").json()["available"])
        assert client.post("/direct/enable").json()["enabled"] is True
        assert client.post("/direct/disable").json()["enabled"] is False

    def test_enable_rejected_while_a_move_is_active(self, client):
        from scanbot import main
        from scanbot.task_manager import OperationType

        wait_until(lambda: client.get("/direct").json()["available"])
        task_manager = main.sequencer.task_manager
        task = task_manager.create_task(OperationType.AXIS_MOVEMENT, {"x": 0, "y": 0})

        assert client.post("/direct/enable").status_code == 409
        assert client.get("/direct").json()["enabled"] is False

        task_manager.fail_task(task.task_id, "released by test")
        task_manager.clear_current_task()
        assert client.post("/direct/enable").json()["enabled"] is True
        client.post("/direct/disable")


class TestMotionEndpoints:

    def test_move_absolute(self, client):
        response = client.post("/move/absolute", json={"x": 100, "y": 100})
        assert response.status_code == 202

        body = wait_until(task_finished(client, response.json()["task_id"]))
        assert body["status"] == "completed"

    def test_move_rejected_while_direct_control_enabled(self, client):
        wait_until(lambda: client.get("/direct").json()["available"])
        client.post("/direct/enable")
        assert client.post("/move/absolute", json={"x": 100, "y": 100}).status_code == 409
        client.post("/direct/disable")

    def test_stop_and_emergency_stop(self, client):
        assert client.post("/move/stop", json={"axis": "x"}).json()["success"] is True
        body = client.post("/move/emergency_stop").json()
        assert body["success"] is True
        assert body["failed_axes"] == []

    def test_emergency_stop_during_scan_leaves_direct_control_off(self, client):
        from scanbot import main

        wait_until(lambda: client.get("/direct").json()["available"])
        assert client.post("/direct/enable").json()["enabled"] is True
        main.sequencer.dry_run_backend.settle_s = 0.5

        response = client.post(
            "/scan/start", json={"radius": 320, "waypoint_count": 9, "dry_run": True}
        )
        assert response.status_code == 202
        assert client.get("/direct").json()["enabled"] is False

        assert client.post("/move/emergency_stop").json()["success"] is True

        body = wait_until(task_finished(client, response.json()["task_id"]))
        assert body["status"] == "cancelled"
        wait_until(lambda: not client.get("/scan/state").json()["active"])
        assert client.get("/direct").json()["enabled"] is False
