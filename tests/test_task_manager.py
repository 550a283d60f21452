"""
Test the single-active-task registry and the run token
"""
import asyncio

import pytest

from scanbot.task_manager import OperationType, RunToken, TaskManager, TaskStatus


class TestTaskManager:

    @pytest.fixture
    def manager(self):
        return TaskManager(max_history_size=3)

    def test_only_one_active_task(self, manager):
        task = manager.create_task(OperationType.SCAN)
        with pytest.raises(RuntimeError):
            manager.create_task(OperationType.AXIS_MOVEMENT)

        manager.complete_task(task.task_id, {"completed_steps": 1})
        manager.clear_current_task()
        assert manager.create_task(OperationType.AXIS_MOVEMENT)

    def test_pause_resume_cancel(self, manager):
        task = manager.create_task(OperationType.SCAN)
        manager.update_status(task.task_id, TaskStatus.RUNNING)
        assert task.started_at is not None

        manager.pause_task(task.task_id)
        assert task.status == TaskStatus.PAUSED
        assert task.token.paused

        with pytest.raises(ValueError):
            manager.pause_task(task.task_id)

        manager.resume_task(task.task_id)
        assert task.status == TaskStatus.RUNNING
        assert not task.token.paused

        manager.cancel_task(task.task_id)
        assert task.status == TaskStatus.STOPPING
        assert task.token.cancelled
        assert manager.has_active_task()

        with pytest.raises(ValueError):
            manager.cancel_task(task.task_id)

    def test_unknown_task(self, manager):
        with pytest.raises(ValueError):
            manager.update_status("missing", TaskStatus.RUNNING)
        assert manager.get_task("missing") is None

    def test_history_is_bounded(self, manager):
        for _ in range(5):
            task = manager.create_task(OperationType.AXIS_MOVEMENT)
            manager.fail_task(task.task_id, "boom")
            manager.clear_current_task()

        history = manager.get_task_history(limit=10)
        assert len(history) == 3
        assert all(t.status == TaskStatus.FAILED for t in history)

    def test_to_dict(self, manager):
        task = manager.create_task(OperationType.SCAN, request_data={"radius": 320})
        data = task.to_dict()
        assert data["operation_type"] == "scan"
        assert data["status"] == "pending"


class TestRunToken:

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        token = RunToken()
        assert await token.sleep(0.02, 0.01)
        assert await token.sleep(0, 0.01)

    @pytest.mark.asyncio
    async def test_cancel_interrupts_sleep(self):
        token = RunToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)
        assert not await asyncio.wait_for(token.sleep(5.0, 0.01), timeout=1.0)

    @pytest.mark.asyncio
    async def test_paused_time_is_not_slept(self):
        loop = asyncio.get_running_loop()
        token = RunToken()
        token.pause()
        loop.call_later(0.1, token.resume)

        started = loop.time()
        assert await token.sleep(0.05, 0.01)
        assert loop.time() - started >= 0.14

    @pytest.mark.asyncio
    async def test_cancel_releases_pause(self):
        token = RunToken()
        token.pause()
        token.cancel()
        assert not token.paused
        assert not await token.wait_while_paused(0.01)
        # A cancelled token cannot be paused again
        token.pause()
        assert not token.paused
