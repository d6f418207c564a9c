"""
Unit tests for TaskManager.
"""

import asyncio

import pytest

from alfred_api.services.task_manager import TaskManager


async def wait_forever():
    await asyncio.Event().wait()


class TestTaskManager:

    @pytest.mark.asyncio
    async def test_start_runs_task(self):
        manager = TaskManager()

        async def work():
            return "done"

        task = await manager.start(work(), tag="r1")

        assert await task == "done"
        assert task.get_name() == "r1"

    @pytest.mark.asyncio
    async def test_duplicate_tag_rejected_while_running(self):
        manager = TaskManager()
        await manager.start(wait_forever(), tag="r1")

        duplicate = wait_forever()
        with pytest.raises(RuntimeError, match="already running"):
            await manager.start(duplicate, tag="r1")

        assert duplicate.cr_frame is None
        assert manager.get_active_tasks() == ["r1"]
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_tag_reusable_after_completion(self):
        manager = TaskManager()

        async def work():
            return 1

        await (await manager.start(work(), tag="r1"))
        second = await manager.start(work(), tag="r1")

        assert await second == 1

    @pytest.mark.asyncio
    async def test_cancel(self):
        manager = TaskManager()
        task = await manager.start(wait_forever(), tag="r1")
        assert manager.is_running("r1")

        assert await manager.cancel(tag="r1", reason="test") is True

        assert task.cancelled()
        assert not manager.is_running("r1")
        assert await manager.cancel(tag="r1") is False

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self):
        manager = TaskManager()
        tasks = [await manager.start(wait_forever(), tag=f"r{i}") for i in range(3)]

        await manager.shutdown()

        assert all(t.cancelled() for t in tasks)
        assert manager.get_active_tasks() == []

    @pytest.mark.asyncio
    async def test_finished_tasks_remove_themselves(self):
        manager = TaskManager()

        async def boom():
            raise ValueError("boom")

        task = await manager.start(boom(), tag="r1")
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert manager.get_active_tasks() == []
        assert manager._tasks == {}
