import asyncio

import pytest

from modules.scheduler import TaskScheduler

@pytest.fixture
async def scheduler():
  scheduler = TaskScheduler()
  scheduler.start()
  yield scheduler
  scheduler.shutdown()

def recorder(calls: list[str], name: str):
  async def task():
    calls.append(name)
  return task

async def wait_until(condition, timeout: float = 2.0):
  loop = asyncio.get_running_loop()
  deadline = loop.time() + timeout
  while not condition():
    if loop.time() > deadline:
      raise AssertionError("Condition was not met before the timeout.")
    await asyncio.sleep(0.01)


class TestTaskScheduler:
  async def test_task_runs_after_the_delay(self, scheduler: TaskScheduler):
    calls: list[str] = []
    scheduler.schedule(recorder(calls, "autosave"), 0.05, "autosave:a")
    assert scheduler.is_scheduled("autosave:a")
    assert calls == []
    await wait_until(lambda: calls == ["autosave"])
    assert not scheduler.is_scheduled("autosave:a")

  async def test_rescheduling_replaces_the_waiting_task(self, scheduler: TaskScheduler):
    calls: list[str] = []
    scheduler.schedule(recorder(calls, "first"), 0.05, "tab-switch:a")
    scheduler.schedule(recorder(calls, "second"), 0.1, "tab-switch:a")
    await wait_until(lambda: len(calls) > 0)
    await asyncio.sleep(0.1)
    assert calls == ["second"]

  async def test_cancelled_task_never_runs(self, scheduler: TaskScheduler):
    calls: list[str] = []
    scheduler.schedule(recorder(calls, "autosave"), 0.05, "autosave:a")
    assert scheduler.cancel("autosave:a") is True
    assert scheduler.cancel("autosave:a") is False
    await asyncio.sleep(0.15)
    assert calls == []

  async def test_cancel_prefix(self, scheduler: TaskScheduler):
    calls: list[str] = []
    scheduler.schedule(recorder(calls, "a"), 5, "autosave:a")
    scheduler.schedule(recorder(calls, "b"), 5, "autosave:b")
    scheduler.schedule(recorder(calls, "switch"), 5, "tab-switch:a")
    scheduler.cancel_prefix("autosave:")
    assert not scheduler.is_scheduled("autosave:a")
    assert not scheduler.is_scheduled("autosave:b")
    assert scheduler.is_scheduled("tab-switch:a")

  async def test_shutdown_drops_waiting_tasks(self, scheduler: TaskScheduler):
    calls: list[str] = []
    scheduler.schedule(recorder(calls, "autosave"), 5, "autosave:a")
    scheduler.shutdown()
    assert not scheduler.is_scheduled("autosave:a")
    assert calls == []
