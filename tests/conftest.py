"""
Fakes and fixtures shared by the test suite.

The backend, the scheduler, the clock and ``asyncio.sleep`` are all replaced so that caching, deduplication,
rate limiting and debounced tasks can be observed deterministically.
"""
import asyncio
import datetime
from typing import Any, Optional

import pytest

from modules.client import (
  ComponentExecuteRequest, ComponentExecuteResponse, DashboardBackend, DashboardDataAccess,
  DashboardStructureRecord, PublishDraftRequest, SaveDraftRequest, TransientFetchError, VersionRecord
)
from modules.config import DataAccessConfig, EditorConfig
from modules.dashboard.editor import DashboardEditor
from modules.dashboard.placement import WidgetTemplate
from modules.dashboard.service import DashboardEditorService
from modules.scheduler import ScheduledTask, TaskScheduler

DASHBOARD_ID = "dashboard-1"

def widget_record(id: str, output_type: str, position: tuple[int, int, int, int], *, ref_version: Optional[str] = "2"):
  x, y, w, h = position
  return {
    "id": id,
    "title": f"Widget {id}",
    "position": {"x": x, "y": y, "w": w, "h": h, "min_w": 1, "min_h": 1},
    "refId": f"component-{id}",
    "refVersion": ref_version,
    "refType": "QUERY",
    "outputType": output_type,
  }

def make_structure(*, draft: bool = True, published: bool = True, dashboard_id: str = DASHBOARD_ID)->DashboardStructureRecord:
  draft_version = {
    "id": "draft-1",
    "dashboardId": dashboard_id,
    "tabs": [
      {
        "id": "tab-2",
        "title": "Details",
        "position": 1,
        "startDate": "2024-02-01",
        "endDate": "2024-02-29",
        "widgets": [
          widget_record("w-table", "TABLE", (0, 0, 16, 12)),
        ],
      },
      {
        "id": "tab-1",
        "title": "Overview",
        "position": 0,
        "startDate": "2024-01-01",
        "endDate": "2024-01-31",
        "widgets": [
          widget_record("w-graph", "GRAPH", (0, 0, 16, 12)),
          widget_record("w-kpi", "KPI", (16, 0, 8, 4), ref_version="latest"),
        ],
      },
    ],
  }
  published_version = {
    "id": "published-1",
    "dashboardId": dashboard_id,
    "tabs": [
      {
        "id": "tab-1",
        "title": "Overview",
        "position": 0,
        "startDate": "2024-01-01",
        "endDate": "2024-01-31",
        "widgets": [
          widget_record("w-graph", "GRAPH", (0, 0, 16, 12)),
        ],
      },
    ],
  }
  return DashboardStructureRecord.model_validate({
    "id": dashboard_id,
    "title": "Sales",
    "draftVersion": draft_version if draft else None,
    "publishedVersion": published_version if published else None,
  })


class FakeClock:
  def __init__(self, now: float = 1000.0):
    self.now = now

  def __call__(self)->float:
    return self.now

  def advance(self, seconds: float):
    self.now += seconds

class FakeSleep:
  """Records requested delays and moves the fake clock forward instead of waiting."""
  def __init__(self, clock: FakeClock):
    self.clock = clock
    self.delays: list[float] = []

  async def __call__(self, delay: float):
    self.delays.append(delay)
    self.clock.advance(delay)
    await asyncio.sleep(0)


class FakeBackend(DashboardBackend):
  def __init__(self):
    self.structures: dict[str, DashboardStructureRecord] = {
      DASHBOARD_ID: make_structure(),
    }
    self.structure_calls = 0
    self.save_requests: list[SaveDraftRequest] = []
    self.publish_requests: list[PublishDraftRequest] = []
    self.execute_requests: list[ComponentExecuteRequest] = []
    # Set to hold the structure fetch until the test releases it.
    self.gate: Optional[asyncio.Event] = None
    self.save_gate: Optional[asyncio.Event] = None
    self.execute_gate: Optional[asyncio.Event] = None
    self.structure_error: Optional[Exception] = None
    self.failing_refs: set[str] = set()
    self.closed = False

  async def fetch_structure(self, dashboard_id: str)->DashboardStructureRecord:
    self.structure_calls += 1
    if self.gate is not None:
      await self.gate.wait()
    if self.structure_error is not None:
      raise self.structure_error
    return self.structures[dashboard_id]

  async def save_draft(self, request: SaveDraftRequest)->VersionRecord:
    self.save_requests.append(request)
    if self.save_gate is not None:
      await self.save_gate.wait()
    return VersionRecord(
      id=request.id,
      dashboard_id=request.dashboard_id,
      tabs=request.tabs,
      updated_at=datetime.datetime(2024, 3, 1, tzinfo=datetime.timezone.utc),
    )

  async def publish_draft(self, request: PublishDraftRequest)->VersionRecord:
    self.publish_requests.append(request)
    return VersionRecord(
      id=f"published-{len(self.publish_requests) + 1}",
      dashboard_id=request.dashboard_id,
      updated_at=datetime.datetime(2024, 3, 2, tzinfo=datetime.timezone.utc),
    )

  async def execute_component(self, request: ComponentExecuteRequest)->ComponentExecuteResponse:
    self.execute_requests.append(request)
    if self.execute_gate is not None:
      await self.execute_gate.wait()
    if request.ref_id in self.failing_refs:
      raise TransientFetchError(resource="component output", reason=f"{request.ref_id} is unavailable")
    return ComponentExecuteResponse(
      output={"refId": request.ref_id, "start": request.start_date.isoformat()},
      execution_time_ms=5,
    )

  async def aclose(self):
    self.closed = True


class FakeScheduler(TaskScheduler):
  """Keeps scheduled tasks until the test fires them."""
  def __init__(self):
    self.tasks: dict[str, tuple[ScheduledTask, float]] = {}
    self.started = False

  def schedule(self, task: ScheduledTask, delay: float, key: str):
    self.tasks[key] = (task, delay)

  def cancel(self, key: str)->bool:
    return self.tasks.pop(key, None) is not None

  def cancel_prefix(self, prefix: str):
    for key in [key for key in self.tasks.keys() if key.startswith(prefix)]:
      self.tasks.pop(key)

  def is_scheduled(self, key: str)->bool:
    return key in self.tasks

  def start(self):
    self.started = True

  def shutdown(self):
    self.tasks.clear()
    self.started = False

  async def fire(self, key: str)->Any:
    task, _ = self.tasks.pop(key)
    return await task()


@pytest.fixture
def config()->EditorConfig:
  return EditorConfig(
    data_access=DataAccessConfig(rate_limit_interval=1.0),
  )

@pytest.fixture
def clock()->FakeClock:
  return FakeClock()

@pytest.fixture
def fake_sleep(clock: FakeClock)->FakeSleep:
  return FakeSleep(clock)

@pytest.fixture
def backend()->FakeBackend:
  return FakeBackend()

@pytest.fixture
def scheduler()->FakeScheduler:
  return FakeScheduler()

@pytest.fixture
def access(backend: FakeBackend, config: EditorConfig, clock: FakeClock, fake_sleep: FakeSleep)->DashboardDataAccess:
  return DashboardDataAccess(
    backend,
    config.data_access,
    clock=clock,
    sleep=fake_sleep,
  )

@pytest.fixture
def editor(access: DashboardDataAccess, scheduler: FakeScheduler, config: EditorConfig)->DashboardEditor:
  editor = DashboardEditor(DASHBOARD_ID, access=access, scheduler=scheduler, config=config)
  editor.register_templates([
    WidgetTemplate(id="tpl-table", title="Revenue table", ref_id="component-revenue", ref_version="3", ref_type="QUERY", output_type="TABLE"),
    WidgetTemplate(id="tpl-kpi", title="Margin", ref_id="component-margin", ref_type="QUERY", output_type="KPI"),
  ])
  return editor

@pytest.fixture
def service(access: DashboardDataAccess, scheduler: FakeScheduler, config: EditorConfig)->DashboardEditorService:
  return DashboardEditorService(config, access=access, scheduler=scheduler)
