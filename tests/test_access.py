import asyncio

import pytest

from modules.client import DashboardDataAccess, SaveDraftRequest, TransientFetchError
from modules.client.keys import CacheKeys
from modules.config import LayoutConfig
from modules.dashboard.conversion import dashboard_from_record, tab_to_record

from .conftest import DASHBOARD_ID, FakeBackend, FakeClock, FakeSleep, make_structure

def overview_tab():
  dashboard = dashboard_from_record(make_structure(), LayoutConfig())
  assert dashboard.draft is not None
  tab = dashboard.draft.get_tab("tab-1")
  assert tab is not None
  return tab


class TestDeduplication:
  async def test_concurrent_fetches_share_one_call(self, access: DashboardDataAccess, backend: FakeBackend):
    backend.gate = asyncio.Event()
    first = asyncio.ensure_future(access.fetch_structure(DASHBOARD_ID))
    second = asyncio.ensure_future(access.fetch_structure(DASHBOARD_ID))
    await asyncio.sleep(0)
    backend.gate.set()
    a, b = await asyncio.gather(first, second)
    assert backend.structure_calls == 1
    assert a is b
    assert len(access.inflight) == 0

  async def test_concurrent_callers_observe_the_same_error(self, access: DashboardDataAccess, backend: FakeBackend):
    backend.gate = asyncio.Event()
    backend.structure_error = TransientFetchError(resource="dashboard", reason="timeout")
    first = asyncio.ensure_future(access.fetch_structure(DASHBOARD_ID))
    second = asyncio.ensure_future(access.fetch_structure(DASHBOARD_ID))
    await asyncio.sleep(0)
    backend.gate.set()
    results = await asyncio.gather(first, second, return_exceptions=True)
    assert backend.structure_calls == 1
    assert results[0] is results[1]
    assert isinstance(results[0], TransientFetchError)
    # Failures are not cached.
    backend.structure_error = None
    backend.gate = None
    await access.fetch_structure(DASHBOARD_ID)
    assert backend.structure_calls == 2

  async def test_cancelled_caller_does_not_cancel_the_shared_call(self, access: DashboardDataAccess, backend: FakeBackend):
    backend.gate = asyncio.Event()
    first = asyncio.ensure_future(access.fetch_structure(DASHBOARD_ID))
    second = asyncio.ensure_future(access.fetch_structure(DASHBOARD_ID))
    await asyncio.sleep(0)
    first.cancel()
    backend.gate.set()
    structure = await second
    assert structure.id == DASHBOARD_ID
    assert backend.structure_calls == 1

  async def test_saves_with_the_same_body_share_one_call(self, access: DashboardDataAccess, backend: FakeBackend):
    backend.save_gate = asyncio.Event()
    request = SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[])
    first = asyncio.ensure_future(access.save_draft(request))
    second = asyncio.ensure_future(access.save_draft(request.model_copy()))
    while len(backend.save_requests) == 0:
      await asyncio.sleep(0)
    backend.save_gate.set()
    await asyncio.gather(first, second)
    assert len(backend.save_requests) == 1

  async def test_save_with_a_newer_body_waits_for_the_running_save(self, access: DashboardDataAccess, backend: FakeBackend, fake_sleep: FakeSleep):
    backend.save_gate = asyncio.Event()
    overview = overview_tab()
    older = SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[])
    newer = SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[tab_to_record(overview)])
    first = asyncio.ensure_future(access.save_draft(older))
    while len(backend.save_requests) == 0:
      await asyncio.sleep(0)
    second = asyncio.ensure_future(access.save_draft(newer))
    await asyncio.sleep(0)
    assert len(backend.save_requests) == 1
    backend.save_gate.set()
    await asyncio.gather(first, second)
    assert backend.save_requests == [older, newer]
    # The newer save is still spaced from the previous one.
    assert fake_sleep.delays == [1.0]
    assert len(access.inflight) == 0


class TestCaching:
  async def test_fetch_after_expiry_is_fresh(self, access: DashboardDataAccess, backend: FakeBackend, clock: FakeClock):
    await access.fetch_structure(DASHBOARD_ID)
    await access.fetch_structure(DASHBOARD_ID)
    assert backend.structure_calls == 1
    clock.advance(access.config.cache_ttl)
    await access.fetch_structure(DASHBOARD_ID)
    assert backend.structure_calls == 2

  async def test_saving_invalidates_the_dashboard(self, access: DashboardDataAccess, backend: FakeBackend):
    other = "dashboard-2"
    backend.structures[other] = make_structure(dashboard_id=other)
    await access.fetch_structure(DASHBOARD_ID)
    await access.fetch_structure(other)
    await access.save_draft(SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[]))
    await access.fetch_structure(DASHBOARD_ID)
    await access.fetch_structure(other)
    # Only the saved dashboard is fetched again.
    assert backend.structure_calls == 3

  async def test_publishing_invalidates_the_dashboard(self, access: DashboardDataAccess, backend: FakeBackend):
    await access.fetch_structure(DASHBOARD_ID)
    await access.publish_draft(DASHBOARD_ID)
    assert access.cache.get(CacheKeys.Structure(DASHBOARD_ID)) is None
    assert backend.publish_requests[0].dashboard_id == DASHBOARD_ID


class TestRateLimiting:
  async def test_second_call_is_delayed_by_the_remaining_interval(self, access: DashboardDataAccess, clock: FakeClock, fake_sleep: FakeSleep):
    request = SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[])
    await access.save_draft(request)
    clock.advance(0.25)
    await access.save_draft(request)
    assert len(fake_sleep.delays) == 1
    assert fake_sleep.delays[0] == pytest.approx(access.config.rate_limit_interval - 0.25)

  async def test_spaced_calls_are_not_delayed(self, access: DashboardDataAccess, clock: FakeClock, fake_sleep: FakeSleep):
    request = SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[])
    await access.save_draft(request)
    clock.advance(access.config.rate_limit_interval)
    await access.save_draft(request)
    assert fake_sleep.delays == []

  async def test_different_keys_are_independent(self, access: DashboardDataAccess, fake_sleep: FakeSleep):
    await access.save_draft(SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[]))
    await access.publish_draft(DASHBOARD_ID)
    assert fake_sleep.delays == []


class TestWidgetOutputs:
  async def test_latest_version_is_replaced_before_execution(self, access: DashboardDataAccess, backend: FakeBackend):
    outputs = await access.fetch_tab_widgets(DASHBOARD_ID, overview_tab())
    assert set(outputs.keys()) == {"w-graph", "w-kpi"}
    versions = {request.ref_id: request.ref_version for request in backend.execute_requests}
    assert versions == {"component-w-graph": "2", "component-w-kpi": access.config.latest_version_fallback}
    assert access.widget_outputs["w-kpi"].output == {"refId": "component-w-kpi", "start": "2024-01-01"}

  async def test_single_failure_is_recorded_per_widget(self, access: DashboardDataAccess, backend: FakeBackend):
    backend.failing_refs.add("component-w-kpi")
    outputs = await access.fetch_tab_widgets(DASHBOARD_ID, overview_tab())
    assert outputs["w-graph"].error is None
    assert outputs["w-kpi"].error is not None

  async def test_tab_fails_when_every_widget_fails(self, access: DashboardDataAccess, backend: FakeBackend):
    backend.failing_refs.update(["component-w-kpi", "component-w-graph"])
    with pytest.raises(TransientFetchError):
      await access.fetch_tab_widgets(DASHBOARD_ID, overview_tab())

  async def test_tab_outputs_are_cached_until_the_tab_is_invalidated(self, access: DashboardDataAccess, backend: FakeBackend):
    tab = overview_tab()
    await access.fetch_tab_widgets(DASHBOARD_ID, tab)
    await access.fetch_tab_widgets(DASHBOARD_ID, tab)
    assert len(backend.execute_requests) == 2
    access.mark_tab_loaded(DASHBOARD_ID, tab.id)
    access.invalidate_tab(DASHBOARD_ID, tab)
    assert not access.is_tab_loaded(DASHBOARD_ID, tab.id)
    await access.fetch_tab_widgets(DASHBOARD_ID, tab)
    assert len(backend.execute_requests) == 4

  async def test_tab_outputs_are_kept_apart_per_version(self, access: DashboardDataAccess, backend: FakeBackend):
    tab = overview_tab()
    await access.fetch_tab_widgets(DASHBOARD_ID, tab, version="draft")
    published = tab.model_copy(update=dict(items=tab.items[:1]))
    outputs = await access.fetch_tab_widgets(DASHBOARD_ID, published, version="published")
    assert list(outputs.keys()) == [tab.items[0].widget_id]
    # Executions are shared between versions.
    assert len(backend.execute_requests) == 2

  async def test_reset_tabs_keeps_executions(self, access: DashboardDataAccess, backend: FakeBackend):
    tab = overview_tab()
    await access.fetch_tab_widgets(DASHBOARD_ID, tab)
    access.mark_tab_loaded(DASHBOARD_ID, tab.id)
    access.reset_tabs(DASHBOARD_ID)
    assert not access.is_tab_loaded(DASHBOARD_ID, tab.id)
    await access.fetch_tab_widgets(DASHBOARD_ID, tab)
    assert len(backend.execute_requests) == 2


async def test_every_backend_call_is_monitored(access: DashboardDataAccess, backend: FakeBackend):
  await access.fetch_structure(DASHBOARD_ID)
  await access.fetch_structure(DASHBOARD_ID)
  stats = access.monitor.get_call_stats()
  assert stats.total_calls == 1
  assert stats.calls_by_key == {CacheKeys.Structure(DASHBOARD_ID): 1}

async def test_aclose_closes_the_backend(access: DashboardDataAccess, backend: FakeBackend):
  await access.aclose()
  assert backend.closed
