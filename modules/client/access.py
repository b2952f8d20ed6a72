import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import pydantic

from modules.config import DataAccessConfig
from modules.dashboard.model import DashboardTab, DashboardWidget, WidgetOutputType
from modules.logger import ProvisionedLogger
from modules.storage import CacheClient

from .backend import DashboardBackend
from .exceptions import TransientFetchError
from .keys import CacheKeys
from .monitor import ApiMonitor
from .schemas import (
  ComponentExecuteRequest, ComponentExecuteResponse, DashboardStructureRecord,
  PublishDraftRequest, SaveDraftRequest, VersionRecord
)

T = TypeVar("T")

logger = ProvisionedLogger().provision("DashboardDataAccess")

LATEST_VERSION = "latest"

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]

class WidgetOutput(pydantic.BaseModel):
  widget_id: str
  output: Optional[Any] = None
  output_type: Optional[WidgetOutputType] = None
  error: Optional[str] = None

class DashboardDataAccess:
  """Every read and write between the editor and the backend goes through here.

  - Reads are cached with a fixed TTL.
  - Concurrent requests for the same key share one underlying call; every caller observes the same result or error.
  - Consecutive calls for the same key are spaced at least ``rate_limit_interval`` seconds apart.
  - Saving or publishing a draft invalidates every cache entry of that dashboard.

  One instance is created when the application starts and is shared by every editor session.
  """
  def __init__(
    self,
    backend: DashboardBackend,
    config: DataAccessConfig,
    *,
    monitor: Optional[ApiMonitor] = None,
    company_id: Optional[str] = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
  ):
    self.backend = backend
    self.config = config
    self.company_id = company_id
    self.monitor = monitor if monitor is not None else ApiMonitor(max_logs=config.monitor_max_logs)
    self.clock = clock
    self.sleep = sleep
    self.cache: CacheClient[Any] = CacheClient(
      name="Dashboard",
      maxsize=config.cache_maxsize,
      ttl=config.cache_ttl,
      clock=clock,
    )
    self.inflight: dict[str, asyncio.Task] = {}
    self.inflight_payloads: dict[str, str] = {}
    self.last_called_at: dict[str, float] = {}
    # Process-wide widget output map, keyed by widget id. Late responses for tabs that are no longer
    # selected are still written here; the loaded markers decide whether a tab is fetched again.
    self.widget_outputs: dict[str, WidgetOutput] = {}
    self.loaded_tabs: set[str] = set()

  # region Request pipeline

  async def _throttle(self, key: str):
    last_called_at = self.last_called_at.get(key, None)
    if last_called_at is not None:
      elapsed = self.clock() - last_called_at
      if elapsed < self.config.rate_limit_interval:
        delay = self.config.rate_limit_interval - elapsed
        logger.debug(f"Delaying {key} by {delay:.3f}s")
        await self.sleep(delay)
    self.last_called_at[key] = self.clock()

  async def _execute(self, key: str, call: Callable[[], Awaitable[T]], *, cached: bool)->T:
    try:
      await self._throttle(key)
      result = await self.monitor.track(key, call)
      if cached:
        self.cache.set(key, result)
      return result
    finally:
      self.inflight.pop(key, None)
      self.inflight_payloads.pop(key, None)

  async def request(self, key: str, call: Callable[[], Awaitable[T]], *, cached: bool = True, payload: Optional[str] = None)->T:
    """``payload`` identifies the body of a mutation. A call for the same key is only joined if it sends the same body;
    otherwise this waits for it to finish and then sends its own."""
    if cached:
      hit = self.cache.get(key)
      if hit is not None:
        return hit

    task = self.inflight.get(key, None)
    while task is not None and self.inflight_payloads.get(key, None) != payload:
      logger.debug(f"Waiting for the in-flight request for {key} to finish before sending a different body")
      await asyncio.wait([task])
      task = self.inflight.get(key, None)

    if task is None:
      task = asyncio.ensure_future(self._execute(key, call, cached=cached))
      self.inflight[key] = task
      if payload is not None:
        self.inflight_payloads[key] = payload
    else:
      logger.debug(f"Joining the in-flight request for {key}")
    # Shielded so that a cancelled caller does not cancel the call for everyone else.
    return await asyncio.shield(task)

  def invalidate(self, dashboard_id: str):
    invalidated = self.cache.invalidate(predicate=lambda key: CacheKeys.belongs_to(key, dashboard_id))
    logger.info(f"Invalidated {len(invalidated)} cache entries of dashboard {dashboard_id}")

  # endregion

  # region Loaded markers

  def _tab_marker(self, dashboard_id: str, tab_id: str):
    return f"{dashboard_id}:{tab_id}"

  def is_tab_loaded(self, dashboard_id: str, tab_id: str)->bool:
    return self._tab_marker(dashboard_id, tab_id) in self.loaded_tabs

  def mark_tab_loaded(self, dashboard_id: str, tab_id: str):
    self.loaded_tabs.add(self._tab_marker(dashboard_id, tab_id))

  def clear_tab_loaded(self, dashboard_id: str, tab_id: Optional[str] = None):
    if tab_id is not None:
      self.loaded_tabs.discard(self._tab_marker(dashboard_id, tab_id))
      return
    prefix = f"{dashboard_id}:"
    self.loaded_tabs = set(marker for marker in self.loaded_tabs if not marker.startswith(prefix))

  # endregion

  # region Resources

  async def fetch_structure(self, dashboard_id: str)->DashboardStructureRecord:
    return await self.request(
      CacheKeys.Structure(dashboard_id),
      lambda: self.backend.fetch_structure(dashboard_id),
    )

  async def save_draft(self, request: SaveDraftRequest)->VersionRecord:
    result = await self.request(
      CacheKeys.SaveDraft(request.dashboard_id),
      lambda: self.backend.save_draft(request),
      cached=False,
      payload=request.model_dump_json(),
    )
    self.invalidate(request.dashboard_id)
    return result

  async def publish_draft(self, dashboard_id: str)->VersionRecord:
    result = await self.request(
      CacheKeys.PublishDraft(dashboard_id),
      lambda: self.backend.publish_draft(PublishDraftRequest(dashboard_id=dashboard_id)),
      cached=False,
    )
    self.invalidate(dashboard_id)
    return result

  def resolve_ref_version(self, ref_version: Optional[str])->str:
    if ref_version is None or len(ref_version) == 0 or ref_version == LATEST_VERSION:
      return self.config.latest_version_fallback
    return ref_version

  def execution_request(self, tab: DashboardTab, widget: DashboardWidget)->ComponentExecuteRequest:
    return ComponentExecuteRequest(
      ref_id=widget.ref_id,
      ref_version=self.resolve_ref_version(widget.ref_version),
      ref_type=widget.ref_type,
      start_date=tab.start_date,
      end_date=tab.end_date,
      company_id=self.company_id,
    )

  def execution_key(self, dashboard_id: str, request: ComponentExecuteRequest)->str:
    return CacheKeys.Execution(
      dashboard_id, request.ref_id, request.ref_version, request.ref_type,
      request.start_date.isoformat(), request.end_date.isoformat(),
    )

  async def execute_widget(self, dashboard_id: str, tab: DashboardTab, widget: DashboardWidget)->ComponentExecuteResponse:
    request = self.execution_request(tab, widget)
    key = self.execution_key(dashboard_id, request)
    return await self.request(key, lambda: self.backend.execute_component(request))

  async def _fetch_tab_widgets(self, dashboard_id: str, tab: DashboardTab, widgets: Sequence[DashboardWidget])->dict[str, WidgetOutput]:
    results = await asyncio.gather(
      *(self.execute_widget(dashboard_id, tab, widget) for widget in widgets),
      return_exceptions=True,
    )
    outputs: dict[str, WidgetOutput] = {}
    failures: list[str] = []
    for widget, result in zip(widgets, results):
      if isinstance(result, BaseException):
        if not isinstance(result, Exception):
          raise result
        logger.error(f"Failed to execute widget {widget.id} ({widget.ref_id}) of tab {tab.id}: {result}")
        failures.append(str(result))
        outputs[widget.id] = WidgetOutput(widget_id=widget.id, output=widget.output, output_type=widget.output_type, error=str(result))
        continue
      outputs[widget.id] = WidgetOutput(
        widget_id=widget.id,
        output=result.output if result.output is not None else widget.output,
        output_type=result.output_type if result.output_type is not None else widget.output_type,
        error=result.error,
      )

    logger.info(f"Widget outputs of tab {tab.id}: {len(widgets) - len(failures)} successful, {len(failures)} failed")
    if len(widgets) > 0 and len(failures) == len(widgets):
      raise TransientFetchError(resource=f"the widgets of tab \"{tab.title}\"", reason=failures[0])
    return outputs

  async def fetch_tab_widgets(self, dashboard_id: str, tab: DashboardTab, *, version: Optional[str] = None)->dict[str, WidgetOutput]:
    """``version`` keeps the outputs of the same tab in different versions apart, since their widgets may differ."""
    placed = set(item.widget_id for item in tab.items)
    widgets = [widget for widget in tab.widgets if widget.id in placed]
    outputs: dict[str, WidgetOutput] = await self.request(
      CacheKeys.TabWidgets(dashboard_id, tab.id, version),
      lambda: self._fetch_tab_widgets(dashboard_id, tab, widgets),
    )
    self.widget_outputs.update(outputs)
    return outputs

  def invalidate_tab(self, dashboard_id: str, tab: DashboardTab, *, executions: bool = True):
    """Forces the tab to be fetched again the next time it is loaded. With ``executions``, its widgets are executed again as well."""
    execution_keys = set(
      self.execution_key(dashboard_id, self.execution_request(tab, widget))
      for widget in tab.widgets
    ) if executions else set()
    self.cache.invalidate(
      key=CacheKeys.TabWidgets(dashboard_id, tab.id),
      prefix=f"{CacheKeys.TabWidgets(dashboard_id, tab.id)}:",
      predicate=lambda key: key in execution_keys,
    )
    self.clear_tab_loaded(dashboard_id, tab.id)

  def reset_tabs(self, dashboard_id: str):
    """Forgets which tabs of the dashboard were loaded. Widget executions stay cached since they do not depend on the version."""
    self.cache.invalidate(prefix=f"{CacheKeys.TabWidgetsPrefix}:{dashboard_id}:")
    self.clear_tab_loaded(dashboard_id)

  # endregion

  async def aclose(self):
    for task in list(self.inflight.values()):
      task.cancel()
    self.inflight.clear()
    self.inflight_payloads.clear()
    await self.backend.aclose()

__all__ = [
  "WidgetOutput",
  "DashboardDataAccess",
]
