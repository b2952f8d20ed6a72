import datetime
from typing import Callable, Optional
import uuid

import pydantic

from modules.api import ApiErrorAdaptableException
from modules.client import BackendRejectedError, DashboardDataAccess, TransientFetchError, WidgetOutput
from modules.client.keys import CacheKeys
from modules.config import EditorConfig
from modules.logger import ProvisionedLogger, TimeLogger
from modules.scheduler import TaskScheduler

from .conversion import dashboard_from_record, save_draft_request
from .events import DashboardEventEmitter, DashboardEventType, NotificationLevel
from .exceptions import (
  DashboardNotFoundError, DashboardNotLoadedError, DashboardPermissionError,
  VersionUnavailableError
)
from .model import Dashboard, DashboardTab, DashboardVersion, DashboardVersionKind
from .session import EditorSessionState
from .validation import DateLike, validate_date_range, validate_month_range, validate_title

logger = ProvisionedLogger().provision("VersionManager")

class VersionCapabilities(pydantic.BaseModel):
  current: DashboardVersionKind = DashboardVersionKind.Draft
  editable: bool = True
  can_edit: bool = False
  can_publish: bool = False

def capabilities_on_initialize(dashboard: Dashboard)->VersionCapabilities:
  if dashboard.published is not None:
    return VersionCapabilities(
      current=DashboardVersionKind.Published,
      editable=False,
      can_edit=dashboard.draft is not None,
      can_publish=False,
    )
  if dashboard.draft is not None:
    return VersionCapabilities(
      current=DashboardVersionKind.Draft,
      editable=True,
      can_edit=True,
      can_publish=True,
    )
  # Nothing has been created for this dashboard yet.
  return VersionCapabilities(
    current=DashboardVersionKind.Draft,
    editable=True,
    can_edit=False,
    can_publish=False,
  )

class VersionManager:
  """Owns the draft/published duality of one dashboard.

  Structural edits are only accepted while the draft is the current version; anything else raises a ``PermissionError``
  before the structure is touched. Every transition either completes or leaves the manager as it was.
  """
  def __init__(
    self,
    dashboard_id: str,
    *,
    access: DashboardDataAccess,
    scheduler: TaskScheduler,
    emitter: DashboardEventEmitter,
    config: EditorConfig,
    now: Callable[[], datetime.datetime] = lambda: datetime.datetime.now(datetime.timezone.utc),
  ):
    self.dashboard_id = dashboard_id
    self.access = access
    self.scheduler = scheduler
    self.emitter = emitter
    self.config = config
    self.now = now

    self.dashboard: Optional[Dashboard] = None
    self.capabilities = VersionCapabilities()
    self.session = EditorSessionState()
    # Recoverable error of the structure fetch. The editor cannot render while this is set.
    self.error: Optional[str] = None
    self.tab_errors: dict[str, str] = {}
    self.selected_tab_id: Optional[str] = None
    # Bumped whenever the tab contents of the previous version stop being relevant.
    self.generation = 0

  @property
  def current(self)->DashboardVersionKind:
    return DashboardVersionKind(self.capabilities.current)

  @property
  def autosave_key(self):
    return f"autosave:{self.dashboard_id}"

  @property
  def tab_switch_key(self):
    return f"tab-switch:{self.dashboard_id}"

  # region Accessors

  def get_dashboard(self)->Dashboard:
    if self.dashboard is None:
      raise DashboardNotLoadedError(dashboard_id=self.dashboard_id)
    return self.dashboard

  def current_version(self)->Optional[DashboardVersion]:
    return self.get_dashboard().version(self.current)

  def get_tab(self, tab_id: str)->DashboardTab:
    version = self.current_version()
    tab = version.get_tab(tab_id) if version is not None else None
    if tab is None:
      raise DashboardNotFoundError(resource="tab", id=tab_id)
    return tab

  def assert_editable(self, action: str)->DashboardVersion:
    dashboard = self.get_dashboard()
    if self.current != DashboardVersionKind.Draft:
      raise DashboardPermissionError(action=action, current=self.current.value)
    if dashboard.draft is None:
      raise VersionUnavailableError(kind=DashboardVersionKind.Draft.value)
    return dashboard.draft

  # endregion

  # region Initialization

  async def initialize(self)->bool:
    """Loads the structure of the dashboard and selects its first tab. Returns False if an initialization is already running."""
    if not self.session.begin_initialization():
      logger.warning(f"Dashboard {self.dashboard_id} is already being initialized.")
      return False
    try:
      with TimeLogger(logger, f"Initializing dashboard {self.dashboard_id}", report_start=True):
        try:
          record = await self.access.fetch_structure(self.dashboard_id)
        except (TransientFetchError, BackendRejectedError, DashboardNotFoundError) as e:
          self.error = e.to_api().message
          raise
        dashboard = dashboard_from_record(record, self.config.layout)
        self.dashboard = dashboard
        self.error = None
        self.tab_errors.clear()
        self.capabilities = capabilities_on_initialize(dashboard)
        self.generation += 1
        self.access.reset_tabs(self.dashboard_id)
        logger.info(f"Dashboard {self.dashboard_id} opened on the {self.current.value} version. Capabilities: {self.capabilities}")
        self.emitter.emit(DashboardEventType.VersionChanged, **self.capabilities.model_dump())
        await self._select_first_tab()
    finally:
      self.session.end_initialization()
    return True

  async def retry(self):
    """Manual retry of whatever failed last. The current version and tabs that loaded fine are left alone."""
    if self.dashboard is None:
      await self.initialize()
      return
    if self.selected_tab_id is not None and self.selected_tab_id in self.tab_errors:
      await self.refresh_tab(self.selected_tab_id)

  async def _select_first_tab(self):
    version = self.current_version()
    if version is None or len(version.tabs) == 0:
      self.selected_tab_id = None
      return
    self.selected_tab_id = version.tabs[0].id
    self.emitter.emit(DashboardEventType.TabSelected, tab_id=self.selected_tab_id)
    try:
      await self.load_tab(self.selected_tab_id)
    except (TransientFetchError, BackendRejectedError) as e:
      # The tab can be retried on its own; the dashboard itself did load.
      self.emitter.notify(NotificationLevel.Error, e.to_api().message)

  # endregion

  # region Transitions

  def _switch(self, capabilities: VersionCapabilities):
    self.scheduler.cancel(self.tab_switch_key)
    self.session.clear_debounce()
    self.capabilities = capabilities
    self.generation += 1
    self.tab_errors.clear()
    # Tab contents are fetched again under the new version. Requests that are still running are not cancelled.
    self.access.reset_tabs(self.dashboard_id)
    version = self.current_version()
    if version is None or self.selected_tab_id is None or version.get_tab(self.selected_tab_id) is None:
      self.selected_tab_id = version.tabs[0].id if version is not None and len(version.tabs) > 0 else None
    logger.info(f"Dashboard {self.dashboard_id} switched to the {self.current.value} version.")
    self.emitter.emit(DashboardEventType.VersionChanged, **capabilities.model_dump())
    if self.selected_tab_id is not None:
      self._schedule_tab_load()

  def switch_to_draft(self):
    dashboard = self.get_dashboard()
    if dashboard.draft is None:
      raise VersionUnavailableError(kind=DashboardVersionKind.Draft.value)
    self._switch(VersionCapabilities(
      current=DashboardVersionKind.Draft,
      editable=True,
      can_edit=True,
      can_publish=dashboard.published is not None,
    ))

  def switch_to_published(self):
    dashboard = self.get_dashboard()
    if dashboard.published is None:
      raise VersionUnavailableError(kind=DashboardVersionKind.Published.value)
    self._switch(VersionCapabilities(
      current=DashboardVersionKind.Published,
      editable=False,
      can_edit=dashboard.draft is not None,
      can_publish=False,
    ))

  async def save_draft(self)->DashboardVersion:
    draft = self.assert_editable("save the draft")
    self.scheduler.cancel(self.autosave_key)
    request = save_draft_request(self.dashboard_id, draft)
    record = await self.access.save_draft(request)
    # Local edits made while the save was in flight win over the response.
    draft.updated_at = record.updated_at if record.updated_at is not None else self.now()
    logger.info(f"Saved the draft of dashboard {self.dashboard_id} ({len(request.tabs)} tabs).")
    self.emitter.emit(DashboardEventType.Saved, version=DashboardVersionKind.Draft.value, updated_at=draft.updated_at)
    return draft

  async def publish_draft(self)->DashboardVersion:
    draft = self.assert_editable("publish the draft")
    dashboard = self.get_dashboard()
    with TimeLogger(logger, f"Publishing the draft of dashboard {self.dashboard_id}", report_start=True):
      # The backend publishes what it has stored, so pending edits have to be persisted first.
      # The local copy is taken from the same state that is sent with the save.
      tabs = [tab.model_copy(deep=True) for tab in draft.tabs]
      await self.save_draft()
      record = await self.access.publish_draft(self.dashboard_id)

    published = DashboardVersion(
      id=record.id,
      kind=DashboardVersionKind.Published,
      tabs=tabs,
      updated_at=record.updated_at if record.updated_at is not None else self.now(),
    )
    dashboard.published = published
    self.switch_to_published()
    return published

  # endregion

  # region Structure

  def commit_tab(self, tab: DashboardTab, *, autosave: bool = True, event: DashboardEventType = DashboardEventType.StructureChanged):
    """Replaces the tab with the same id in the draft. Callers must have called ``assert_editable`` beforehand."""
    draft = self.assert_editable("edit this tab")
    if draft.get_tab(tab.id) is None:
      raise DashboardNotFoundError(resource="tab", id=tab.id)
    draft.tabs = [tab if existing.id == tab.id else existing for existing in draft.tabs]
    self.emitter.emit(event, tab_id=tab.id)
    if autosave:
      self.schedule_autosave()

  def schedule_autosave(self):
    self.scheduler.schedule(self._autosave, self.config.data_access.autosave_delay, self.autosave_key)

  async def _autosave(self):
    try:
      await self.save_draft()
    except PermissionError:
      # The user switched away from the draft before the autosave fired.
      logger.debug(f"Skipped the autosave of dashboard {self.dashboard_id} since the draft is not current.")
    except Exception as e:
      logger.error(f"Failed to autosave the draft of dashboard {self.dashboard_id}: {e}")
      self.emitter.notify(NotificationLevel.Error, f"Failed to save your changes: {e}")

  def add_tab(self, title: str, start_date: DateLike, end_date: DateLike, *, whole_months: bool = False)->DashboardTab:
    draft = self.assert_editable("add a tab")
    title = validate_title(title, subject="Tab title")
    if whole_months:
      start, end = validate_month_range(start_date, end_date)
    else:
      start, end = validate_date_range(start_date, end_date)
    position = max((tab.position for tab in draft.tabs), default=-1) + 1
    tab = DashboardTab(
      id=str(uuid.uuid4()),
      title=title,
      position=position,
      start_date=start,
      end_date=end,
    )
    draft.tabs = [*draft.tabs, tab]
    logger.info(f"Added tab \"{title}\" ({tab.id}) to the draft of dashboard {self.dashboard_id}.")
    self.emitter.emit(DashboardEventType.StructureChanged, tab_id=tab.id)
    self.schedule_autosave()
    return tab

  def rename_tab(self, tab_id: str, title: str)->DashboardTab:
    self.assert_editable("rename a tab")
    tab = self.get_tab(tab_id)
    title = validate_title(title, subject="Tab title")
    if title == tab.title:
      return tab
    renamed = tab.model_copy(update=dict(title=title))
    self.commit_tab(renamed)
    return renamed

  def delete_tab(self, tab_id: str):
    draft = self.assert_editable("delete a tab")
    tab = self.get_tab(tab_id)
    draft.tabs = [existing for existing in draft.tabs if existing.id != tab_id]
    self.tab_errors.pop(tab_id, None)
    self.access.invalidate_tab(self.dashboard_id, tab)
    logger.info(f"Deleted tab \"{tab.title}\" ({tab_id}) from the draft of dashboard {self.dashboard_id}.")
    self.emitter.emit(DashboardEventType.StructureChanged, tab_id=tab_id)
    if self.selected_tab_id == tab_id:
      self.selected_tab_id = draft.tabs[0].id if len(draft.tabs) > 0 else None
      self.emitter.emit(DashboardEventType.TabSelected, tab_id=self.selected_tab_id)
      if self.selected_tab_id is not None:
        self._schedule_tab_load()
    self.schedule_autosave()

  def update_tab_dates(self, tab_id: str, start_date: DateLike, end_date: DateLike, *, whole_months: bool = False)->DashboardTab:
    self.assert_editable("change the date range of a tab")
    tab = self.get_tab(tab_id)
    if whole_months:
      start, end = validate_month_range(start_date, end_date)
    else:
      start, end = validate_date_range(start_date, end_date)
    if start == tab.start_date and end == tab.end_date:
      return tab
    updated = tab.model_copy(update=dict(start_date=start, end_date=end))
    self.access.invalidate_tab(self.dashboard_id, tab)
    self.commit_tab(updated)
    if self.selected_tab_id == tab_id:
      self._schedule_tab_load()
    return updated

  def rename_widget(self, tab_id: str, widget_id: str, title: str):
    self.assert_editable("rename a widget")
    tab = self.get_tab(tab_id)
    widget = tab.get_widget(widget_id)
    if widget is None:
      raise DashboardNotFoundError(resource="widget", id=widget_id)
    title = validate_title(title, subject="Block title")
    if title == widget.title:
      return widget
    renamed = widget.model_copy(update=dict(title=title))
    self.commit_tab(tab.model_copy(update=dict(
      widgets=[renamed if existing.id == widget_id else existing for existing in tab.widgets]
    )))
    return renamed

  # endregion

  # region Tab contents

  def select_tab(self, tab_id: str):
    """Selects a tab of the current version. Its widgets are fetched after a short pause so that quickly flicking through tabs only fetches the last one."""
    tab = self.get_tab(tab_id)
    self.selected_tab_id = tab.id
    self.emitter.emit(DashboardEventType.TabSelected, tab_id=tab.id)
    if self.access.is_tab_loaded(self.dashboard_id, tab.id):
      self.scheduler.cancel(self.tab_switch_key)
      self.session.clear_debounce()
      return
    self._schedule_tab_load()

  def _schedule_tab_load(self):
    self.scheduler.schedule(self._load_selected_tab, self.config.data_access.tab_switch_delay, self.tab_switch_key)
    self.session.set_debounce(self.tab_switch_key)

  async def _load_selected_tab(self):
    self.session.clear_debounce()
    tab_id = self.selected_tab_id
    if tab_id is None:
      return
    try:
      await self.load_tab(tab_id)
    except Exception as e:
      logger.error(f"Failed to load tab {tab_id} of dashboard {self.dashboard_id}: {e}")
      message = e.to_api().message if isinstance(e, ApiErrorAdaptableException) else str(e)
      self.emitter.notify(NotificationLevel.Error, message)

  async def load_tab(self, tab_id: str, *, force: bool = False)->dict[str, WidgetOutput]:
    version = self.current_version()
    tab = self.get_tab(tab_id)
    if not force and self.access.is_tab_loaded(self.dashboard_id, tab_id):
      return {widget.id: self.access.widget_outputs[widget.id] for widget in tab.widgets if widget.id in self.access.widget_outputs}

    generation = self.generation
    key = CacheKeys.TabWidgets(self.dashboard_id, tab_id, self.current.value)
    is_owner = self.session.track(key)
    try:
      outputs = await self.access.fetch_tab_widgets(self.dashboard_id, tab, version=self.current.value)
    except (TransientFetchError, BackendRejectedError) as e:
      if generation == self.generation:
        self.tab_errors[tab_id] = e.to_api().message
      raise
    finally:
      if is_owner:
        self.session.release(key)

    if generation != self.generation:
      # The version changed while the widgets were running. The outputs stay in the shared output map,
      # but the tab of the new version still has to be fetched on its own.
      logger.debug(f"Discarded the outputs of tab {tab_id} of dashboard {self.dashboard_id} since the version changed while they were loading.")
      return outputs

    self.tab_errors.pop(tab_id, None)
    self.access.mark_tab_loaded(self.dashboard_id, tab_id)
    # The tab may have been edited while its widgets were running. Published snapshots are never written to;
    # their outputs are only kept in the shared output map.
    latest = version.get_tab(tab_id) if version is not None else None
    if latest is not None and version is not None and version.kind == DashboardVersionKind.Draft:
      widgets = [
        widget.model_copy(update=dict(output=outputs[widget.id].output)) if widget.id in outputs else widget
        for widget in latest.widgets
      ]
      refreshed = latest.model_copy(update=dict(widgets=widgets, last_refreshed_at=self.now()))
      version.tabs = [refreshed if existing.id == tab_id else existing for existing in version.tabs]
    self.emitter.emit(DashboardEventType.TabLoaded, tab_id=tab_id, failed=[output.widget_id for output in outputs.values() if output.error is not None])
    return outputs

  async def refresh_tab(self, tab_id: str)->dict[str, WidgetOutput]:
    tab = self.get_tab(tab_id)
    self.access.invalidate_tab(self.dashboard_id, tab)
    return await self.load_tab(tab_id, force=True)

  def is_tab_loading(self, tab_id: str)->bool:
    return self.session.is_pending(CacheKeys.TabWidgets(self.dashboard_id, tab_id, self.current.value))

  # endregion

  async def teardown(self):
    """Cancels every scheduled task of this dashboard. A pending autosave is flushed instead of dropped."""
    self.scheduler.cancel(self.tab_switch_key)
    self.session.clear_debounce()
    if self.scheduler.cancel(self.autosave_key):
      await self._autosave()
    self.access.reset_tabs(self.dashboard_id)

__all__ = [
  "VersionCapabilities",
  "capabilities_on_initialize",
  "VersionManager",
]
