from contextlib import contextmanager
import datetime
from types import SimpleNamespace
from typing import Any, Iterable, Mapping, Optional

import pydantic

from modules.api import ApiError, ApiErrorAdaptableException
from modules.baseclass.pydantic_ext import CamelCaseModel
from modules.client import DashboardDataAccess, WidgetOutput
from modules.config import EditorConfig
from modules.logger import ProvisionedLogger
from modules.scheduler import TaskScheduler

from .events import DashboardEventEmitter, NotificationLevel
from .layout import InteractionState
from .model import DashboardItem, DashboardTab, DashboardVersionKind, DashboardWidget, WidgetPosition
from .placement import PlacementEngine, WidgetTemplate
from .renderer import route_output
from .validation import DateLike
from .version import VersionManager

# Notifications of successful actions. The HTTP layer returns the same message to the client.
class EditorMessages(SimpleNamespace):
  SwitchedToDraft = "Switched to the draft version."
  SwitchedToPublished = "Switched to the published version."
  DraftSaved = "Draft saved successfully."
  Published = "Dashboard published successfully."
  TabRefreshed = "Tab refreshed successfully."
  TabAdded = "Tab added successfully."
  TabRenamed = "Tab renamed successfully."
  DatesUpdated = "Date range updated successfully."
  TabDeleted = "Tab deleted successfully."
  WidgetAdded = "Widget added successfully."
  WidgetRenamed = "Block title updated successfully."
  WidgetDeleted = "Widget deleted successfully."

class RenderedWidgetOutput(CamelCaseModel):
  widget_id: str
  renderer: Optional[str]
  output_type: Optional[str]
  output: Optional[Any] = None
  error: Optional[str] = None

class DashboardEditorSnapshot(CamelCaseModel):
  dashboard_id: str
  title: Optional[str] = None
  current: DashboardVersionKind
  editable: bool
  can_edit: bool
  can_publish: bool
  has_draft: bool
  has_published: bool
  initializing: bool
  # Set when the structure could not be loaded. Nothing else can be shown until a retry succeeds.
  error: Optional[str] = None
  selected_tab_id: Optional[str] = None
  tabs: list[DashboardTab] = pydantic.Field(default_factory=list)
  loading_tabs: list[str] = pydantic.Field(default_factory=list)
  tab_errors: dict[str, str] = pydantic.Field(default_factory=dict)
  outputs: dict[str, RenderedWidgetOutput] = pydantic.Field(default_factory=dict)
  updated_at: Optional[datetime.datetime] = None

class DashboardEditor:
  """Every action the user can take on one dashboard.

  Actions report their outcome through a notification event: failures are reported and then re-raised so that the
  HTTP layer can turn them into an error response, successes are reported with the message returned to the client.
  """
  def __init__(self, dashboard_id: str, *, access: DashboardDataAccess, scheduler: TaskScheduler, config: EditorConfig):
    self.dashboard_id = dashboard_id
    self.logger = ProvisionedLogger().provision_for_dashboard("DashboardEditor", dashboard_id)
    self.emitter = DashboardEventEmitter(dashboard_id)
    self.versions = VersionManager(
      dashboard_id,
      access=access,
      scheduler=scheduler,
      emitter=self.emitter,
      config=config,
    )
    self.placement = PlacementEngine(self.versions)

  @contextmanager
  def action(self, name: str, success_message: Optional[str] = None):
    try:
      yield
    except Exception as e:
      if isinstance(e, ApiErrorAdaptableException):
        message = e.to_api().message
      elif isinstance(e, ApiError):
        message = e.message
      else:
        message = f"Failed to {name}. Please try again."
      self.logger.error(f"Failed to {name}: {e}")
      self.emitter.notify(NotificationLevel.Error, message)
      raise
    if success_message is not None:
      self.emitter.notify(NotificationLevel.Success, success_message)

  # region Versions

  async def open(self):
    if self.versions.dashboard is not None:
      return
    with self.action("load the dashboard"):
      await self.versions.initialize()

  async def retry(self):
    with self.action("reload the dashboard"):
      await self.versions.retry()

  def switch_to_draft(self):
    with self.action("switch to the draft", EditorMessages.SwitchedToDraft):
      self.versions.switch_to_draft()

  def switch_to_published(self):
    with self.action("switch to the published version", EditorMessages.SwitchedToPublished):
      self.versions.switch_to_published()

  async def save_draft(self):
    with self.action("save the draft", EditorMessages.DraftSaved):
      await self.versions.save_draft()

  async def publish_draft(self):
    with self.action("publish the draft", EditorMessages.Published):
      await self.versions.publish_draft()

  # endregion

  # region Tabs

  def select_tab(self, tab_id: str):
    with self.action("select the tab"):
      self.versions.select_tab(tab_id)

  async def refresh_tab(self, tab_id: str)->dict[str, WidgetOutput]:
    with self.action("refresh the tab", EditorMessages.TabRefreshed):
      return await self.versions.refresh_tab(tab_id)

  def add_tab(self, title: str, start_date: DateLike, end_date: DateLike, *, whole_months: bool = False)->DashboardTab:
    with self.action("add the tab", EditorMessages.TabAdded):
      return self.versions.add_tab(title, start_date, end_date, whole_months=whole_months)

  def rename_tab(self, tab_id: str, title: str)->DashboardTab:
    with self.action("rename the tab", EditorMessages.TabRenamed):
      return self.versions.rename_tab(tab_id, title)

  def update_tab_dates(self, tab_id: str, start_date: DateLike, end_date: DateLike, *, whole_months: bool = False)->DashboardTab:
    with self.action("change the date range", EditorMessages.DatesUpdated):
      return self.versions.update_tab_dates(tab_id, start_date, end_date, whole_months=whole_months)

  def delete_tab(self, tab_id: str):
    with self.action("delete the tab", EditorMessages.TabDeleted):
      self.versions.delete_tab(tab_id)

  # endregion

  # region Widgets

  def register_templates(self, templates: Iterable[WidgetTemplate]):
    self.placement.register_templates(templates)

  def drop_widget(self, tab_id: str, template_id: str, *, x: int, y: int, w: Optional[int] = None, h: Optional[int] = None)->DashboardItem:
    with self.action("add the widget", EditorMessages.WidgetAdded):
      return self.placement.drop_widget(tab_id, template_id, x=x, y=y, w=w, h=h)

  def apply_layout_change(self, tab_id: str, changes: Mapping[str, WidgetPosition])->bool:
    with self.action("update the layout"):
      return self.placement.apply_layout_change(tab_id, changes)

  def canvas_height(self, tab_id: str, interaction: InteractionState, *, viewport_height: Optional[int] = None)->int:
    return self.placement.canvas_height(tab_id, interaction, viewport_height=viewport_height)

  def rename_widget(self, tab_id: str, widget_id: str, title: str)->DashboardWidget:
    with self.action("rename the widget", EditorMessages.WidgetRenamed):
      return self.versions.rename_widget(tab_id, widget_id, title)

  def delete_widget(self, tab_id: str, item_id: str):
    with self.action("delete the widget", EditorMessages.WidgetDeleted):
      self.placement.delete_item(tab_id, item_id)

  # endregion

  def snapshot(self)->DashboardEditorSnapshot:
    versions = self.versions
    capabilities = versions.capabilities
    dashboard = versions.dashboard
    if dashboard is None:
      return DashboardEditorSnapshot(
        dashboard_id=self.dashboard_id,
        current=capabilities.current,
        editable=capabilities.editable,
        can_edit=capabilities.can_edit,
        can_publish=capabilities.can_publish,
        has_draft=False,
        has_published=False,
        initializing=versions.session.initializing,
        error=versions.error,
      )

    version = dashboard.version(versions.current)
    tabs = version.tabs if version is not None else []
    outputs: dict[str, RenderedWidgetOutput] = {}
    selected = version.get_tab(versions.selected_tab_id) if version is not None and versions.selected_tab_id is not None else None
    if selected is not None:
      for widget in selected.widgets:
        fetched = versions.access.widget_outputs.get(widget.id, None)
        output_type = fetched.output_type if fetched is not None and fetched.output_type is not None else widget.output_type
        outputs[widget.id] = RenderedWidgetOutput(
          widget_id=widget.id,
          renderer=route_output(output_type),
          output_type=output_type,
          output=fetched.output if fetched is not None else widget.output,
          error=fetched.error if fetched is not None else None,
        )

    return DashboardEditorSnapshot(
      dashboard_id=self.dashboard_id,
      title=dashboard.title,
      current=capabilities.current,
      editable=capabilities.editable,
      can_edit=capabilities.can_edit,
      can_publish=capabilities.can_publish,
      has_draft=dashboard.draft is not None,
      has_published=dashboard.published is not None,
      initializing=versions.session.initializing,
      error=versions.error,
      selected_tab_id=versions.selected_tab_id,
      tabs=tabs,
      loading_tabs=[tab.id for tab in tabs if versions.is_tab_loading(tab.id)],
      tab_errors=dict(versions.tab_errors),
      outputs=outputs,
      updated_at=version.updated_at if version is not None else None,
    )

  async def close(self):
    await self.versions.teardown()
    self.emitter.clear()

__all__ = [
  "EditorMessages",
  "RenderedWidgetOutput",
  "DashboardEditorSnapshot",
  "DashboardEditor",
]
