from typing import Iterable, Mapping, Optional
import uuid

from modules.baseclass.pydantic_ext import CamelCaseModel
from modules.logger import ProvisionedLogger

from .events import DashboardEventType
from .exceptions import DashboardNotFoundError, DashboardValidationError, TemplateNotFoundError
from .layout import (
  InteractionState, apply_layout_change, clamp_to_minimums, compute_canvas_height,
  default_size_for, place_new_item
)
from .model import DashboardItem, DashboardWidget, WidgetOutputType, WidgetPosition
from .version import VersionManager

logger = ProvisionedLogger().provision("PlacementEngine")

class WidgetTemplate(CamelCaseModel):
  """A component that can be dragged onto the grid."""
  id: str
  title: str
  ref_id: str
  ref_version: Optional[str] = None
  ref_type: str
  output_type: WidgetOutputType

class PlacementEngine:
  """Keeps the grid of each tab collision-free. Every mutation goes through the version manager, so it is only
  possible on the draft."""
  def __init__(self, versions: VersionManager):
    self.versions = versions
    self.templates: dict[str, WidgetTemplate] = {}

  @property
  def layout(self):
    return self.versions.config.layout

  def register_templates(self, templates: Iterable[WidgetTemplate]):
    for template in templates:
      self.templates[template.id] = template
    logger.debug(f"Registered templates for dashboard {self.versions.dashboard_id}: {list(self.templates.keys())}")

  def drop_widget(
    self, tab_id: str, template_id: str, *,
    x: int, y: int, w: Optional[int] = None, h: Optional[int] = None,
  )->DashboardItem:
    """Creates a widget from a template at the drop position, or the nearest free spot below it."""
    self.versions.assert_editable("add a widget")
    tab = self.versions.get_tab(tab_id)
    template = self.templates.get(template_id, None)
    if template is None:
      raise TemplateNotFoundError(resource="component", id=template_id)
    if x < 0 or y < 0 or (w is not None and w <= 0) or (h is not None and h <= 0):
      raise DashboardValidationError(f"Invalid drop position ({x}, {y}). Widgets must be dropped inside the grid.", field="position")

    default_w, default_h = default_size_for(template.output_type, self.layout.granularity)
    candidate = clamp_to_minimums(
      WidgetPosition(x=x, y=y, w=w if w is not None else default_w, h=h if h is not None else default_h),
      template.output_type,
      self.layout.granularity,
    )
    position = place_new_item(
      candidate,
      [item.position for item in tab.items],
      self.layout.columns,
      probe_attempts=self.layout.probe_attempts,
      probe_max_y=self.layout.probe_max_y,
    )

    widget_id = str(uuid.uuid4())
    widget = DashboardWidget(
      id=widget_id,
      title=template.title,
      ref_id=template.ref_id,
      ref_version=template.ref_version,
      ref_type=template.ref_type,
      output_type=template.output_type,
    )
    item = DashboardItem(id=widget_id, widget_id=widget_id, position=position)
    updated = tab.model_copy(update=dict(
      widgets=[*tab.widgets, widget],
      items=[*tab.items, item],
    ))
    self.versions.commit_tab(updated)
    logger.info(f"Dropped {template.output_type} widget \"{template.title}\" at ({position.x}, {position.y}) in tab {tab_id}. Requested ({x}, {y}).")

    # Only the new widget has to run; the others are still cached.
    self.versions.access.invalidate_tab(self.versions.dashboard_id, tab, executions=False)
    if self.versions.selected_tab_id == tab_id:
      self.versions.select_tab(tab_id)
    return item

  def apply_layout_change(self, tab_id: str, changes: Mapping[str, WidgetPosition])->bool:
    """Commits the positions reported by the grid. Returns False when nothing actually moved; no save is scheduled in that case."""
    tab = self.versions.get_tab(tab_id)
    items = apply_layout_change(
      tab.items,
      changes,
      tab.widget_types(),
      max_cols=self.layout.columns,
      granularity=self.layout.granularity,
    )
    if items is None:
      return False
    self.versions.assert_editable("move or resize widgets")
    self.versions.commit_tab(tab.model_copy(update=dict(items=items)), event=DashboardEventType.LayoutChanged)
    return True

  def delete_item(self, tab_id: str, item_id: str):
    self.versions.assert_editable("delete a widget")
    tab = self.versions.get_tab(tab_id)
    item = tab.get_item(item_id)
    if item is None:
      raise DashboardNotFoundError(resource="widget", id=item_id)
    items = [existing for existing in tab.items if existing.id != item_id]
    # The definition goes with its last placement. The component behind it is left alone.
    still_placed = any(existing.widget_id == item.widget_id for existing in items)
    widgets = tab.widgets if still_placed else [widget for widget in tab.widgets if widget.id != item.widget_id]
    self.versions.commit_tab(tab.model_copy(update=dict(items=items, widgets=widgets)))
    logger.info(f"Deleted widget {item_id} from tab {tab_id}.")

  def canvas_height(self, tab_id: str, interaction: InteractionState, *, viewport_height: Optional[int] = None)->int:
    tab = self.versions.get_tab(tab_id)
    return compute_canvas_height(tab.items, interaction, self.layout, viewport_height=viewport_height)

__all__ = [
  "WidgetTemplate",
  "PlacementEngine",
]
