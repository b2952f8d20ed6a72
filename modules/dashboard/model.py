import datetime
from enum import Enum
from typing import Any, Optional

import pydantic

from modules.baseclass.pydantic_ext import CamelCaseModel

class WidgetOutputType(str, Enum):
  Graph = "GRAPH"
  Table = "TABLE"
  Kpi = "KPI"

class DashboardVersionKind(str, Enum):
  Draft = "draft"
  Published = "published"

class WidgetPosition(pydantic.BaseModel):
  """Rectangle on the grid, in grid units. Frozen so that layout computations can never mutate committed geometry."""
  model_config = pydantic.ConfigDict(frozen=True)
  x: int = pydantic.Field(ge=0)
  y: int = pydantic.Field(ge=0)
  w: int = pydantic.Field(gt=0)
  h: int = pydantic.Field(gt=0)
  min_w: int = pydantic.Field(default=1, gt=0, validation_alias=pydantic.AliasChoices("min_w", "minW"))
  min_h: int = pydantic.Field(default=1, gt=0, validation_alias=pydantic.AliasChoices("min_h", "minH"))

  @property
  def right(self)->int:
    return self.x + self.w

  @property
  def bottom(self)->int:
    return self.y + self.h

  def overlaps(self, other: "WidgetPosition")->bool:
    # Rectangles that only share an edge do not overlap.
    return (
      self.x < other.right and other.x < self.right and
      self.y < other.bottom and other.y < self.bottom
    )

  def same_geometry(self, other: "WidgetPosition")->bool:
    return (
      self.x == other.x and self.y == other.y and
      self.w == other.w and self.h == other.h
    )

  def moved_to(self, *, x: Optional[int] = None, y: Optional[int] = None)->"WidgetPosition":
    return self.model_copy(update=dict(
      x=self.x if x is None else x,
      y=self.y if y is None else y,
    ))

class DashboardWidget(CamelCaseModel):
  """Widget definition: what is shown. Where it is shown lives in ``DashboardItem``."""
  id: str
  title: str
  ref_id: str
  ref_version: Optional[str] = None
  ref_type: str
  output_type: WidgetOutputType
  # Cached output of the last component execution. Never inspected beyond its type tag.
  output: Optional[Any] = None

class DashboardItem(CamelCaseModel):
  """Placement of a widget on the grid of a tab."""
  model_config = pydantic.ConfigDict(frozen=True)
  id: str
  widget_id: str
  position: WidgetPosition

class DashboardTab(CamelCaseModel):
  id: str
  title: str
  position: int = 0
  start_date: datetime.date
  end_date: datetime.date
  last_refreshed_at: Optional[datetime.datetime] = None
  widgets: list[DashboardWidget] = pydantic.Field(default_factory=list)
  items: list[DashboardItem] = pydantic.Field(default_factory=list)

  def get_widget(self, widget_id: str)->Optional[DashboardWidget]:
    for widget in self.widgets:
      if widget.id == widget_id:
        return widget
    return None

  def get_item(self, item_id: str)->Optional[DashboardItem]:
    for item in self.items:
      if item.id == item_id:
        return item
    return None

  def widget_types(self)->dict[str, WidgetOutputType]:
    return {widget.id: WidgetOutputType(widget.output_type) for widget in self.widgets}

class DashboardVersion(CamelCaseModel):
  id: str
  kind: DashboardVersionKind
  tabs: list[DashboardTab] = pydantic.Field(default_factory=list)
  updated_at: Optional[datetime.datetime] = None

  def get_tab(self, tab_id: str)->Optional[DashboardTab]:
    for tab in self.tabs:
      if tab.id == tab_id:
        return tab
    return None

class Dashboard(CamelCaseModel):
  id: str
  title: str
  draft: Optional[DashboardVersion] = None
  published: Optional[DashboardVersion] = None

  def version(self, kind: DashboardVersionKind)->Optional[DashboardVersion]:
    if kind == DashboardVersionKind.Draft:
      return self.draft
    return self.published

__all__ = [
  "WidgetOutputType",
  "DashboardVersionKind",
  "WidgetPosition",
  "DashboardWidget",
  "DashboardItem",
  "DashboardTab",
  "DashboardVersion",
  "Dashboard",
]
