from typing import Optional

import pydantic

from modules.baseclass.pydantic_ext import CamelCaseModel
from modules.dashboard.layout import InteractionMode
from modules.dashboard.placement import WidgetTemplate

# Schema
class SelectTabSchema(CamelCaseModel):
  tab_id: str

class CreateTabSchema(CamelCaseModel):
  title: str
  # Validated by the editor so that the user sees a readable message.
  start_date: str
  end_date: str
  whole_months: bool = False

class RenameSchema(CamelCaseModel):
  title: str

class UpdateTabDatesSchema(CamelCaseModel):
  start_date: str
  end_date: str
  whole_months: bool = False

class DropWidgetSchema(CamelCaseModel):
  template_id: str
  x: int
  y: int
  w: Optional[int] = None
  h: Optional[int] = None

class GridItemSchema(CamelCaseModel):
  id: str
  x: int = pydantic.Field(ge=0)
  y: int = pydantic.Field(ge=0)
  w: int = pydantic.Field(gt=0)
  h: int = pydantic.Field(gt=0)

class LayoutChangeSchema(CamelCaseModel):
  items: list[GridItemSchema]

class CanvasHeightSchema(CamelCaseModel):
  mode: InteractionMode = InteractionMode.Idle
  pending: list[GridItemSchema] = pydantic.Field(default_factory=list)
  pointer_y: Optional[int] = None
  viewport_height: Optional[int] = pydantic.Field(default=None, gt=0)

class RegisterTemplatesSchema(CamelCaseModel):
  templates: list[WidgetTemplate]

# Resource
class LayoutChangeResource(CamelCaseModel):
  changed: bool

class CanvasHeightResource(CamelCaseModel):
  height: int
