import datetime
from typing import Any, Optional

import pydantic

from modules.baseclass.pydantic_ext import CamelCaseModel
from modules.dashboard.model import WidgetOutputType, WidgetPosition

# Records exchanged with the dashboard backend.
class WidgetRecord(CamelCaseModel):
  id: str
  title: str
  position: WidgetPosition
  ref_id: str
  ref_version: Optional[str] = None
  ref_type: str
  output_type: WidgetOutputType
  output: Optional[Any] = None

class TabRecord(CamelCaseModel):
  id: str
  title: str
  position: int = 0
  start_date: datetime.date
  end_date: datetime.date
  last_refreshed_at: Optional[datetime.datetime] = None
  widgets: list[WidgetRecord] = pydantic.Field(default_factory=list)

class VersionRecord(CamelCaseModel):
  id: str
  dashboard_id: Optional[str] = None
  tabs: list[TabRecord] = pydantic.Field(default_factory=list)
  updated_at: Optional[datetime.datetime] = None

class DashboardStructureRecord(CamelCaseModel):
  id: str
  title: str
  published_version: Optional[VersionRecord] = None
  draft_version: Optional[VersionRecord] = None

class SaveDraftRequest(CamelCaseModel):
  # The whole tab/widget set of the draft is persisted, not a diff.
  id: str
  dashboard_id: str
  tabs: list[TabRecord]

class PublishDraftRequest(CamelCaseModel):
  dashboard_id: str

class ComponentExecuteRequest(CamelCaseModel):
  ref_id: str
  ref_version: str
  ref_type: str
  start_date: datetime.date
  end_date: datetime.date
  company_id: Optional[str] = None

class ComponentExecuteResponse(CamelCaseModel):
  output: Optional[Any] = None
  output_type: Optional[WidgetOutputType] = None
  error: Optional[str] = None
  execution_time_ms: Optional[float] = None

__all__ = [
  "WidgetRecord",
  "TabRecord",
  "VersionRecord",
  "DashboardStructureRecord",
  "SaveDraftRequest",
  "PublishDraftRequest",
  "ComponentExecuteRequest",
  "ComponentExecuteResponse",
]
