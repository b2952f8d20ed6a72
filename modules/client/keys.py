from types import SimpleNamespace
from typing import Optional

# Every key is "<resource>:<dashboard id>:..." so that entries can be invalidated per dashboard.
class CacheKeys(SimpleNamespace):
  StructurePrefix = "structure"
  TabWidgetsPrefix = "tabWidgets"
  ExecutionPrefix = "execution"
  SaveDraftPrefix = "saveDraft"
  PublishDraftPrefix = "publishDraft"

  @staticmethod
  def Structure(dashboard_id: str):
    return f"{CacheKeys.StructurePrefix}:{dashboard_id}"

  @staticmethod
  def TabWidgets(dashboard_id: str, tab_id: str, version: Optional[str] = None):
    key = f"{CacheKeys.TabWidgetsPrefix}:{dashboard_id}:{tab_id}"
    return key if version is None else f"{key}:{version}"

  @staticmethod
  def Execution(dashboard_id: str, ref_id: str, ref_version: str, ref_type: str, start_date: str, end_date: str):
    return f"{CacheKeys.ExecutionPrefix}:{dashboard_id}:{ref_id}:{ref_version}:{ref_type}:{start_date}:{end_date}"

  @staticmethod
  def SaveDraft(dashboard_id: str):
    return f"{CacheKeys.SaveDraftPrefix}:{dashboard_id}"

  @staticmethod
  def PublishDraft(dashboard_id: str):
    return f"{CacheKeys.PublishDraftPrefix}:{dashboard_id}"

  @staticmethod
  def dashboard_of(key: str)->str:
    parts = key.split(":")
    if len(parts) < 2:
      return ""
    return parts[1]

  @staticmethod
  def belongs_to(key: str, dashboard_id: str)->bool:
    return CacheKeys.dashboard_of(key) == dashboard_id

__all__ = [
  "CacheKeys"
]
