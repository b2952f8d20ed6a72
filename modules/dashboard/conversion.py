from typing import Optional

from modules.client.schemas import DashboardStructureRecord, SaveDraftRequest, TabRecord, VersionRecord, WidgetRecord
from modules.config import LayoutConfig

from .layout import clamp_to_minimums
from .model import Dashboard, DashboardItem, DashboardTab, DashboardVersion, DashboardVersionKind, DashboardWidget

# The backend stores a widget and its placement as one record; in memory they are kept apart
# so that the arrangement can change without touching the widget definition.

def tab_from_record(record: TabRecord, layout: LayoutConfig)->DashboardTab:
  widgets: list[DashboardWidget] = []
  items: list[DashboardItem] = []
  for widget_record in record.widgets:
    widgets.append(DashboardWidget(
      id=widget_record.id,
      title=widget_record.title,
      ref_id=widget_record.ref_id,
      ref_version=widget_record.ref_version,
      ref_type=widget_record.ref_type,
      output_type=widget_record.output_type,
      output=widget_record.output,
    ))
    items.append(DashboardItem(
      id=widget_record.id,
      widget_id=widget_record.id,
      position=clamp_to_minimums(widget_record.position, widget_record.output_type, layout.granularity),
    ))
  return DashboardTab(
    id=record.id,
    title=record.title,
    position=record.position,
    start_date=record.start_date,
    end_date=record.end_date,
    last_refreshed_at=record.last_refreshed_at,
    widgets=widgets,
    items=items,
  )

def tab_to_record(tab: DashboardTab)->TabRecord:
  widget_records: list[WidgetRecord] = []
  for item in tab.items:
    widget = tab.get_widget(item.widget_id)
    if widget is None:
      # Placement without a definition cannot be rendered nor persisted.
      continue
    widget_records.append(WidgetRecord(
      id=item.id,
      title=widget.title,
      position=item.position,
      ref_id=widget.ref_id,
      ref_version=widget.ref_version,
      ref_type=widget.ref_type,
      output_type=widget.output_type,
    ))
  return TabRecord(
    id=tab.id,
    title=tab.title,
    position=tab.position,
    start_date=tab.start_date,
    end_date=tab.end_date,
    last_refreshed_at=tab.last_refreshed_at,
    widgets=widget_records,
  )

def version_from_record(record: Optional[VersionRecord], kind: DashboardVersionKind, layout: LayoutConfig)->Optional[DashboardVersion]:
  if record is None:
    return None
  tabs = sorted((tab_from_record(tab, layout) for tab in record.tabs), key=lambda tab: tab.position)
  return DashboardVersion(
    id=record.id,
    kind=kind,
    tabs=tabs,
    updated_at=record.updated_at,
  )

def dashboard_from_record(record: DashboardStructureRecord, layout: LayoutConfig)->Dashboard:
  return Dashboard(
    id=record.id,
    title=record.title,
    draft=version_from_record(record.draft_version, DashboardVersionKind.Draft, layout),
    published=version_from_record(record.published_version, DashboardVersionKind.Published, layout),
  )

def save_draft_request(dashboard_id: str, draft: DashboardVersion)->SaveDraftRequest:
  return SaveDraftRequest(
    id=draft.id,
    dashboard_id=dashboard_id,
    tabs=[tab_to_record(tab) for tab in draft.tabs],
  )

__all__ = [
  "tab_from_record",
  "tab_to_record",
  "version_from_record",
  "dashboard_from_record",
  "save_draft_request",
]
