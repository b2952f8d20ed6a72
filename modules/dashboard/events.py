from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from modules.logger import ProvisionedLogger

class DashboardEventType(str, Enum):
  VersionChanged = "version-changed"
  StructureChanged = "structure-changed"
  LayoutChanged = "layout-changed"
  TabSelected = "tab-selected"
  TabLoaded = "tab-loaded"
  Saved = "saved"
  Notification = "notification"

class NotificationLevel(str, Enum):
  Success = "success"
  Info = "info"
  Error = "error"

@dataclass(frozen=True)
class DashboardEvent:
  type: DashboardEventType
  dashboard_id: str
  payload: dict[str, Any] = field(default_factory=dict)

DashboardEventHandler = Callable[[DashboardEvent], None]

class DashboardEventEmitter:
  """Change events for the rendering layer. Handlers subscribe to one event type, or to everything with ``None``."""
  dashboard_id: str
  __handlers: dict[Optional[DashboardEventType], list[DashboardEventHandler]]

  def __init__(self, dashboard_id: str):
    self.dashboard_id = dashboard_id
    self.logger = ProvisionedLogger().provision_for_dashboard("DashboardEvents", dashboard_id)
    self.__handlers = {}

  def subscribe(self, event_type: Optional[DashboardEventType], handler: DashboardEventHandler)->Callable[[], None]:
    self.__handlers.setdefault(event_type, []).append(handler)
    def unsubscribe():
      handlers = self.__handlers.get(event_type, [])
      if handler in handlers:
        handlers.remove(handler)
    return unsubscribe

  def emit(self, event_type: DashboardEventType, **payload: Any):
    event = DashboardEvent(type=event_type, dashboard_id=self.dashboard_id, payload=payload)
    handlers = [*self.__handlers.get(event_type, []), *self.__handlers.get(None, [])]
    for handler in handlers:
      try:
        handler(event)
      except Exception as e:
        # A broken subscriber must not undo a state change that has already been committed.
        self.logger.error(f"Handler {handler} failed while handling {event_type.value}: {e}")

  def notify(self, level: NotificationLevel, message: str):
    self.logger.debug(f"NOTIFY ({level.value}) {message}")
    self.emit(DashboardEventType.Notification, level=level.value, message=message)

  def clear(self):
    self.__handlers.clear()

__all__ = [
  "DashboardEventType",
  "NotificationLevel",
  "DashboardEvent",
  "DashboardEventEmitter",
]
