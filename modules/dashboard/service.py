from typing import Optional

from modules.client import ApiMonitor, DashboardBackend, DashboardDataAccess, HttpDashboardBackend
from modules.config import EditorConfig
from modules.logger import ProvisionedLogger
from modules.scheduler import TaskScheduler

from .editor import DashboardEditor

logger = ProvisionedLogger().provision("DashboardEditorService")

class DashboardEditorService:
  """Constructed once when the application starts and handed to every route.

  Holds the shared data access layer (one cache, one in-flight table and one monitor per process) and one editor
  per opened dashboard.
  """
  def __init__(self, config: EditorConfig, *, access: DashboardDataAccess, scheduler: TaskScheduler):
    self.config = config
    self.access = access
    self.scheduler = scheduler
    self.editors: dict[str, DashboardEditor] = {}

  @staticmethod
  def create(config: EditorConfig, *, backend: Optional[DashboardBackend] = None, scheduler: Optional[TaskScheduler] = None)->"DashboardEditorService":
    if backend is None:
      backend = HttpDashboardBackend(config.backend)
    access = DashboardDataAccess(
      backend,
      config.data_access,
      monitor=ApiMonitor(max_logs=config.data_access.monitor_max_logs),
      company_id=config.backend.company_id,
    )
    return DashboardEditorService(
      config,
      access=access,
      scheduler=scheduler if scheduler is not None else TaskScheduler(),
    )

  @property
  def monitor(self)->ApiMonitor:
    return self.access.monitor

  def get(self, dashboard_id: str)->DashboardEditor:
    editor = self.editors.get(dashboard_id, None)
    if editor is None:
      logger.info(f"Starting an editor session for dashboard {dashboard_id}")
      editor = DashboardEditor(
        dashboard_id,
        access=self.access,
        scheduler=self.scheduler,
        config=self.config,
      )
      self.editors[dashboard_id] = editor
    return editor

  def find(self, dashboard_id: str)->Optional[DashboardEditor]:
    return self.editors.get(dashboard_id, None)

  async def close(self, dashboard_id: str)->bool:
    editor = self.editors.pop(dashboard_id, None)
    if editor is None:
      return False
    await editor.close()
    self.access.invalidate(dashboard_id)
    logger.info(f"Closed the editor session of dashboard {dashboard_id}")
    return True

  def start(self):
    self.scheduler.start()

  async def shutdown(self):
    for dashboard_id in list(self.editors.keys()):
      try:
        await self.close(dashboard_id)
      except Exception as e:
        logger.error(f"Failed to close the editor session of dashboard {dashboard_id}: {e}")
    self.monitor.debug()
    self.scheduler.shutdown()
    await self.access.aclose()

__all__ = [
  "DashboardEditorService",
]
