from contextlib import contextmanager
import datetime
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from modules.logger import ProvisionedLogger

logger = ProvisionedLogger().provision("TaskScheduler")
# Register apscheduler logger
ProvisionedLogger().provision("apscheduler")

ScheduledTask = Callable[[], Awaitable[Any]]

class TaskScheduler:
  """Delayed side effects keyed by name. Scheduling a task under a key that is already waiting replaces the waiting task."""
  scheduler: AsyncIOScheduler

  def __init__(self):
    self.scheduler = AsyncIOScheduler(
      jobstores=dict(
        default=MemoryJobStore(),
      ),
    )

  def schedule(self, task: ScheduledTask, delay: float, key: str):
    run_date = datetime.datetime.now() + datetime.timedelta(seconds=delay)
    self.scheduler.add_job(
      task,
      trigger="date",
      run_date=run_date,
      id=key,
      replace_existing=True,
      # Late jobs should still run rather than be dropped.
      misfire_grace_time=None,
      max_instances=1,
    )
    logger.debug(f"Scheduled {key} to run in {delay}s")

  def cancel(self, key: str)->bool:
    try:
      self.scheduler.remove_job(key)
    except JobLookupError:
      return False
    logger.debug(f"Cancelled {key}")
    return True

  def cancel_prefix(self, prefix: str):
    for job in self.scheduler.get_jobs():
      if job.id.startswith(prefix):
        self.cancel(job.id)

  def is_scheduled(self, key: str)->bool:
    return self.scheduler.get_job(key) is not None

  def start(self):
    if not self.scheduler.running:
      self.scheduler.start()

  def shutdown(self):
    self.scheduler.remove_all_jobs()
    if self.scheduler.running:
      self.scheduler.shutdown(wait=False)

  @contextmanager
  def run(self):
    self.start()
    try:
      yield self
    finally:
      logger.info("Shutting down the task scheduler...")
      self.shutdown()

__all__ = [
  "ScheduledTask",
  "TaskScheduler",
]
