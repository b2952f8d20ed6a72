import logging
import time
from typing import Optional, Union

from .provisioner import ProvisionedLogger

AnyLogger = Union[logging.Logger, logging.LoggerAdapter]

class TimeLogger:
  """Measures the wrapped block and logs the outcome at ``level``. With ``level=None`` nothing is logged; the
  measurement is still available as ``elapsed_ms`` after the block exits (or while it is running)."""
  title: str
  logger: AnyLogger
  level: Optional[int]
  report_start: bool
  start_time: Optional[float]
  end_time: Optional[float]

  def __init__(self, logger: Union[str, AnyLogger], title: str, *, level: Optional[int] = logging.INFO, report_start: bool = False):
    if isinstance(logger, str):
      self.logger = ProvisionedLogger().provision(logger)
    else:
      self.logger = logger
    self.title = title
    self.level = level
    self.report_start = report_start
    self.start_time = None
    self.end_time = None

  @property
  def elapsed_ms(self)->float:
    if self.start_time is None:
      return 0
    end_time = self.end_time if self.end_time is not None else time.perf_counter()
    return (end_time - self.start_time) * 1000

  def __enter__(self):
    if self.report_start and self.level is not None:
      self.logger.log(self.level, f"{self.title} - START")
    self.start_time = time.perf_counter()
    self.end_time = None
    return self

  def __exit__(self, exc_type, *args):
    self.end_time = time.perf_counter()
    if self.level is None:
      return
    elapsed = self.elapsed_ms
    duration = f"{elapsed:.1f} ms" if elapsed < 1000 else f"{elapsed / 1000:.2f} s"
    status = "FAILED" if exc_type is not None else "DONE"
    self.logger.log(self.level, f"{self.title} - {status} in {duration}")

__all__ = [
  "TimeLogger"
]
