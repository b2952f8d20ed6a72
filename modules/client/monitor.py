from collections import deque
import time
from typing import Awaitable, Callable, Deque, Optional, TypeVar

from modules.baseclass.pydantic_ext import CamelCaseModel

from modules.logger import ProvisionedLogger, TimeLogger

from .keys import CacheKeys

T = TypeVar("T")

logger = ProvisionedLogger().provision("ApiMonitor")

class ApiCallLog(CamelCaseModel):
  # Unix timestamp in seconds
  timestamp: float
  key: str
  duration_ms: float
  success: bool
  error: Optional[str] = None

class DuplicateCallReport(CamelCaseModel):
  key: str
  dashboard_id: str
  count: int
  # Milliseconds between the first and the last call
  time_span_ms: float

class ApiCallStats(CamelCaseModel):
  total_calls: int
  successful_calls: int
  failed_calls: int
  average_duration_ms: float
  calls_by_key: dict[str, int]
  recent_calls: list[ApiCallLog]

class ApiMonitor:
  """Records every call that actually reaches the backend.

  Repeated calls for the same key within the observed window usually mean that something is refetching in a loop.
  Failures inside the monitor itself are logged and dropped; they never reach the caller of the monitored request.
  """
  max_logs: int
  __logs: Deque[ApiCallLog]

  def __init__(self, max_logs: int = 100):
    self.max_logs = max_logs
    self.__logs = deque(maxlen=max_logs)

  @property
  def logs(self)->list[ApiCallLog]:
    return list(self.__logs)

  def log_call(self, key: str, *, duration_ms: float, success: bool, error: Optional[str] = None):
    try:
      entry = ApiCallLog(
        timestamp=time.time(),
        key=key,
        duration_ms=duration_ms,
        success=success,
        error=error,
      )
      self.__logs.append(entry)
      status = "OK" if success else f"FAILED ({error})"
      logger.debug(f"API call {key} - {duration_ms:.1f} ms - {status}")
    except Exception as e:
      logger.warning(f"Failed to record the API call {key}: {e}")

  async def track(self, key: str, call: Callable[[], Awaitable[T]])->T:
    timer = TimeLogger(logger, f"API call {key}", level=None)
    try:
      with timer:
        result = await call()
    except Exception as e:
      self.log_call(key, duration_ms=timer.elapsed_ms, success=False, error=str(e))
      raise
    self.log_call(key, duration_ms=timer.elapsed_ms, success=True)
    return result

  def get_call_stats(self)->ApiCallStats:
    logs = self.logs
    total_calls = len(logs)
    successful_calls = sum(1 for log in logs if log.success)
    calls_by_key: dict[str, int] = {}
    for log in logs:
      calls_by_key[log.key] = calls_by_key.get(log.key, 0) + 1
    return ApiCallStats(
      total_calls=total_calls,
      successful_calls=successful_calls,
      failed_calls=total_calls - successful_calls,
      average_duration_ms=sum(log.duration_ms for log in logs) / total_calls if total_calls > 0 else 0,
      calls_by_key=calls_by_key,
      recent_calls=logs[-10:],
    )

  def get_duplicate_calls(self, *, window: Optional[float] = None)->list[DuplicateCallReport]:
    """Keys that were called more than once. ``window`` (seconds) limits the report to recent calls."""
    logs = self.logs
    if window is not None:
      threshold = time.time() - window
      logs = [log for log in logs if log.timestamp >= threshold]

    groups: dict[str, list[ApiCallLog]] = {}
    for log in logs:
      groups.setdefault(log.key, []).append(log)

    reports = [
      DuplicateCallReport(
        key=key,
        dashboard_id=CacheKeys.dashboard_of(key),
        count=len(calls),
        time_span_ms=(calls[-1].timestamp - calls[0].timestamp) * 1000,
      )
      for key, calls in groups.items()
      if len(calls) > 1
    ]
    reports.sort(key=lambda report: report.count, reverse=True)
    return reports

  def debug(self):
    try:
      stats = self.get_call_stats()
      duplicates = self.get_duplicate_calls()
      logger.info(f"{stats.total_calls} API calls ({stats.failed_calls} failed), averaging {stats.average_duration_ms:.1f} ms.")
      if len(duplicates) > 0:
        summary = ', '.join(f"{report.key} x{report.count}" for report in duplicates)
        logger.warning(f"Duplicate API calls detected: {summary}")
    except Exception as e:
      logger.warning(f"Failed to summarize API calls: {e}")

  def clear(self):
    self.__logs.clear()

__all__ = [
  "ApiCallLog",
  "ApiCallStats",
  "DuplicateCallReport",
  "ApiMonitor",
]
