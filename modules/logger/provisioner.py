import logging
from typing import Any, MutableMapping, Optional

from modules.baseclass import Singleton
from modules.logger.handlers import LogFileSettings, LoggingBehaviorManager


class DashboardLoggerAdapter(logging.LoggerAdapter):
  """Prefixes every record with the dashboard it belongs to, so that interleaved editor sessions can be told apart."""
  def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
    return f"[{self.extra['dashboard_id']}] {msg}", kwargs


class ProvisionedLogger(metaclass=Singleton):
  """Hands out named loggers that all share one logging behavior.
  Calling ``configure`` re-applies the behavior to every logger provisioned so far."""
  __logger_names: set[str]
  __logging_behavior: LoggingBehaviorManager

  def __init__(self):
    super().__init__()
    self.__logger_names = set()
    self.__logging_behavior = LoggingBehaviorManager()

  def provision(self, name: str)->logging.Logger:
    logger = logging.getLogger(name)
    if name not in self.__logger_names:
      self.__logger_names.add(name)
      self.__logging_behavior.apply(logger)
    return logger

  def provision_for_dashboard(self, name: str, dashboard_id: str)->DashboardLoggerAdapter:
    return DashboardLoggerAdapter(self.provision(name), dict(dashboard_id=dashboard_id))

  def configure(
    self,
    *,
    terminal: bool,
    level: int,
    file: Optional[LogFileSettings],
  ):
    self.__logging_behavior.level = level
    self.__logging_behavior.terminal = terminal
    self.__logging_behavior.file = file
    for log_name in self.__logger_names:
      self.__logging_behavior.apply(logging.getLogger(log_name))


__all__ = [
  "DashboardLoggerAdapter",
  "ProvisionedLogger"
]
