from dataclasses import dataclass, field
import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from typing import Optional

from modules.baseclass import Singleton

TERMINAL_FORMATTER = logging.Formatter('\033[38;5;247m%(asctime)s %(levelname)s\033[0m \033[1m[%(name)s]\033[0m: %(message)s')
FILE_FORMATTER = logging.Formatter('%(asctime)s %(levelname)s [%(name)s]: %(message)s')

@dataclass
class LogFileSettings:
  path: str
  # The editor logs every backend call at DEBUG, so the files rotate quickly.
  max_bytes: int = 100 * 1000
  backup_count: int = 2

class LogHandlerPool(metaclass=Singleton):
  """One handler per destination, shared by every provisioned logger so that records are never written twice."""
  terminal: logging.StreamHandler
  __files: dict[str, RotatingFileHandler]

  def __init__(self):
    self.terminal = logging.StreamHandler(sys.stdout)
    self.terminal.setFormatter(TERMINAL_FORMATTER)
    self.__files = {}

  def file(self, settings: LogFileSettings)->RotatingFileHandler:
    path = os.path.abspath(settings.path)
    handler = self.__files.get(path, None)
    if handler is None:
      os.makedirs(os.path.dirname(path), exist_ok=True)
      handler = RotatingFileHandler(
        filename=path,
        maxBytes=settings.max_bytes,
        backupCount=settings.backup_count,
        encoding='utf-8',
      )
      handler.setFormatter(FILE_FORMATTER)
      self.__files[path] = handler
    return handler

  def detach(self, logger: logging.Logger):
    logger.removeHandler(self.terminal)
    for handler in self.__files.values():
      logger.removeHandler(handler)

@dataclass
class LoggingBehaviorManager:
  level: int = logging.INFO
  terminal: bool = False
  file: Optional[LogFileSettings] = field(default=None)

  def apply(self, logger: logging.Logger):
    pool = LogHandlerPool()
    pool.detach(logger)
    logger.setLevel(self.level)
    if self.terminal:
      logger.addHandler(pool.terminal)
    if self.file is not None:
      logger.addHandler(pool.file(self.file))

__all__ = [
  "LogFileSettings",
  "LoggingBehaviorManager"
]
