import http
import json
import os
from typing import Optional

import pydantic

from modules.api import ApiError
from modules.logger import LogFileSettings, ProvisionedLogger

logger = ProvisionedLogger().provision("Config")

CONFIG_PATH_ENV = "DASHBOARD_EDITOR_CONFIG"
BACKEND_URL_ENV = "DASHBOARD_BACKEND_URL"

class LayoutConfig(pydantic.BaseModel):
  # Widget sizes are expressed in multiples of this.
  granularity: int = pydantic.Field(default=4, gt=0)
  columns: int = pydantic.Field(default=48, gt=0)
  # Height of one grid row plus its vertical margin, in pixels.
  row_unit: int = pydantic.Field(default=28, gt=0)
  max_canvas_height: int = pydantic.Field(default=20000, gt=0)
  # Used when the tab has no widgets: the viewport minus the header chrome.
  viewport_height: int = pydantic.Field(default=800, gt=0)
  viewport_offset: int = pydantic.Field(default=81, ge=0)
  drag_edge_threshold: int = pydantic.Field(default=100, ge=0)
  drag_growth: int = pydantic.Field(default=280, ge=0)
  probe_attempts: int = pydantic.Field(default=100, gt=0)
  probe_max_y: int = pydantic.Field(default=1000, gt=0)

class DataAccessConfig(pydantic.BaseModel):
  # Seconds
  cache_ttl: float = pydantic.Field(default=5 * 60, gt=0)
  cache_maxsize: Optional[int] = pydantic.Field(default=500, gt=0)
  rate_limit_interval: float = pydantic.Field(default=1.0, ge=0)
  autosave_delay: float = pydantic.Field(default=2.0, ge=0)
  tab_switch_delay: float = pydantic.Field(default=0.3, ge=0)
  # The execution service does not resolve "latest" reliably.
  latest_version_fallback: str = "1"
  monitor_max_logs: int = pydantic.Field(default=100, gt=0)

class BackendConfig(pydantic.BaseModel):
  base_url: str = "http://localhost:8000"
  timeout: float = pydantic.Field(default=30.0, gt=0)
  company_id: Optional[str] = None

class LoggingConfig(pydantic.BaseModel):
  file: Optional[str] = None
  max_bytes: int = pydantic.Field(default=100 * 1000, gt=0)
  backup_count: int = pydantic.Field(default=2, ge=0)

  def file_settings(self)->Optional[LogFileSettings]:
    if self.file is None:
      return None
    return LogFileSettings(path=self.file, max_bytes=self.max_bytes, backup_count=self.backup_count)

class EditorConfig(pydantic.BaseModel):
  layout: LayoutConfig = pydantic.Field(default_factory=LayoutConfig)
  data_access: DataAccessConfig = pydantic.Field(default_factory=DataAccessConfig)
  backend: BackendConfig = pydantic.Field(default_factory=BackendConfig)
  logging: LoggingConfig = pydantic.Field(default_factory=LoggingConfig)

  @staticmethod
  def from_json(path: str)->"EditorConfig":
    if not os.path.exists(path):
      raise ApiError(f"The configuration file \"{path}\" doesn't exist. Please check the value of {CONFIG_PATH_ENV} again.", http.HTTPStatus.NOT_FOUND)
    with open(path, 'r', encoding='utf-8') as f:
      try:
        contents = json.load(f)
        return EditorConfig.model_validate(contents)
      except (json.JSONDecodeError, pydantic.ValidationError) as e:
        raise ApiError(f"The configuration file \"{path}\" is invalid due to the following reason: {e}", http.HTTPStatus.UNPROCESSABLE_ENTITY)

  @staticmethod
  def load()->"EditorConfig":
    path = os.getenv(CONFIG_PATH_ENV)
    if path:
      logger.info(f"Loading editor configuration from \"{path}\"")
      config = EditorConfig.from_json(path)
    else:
      config = EditorConfig()

    backend_url = os.getenv(BACKEND_URL_ENV)
    if backend_url:
      config.backend.base_url = backend_url
    return config

__all__ = [
  "LayoutConfig",
  "DataAccessConfig",
  "BackendConfig",
  "LoggingConfig",
  "EditorConfig",
]
