from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

from modules.api.wrapper import ApiError, ApiErrorAdaptableException

@dataclass
class DashboardValidationError(ApiErrorAdaptableException):
  message: str
  field: Optional[str] = None
  def to_api(self):
    return ApiError(
      message=self.message,
      status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
      errors={self.field: self.message} if self.field is not None else None,
    )

@dataclass
class DashboardPermissionError(ApiErrorAdaptableException, PermissionError):
  action: str
  current: str
  def to_api(self):
    return ApiError(
      message=f"Cannot {self.action} while viewing the {self.current} version. Switch to the draft to make changes.",
      status_code=HTTPStatus.FORBIDDEN
    )

@dataclass
class VersionUnavailableError(ApiErrorAdaptableException, PermissionError):
  kind: str
  def to_api(self):
    return ApiError(
      message=f"This dashboard does not have a {self.kind} version yet.",
      status_code=HTTPStatus.FORBIDDEN
    )

@dataclass
class DashboardNotFoundError(ApiErrorAdaptableException):
  resource: str
  id: str
  def to_api(self):
    return ApiError(
      message=f"We were not able to find any {self.resource} with ID \"{self.id}\".",
      status_code=HTTPStatus.NOT_FOUND
    )

@dataclass
class TemplateNotFoundError(DashboardNotFoundError):
  def to_api(self):
    return ApiError(
      message=f"Component (ID: {self.id}) definition not found.",
      status_code=HTTPStatus.NOT_FOUND
    )

@dataclass
class DashboardNotLoadedError(ApiErrorAdaptableException):
  dashboard_id: str
  def to_api(self):
    return ApiError(
      message=f"The structure of dashboard \"{self.dashboard_id}\" has not been loaded yet. Please retry loading the dashboard.",
      status_code=HTTPStatus.CONFLICT
    )

__all__ = [
  "DashboardValidationError",
  "DashboardPermissionError",
  "VersionUnavailableError",
  "DashboardNotFoundError",
  "TemplateNotFoundError",
  "DashboardNotLoadedError",
]
