import abc
import http
from typing import Any, Generic, Optional, TypeVar, Union
import pydantic

T = TypeVar("T")

ErrorTree = dict[Union[str, int], Any]

class ApiError(Exception):
  """An error that is shown to the user as-is. ``errors`` optionally points at the offending request fields."""
  def __init__(self, message: str, status_code: int, *, errors: Optional[ErrorTree] = None):
    self.message = message
    self.status_code = status_code
    self.errors = errors

  @property
  def is_client_error(self)->bool:
    return self.status_code < http.HTTPStatus.INTERNAL_SERVER_ERROR

  def __str__(self):
    return self.message

class ApiErrorAdaptableException(abc.ABC, Exception):
  """Domain errors that know how they should be presented to the user.
  The editor emits the message of ``to_api()`` as the notification, the HTTP layer uses it for the response."""
  @abc.abstractmethod
  def to_api(self)->ApiError:
    ...

  def __str__(self):
    return self.to_api().message

class ApiResult(pydantic.BaseModel, Generic[T]):
  data: T
  # User-facing notification for the action that produced this result.
  message: Optional[str]

class ApiErrorResult(pydantic.BaseModel):
  message: str
  errors: Optional[ErrorTree] = None

  @staticmethod
  def from_error(error: ApiError)->"ApiErrorResult":
    return ApiErrorResult(message=error.message, errors=error.errors)

  def as_json(self):
    return self.model_dump(mode="json")


__all__ = [
  "ApiError",
  "ApiErrorAdaptableException",
  "ApiResult",
  "ApiErrorResult"
]
