from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

from modules.api.wrapper import ApiError, ApiErrorAdaptableException

@dataclass
class TransientFetchError(ApiErrorAdaptableException):
  """The backend or the network failed. The same request may succeed when retried."""
  resource: str
  reason: str
  status_code: Optional[int] = None
  def to_api(self):
    return ApiError(
      message=f"We were unable to load {self.resource} due to the following reason: {self.reason}. Please try again.",
      status_code=HTTPStatus.GATEWAY_TIMEOUT if self.status_code is None else HTTPStatus.BAD_GATEWAY
    )

@dataclass
class BackendRejectedError(ApiErrorAdaptableException):
  """The backend refused the request itself (4xx). Sending it again unchanged will not help."""
  resource: str
  status_code: int
  reason: str
  def to_api(self):
    return ApiError(
      message=f"The server rejected the request for {self.resource}: {self.reason}",
      status_code=self.status_code
    )

__all__ = [
  "TransientFetchError",
  "BackendRejectedError",
]
