import abc
from http import HTTPStatus
from typing import Any, Optional, TypeVar

import httpx
import pydantic

from modules.config import BackendConfig
from modules.dashboard.exceptions import DashboardNotFoundError
from modules.logger import ProvisionedLogger

from .exceptions import BackendRejectedError, TransientFetchError
from .schemas import (
  ComponentExecuteRequest, ComponentExecuteResponse, DashboardStructureRecord,
  PublishDraftRequest, SaveDraftRequest, VersionRecord
)

logger = ProvisionedLogger().provision("DashboardBackend")

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

class DashboardBackend(abc.ABC):
  """Persistence of dashboard structure and execution of widget components."""
  @abc.abstractmethod
  async def fetch_structure(self, dashboard_id: str)->DashboardStructureRecord:
    ...

  @abc.abstractmethod
  async def save_draft(self, request: SaveDraftRequest)->VersionRecord:
    ...

  @abc.abstractmethod
  async def publish_draft(self, request: PublishDraftRequest)->VersionRecord:
    ...

  @abc.abstractmethod
  async def execute_component(self, request: ComponentExecuteRequest)->ComponentExecuteResponse:
    ...

  async def aclose(self):
    return


class HttpDashboardBackend(DashboardBackend):
  def __init__(self, config: BackendConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
    self.config = config
    self.client = httpx.AsyncClient(
      base_url=config.base_url,
      timeout=config.timeout,
      transport=transport,
    )

  def _unwrap(self, payload: Any)->Any:
    # Responses are wrapped as {code, message, data}
    if isinstance(payload, dict) and "data" in payload:
      return payload["data"]
    return payload

  def _error_message(self, response: httpx.Response)->str:
    try:
      payload = response.json()
    except ValueError:
      payload = None
    if isinstance(payload, dict) and isinstance(payload.get("message", None), str):
      return payload["message"]
    return f"the server responded with status {response.status_code}"

  async def _request(self, resource: str, model: type[ModelT], method: str, url: str, *, body: Optional[pydantic.BaseModel] = None, not_found_id: Optional[str] = None)->ModelT:
    json_body = body.model_dump(mode="json", by_alias=True, exclude_none=True) if body is not None else None
    try:
      response = await self.client.request(method, url, json=json_body)
    except httpx.HTTPError as e:
      logger.error(f"{method} {url} failed: {e}")
      raise TransientFetchError(resource=resource, reason=str(e) or e.__class__.__name__)

    if response.status_code == HTTPStatus.NOT_FOUND and not_found_id is not None:
      raise DashboardNotFoundError(resource=resource, id=not_found_id)
    if response.is_client_error:
      logger.warning(f"{method} {url} was rejected with {response.status_code}: {response.text}")
      raise BackendRejectedError(resource=resource, status_code=response.status_code, reason=self._error_message(response))
    if response.is_error:
      logger.error(f"{method} {url} responded with {response.status_code}: {response.text}")
      raise TransientFetchError(resource=resource, reason=f"the server responded with status {response.status_code}", status_code=response.status_code)

    try:
      return model.model_validate(self._unwrap(response.json()))
    except (ValueError, pydantic.ValidationError) as e:
      logger.error(f"{method} {url} returned an unexpected payload: {e}")
      raise TransientFetchError(resource=resource, reason="the server returned an invalid response", status_code=response.status_code)

  async def fetch_structure(self, dashboard_id: str)->DashboardStructureRecord:
    return await self._request(
      "dashboard", DashboardStructureRecord,
      "GET", f"/dashboards/{dashboard_id}",
      not_found_id=dashboard_id,
    )

  async def save_draft(self, request: SaveDraftRequest)->VersionRecord:
    return await self._request(
      "dashboard draft", VersionRecord,
      "PUT", f"/dashboards/{request.dashboard_id}/draft",
      body=request, not_found_id=request.dashboard_id,
    )

  async def publish_draft(self, request: PublishDraftRequest)->VersionRecord:
    return await self._request(
      "dashboard draft", VersionRecord,
      "POST", f"/dashboards/{request.dashboard_id}/publish",
      body=request, not_found_id=request.dashboard_id,
    )

  async def execute_component(self, request: ComponentExecuteRequest)->ComponentExecuteResponse:
    return await self._request(
      "component output", ComponentExecuteResponse,
      "POST", "/components/execute",
      body=request, not_found_id=request.ref_id,
    )

  async def aclose(self):
    await self.client.aclose()

__all__ = [
  "DashboardBackend",
  "HttpDashboardBackend",
]
