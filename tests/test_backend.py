import datetime
import json

import httpx
import pytest

from modules.client import BackendRejectedError, ComponentExecuteRequest, HttpDashboardBackend, SaveDraftRequest, TransientFetchError
from modules.config import BackendConfig
from modules.dashboard.exceptions import DashboardNotFoundError

from .conftest import DASHBOARD_ID, make_structure

def make_backend(handler)->HttpDashboardBackend:
  return HttpDashboardBackend(BackendConfig(base_url="http://backend.test"), transport=httpx.MockTransport(handler))


class TestHttpDashboardBackend:
  async def test_wrapped_structure_response(self):
    structure = make_structure().model_dump(mode="json", by_alias=True)
    def handler(request: httpx.Request):
      assert request.url.path == f"/dashboards/{DASHBOARD_ID}"
      return httpx.Response(200, json={"code": 200, "message": "OK", "data": structure})
    backend = make_backend(handler)
    record = await backend.fetch_structure(DASHBOARD_ID)
    assert record.title == "Sales"
    assert record.draft_version is not None
    await backend.aclose()

  async def test_request_body_is_camel_case(self):
    bodies = []
    def handler(request: httpx.Request):
      bodies.append(json.loads(request.content))
      return httpx.Response(200, json={"output": [1, 2, 3], "outputType": "TABLE"})
    backend = make_backend(handler)
    response = await backend.execute_component(ComponentExecuteRequest(
      ref_id="component-1", ref_version="1", ref_type="QUERY",
      start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 31),
    ))
    assert response.output == [1, 2, 3]
    assert bodies[0] == {
      "refId": "component-1", "refVersion": "1", "refType": "QUERY",
      "startDate": "2024-01-01", "endDate": "2024-01-31",
    }
    await backend.aclose()

  async def test_missing_dashboard(self):
    backend = make_backend(lambda request: httpx.Response(404, json={"message": "not found"}))
    with pytest.raises(DashboardNotFoundError):
      await backend.fetch_structure(DASHBOARD_ID)
    await backend.aclose()

  async def test_server_error_is_transient(self):
    backend = make_backend(lambda request: httpx.Response(500, text="oops"))
    with pytest.raises(TransientFetchError) as e:
      await backend.save_draft(SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[]))
    assert e.value.status_code == 500
    assert e.value.to_api().status_code == 502
    await backend.aclose()

  @pytest.mark.parametrize("status_code", [400, 403, 409])
  async def test_client_errors_are_not_transient(self, status_code: int):
    backend = make_backend(lambda request: httpx.Response(status_code, json={"code": status_code, "message": "Draft is locked by another user"}))
    with pytest.raises(BackendRejectedError) as e:
      await backend.save_draft(SaveDraftRequest(id="draft-1", dashboard_id=DASHBOARD_ID, tabs=[]))
    error = e.value.to_api()
    assert error.status_code == status_code
    assert error.message == "The server rejected the request for dashboard draft: Draft is locked by another user"
    assert "try again" not in error.message
    await backend.aclose()

  async def test_network_failure_is_transient(self):
    def handler(request: httpx.Request):
      raise httpx.ConnectError("connection refused", request=request)
    backend = make_backend(handler)
    with pytest.raises(TransientFetchError) as e:
      await backend.fetch_structure(DASHBOARD_ID)
    assert e.value.to_api().status_code == 504
    await backend.aclose()

  async def test_invalid_payload_is_transient(self):
    backend = make_backend(lambda request: httpx.Response(200, json={"data": {"unexpected": True}}))
    with pytest.raises(TransientFetchError):
      await backend.fetch_structure(DASHBOARD_ID)
    await backend.aclose()
