from typing import Annotated, Optional

from fastapi import APIRouter, Query

from modules.api import ApiResult

from routes.dependencies.editor import EditorServiceDependency

from .model import DiagnosticsResource

router = APIRouter(
  tags=["General"]
)

@router.get('/diagnostics')
def get__diagnostics(service: EditorServiceDependency, window: Annotated[Optional[float], Query(gt=0)] = None)->ApiResult[DiagnosticsResource]:
  monitor = service.monitor
  duplicates = monitor.get_duplicate_calls(window=window)
  monitor.debug()
  return ApiResult(
    data=DiagnosticsResource(
      stats=monitor.get_call_stats(),
      duplicates=duplicates,
      open_dashboards=list(service.editors.keys()),
    ),
    message=None,
  )
