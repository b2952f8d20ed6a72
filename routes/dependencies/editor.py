import http
from typing import Annotated

from fastapi import Depends, Path, Request

from modules.api import ApiError
from modules.dashboard.editor import DashboardEditor
from modules.dashboard.service import DashboardEditorService

def get_editor_service(request: Request)->DashboardEditorService:
  # Provided by the lifespan of the application.
  service = getattr(request.state, "editor_service", None)
  if service is None:
    raise ApiError("The dashboard editor has not been started yet. Please try again later.", http.HTTPStatus.SERVICE_UNAVAILABLE)
  return service

EditorServiceDependency = Annotated[DashboardEditorService, Depends(get_editor_service)]

async def __get_opened_editor(dashboard_id: Annotated[str, Path()], service: EditorServiceDependency):
  editor = service.get(dashboard_id)
  await editor.open()
  return editor

# The structure of the dashboard is loaded on first use.
OpenedEditorDependency = Annotated[DashboardEditor, Depends(__get_opened_editor)]

def __get_editor(dashboard_id: Annotated[str, Path()], service: EditorServiceDependency):
  return service.get(dashboard_id)

# For actions that must work even if the structure failed to load (e.g. retrying).
EditorDependency = Annotated[DashboardEditor, Depends(__get_editor)]

__all__ = [
  "get_editor_service",
  "EditorServiceDependency",
  "OpenedEditorDependency",
  "EditorDependency",
]
