from fastapi import APIRouter

from modules.api import ApiResult
from modules.dashboard.editor import DashboardEditorSnapshot, EditorMessages

from routes.dependencies.editor import EditorDependency, EditorServiceDependency, OpenedEditorDependency

from .controller import apply_layout_change, canvas_height, snapshot_result
from .model import (
  CanvasHeightResource, CanvasHeightSchema, CreateTabSchema, DropWidgetSchema,
  LayoutChangeResource, LayoutChangeSchema, RegisterTemplatesSchema, RenameSchema,
  SelectTabSchema, UpdateTabDatesSchema
)

router = APIRouter(
  tags=['Dashboard']
)

# region Versions

@router.get("/")
async def get__dashboard(editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  return snapshot_result(editor)

@router.post("/retry")
async def post__retry(editor: EditorDependency)->ApiResult[DashboardEditorSnapshot]:
  await editor.retry()
  return snapshot_result(editor)

@router.post("/draft")
async def post__switch_to_draft(editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.switch_to_draft()
  return snapshot_result(editor, EditorMessages.SwitchedToDraft)

@router.post("/published")
async def post__switch_to_published(editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.switch_to_published()
  return snapshot_result(editor, EditorMessages.SwitchedToPublished)

@router.post("/save")
async def post__save_draft(editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  await editor.save_draft()
  return snapshot_result(editor, EditorMessages.DraftSaved)

@router.post("/publish")
async def post__publish_draft(editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  await editor.publish_draft()
  return snapshot_result(editor, EditorMessages.Published)

@router.delete("/")
async def delete__close(dashboard_id: str, service: EditorServiceDependency)->ApiResult[None]:
  await service.close(dashboard_id)
  return ApiResult(data=None, message=None)

# endregion

# region Tabs

@router.put("/tabs/current")
async def put__select_tab(body: SelectTabSchema, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.select_tab(body.tab_id)
  return snapshot_result(editor)

@router.post("/tabs/{tab_id}/refresh")
async def post__refresh_tab(tab_id: str, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  await editor.refresh_tab(tab_id)
  return snapshot_result(editor, EditorMessages.TabRefreshed)

@router.post("/tabs")
async def post__add_tab(body: CreateTabSchema, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.add_tab(body.title, body.start_date, body.end_date, whole_months=body.whole_months)
  return snapshot_result(editor, EditorMessages.TabAdded)

@router.patch("/tabs/{tab_id}")
async def patch__rename_tab(tab_id: str, body: RenameSchema, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.rename_tab(tab_id, body.title)
  return snapshot_result(editor, EditorMessages.TabRenamed)

@router.put("/tabs/{tab_id}/dates")
async def put__update_tab_dates(tab_id: str, body: UpdateTabDatesSchema, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.update_tab_dates(tab_id, body.start_date, body.end_date, whole_months=body.whole_months)
  return snapshot_result(editor, EditorMessages.DatesUpdated)

@router.delete("/tabs/{tab_id}")
async def delete__tab(tab_id: str, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.delete_tab(tab_id)
  return snapshot_result(editor, EditorMessages.TabDeleted)

# endregion

# region Widgets

@router.put("/templates")
async def put__register_templates(body: RegisterTemplatesSchema, editor: EditorDependency)->ApiResult[None]:
  editor.register_templates(body.templates)
  return ApiResult(data=None, message=None)

@router.post("/tabs/{tab_id}/widgets")
async def post__drop_widget(tab_id: str, body: DropWidgetSchema, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.drop_widget(tab_id, body.template_id, x=body.x, y=body.y, w=body.w, h=body.h)
  return snapshot_result(editor, EditorMessages.WidgetAdded)

@router.put("/tabs/{tab_id}/layout")
async def put__layout(tab_id: str, body: LayoutChangeSchema, editor: OpenedEditorDependency)->ApiResult[LayoutChangeResource]:
  return ApiResult(
    data=LayoutChangeResource(changed=apply_layout_change(editor, tab_id, body)),
    message=None,
  )

@router.post("/tabs/{tab_id}/canvas-height")
async def post__canvas_height(tab_id: str, body: CanvasHeightSchema, editor: OpenedEditorDependency)->ApiResult[CanvasHeightResource]:
  return ApiResult(
    data=CanvasHeightResource(height=canvas_height(editor, tab_id, body)),
    message=None,
  )

@router.patch("/tabs/{tab_id}/widgets/{widget_id}")
async def patch__rename_widget(tab_id: str, widget_id: str, body: RenameSchema, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.rename_widget(tab_id, widget_id, body.title)
  return snapshot_result(editor, EditorMessages.WidgetRenamed)

@router.delete("/tabs/{tab_id}/widgets/{widget_id}")
async def delete__widget(tab_id: str, widget_id: str, editor: OpenedEditorDependency)->ApiResult[DashboardEditorSnapshot]:
  editor.delete_widget(tab_id, widget_id)
  return snapshot_result(editor, EditorMessages.WidgetDeleted)

# endregion
