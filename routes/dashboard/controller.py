from typing import Optional

from modules.api import ApiResult
from modules.dashboard.editor import DashboardEditor, DashboardEditorSnapshot
from modules.dashboard.layout import InteractionState
from modules.dashboard.model import WidgetPosition

from .model import CanvasHeightSchema, GridItemSchema, LayoutChangeSchema

def snapshot_result(editor: DashboardEditor, message: Optional[str] = None)->ApiResult[DashboardEditorSnapshot]:
  return ApiResult(
    data=editor.snapshot(),
    message=message,
  )

def grid_positions(items: list[GridItemSchema])->dict[str, WidgetPosition]:
  return {
    item.id: WidgetPosition(x=item.x, y=item.y, w=item.w, h=item.h)
    for item in items
  }

def apply_layout_change(editor: DashboardEditor, tab_id: str, body: LayoutChangeSchema)->bool:
  return editor.apply_layout_change(tab_id, grid_positions(body.items))

def canvas_height(editor: DashboardEditor, tab_id: str, body: CanvasHeightSchema)->int:
  interaction = InteractionState(
    mode=body.mode,
    pending=grid_positions(body.pending),
    pointer_y=body.pointer_y,
  )
  return editor.canvas_height(tab_id, interaction, viewport_height=body.viewport_height)
