"""
Pure placement computations for the widget grid of a single tab.

Nothing in here keeps state between calls: every function is a function of the item list it receives
(plus an explicit ``InteractionState`` for the canvas height), so the grid can call them on every pointer tick.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from modules.config import LayoutConfig
from .model import DashboardItem, WidgetOutputType, WidgetPosition

# In multiples of the grid granularity.
TYPE_MINIMUMS: dict[WidgetOutputType, tuple[int, int]] = {
  WidgetOutputType.Table: (3, 2),
  WidgetOutputType.Graph: (3, 2),
  WidgetOutputType.Kpi: (2, 1),
}
FALLBACK_MINIMUMS = (2, 1)

TYPE_DEFAULT_SIZES: dict[WidgetOutputType, tuple[int, int]] = {
  WidgetOutputType.Table: (4, 3),
  WidgetOutputType.Graph: (4, 3),
  WidgetOutputType.Kpi: (2, 1),
}
FALLBACK_DEFAULT_SIZE = (3, 2)

DEFAULT_GRANULARITY = 4

def _output_type(output_type: Optional[str])->Optional[WidgetOutputType]:
  if output_type is None:
    return None
  try:
    return WidgetOutputType(output_type)
  except ValueError:
    return None

def minimums_for(output_type: Optional[str], granularity: int = DEFAULT_GRANULARITY)->tuple[int, int]:
  """Returns ``(min_w, min_h)`` in grid units. Unknown types get the smallest minimums."""
  min_w, min_h = TYPE_MINIMUMS.get(_output_type(output_type), FALLBACK_MINIMUMS) # type: ignore
  return min_w * granularity, min_h * granularity

def default_size_for(output_type: Optional[str], granularity: int = DEFAULT_GRANULARITY)->tuple[int, int]:
  """Returns ``(w, h)`` in grid units for a freshly dropped widget."""
  w, h = TYPE_DEFAULT_SIZES.get(_output_type(output_type), FALLBACK_DEFAULT_SIZE) # type: ignore
  return w * granularity, h * granularity

def clamp_to_minimums(position: WidgetPosition, output_type: Optional[str], granularity: int = DEFAULT_GRANULARITY)->WidgetPosition:
  min_w, min_h = minimums_for(output_type, granularity)
  return position.model_copy(update=dict(
    w=max(position.w, min_w),
    h=max(position.h, min_h),
    min_w=min_w,
    min_h=min_h,
  ))

def clamp_to_columns(position: WidgetPosition, max_cols: int)->WidgetPosition:
  w = min(position.w, max_cols)
  x = max(0, min(position.x, max_cols - w))
  if w == position.w and x == position.x:
    return position
  return position.model_copy(update=dict(x=x, w=w))

def find_collisions(candidate: WidgetPosition, existing: Iterable[WidgetPosition])->list[WidgetPosition]:
  return [position for position in existing if candidate.overlaps(position)]

def place_new_item(
  candidate: WidgetPosition,
  existing: Sequence[WidgetPosition],
  max_cols: int,
  *,
  probe_attempts: int = 100,
  probe_max_y: int = 1000,
)->WidgetPosition:
  """Finds a spot for a dropped widget.

  The candidate is kept as-is when it fits. Otherwise it is pushed down one row at a time (x stays fixed)
  until it no longer collides. When the probe gives up, the widget is stacked below every existing widget.

  ``probe_attempts`` and ``probe_max_y`` are tuning knobs: the probe runs at most
  ``max(len(existing) * 10, probe_attempts)`` times and never goes past row ``probe_max_y``.
  """
  candidate = clamp_to_columns(candidate, max_cols)
  if len(find_collisions(candidate, existing)) == 0:
    return candidate

  attempt_bound = max(len(existing) * 10, probe_attempts)
  y = candidate.y
  for _ in range(attempt_bound):
    y += 1
    if y > probe_max_y:
      break
    probe = candidate.moved_to(y=y)
    if len(find_collisions(probe, existing)) == 0:
      return probe

  stacked_y = max(position.bottom for position in existing)
  return candidate.moved_to(y=stacked_y)

def resolve_collisions(items: Sequence[DashboardItem], priority: Iterable[str] = ())->list[DashboardItem]:
  """Pushes overlapping items down until the layout is overlap-free.

  Items listed in ``priority`` (usually the ones the user just moved) keep their spot; everything else is placed
  top-to-bottom, left-to-right, and jumps below whatever it collides with. The original item order is preserved.
  """
  priority = set(priority)
  order = sorted(
    range(len(items)),
    key=lambda idx: (items[idx].id not in priority, items[idx].position.y, items[idx].position.x)
  )
  placed: dict[int, DashboardItem] = {}
  for idx in order:
    item = items[idx]
    position = item.position
    while True:
      collisions = find_collisions(position, (other.position for other in placed.values()))
      if len(collisions) == 0:
        break
      position = position.moved_to(y=max(collision.bottom for collision in collisions))
    if position != item.position:
      item = item.model_copy(update=dict(position=position))
    placed[idx] = item
  return [placed[idx] for idx in range(len(items))]

def find_overlapping_pairs(items: Sequence[DashboardItem])->list[tuple[str, str]]:
  pairs: list[tuple[str, str]] = []
  for idx, item in enumerate(items):
    for other in items[idx + 1:]:
      if item.position.overlaps(other.position):
        pairs.append((item.id, other.id))
  return pairs

def apply_layout_change(
  items: Sequence[DashboardItem],
  changes: Mapping[str, WidgetPosition],
  widget_types: Mapping[str, WidgetOutputType],
  *,
  max_cols: int,
  granularity: int = DEFAULT_GRANULARITY,
)->Optional[list[DashboardItem]]:
  """Applies positions reported by the grid.

  Sizes are clamped to the minimums of the widget type and collisions are resolved in favor of the changed items.
  Returns None when the result is identical to ``items`` so that the caller can skip both the commit and the save;
  grid engines report layouts on every pointer tick even when nothing moved.
  """
  changed_ids: list[str] = []
  updated: list[DashboardItem] = []
  for item in items:
    # Ids the grid knows but we don't (e.g. the drop placeholder) are ignored.
    change = changes.get(item.id)
    if change is None:
      updated.append(item)
      continue
    position = WidgetPosition(x=change.x, y=change.y, w=change.w, h=change.h)
    position = clamp_to_minimums(position, widget_types.get(item.widget_id), granularity)
    position = clamp_to_columns(position, max_cols)
    if not position.same_geometry(item.position):
      changed_ids.append(item.id)
      updated.append(item.model_copy(update=dict(position=position)))
    else:
      updated.append(item)

  if len(changed_ids) == 0:
    return None

  resolved = resolve_collisions(updated, priority=changed_ids)
  if all(before.position.same_geometry(after.position) for before, after in zip(items, resolved)):
    return None
  return resolved


class InteractionMode(str, Enum):
  Idle = "idle"
  Resizing = "resizing"
  Dragging = "dragging"

@dataclass(frozen=True)
class InteractionState:
  mode: InteractionMode = InteractionMode.Idle
  # In-progress geometry that has not been committed yet, keyed by item id.
  # May contain ids that are not in the tab (the placeholder of a widget being dropped).
  pending: Mapping[str, WidgetPosition] = field(default_factory=dict)
  # Pointer position relative to the top of the canvas, in pixels.
  pointer_y: Optional[int] = None

def compute_canvas_height(
  items: Sequence[DashboardItem],
  interaction: InteractionState,
  config: LayoutConfig,
  *,
  viewport_height: Optional[int] = None,
)->int:
  """Height of the grid canvas in pixels.

  Two spare rows are kept below the lowest widget. While resizing or dragging, the in-progress geometry is used
  instead of the committed one; while dragging close to the bottom edge, the canvas grows ahead of the pointer
  so that the widget can be dropped below the current last row.
  """
  interacting = interaction.mode != InteractionMode.Idle
  positions: list[WidgetPosition] = []
  for item in items:
    if interacting and item.id in interaction.pending:
      positions.append(interaction.pending[item.id])
    else:
      positions.append(item.position)
  if interacting:
    known_ids = set(item.id for item in items)
    positions.extend(position for item_id, position in interaction.pending.items() if item_id not in known_ids)

  if len(positions) == 0:
    viewport = viewport_height if viewport_height is not None else config.viewport_height
    return max(viewport - config.viewport_offset, config.row_unit)

  lowest_row = max(position.bottom for position in positions)
  height = min((lowest_row + 2) * config.row_unit, config.max_canvas_height)

  is_near_bottom = (
    interaction.mode == InteractionMode.Dragging and
    interaction.pointer_y is not None and
    interaction.pointer_y >= height - config.drag_edge_threshold
  )
  if is_near_bottom:
    height = min(height + config.drag_growth, config.max_canvas_height)
  return height

__all__ = [
  "minimums_for",
  "default_size_for",
  "clamp_to_minimums",
  "clamp_to_columns",
  "find_collisions",
  "place_new_item",
  "resolve_collisions",
  "find_overlapping_pairs",
  "apply_layout_change",
  "InteractionMode",
  "InteractionState",
  "compute_canvas_height",
]
