from typing import Optional

from .model import WidgetOutputType

RENDERERS: dict[WidgetOutputType, str] = {
  WidgetOutputType.Graph: "chart",
  WidgetOutputType.Table: "table",
  WidgetOutputType.Kpi: "metric-card",
}

def route_output(output_type: Optional[str])->Optional[str]:
  """Name of the renderer for a widget output. Only the type tag is looked at, never the output itself."""
  if output_type is None:
    return None
  try:
    return RENDERERS.get(WidgetOutputType(output_type))
  except ValueError:
    return None

__all__ = [
  "RENDERERS",
  "route_output",
]
