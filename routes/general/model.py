from modules.baseclass.pydantic_ext import CamelCaseModel
from modules.client import ApiCallStats, DuplicateCallReport

class DiagnosticsResource(CamelCaseModel):
  stats: ApiCallStats
  duplicates: list[DuplicateCallReport]
  open_dashboards: list[str]
