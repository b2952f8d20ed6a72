import pydantic
from pydantic.alias_generators import to_camel

class CamelCaseModel(pydantic.BaseModel):
  """Models exchanged with the dashboard backend and the HTTP clients, which speak camelCase (``refId``, ``startDate``).
  Fields can still be populated with their snake_case names."""
  model_config = pydantic.ConfigDict(
    use_enum_values=True,
    alias_generator=to_camel,
    populate_by_name=True,
  )

__all__ = [
  "CamelCaseModel",
]
