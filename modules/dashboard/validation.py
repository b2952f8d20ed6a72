import calendar
import datetime
from typing import Union

from .exceptions import DashboardValidationError

MAX_TITLE_LENGTH = 100

DateLike = Union[str, datetime.date]

def validate_title(title: str, *, subject: str)->str:
  trimmed = title.strip()
  if len(trimmed) == 0:
    raise DashboardValidationError(f"{subject} cannot be empty", field="title")
  if len(trimmed) > MAX_TITLE_LENGTH:
    raise DashboardValidationError(f"{subject} must be at most {MAX_TITLE_LENGTH} characters", field="title")
  return trimmed

def parse_date(value: DateLike, *, field: str)->datetime.date:
  if isinstance(value, datetime.datetime):
    return value.date()
  if isinstance(value, datetime.date):
    return value
  try:
    return datetime.date.fromisoformat(value)
  except (TypeError, ValueError):
    raise DashboardValidationError(f"\"{value}\" is not a valid date. Dates should be formatted as YYYY-MM-DD.", field=field)

def validate_date_range(start_date: DateLike, end_date: DateLike)->tuple[datetime.date, datetime.date]:
  start = parse_date(start_date, field="start_date")
  end = parse_date(end_date, field="end_date")
  if end <= start:
    raise DashboardValidationError("Invalid date range. End date must be after start date.", field="end_date")
  return start, end

def month_start(date: datetime.date)->datetime.date:
  return date.replace(day=1)

def month_end(date: datetime.date)->datetime.date:
  _, last_day = calendar.monthrange(date.year, date.month)
  return date.replace(day=last_day)

def validate_month_range(start_date: DateLike, end_date: DateLike)->tuple[datetime.date, datetime.date]:
  """Tabs cover whole months: the range is widened to the first day of the start month and the last day of the end month."""
  start, end = validate_date_range(start_date, end_date)
  return month_start(start), month_end(end)

__all__ = [
  "MAX_TITLE_LENGTH",
  "validate_title",
  "parse_date",
  "validate_date_range",
  "month_start",
  "month_end",
  "validate_month_range",
]
