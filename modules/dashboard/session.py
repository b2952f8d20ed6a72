from dataclasses import dataclass, field
from typing import Optional

@dataclass
class EditorSessionState:
  """Bookkeeping of an editor session that is not part of the dashboard itself."""
  initializing: bool = False
  # Keys of tab fetches that are currently running.
  pending_keys: set[str] = field(default_factory=set)
  # Scheduler key of the pending debounced tab fetch.
  debounce_handle: Optional[str] = None

  def begin_initialization(self)->bool:
    """Returns False if another initialization is already running."""
    if self.initializing:
      return False
    self.initializing = True
    return True

  def end_initialization(self):
    self.initializing = False

  def track(self, key: str)->bool:
    """Returns False if ``key`` is already being fetched."""
    if key in self.pending_keys:
      return False
    self.pending_keys.add(key)
    return True

  def release(self, key: str):
    self.pending_keys.discard(key)

  def is_pending(self, key: str)->bool:
    return key in self.pending_keys

  def set_debounce(self, handle: str):
    self.debounce_handle = handle

  def clear_debounce(self)->Optional[str]:
    handle = self.debounce_handle
    self.debounce_handle = None
    return handle

__all__ = [
  "EditorSessionState"
]
