from collections import OrderedDict
from dataclasses import dataclass, field
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from modules.logger import ProvisionedLogger

T = TypeVar("T")

logger = ProvisionedLogger().provision("CacheClient")

Clock = Callable[[], float]

@dataclass
class CacheItem(Generic[T]):
  key: str
  value: T
  # Monotonic timestamp after which the item is stale. None never expires.
  expires_at: Optional[float] = None

  def is_stale(self, now: float)->bool:
    if self.expires_at is None:
      return False
    return now >= self.expires_at

@dataclass
class CacheClient(Generic[T]):
  """TTL + LRU cache. Stale entries are evicted lazily, when they are looked up."""
  name: str
  maxsize: Optional[int]
  ttl: Optional[float]
  clock: Clock = field(default=time.monotonic)
  lock: threading.RLock = field(default_factory=lambda: threading.RLock(), init=False)
  records: OrderedDict[str, CacheItem[T]] = field(default_factory=lambda: OrderedDict(), init=False)

  def get(self, key: str)->Optional[T]:
    with self.lock:
      value = self.records.get(key, None)
      if value is None:
        logger.debug(f"[{self.name}] GET {key} (CACHE MISS)")
        return None
      if value.is_stale(self.clock()):
        logger.debug(f"[{self.name}] GET {key} (CACHE STALE)")
        self.records.pop(key, None)
        return None
      # LRU
      logger.debug(f"[{self.name}] GET {key} (CACHE HIT)")
      self.records.move_to_end(key)
      return value.value

  def pop_lru(self):
    if self.maxsize is None:
      return
    with self.lock:
      overflow = len(self.records) - self.maxsize
      if overflow <= 0:
        return
      targets = list(self.records.keys())[:overflow]
      logger.debug(f"[{self.name}] POP LRU: {targets}")
      for target in targets:
        self.records.pop(target)

  def set(self, key: str, value: T, *, ttl: Optional[float] = None):
    ttl = ttl if ttl is not None else self.ttl
    expires_at = self.clock() + ttl if ttl is not None else None
    with self.lock:
      self.records[key] = CacheItem(key=key, value=value, expires_at=expires_at)
      self.records.move_to_end(key)
      logger.debug(f"[{self.name}] SET {key}")
      self.pop_lru()

  def invalidate(self, *, key: Optional[str] = None, prefix: Optional[str] = None, predicate: Optional[Callable[[str], bool]] = None)->list[str]:
    with self.lock:
      targets: list[str] = []
      if key is not None and key in self.records:
        targets.append(key)
      if prefix is not None:
        targets.extend(cache_key for cache_key in self.records.keys() if cache_key.startswith(prefix))
      if predicate is not None:
        targets.extend(cache_key for cache_key in self.records.keys() if predicate(cache_key))
      targets = list(dict.fromkeys(targets))
      if len(targets) > 0:
        logger.debug(f"[{self.name}] INVALIDATE {', '.join(targets)}")
      for target in targets:
        self.records.pop(target, None)
      return targets

  def clear(self):
    with self.lock:
      self.records.clear()

  def __len__(self):
    return len(self.records)

__all__ = [
  "CacheClient",
  "CacheItem"
]
