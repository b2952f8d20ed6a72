class Singleton(type):
  """Process-wide instances for stateless infrastructure (loggers, handler pools).
  Stateful services are constructed explicitly and injected instead."""
  _instances = {}
  def __call__(cls, *args, **kwargs):
    if cls not in cls._instances:
      cls._instances[cls] = super(Singleton, cls).__call__(*args, **kwargs)
    return cls._instances[cls]

__all__ = [
  "Singleton"
]
