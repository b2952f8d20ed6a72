import pytest

from modules.client import ApiMonitor

class TestApiMonitor:
  def test_stats(self):
    monitor = ApiMonitor()
    monitor.log_call("structure:a", duration_ms=10, success=True)
    monitor.log_call("structure:a", duration_ms=30, success=False, error="timeout")
    monitor.log_call("structure:b", duration_ms=20, success=True)
    stats = monitor.get_call_stats()
    assert stats.total_calls == 3
    assert stats.successful_calls == 2
    assert stats.failed_calls == 1
    assert stats.average_duration_ms == pytest.approx(20)
    assert stats.calls_by_key == {"structure:a": 2, "structure:b": 1}

  def test_empty_stats(self):
    stats = ApiMonitor().get_call_stats()
    assert stats.total_calls == 0
    assert stats.average_duration_ms == 0

  def test_logs_are_bounded(self):
    monitor = ApiMonitor(max_logs=100)
    for idx in range(150):
      monitor.log_call(f"execution:a:{idx}", duration_ms=1, success=True)
    assert len(monitor.logs) == 100
    assert monitor.logs[0].key == "execution:a:50"
    recent = monitor.get_call_stats().recent_calls
    assert [log.key for log in recent] == [f"execution:a:{idx}" for idx in range(140, 150)]

  def test_duplicates_are_sorted_by_count(self):
    monitor = ApiMonitor()
    for key, count in [("structure:a", 2), ("tabWidgets:b:1", 3), ("structure:c", 1)]:
      for _ in range(count):
        monitor.log_call(key, duration_ms=1, success=True)
    duplicates = monitor.get_duplicate_calls()
    assert [(report.key, report.count) for report in duplicates] == [("tabWidgets:b:1", 3), ("structure:a", 2)]
    assert duplicates[0].dashboard_id == "b"

  def test_recording_failures_are_swallowed(self):
    monitor = ApiMonitor()
    monitor.log_call("structure:a", duration_ms="not a number", success=True) # type: ignore
    assert monitor.logs == []

  async def test_track_reraises_errors_of_the_call(self):
    monitor = ApiMonitor()
    async def failing_call():
      raise ValueError("boom")
    with pytest.raises(ValueError):
      await monitor.track("structure:a", failing_call)
    assert monitor.logs[0].success is False
    assert monitor.logs[0].error == "boom"

  def test_clear(self):
    monitor = ApiMonitor()
    monitor.log_call("structure:a", duration_ms=1, success=True)
    monitor.clear()
    assert monitor.get_call_stats().total_calls == 0
