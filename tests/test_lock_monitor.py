"""Lock activity monitor lifecycle and panel text counting."""
import pytest

from settlement_validation.lock_monitor import LockActivityMonitor, LockMarkers, count_holders

ACTIVE = "\U0001f512 Redis Lock Active\nHolder: 3f9a"
RECENT = "Redis Lock Recently Active\nHolder: 3f9a"
RELEASED = "\U0001f513 No Lock Held"
DOUBLE = "Redis Lock Active\nHolder: a\nHolder: b"


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_count_holders():
    assert count_holders(ACTIVE) == 1
    assert count_holders(RELEASED) == 0
    assert count_holders(DOUBLE) == 2


def test_full_window():
    clock = FakeClock()
    monitor = LockActivityMonitor(clock=clock)
    monitor.start()
    monitor.observe(ACTIVE)
    assert not monitor.complete
    clock.now += 2.5
    monitor.observe(RELEASED)
    assert monitor.complete

    observation = monitor.stop()
    assert observation.complete
    assert observation.observations == 2
    assert observation.max_holders == 1
    assert observation.duration == pytest.approx(2.5)
    assert not monitor.running


def test_recently_active_counts_as_active():
    monitor = LockActivityMonitor()
    monitor.start()
    monitor.observe(RECENT)
    assert monitor.stop().saw_active


def test_multiple_holders_are_sampled():
    monitor = LockActivityMonitor()
    monitor.start()
    assert monitor.observe(DOUBLE) == 2
    observation = monitor.stop()
    assert observation.max_holders == 2
    assert observation.multi_holder_samples == (DOUBLE,)


def test_recently_active_window():
    clock = FakeClock()
    monitor = LockActivityMonitor(clock=clock)
    monitor.start()
    assert not monitor.recently_active(5)
    monitor.observe(ACTIVE)
    clock.now += 4
    assert monitor.recently_active(5)
    clock.now += 2
    assert not monitor.recently_active(5)


def test_observing_requires_start():
    monitor = LockActivityMonitor()
    with pytest.raises(RuntimeError, match="not running"):
        monitor.observe(ACTIVE)
    monitor.start()
    with pytest.raises(RuntimeError, match="already started"):
        monitor.start()
    monitor.stop()
    with pytest.raises(RuntimeError):
        monitor.stop()


def test_custom_markers():
    markers = LockMarkers(active=("LOCKED",), released=("FREE",), holder="Owner:")
    monitor = LockActivityMonitor(markers)
    monitor.start()
    monitor.observe("LOCKED Owner: node-1")
    monitor.observe("FREE")
    observation = monitor.stop()
    assert observation.complete
    assert observation.max_holders == 1
