"""Tests for the activity monitor"""

from timetracker.activity import ActivityMonitor, ActivitySource


def test_signal_reaches_every_subscriber():
    monitor = ActivityMonitor()
    first, second = [], []
    monitor.subscribe(lambda: first.append(1))
    monitor.subscribe(lambda: second.append(1))

    monitor.signal(ActivitySource.TEXT_CHANGE)
    monitor.signal(ActivitySource.SAVE)

    assert first == [1, 1]
    assert second == [1, 1]
    assert monitor.last_signal is ActivitySource.SAVE
    assert monitor.signal_counts[ActivitySource.TEXT_CHANGE] == 1


def test_unsubscribe_stops_delivery():
    monitor = ActivityMonitor()
    seen = []
    unsubscribe = monitor.subscribe(lambda: seen.append(1))

    unsubscribe()
    unsubscribe()
    monitor.signal()

    assert seen == []
