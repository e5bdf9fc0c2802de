"""Tests for idle detection"""

import queue

import pytest

from timetracker.idle import IdleDetector, IdleTimeout
from timetracker.models import TimeEntry

from conftest import T0, FakeClock

THRESHOLD_MS = 10 * 60 * 1000


@pytest.fixture
def events():
    return queue.Queue()


@pytest.fixture
def detector(clock, events):
    return IdleDetector(THRESHOLD_MS, 60, events, clock)


@pytest.fixture
def session():
    return TimeEntry(
        id='s1',
        environment_id='env',
        date='2025-04-10',
        start_time=T0,
        project='alpha',
        workspace='/work/alpha'
    )


class TestIdleDetector:
    """Tests for the threshold check and timeout events."""

    def test_activity_ignored_when_not_tracking(self, detector, clock):
        before = detector.last_activity
        clock.advance(minutes=5)

        detector.update_activity()

        assert detector.last_activity == before

    def test_timeout_carries_last_activity(self, detector, clock, events, session):
        detector.start_tracking(session, start_timer=False)
        clock.advance(minutes=5)
        detector.update_activity()
        last_activity = clock.now
        clock.advance(minutes=11)

        assert detector.check() is True

        event = events.get_nowait()
        assert isinstance(event, IdleTimeout)
        assert event.session.id == 's1'
        assert event.last_activity == last_activity
        assert detector.is_tracking is False

    def test_fires_only_once(self, detector, clock, events, session):
        detector.start_tracking(session, start_timer=False)
        clock.advance(minutes=11)

        assert detector.check() is True
        assert detector.check() is False
        assert events.qsize() == 1

    def test_threshold_must_be_exceeded(self, detector, clock, events, session):
        detector.start_tracking(session, start_timer=False)
        clock.advance(ms=THRESHOLD_MS)

        assert detector.check() is False

        clock.advance(ms=1)
        assert detector.check() is True

    def test_activity_postpones_timeout(self, detector, clock, session):
        detector.start_tracking(session, start_timer=False)
        clock.advance(minutes=9)
        detector.update_activity()
        clock.advance(minutes=9)

        assert detector.check() is False

    def test_no_check_after_stop(self, detector, clock, events, session):
        detector.start_tracking(session, start_timer=False)
        detector.stop_tracking()
        detector.stop_tracking()
        clock.advance(minutes=30)

        assert detector.check() is False
        assert events.empty()

    def test_restart_rearms(self, detector, clock, events, session):
        detector.start_tracking(session, start_timer=False)
        clock.advance(minutes=11)
        detector.check()

        detector.start_tracking(session, start_timer=False)
        assert detector.last_activity == clock.now
        clock.advance(minutes=11)

        assert detector.check() is True
        assert events.qsize() == 2

    def test_continues_from_given_activity(self, detector, clock, session):
        detector.start_tracking(session, start_timer=False, last_activity=T0 - 1000)

        assert detector.last_activity == T0 - 1000

    def test_disabled_threshold_never_fires(self, clock, events, session):
        detector = IdleDetector(0, 60, events, clock)
        detector.start_tracking(session, start_timer=False)
        clock.advance(minutes=600)

        assert detector.check() is False
        assert detector.get_status().is_idle is False

    def test_status(self, detector, clock, session):
        detector.start_tracking(session, start_timer=False)
        clock.advance(minutes=3)

        status = detector.get_status()

        assert status.is_tracking is True
        assert status.idle_time_ms == 3 * 60 * 1000
        assert status.idle_threshold_ms == THRESHOLD_MS
        assert status.is_idle is False

    def test_background_check_emits_event(self, events, session):
        clock = FakeClock(T0)
        detector = IdleDetector(1000, 0.01, events, clock)
        detector.start_tracking(session)
        clock.advance(seconds=5)

        event = events.get(timeout=2)

        assert event.last_activity == T0
        assert detector.is_tracking is False
        detector.stop_tracking()
