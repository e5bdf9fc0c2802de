"""Idle detection: infers the end of a session from missing activity"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .models import TimeEntry
from .scheduler import PeriodicTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdleTimeout:
    """Emitted once when a tracked session has been idle past the threshold"""
    session: TimeEntry
    last_activity: int


@dataclass(frozen=True)
class IdleStatus:
    is_tracking: bool
    idle_time_ms: int
    idle_threshold_ms: int
    is_idle: bool


class IdleDetector:
    """Polls the last-activity timestamp against a threshold

    Polling once per check interval is enough for a threshold measured in
    minutes, and keeps the per-keystroke cost to a timestamp write.
    Timeouts are put on `events` rather than delivered by callback.
    """

    def __init__(
        self,
        idle_threshold_ms: int,
        check_interval_seconds: float,
        events: queue.Queue,
        clock: Callable[[], int]
    ):
        self.idle_threshold_ms = max(0, idle_threshold_ms)
        self.check_interval_seconds = check_interval_seconds
        self.events = events
        self.clock = clock

        self._lock = threading.Lock()
        self._timer: Optional[PeriodicTask] = None
        self._session: Optional[TimeEntry] = None
        self._tracking = False
        self._fired = False
        self.last_activity = clock()

    @property
    def enabled(self) -> bool:
        return self.idle_threshold_ms > 0

    @property
    def is_tracking(self) -> bool:
        return self._tracking

    def start_tracking(
        self,
        session: TimeEntry,
        start_timer: bool = True,
        last_activity: Optional[int] = None
    ):
        """
        Begin watching a session

        Any previous watch is stopped first.

        Args:
            session: Session being tracked
            start_timer: Run the periodic check on a background thread
            last_activity: Activity instant to continue from (defaults to now)
        """
        self.stop_tracking()

        with self._lock:
            self._session = session
            self._tracking = True
            self._fired = False
            self.last_activity = last_activity if last_activity is not None else self.clock()

        if self.enabled and start_timer:
            self._timer = PeriodicTask(self.check_interval_seconds, self.check, name='idle-check')
            self._timer.start()

        logger.debug(f"Idle detection watching session {session.id}")

    def stop_tracking(self):
        """Stop watching; idempotent, and no check fires once this returns"""
        with self._lock:
            was_tracking = self._tracking
            self._tracking = False
            self._session = None
            timer, self._timer = self._timer, None

        if timer:
            timer.cancel()

        if was_tracking:
            logger.debug("Idle detection stopped")

    def update_session(self, session: TimeEntry):
        """Replace the watched session object (e.g. after a comment)"""
        with self._lock:
            if self._tracking:
                self._session = session

    def update_activity(self):
        """Record activity now; ignored when not tracking"""
        with self._lock:
            if self._tracking:
                self.last_activity = self.clock()

    def get_idle_time(self) -> int:
        """Milliseconds since the last recorded activity"""
        return max(0, self.clock() - self.last_activity)

    def check(self) -> bool:
        """
        Run one idle check

        Returns:
            True if this call emitted a timeout
        """
        with self._lock:
            if not self._tracking or self._fired or self._session is None or not self.enabled:
                return False

            idle_time = self.clock() - self.last_activity
            if idle_time <= self.idle_threshold_ms:
                return False

            self._fired = True
            event = IdleTimeout(session=self._session, last_activity=self.last_activity)

            # Stop watching before the event is visible to the consumer
            self._tracking = False
            self._session = None
            timer, self._timer = self._timer, None

        logger.info(f"Session {event.session.id} idle for {idle_time // 1000}s, timing out")
        self.events.put(event)
        if timer:
            timer.cancel()
        return True

    def get_status(self) -> IdleStatus:
        """Snapshot of the idle state (no side effects)"""
        idle_time_ms = self.get_idle_time()
        return IdleStatus(
            is_tracking=self._tracking,
            idle_time_ms=idle_time_ms,
            idle_threshold_ms=self.idle_threshold_ms,
            is_idle=self.enabled and idle_time_ms > self.idle_threshold_ms
        )
