"""Session lifecycle: start, stop, idle auto-stop, and crash recovery"""

import logging
import queue
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .activity import ActivityMonitor
from .config import Config
from .database import CURRENT_SESSION_KEY, Database
from .environment import HostContext, resolve_environment_id
from .errors import TrackerError
from .idle import IdleDetector, IdleStatus, IdleTimeout
from .models import MS_PER_MINUTE, SessionState, TimeEntry, now_ms
from .reporter import Reporter
from .scheduler import PeriodicTask

logger = logging.getLogger(__name__)

_SHUTDOWN = object()


class RecoveryOutcome(Enum):
    """What recover() did with the stored current session"""
    IDLE = 'idle'
    RESUMED = 'resumed'
    AUTO_STOPPED = 'auto_stopped'
    DISCARDED = 'discarded'


@dataclass
class TrackerStatus:
    is_tracking: bool
    session: Optional[TimeEntry]
    elapsed_ms: int
    idle: IdleStatus


def new_entry_id(now: int) -> str:
    """Entry id that sorts by creation time"""
    return f"{now}-{uuid.uuid4().hex[:8]}"


class TrackerEngine:
    """Owns the current session and every durable write about it

    All mutations run under one lock, including the auto-save checkpoint
    timer and idle timeouts arriving from the idle detector's queue. Each
    operation writes to the store before changing in-memory state, so a
    PersistenceError leaves the engine as it was.
    """

    def __init__(
        self,
        config: Config,
        db: Database,
        context: HostContext,
        activity: Optional[ActivityMonitor] = None,
        clock: Optional[Callable[[], int]] = None,
        notify: Optional[Callable[[str], None]] = None,
        background_timers: bool = True
    ):
        """
        Args:
            config: Tracker configuration
            db: Durable store
            context: Host workspace the sessions are tracked against
            activity: Activity monitor feeding idle detection
            clock: Returns epoch milliseconds (defaults to wall clock)
            notify: Receives informational notices for the user
            background_timers: Run idle checks, checkpoints and the event
                dispatcher on threads; when False, callers drive them with
                idle_detector.check(), checkpoint() and drain_events()
        """
        self.config = config
        self.db = db
        self.context = context
        self.clock = clock or now_ms
        self.notify = notify or (lambda message: logger.info(message))
        self.background_timers = background_timers

        self.reporter = Reporter(db, self.clock)
        self.events: queue.Queue = queue.Queue()
        self.idle_detector = IdleDetector(
            config.idle_threshold_ms,
            config.idle_check_interval_seconds,
            self.events,
            self.clock
        )
        self.activity = activity or ActivityMonitor()
        self._unsubscribe = self.activity.subscribe(self.idle_detector.update_activity)

        self._lock = threading.RLock()
        self._state = SessionState(last_activity=self.clock())
        self._checkpoint_timer: Optional[PeriodicTask] = None
        self._dispatcher: Optional[threading.Thread] = None

    def __enter__(self) -> 'TrackerEngine':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # State queries

    @property
    def is_tracking(self) -> bool:
        return self._state.is_tracking

    @property
    def current_session(self) -> Optional[TimeEntry]:
        return self._state.current_session

    def get_state(self) -> SessionState:
        """Snapshot of the session state"""
        with self._lock:
            last_activity = self.idle_detector.last_activity if self._state.is_tracking else self._state.last_activity
            return SessionState(
                is_tracking=self._state.is_tracking,
                current_session=self._state.current_session,
                last_activity=last_activity
            )

    def get_status(self) -> TrackerStatus:
        """Tracking state with running elapsed time and idle status"""
        with self._lock:
            session = self._state.current_session
            elapsed = self.clock() - session.start_time if session else 0
            return TrackerStatus(
                is_tracking=self._state.is_tracking,
                session=session,
                elapsed_ms=max(0, elapsed),
                idle=self.idle_detector.get_status()
            )

    # Process lifetime

    def open(self) -> RecoveryOutcome:
        """Recover the stored session, repair metadata, start background work"""
        outcome = self.recover()

        if self.reporter.ensure_consistent():
            logger.warning("Metadata diverged from the entry log and was rebuilt")

        if self.background_timers:
            self.start_dispatcher()

        if self.config.auto_start and not self.is_tracking:
            self.start_tracking()

        return outcome

    def close(self):
        """Stop (or checkpoint) the session and shut down background work"""
        try:
            if self.config.auto_stop and self.is_tracking:
                self.stop_tracking()
            else:
                with self._lock:
                    self._cancel_timers()
                    if self._state.is_tracking:
                        self._write_checkpoint()
        finally:
            self.stop_dispatcher()
            self._unsubscribe()

    def start_dispatcher(self):
        """Consume idle timeout events on a background thread"""
        if self._dispatcher is not None:
            return
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name='idle-events', daemon=True)
        self._dispatcher.start()

    def stop_dispatcher(self):
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is None:
            return
        self.events.put(_SHUTDOWN)
        if dispatcher is not threading.current_thread():
            dispatcher.join()

    def _dispatch_loop(self):
        while True:
            event = self.events.get()
            if event is _SHUTDOWN:
                break
            try:
                self.handle_idle_timeout(event)
            except Exception:
                # Keep the dispatcher alive for later timeouts
                logger.exception("Idle auto-stop failed")

    def drain_events(self) -> int:
        """
        Handle queued idle timeouts on the calling thread

        Returns:
            Number of events handled
        """
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled
            if event is _SHUTDOWN:
                continue
            self.handle_idle_timeout(event)
            handled += 1

    # Commands

    def start_tracking(self) -> Optional[TimeEntry]:
        """
        Start a new session

        Returns:
            The new session, or None if a session is already running
        """
        with self._lock:
            if self._state.is_tracking:
                self.notify("Tracking already running")
                return None

            now = self.clock()
            session = TimeEntry(
                id=new_entry_id(now),
                environment_id=resolve_environment_id(self.context, now),
                date=datetime.fromtimestamp(now / 1000).strftime('%Y-%m-%d'),
                start_time=now,
                project=self.context.project_name(),
                workspace=self.context.workspace or ''
            )

            self.db.set(CURRENT_SESSION_KEY, session.to_dict())
            self._install_timers(session)
            self._state = SessionState(is_tracking=True, current_session=session, last_activity=now)

        logger.info(f"Session {session.id} started for {session.project}")
        self.notify("Time tracking started")
        return session

    def stop_tracking(self) -> Optional[TimeEntry]:
        """
        Stop the current session and log it

        Returns:
            The finalized entry, or None if nothing was running
        """
        with self._lock:
            if not self._state.is_tracking or self._state.current_session is None:
                self.notify("Tracking is not running")
                return None

            entry = self._finish(self.clock())

        logger.info(f"Session {entry.id} stopped after {entry.duration}ms")
        self.notify(f"Time tracking stopped ({entry.get_duration_minutes()} min)")
        return entry

    def add_comment(self, text: str) -> bool:
        """
        Attach a comment to the running session

        Returns:
            True if the comment was saved
        """
        with self._lock:
            if not self._state.is_tracking or self._state.current_session is None:
                self.notify("Tracking is not running")
                return False

            text = (text or '').strip()
            if not text:
                self.notify("Comment is empty")
                return False

            updated = replace(self._state.current_session, comment=text)
            self.db.set(CURRENT_SESSION_KEY, updated.to_dict())
            self._state.current_session = updated
            self.idle_detector.update_session(updated)

        self.notify("Comment added")
        return True

    def reset_today(self) -> Optional[TimeEntry]:
        """
        Discard the running session without logging it

        Returns:
            The discarded session, if there was one
        """
        with self._lock:
            discarded = self._state.current_session
            last_activity = self.idle_detector.last_activity

            self._cancel_timers()
            try:
                self.db.delete(CURRENT_SESSION_KEY)
            except TrackerError:
                if discarded is not None:
                    self._install_timers(discarded, last_activity)
                raise

            self._state = SessionState(last_activity=self.clock())

        if discarded:
            logger.info(f"Session {discarded.id} discarded by reset")
        self.notify("Today reset")
        return discarded

    def amend_entry(self, entry_id: str, **changes) -> Optional[TimeEntry]:
        """Edit a logged entry without racing a concurrent finalize"""
        with self._lock:
            return self.reporter.update_entry(entry_id, **changes)

    # Background work

    def checkpoint(self) -> bool:
        """
        Save the running session with its duration so far

        Returns:
            True if a checkpoint was written
        """
        with self._lock:
            if not self._state.is_tracking or self._state.current_session is None:
                return False
            self._write_checkpoint()
            return True

    def _write_checkpoint(self):
        session = self._state.current_session
        snapshot = replace(session, duration=max(0, self.clock() - session.start_time))
        self.db.set(CURRENT_SESSION_KEY, snapshot.to_dict())
        logger.debug(f"Checkpoint for session {session.id}: {snapshot.duration}ms")

    def handle_idle_timeout(self, event: IdleTimeout) -> Optional[TimeEntry]:
        """
        Auto-stop the session at its last activity

        Events for a session that is no longer current are ignored.

        Returns:
            The finalized entry, or None if the event was stale
        """
        with self._lock:
            session = self._state.current_session
            if not self._state.is_tracking or session is None or session.id != event.session.id:
                logger.warning(f"Ignoring idle timeout for inactive session {event.session.id}")
                return None

            entry = self._finish(event.last_activity)

        minutes = self.config.idle_threshold_seconds // 60
        logger.info(f"Session {entry.id} auto-stopped at last activity")
        self.notify(f"Time tracking stopped after {minutes} min of inactivity ({entry.get_duration_minutes()} min logged)")
        return entry

    # Recovery

    def recover(self) -> RecoveryOutcome:
        """
        Decide what to do with a session left over from a previous process

        A session younger than the idle threshold is resumed, on the
        assumption the process was only restarted. An older one is logged
        with its end capped at start + threshold, since the real last
        activity is unknown.
        """
        with self._lock:
            if self._state.is_tracking:
                return RecoveryOutcome.RESUMED

            data = self.db.get(CURRENT_SESSION_KEY)
            if not data:
                return RecoveryOutcome.IDLE

            try:
                session = TimeEntry.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable stored session: {e}")
                self.db.delete(CURRENT_SESSION_KEY)
                return RecoveryOutcome.DISCARDED

            logged_ids = {entry.id for entry in self.reporter.get_all_entries()}
            if session.id in logged_ids:
                logger.warning(f"Stored session {session.id} was already logged, clearing it")
                self.db.delete(CURRENT_SESSION_KEY)
                return RecoveryOutcome.DISCARDED

            if session.is_finalized:
                self._finalize(session, session.end_time)
                return RecoveryOutcome.AUTO_STOPPED

            # A checkpointed duration is not final
            session = replace(session, duration=None)

            now = self.clock()
            threshold = self.config.idle_threshold_ms
            session_age = now - session.start_time

            if threshold <= 0 or session_age < threshold:
                self.db.set(CURRENT_SESSION_KEY, session.to_dict())
                self._install_timers(session)
                self._state = SessionState(is_tracking=True, current_session=session, last_activity=now)
                logger.info(f"Resumed session {session.id} ({session_age // 1000}s old)")
                self.notify(f"Resumed session started {session_age // MS_PER_MINUTE} min ago")
                return RecoveryOutcome.RESUMED

            entry = self._finalize(session, session.start_time + threshold)

        logger.info(f"Stale session {entry.id} auto-stopped at start + threshold")
        self.notify(f"Previous session auto-stopped ({entry.get_duration_minutes()} min logged)")
        return RecoveryOutcome.AUTO_STOPPED

    # Internals (lock held)

    def _finish(self, end_time: int) -> TimeEntry:
        """Cancel timers, then log the current session ending at end_time"""
        session = self._state.current_session
        last_activity = self.idle_detector.last_activity

        # Timers go first so no checkpoint can rewrite the slot after it is cleared
        self._cancel_timers()
        try:
            entry = self._finalize(session, end_time)
        except TrackerError:
            self._install_timers(session, last_activity)
            raise

        self._state = SessionState(last_activity=last_activity)
        return entry

    def _finalize(self, session: TimeEntry, end_time: int) -> TimeEntry:
        """Append the finalized session, update metadata and clear the slot in one write"""
        entry = session.finalize(end_time)
        self.reporter.append_entry(entry, extra={CURRENT_SESSION_KEY: None})
        return entry

    def _install_timers(self, session: TimeEntry, last_activity: Optional[int] = None):
        self.idle_detector.start_tracking(
            session,
            start_timer=self.background_timers,
            last_activity=last_activity
        )

        interval = self.config.auto_save_interval_seconds
        if interval > 0 and self.background_timers:
            self._checkpoint_timer = PeriodicTask(interval, self.checkpoint, name='auto-save', guard=self._lock)
            self._checkpoint_timer.start()

    def _cancel_timers(self):
        self.idle_detector.stop_tracking()
        timer, self._checkpoint_timer = self._checkpoint_timer, None
        if timer:
            timer.cancel()
