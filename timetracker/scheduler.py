"""Cancellable interval timers for background checks"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# How often a tick waiting on the guard lock re-checks for cancellation
GUARD_POLL_SECONDS = 0.05


class PeriodicTask:
    """Runs an action every `interval` seconds on a daemon thread

    If a guard lock is given, each run holds it, so the action is mutually
    exclusive with anything else taking the same lock. Once cancel() has
    returned the action will not run again, even if a tick was already
    waiting for the guard.
    """

    def __init__(
        self,
        interval: float,
        action: Callable[[], None],
        name: str = 'periodic-task',
        guard: Optional[threading.RLock] = None
    ):
        self.interval = interval
        self.action = action
        self.name = name
        self.guard = guard
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._cancelled.is_set()

    def start(self):
        """Start the timer thread (no-op if already started)"""
        if self._thread is not None:
            return

        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"{self.name} started (every {self.interval}s)")

    def cancel(self):
        """
        Stop the timer and wait for an in-flight run to finish

        Safe to call repeatedly, before start(), or from inside the action.
        """
        self._cancelled.set()

        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return

        thread.join()
        logger.debug(f"{self.name} cancelled")

    def _loop(self):
        while not self._cancelled.wait(self.interval):
            self._tick()

    def _tick(self):
        if self.guard is None:
            if not self._cancelled.is_set():
                self._run_action()
            return

        # Wait for the guard, giving up if cancelled meanwhile
        while not self.guard.acquire(timeout=GUARD_POLL_SECONDS):
            if self._cancelled.is_set():
                return
        try:
            if not self._cancelled.is_set():
                self._run_action()
        finally:
            self.guard.release()

    def _run_action(self):
        try:
            self.action()
        except Exception:
            # Keep the timer alive; the next tick retries
            logger.exception(f"{self.name} action failed")
