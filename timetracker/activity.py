"""Activity monitor: folds host activity signals into one timestamp"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ActivitySource(Enum):
    """Kinds of host activity; all are treated the same"""
    TEXT_CHANGE = 'text_change'
    FOCUS_CHANGE = 'focus_change'
    SAVE = 'save'
    SELECTION = 'selection'
    SCROLL = 'scroll'
    TERMINAL = 'terminal'
    COMMAND = 'command'


class ActivityMonitor:
    """Relays "activity occurred" signals to subscribers

    Has no business logic: every signal, whatever its source, means
    "the user did something now".
    """

    def __init__(self):
        self._listeners: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self.last_signal: Optional[ActivitySource] = None
        self.signal_counts: Dict[ActivitySource, int] = {}

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a listener; returns a function that removes it"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def signal(self, source: ActivitySource = ActivitySource.COMMAND):
        """Report one activity event"""
        with self._lock:
            self.last_signal = source
            self.signal_counts[source] = self.signal_counts.get(source, 0) + 1
            listeners = list(self._listeners)

        logger.debug(f"Activity: {source.value}")
        for listener in listeners:
            listener()
