"""Exception types for the time tracker"""


class TrackerError(Exception):
    """Base class for time tracker errors"""


class PersistenceError(TrackerError):
    """A durable read or write against the store failed"""

    def __init__(self, message: str, key: str = None):
        super().__init__(message)
        self.key = key
