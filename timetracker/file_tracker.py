"""Workspace file polling as a source of activity signals"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from .activity import ActivityMonitor, ActivitySource

logger = logging.getLogger(__name__)

SKIPPED_DIRS = {'__pycache__', 'node_modules', 'venv', '.git'}


class FileTracker:
    """Detects file saves in a directory by comparing modification times"""

    def __init__(self, directory: Optional[str] = None):
        """
        Initialize file tracker

        Args:
            directory: Directory to track (defaults to current directory)
        """
        self.directory = Path(directory) if directory else Path.cwd()
        self.snapshot: Dict[str, float] = {}

    def _scan(self) -> Dict[str, float]:
        """Map relative path -> mtime for every visible file (recursive)"""
        found: Dict[str, float] = {}

        if not self.directory.exists():
            return found

        try:
            for root, dirs, files in os.walk(self.directory):
                # Skip hidden directories and common non-work directories
                dirs[:] = [d for d in dirs if not d.startswith('.') and d not in SKIPPED_DIRS]

                for file in files:
                    # Skip hidden files and temp files
                    if file.startswith('.') or file.startswith('~'):
                        continue

                    file_path = Path(root) / file
                    try:
                        found[str(file_path.relative_to(self.directory))] = file_path.stat().st_mtime
                    except OSError:
                        # Deleted or unreadable between listing and stat
                        continue
        except OSError as e:
            logger.debug(f"Cannot scan {self.directory}: {e}")

        return found

    def take_snapshot(self):
        """Record the current modification times"""
        self.snapshot = self._scan()

    def poll(self) -> List[str]:
        """Return files changed since the last poll and move the snapshot forward"""
        current = self._scan()
        changed = sorted(
            path for path, mtime in current.items()
            if path not in self.snapshot or mtime > self.snapshot[path]
        )
        self.snapshot = current
        return changed


class WorkspaceActivity:
    """Signals SAVE activity whenever a poll finds changed files"""

    def __init__(self, tracker: FileTracker, activity: ActivityMonitor):
        self.tracker = tracker
        self.activity = activity
        self.tracker.take_snapshot()

    def poll(self) -> bool:
        changed = self.tracker.poll()
        if not changed:
            return False

        logger.debug(f"{len(changed)} file(s) changed in {self.tracker.directory}")
        self.activity.signal(ActivitySource.SAVE)
        return True
