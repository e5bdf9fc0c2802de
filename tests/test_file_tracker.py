"""Tests for workspace file polling"""

import os

from timetracker.activity import ActivityMonitor, ActivitySource
from timetracker.file_tracker import FileTracker, WorkspaceActivity


class TestFileTracker:
    """Tests for modification-time snapshots."""

    def test_new_file_is_reported_once(self, tmp_path):
        tracker = FileTracker(str(tmp_path))
        tracker.take_snapshot()

        (tmp_path / 'notes.md').write_text("draft")

        assert tracker.poll() == ['notes.md']
        assert tracker.poll() == []

    def test_modified_file_is_reported(self, tmp_path):
        source = tmp_path / 'src' / 'main.py'
        source.parent.mkdir()
        source.write_text("print('hi')")
        tracker = FileTracker(str(tmp_path))
        tracker.take_snapshot()

        mtime = source.stat().st_mtime
        os.utime(source, (mtime + 10, mtime + 10))

        assert tracker.poll() == [os.path.join('src', 'main.py')]

    def test_hidden_and_skipped_paths_are_ignored(self, tmp_path):
        tracker = FileTracker(str(tmp_path))
        tracker.take_snapshot()

        (tmp_path / '.env').write_text("X=1")
        (tmp_path / '~lock').write_text("")
        (tmp_path / '.git').mkdir()
        (tmp_path / '.git' / 'HEAD').write_text("ref")
        (tmp_path / 'node_modules').mkdir()
        (tmp_path / 'node_modules' / 'pkg.js').write_text("")

        assert tracker.poll() == []

    def test_missing_directory_yields_nothing(self, tmp_path):
        tracker = FileTracker(str(tmp_path / 'gone'))
        tracker.take_snapshot()

        assert tracker.poll() == []


def test_workspace_activity_signals_save(tmp_path):
    monitor = ActivityMonitor()
    seen = []
    monitor.subscribe(lambda: seen.append(monitor.last_signal))
    workspace = WorkspaceActivity(FileTracker(str(tmp_path)), monitor)

    assert workspace.poll() is False

    (tmp_path / 'report.txt').write_text("done")

    assert workspace.poll() is True
    assert seen == [ActivitySource.SAVE]
