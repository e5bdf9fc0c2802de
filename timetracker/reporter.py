"""Aggregation over the entry log and the cached metadata"""

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Callable, Dict, List, Optional

from .database import CURRENT_SESSION_KEY, ENTRIES_KEY, METADATA_KEY, Database
from .models import (
    MS_PER_HOUR,
    MonthlyReport,
    ProjectReport,
    Statistics,
    TimeEntry,
    TrackerMetadata,
    round_hours,
)

logger = logging.getLogger(__name__)

METADATA_VERSION = '1.0.0'


def current_month(today: Optional[date] = None) -> str:
    """YYYY-MM for today (local time)"""
    today = today or date.today()
    return today.strftime('%Y-%m')


def previous_month(today: Optional[date] = None) -> str:
    """YYYY-MM for the calendar month before today"""
    today = today or date.today()
    if today.month == 1:
        return f"{today.year - 1}-12"
    return f"{today.year}-{today.month - 1:02d}"


class Reporter:
    """Reads the entry log and keeps the metadata cache consistent with it

    Hot-path totals come from the cached metadata; month and project
    queries scan the log.
    """

    def __init__(self, db: Database, clock: Callable[[], int]):
        self.db = db
        self.clock = clock

    # Entry log

    def get_all_entries(self) -> List[TimeEntry]:
        """Get every logged entry in log order"""
        return [TimeEntry.from_dict(row) for row in self.db.get(ENTRIES_KEY, [])]

    def get_entries_for_month(self, year_month: str) -> List[TimeEntry]:
        """Get entries whose date falls in YYYY-MM"""
        return [e for e in self.get_all_entries() if e.date[:7] == year_month]

    def get_entries_for_project(self, project: str) -> List[TimeEntry]:
        """Get entries for one project"""
        return [e for e in self.get_all_entries() if e.project == project]

    def get_all_projects(self) -> List[str]:
        """Get sorted distinct project names"""
        return sorted({e.project for e in self.get_all_entries()})

    # Metadata cache

    def get_metadata(self) -> Optional[TrackerMetadata]:
        """Get cached metadata, None if never written"""
        data = self.db.get(METADATA_KEY)
        return TrackerMetadata.from_dict(data) if data else None

    def new_metadata(self) -> TrackerMetadata:
        return TrackerMetadata(
            version=METADATA_VERSION,
            total_tracked_ms=0,
            project_count=0,
            last_saved=self.clock()
        )

    def initialize_metadata(self) -> TrackerMetadata:
        """Get metadata, writing empty metadata first if absent"""
        def compute(current):
            if current[METADATA_KEY]:
                return {}
            return {METADATA_KEY: self.new_metadata().to_dict()}

        self.db.update([METADATA_KEY], compute)
        return self.get_metadata()

    def append_values(self, current: Dict[str, object], entry: TimeEntry) -> Dict[str, object]:
        """
        Compute the log and metadata after appending a finalized entry

        Metadata is updated incrementally: the total grows by the entry's
        duration, the project count is recomputed from the distinct
        projects of the new log, and the first tracking date keeps the
        minimum.

        Args:
            current: Stored values of the entries and metadata keys
            entry: Finalized entry to append

        Returns:
            Dict of key -> new full value
        """
        if not entry.is_finalized:
            raise ValueError(f"Entry {entry.id} is not finalized")

        entries = list(current.get(ENTRIES_KEY) or [])
        entries.append(entry.to_dict())

        stored = current.get(METADATA_KEY)
        metadata = TrackerMetadata.from_dict(stored) if stored else self.new_metadata()
        metadata.total_tracked_ms += entry.duration or 0
        metadata.last_saved = self.clock()
        if not metadata.first_tracking_date or entry.date < metadata.first_tracking_date:
            metadata.first_tracking_date = entry.date
        metadata.project_count = len({row.get('project', '') for row in entries})

        return {ENTRIES_KEY: entries, METADATA_KEY: metadata.to_dict()}

    def append_entry(self, entry: TimeEntry, extra: Optional[Dict[str, object]] = None):
        """
        Append a finalized entry and update metadata in one transaction

        Args:
            entry: Finalized entry
            extra: Further writes committed together with the append
        """
        def compute(current):
            values = self.append_values(current, entry)
            values.update(extra or {})
            return values

        self.db.update([ENTRIES_KEY, METADATA_KEY], compute)

    def update_entry(self, entry_id: str, **changes) -> Optional[TimeEntry]:
        """
        Edit a logged entry

        Args:
            entry_id: Id of the entry to change
            **changes: TimeEntry fields to replace (comment, project, end_time, ...)

        Returns:
            The updated entry, or None if no entry has that id
        """
        updated = None

        def compute(current):
            nonlocal updated
            updated = None
            entries = [TimeEntry.from_dict(row) for row in current[ENTRIES_KEY] or []]
            for index, existing in enumerate(entries):
                if existing.id == entry_id:
                    break
            else:
                return {}

            updated = replace(existing, **changes)
            if 'end_time' in changes and 'duration' not in changes and updated.end_time is not None:
                updated = updated.finalize(updated.end_time)
            entries[index] = updated

            stored = current[METADATA_KEY]
            metadata = TrackerMetadata.from_dict(stored) if stored else self.new_metadata()
            metadata.total_tracked_ms += (updated.duration or 0) - (existing.duration or 0)
            metadata.project_count = len({e.project for e in entries})
            dates = [e.date for e in entries if e.date]
            metadata.first_tracking_date = min(dates) if dates else None
            metadata.last_saved = self.clock()

            return {
                ENTRIES_KEY: [e.to_dict() for e in entries],
                METADATA_KEY: metadata.to_dict()
            }

        self.db.update([ENTRIES_KEY, METADATA_KEY], compute)
        return updated

    def compute_metadata(self, entries: Optional[List[TimeEntry]] = None) -> TrackerMetadata:
        """Recompute metadata from the log with a full scan"""
        entries = self.get_all_entries() if entries is None else entries
        dates = [e.date for e in entries if e.date]
        return TrackerMetadata(
            version=METADATA_VERSION,
            total_tracked_ms=sum(e.duration or 0 for e in entries),
            project_count=len({e.project for e in entries}),
            last_saved=self.clock(),
            first_tracking_date=min(dates) if dates else None
        )

    def verify_metadata(self) -> bool:
        """Check the cached totals against the log"""
        metadata = self.get_metadata()
        entries = self.get_all_entries()
        if metadata is None:
            return not entries

        expected = self.compute_metadata(entries)
        return (
            metadata.total_tracked_ms == expected.total_tracked_ms
            and metadata.project_count == expected.project_count
            and metadata.first_tracking_date == expected.first_tracking_date
        )

    def rebuild_metadata(self) -> TrackerMetadata:
        """Replace cached metadata with a full recompute"""
        def compute(current):
            entries = [TimeEntry.from_dict(row) for row in current[ENTRIES_KEY] or []]
            return {METADATA_KEY: self.compute_metadata(entries).to_dict()}

        written = self.db.update([ENTRIES_KEY], compute)
        metadata = TrackerMetadata.from_dict(written[METADATA_KEY])
        logger.warning(
            f"Metadata rebuilt: {metadata.total_tracked_ms}ms over {metadata.project_count} projects"
        )
        return metadata

    def ensure_consistent(self) -> bool:
        """
        Rebuild metadata if it diverges from the log

        Returns:
            True if a rebuild was needed
        """
        if self.verify_metadata():
            return False
        self.rebuild_metadata()
        return True

    # Reports

    def get_monthly_report(self, year_month: Optional[str] = None) -> MonthlyReport:
        """
        Group a month's entries by project

        Entries without a duration are left out of totals. Hours are
        rounded to 2 decimals in the report only.

        Args:
            year_month: YYYY-MM, defaults to the current month
        """
        month = year_month or current_month()
        projects: Dict[str, ProjectReport] = defaultdict(ProjectReport)
        total_ms = 0
        total_sessions = 0
        project_ms: Dict[str, int] = defaultdict(int)

        for entry in self.get_entries_for_month(month):
            if entry.duration is None:
                continue

            total_ms += entry.duration
            total_sessions += 1
            project_ms[entry.project] += entry.duration

            report = projects[entry.project]
            report.sessions += 1
            report.entries.append(entry)

        for name, report in projects.items():
            report.hours = round_hours(project_ms[name] / MS_PER_HOUR)

        return MonthlyReport(
            month=month,
            total_hours=round_hours(total_ms / MS_PER_HOUR),
            total_sessions=total_sessions,
            projects=dict(projects)
        )

    def get_statistics(self, today: Optional[date] = None) -> Statistics:
        """Combine cached totals with this and last month's reports"""
        entries = self.db.get(ENTRIES_KEY, [])
        metadata = self.initialize_metadata()

        this_month = self.get_monthly_report(current_month(today))
        last_month = self.get_monthly_report(previous_month(today))

        return Statistics(
            total_entries=len(entries),
            total_hours=round_hours(metadata.total_tracked_ms / MS_PER_HOUR),
            project_count=metadata.project_count,
            first_tracking_date=metadata.first_tracking_date,
            current_month_hours=this_month.total_hours,
            current_month_sessions=this_month.total_sessions,
            last_month_hours=last_month.total_hours,
            last_month_sessions=last_month.total_sessions
        )

    def clear_all_data(self, force: bool = False) -> bool:
        """
        Remove the log, the current session, and metadata (irreversible)

        Refuses while a session is stored, since a running tracker would
        write it back on its next checkpoint.

        Args:
            force: Clear even if a session is stored

        Returns:
            True if the data was cleared
        """
        cleared = False

        def compute(current):
            nonlocal cleared
            cleared = force or not current[CURRENT_SESSION_KEY]
            if not cleared:
                return {}
            return {ENTRIES_KEY: None, CURRENT_SESSION_KEY: None, METADATA_KEY: None}

        self.db.update([CURRENT_SESSION_KEY], compute)
        if cleared:
            logger.warning("All tracking data cleared")
        return cleared
