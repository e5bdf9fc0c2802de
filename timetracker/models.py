"""Data models for time entries, metadata, and reports"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional

MS_PER_HOUR = 3_600_000
MS_PER_MINUTE = 60_000


def now_ms() -> int:
    """Current time in epoch milliseconds"""
    return int(time.time() * 1000)


def round_hours(value: float) -> float:
    """Round an hour figure to 2 decimal places for presentation"""
    return round(value, 2)


@dataclass
class GitCommitInfo:
    """A VCS commit correlated with a session (populated externally)"""
    hash: str
    message: str
    timestamp: int
    author: str

    @classmethod
    def from_dict(cls, data: dict) -> 'GitCommitInfo':
        return cls(
            hash=data['hash'],
            message=data.get('message', ''),
            timestamp=data.get('timestamp', 0),
            author=data.get('author', '')
        )

    def to_dict(self) -> dict:
        return {
            'hash': self.hash,
            'message': self.message,
            'timestamp': self.timestamp,
            'author': self.author
        }


@dataclass
class EnvironmentEntry:
    """Represents the workspace/remote context a session was tracked in"""
    id: str
    workspace_path: str
    remote_name: str
    created_at: int
    last_access: int
    project_id: Optional[str] = None
    git_remote_url: Optional[str] = None


@dataclass
class TimeEntry:
    """Represents one tracked interval

    An entry is finalized once end_time and duration are set. Only
    finalized entries are written to the entry log.
    """
    id: str
    environment_id: str
    date: str  # YYYY-MM-DD, day the session started
    start_time: int  # epoch milliseconds
    project: str
    workspace: str
    end_time: Optional[int] = None
    duration: Optional[int] = None  # milliseconds
    comment: Optional[str] = None
    git_commits: Optional[List[GitCommitInfo]] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'TimeEntry':
        """Create TimeEntry from its stored form"""
        commits = data.get('gitCommits')
        return cls(
            id=str(data['id']),
            environment_id=data.get('environmentId', 'unknown'),
            date=data['date'],
            start_time=int(data['startTime']),
            project=data.get('project', ''),
            workspace=data.get('workspace', ''),
            end_time=data.get('endTime'),
            duration=data.get('duration'),
            comment=data.get('comment'),
            git_commits=[GitCommitInfo.from_dict(c) for c in commits] if commits is not None else None
        )

    def to_dict(self) -> dict:
        """Convert to the stored form, omitting absent optional fields"""
        data = {
            'id': self.id,
            'environmentId': self.environment_id,
            'date': self.date,
            'startTime': self.start_time,
            'project': self.project,
            'workspace': self.workspace
        }
        if self.end_time is not None:
            data['endTime'] = self.end_time
        if self.duration is not None:
            data['duration'] = self.duration
        if self.comment is not None:
            data['comment'] = self.comment
        if self.git_commits is not None:
            data['gitCommits'] = [c.to_dict() for c in self.git_commits]
        return data

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None and self.duration is not None

    def finalize(self, end_time: int) -> 'TimeEntry':
        """Return a finalized copy ending at end_time (never before start)"""
        end_time = max(end_time, self.start_time)
        return replace(self, end_time=end_time, duration=end_time - self.start_time)

    def get_start_datetime(self) -> datetime:
        """Get start time as local datetime"""
        return datetime.fromtimestamp(self.start_time / 1000)

    def get_end_datetime(self) -> Optional[datetime]:
        """Get end time as local datetime"""
        if self.end_time is not None:
            return datetime.fromtimestamp(self.end_time / 1000)
        return None

    def get_duration_minutes(self) -> int:
        """Get duration rounded to whole minutes (0 when not finalized)"""
        if not self.duration:
            return 0
        return round(self.duration / MS_PER_MINUTE)


@dataclass
class TrackerMetadata:
    """Cached aggregates over the entry log, rebuildable at any time"""
    version: str
    total_tracked_ms: int
    project_count: int
    last_saved: int
    first_tracking_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'TrackerMetadata':
        return cls(
            version=data.get('version', ''),
            total_tracked_ms=int(data.get('totalTrackedMs', 0)),
            project_count=int(data.get('projectCount', 0)),
            last_saved=int(data.get('lastSaved', 0)),
            first_tracking_date=data.get('firstTrackingDate')
        )

    def to_dict(self) -> dict:
        data = {
            'version': self.version,
            'totalTrackedMs': self.total_tracked_ms,
            'projectCount': self.project_count,
            'lastSaved': self.last_saved
        }
        if self.first_tracking_date is not None:
            data['firstTrackingDate'] = self.first_tracking_date
        return data


@dataclass
class SessionState:
    """In-process view of the tracking status"""
    is_tracking: bool = False
    current_session: Optional[TimeEntry] = None
    last_activity: int = 0


@dataclass
class ProjectReport:
    """Per-project slice of a monthly report"""
    hours: float = 0.0
    sessions: int = 0
    entries: List[TimeEntry] = field(default_factory=list)


@dataclass
class MonthlyReport:
    """Entries of one month grouped by project"""
    month: str  # YYYY-MM
    total_hours: float
    total_sessions: int
    projects: Dict[str, ProjectReport]

    def all_entries(self) -> List[TimeEntry]:
        """Get every reported entry sorted by start time"""
        entries = [e for p in self.projects.values() for e in p.entries]
        entries.sort(key=lambda e: e.start_time)
        return entries


@dataclass
class Statistics:
    """Dashboard figures combining the metadata cache with monthly reports"""
    total_entries: int
    total_hours: float
    project_count: int
    first_tracking_date: Optional[str]
    current_month_hours: float
    current_month_sessions: int
    last_month_hours: float
    last_month_sessions: int
