"""CSV and JSON export of tracked time"""

import csv
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from .database import CURRENT_SESSION_KEY, ENTRIES_KEY, METADATA_KEY
from .reporter import METADATA_VERSION, Reporter

logger = logging.getLogger(__name__)

CSV_HEADER = ['Date', 'Start Time', 'End Time', 'Duration (min)', 'Project', 'Workspace', 'Comment']


def export_csv(reporter: Reporter, year_month: Optional[str] = None) -> str:
    """
    Export a month's entries as CSV

    One row per reported entry sorted by start time, followed by a summary
    block with totals and per-project hours.

    Args:
        reporter: Source of the monthly report
        year_month: YYYY-MM, defaults to the current month

    Returns:
        CSV text
    """
    report = reporter.get_monthly_report(year_month)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(CSV_HEADER)

    for entry in report.all_entries():
        end = entry.get_end_datetime()
        writer.writerow([
            entry.date,
            entry.get_start_datetime().strftime('%H:%M:%S'),
            end.strftime('%H:%M:%S') if end else '',
            entry.get_duration_minutes(),
            entry.project,
            entry.workspace,
            entry.comment or ''
        ])

    # Summary
    writer.writerow([])
    writer.writerow([])
    writer.writerow(['Summary'])
    writer.writerow(['Total Hours', report.total_hours])
    writer.writerow(['Total Sessions', report.total_sessions])
    writer.writerow([])
    writer.writerow(['By Project'])
    for project, data in report.projects.items():
        writer.writerow([project, f"{data.hours}h", f"{data.sessions} sessions"])

    return buffer.getvalue()


def export_json(reporter: Reporter) -> str:
    """Export the raw stored values of all keys as JSON"""
    now = reporter.clock()
    export_data = {
        'version': METADATA_VERSION,
        'exportTimestamp': now,
        'exportDate': datetime.fromtimestamp(now / 1000).isoformat(),
        'data': {
            'entries': reporter.db.get(ENTRIES_KEY, []),
            'currentSession': reporter.db.get(CURRENT_SESSION_KEY),
            'metadata': reporter.db.get(METADATA_KEY)
        },
        'keys': {
            'ENTRIES_KEY': ENTRIES_KEY,
            'CURRENT_SESSION_KEY': CURRENT_SESSION_KEY,
            'METADATA_KEY': METADATA_KEY
        }
    }
    return json.dumps(export_data, indent=2)


def session_editor_document(reporter: Reporter) -> str:
    """JSON document listing every logged session for manual review"""
    sessions = [entry.to_dict() for entry in reporter.get_all_entries()]
    return json.dumps({'sessions': sessions}, indent=2)


def write_export(content: str, reports_dir: Path, filename: str) -> Path:
    """
    Write exported content to the reports directory

    Args:
        content: File content
        reports_dir: Directory to write into (created if missing)
        filename: File name

    Returns:
        Path to exported file
    """
    reports_dir.mkdir(parents=True, exist_ok=True)
    file_path = reports_dir / filename

    with open(file_path, 'w', encoding='utf-8', newline='') as f:
        f.write(content)

    logger.info(f"Exported {file_path}")
    return file_path


def default_filename(kind: str, extension: str) -> str:
    """Timestamped export file name"""
    timestamp = datetime.now().strftime('%Y-%m-%d_%H%M%S')
    return f"timetracker_{kind}_{timestamp}.{extension}"
