"""Rich UI components for terminal interface"""

import os
import platform
import subprocess
from pathlib import Path
from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import MS_PER_MINUTE, MonthlyReport, Statistics, TimeEntry
from .session import TrackerStatus


console = Console()


def print_error(message: str):
    """Print error message"""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str):
    """Print success message"""
    console.print(f"[bold green]✓[/bold green] {message}")


def print_info(message: str):
    """Print info message"""
    console.print(f"[cyan]ℹ[/cyan] {message}")


def print_warning(message: str):
    """Print warning message"""
    console.print(f"[yellow]⚠[/yellow] {message}")


def format_duration(minutes: int) -> str:
    """Format duration in human-readable format"""
    hours = minutes // 60
    mins = minutes % 60

    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def open_path(path: Path):
    """Open a file in the default application"""
    try:
        if platform.system() == 'Windows':
            os.startfile(str(path))
        elif platform.system() == 'Darwin':  # macOS
            subprocess.run(['open', str(path)])
        else:  # Linux
            subprocess.run(['xdg-open', str(path)])
        print_success(f"Opening file: {path}")
    except OSError as e:
        print_error(f"Could not open {path}: {e}")


def create_status_display(status: TrackerStatus) -> Panel:
    """Create the current session panel"""
    if not status.is_tracking or status.session is None:
        return Panel(
            "[dim]Not tracking[/dim]",
            box=box.ROUNDED,
            border_style="dim",
            title="Time Tracker",
            title_align="left"
        )

    session = status.session
    elapsed = status.elapsed_ms // MS_PER_MINUTE
    idle = status.idle.idle_time_ms // MS_PER_MINUTE
    started = session.get_start_datetime().strftime('%H:%M')

    lines = [
        f"[bold cyan]{session.project}[/bold cyan]",
        f"[dim]{session.workspace}[/dim]" if session.workspace else "",
        "",
        f"[green]⏱️  Tracking[/green] since {started} | {format_duration(elapsed)}",
    ]

    if status.idle.idle_threshold_ms:
        threshold = status.idle.idle_threshold_ms // MS_PER_MINUTE
        style = "yellow" if status.idle.is_idle else "dim"
        lines.append(f"[{style}]Idle {format_duration(idle)} of {format_duration(threshold)} allowed[/{style}]")

    if session.comment:
        comment = session.comment[:60] + "..." if len(session.comment) > 60 else session.comment
        lines.append(f"[dim]Comment:[/dim] {comment}")

    return Panel(
        "\n".join(lines),
        box=box.DOUBLE,
        border_style="cyan",
        title="Current Session",
        title_align="left"
    )


def display_monthly_report(report: MonthlyReport):
    """Display a monthly report as a table"""
    if not report.total_sessions:
        console.print(f"[dim]No tracked time in {report.month}.[/dim]")
        return

    table = Table(title=f"Report for {report.month}", show_header=True, box=box.ROUNDED)
    table.add_column("Project", style="cyan")
    table.add_column("Hours", style="white", justify="right")
    table.add_column("Sessions", style="dim", justify="right")

    for project, data in sorted(report.projects.items(), key=lambda item: item[1].hours, reverse=True):
        table.add_row(project, f"{data.hours:.2f}", str(data.sessions))

    table.add_section()
    table.add_row("[bold]Total[/bold]", f"[bold]{report.total_hours:.2f}[/bold]", str(report.total_sessions))

    console.print(table)


def display_statistics(stats: Statistics):
    """Display overall statistics"""
    since = stats.first_tracking_date or "-"
    lines = [
        f"Total: [bold]{stats.total_hours:.2f}h[/bold] across {stats.total_entries} sessions",
        f"Projects: {stats.project_count} (tracking since {since})",
        "",
        f"This month: {stats.current_month_hours:.2f}h ({stats.current_month_sessions} sessions)",
        f"Last month: {stats.last_month_hours:.2f}h ({stats.last_month_sessions} sessions)",
    ]
    console.print(Panel("\n".join(lines), box=box.ROUNDED, border_style="cyan", title="Statistics"))


def display_project_sessions(project: str, entries: List[TimeEntry]):
    """Display every logged session of one project"""
    if not entries:
        console.print(f"[dim]No sessions for {project}.[/dim]")
        return

    table = Table(title=project, show_header=True, box=box.ROUNDED)
    table.add_column("Date", style="cyan")
    table.add_column("Start", style="white")
    table.add_column("Duration", style="white", justify="right")
    table.add_column("Comment", style="dim")

    total_minutes = 0
    for entry in sorted(entries, key=lambda e: e.start_time):
        minutes = entry.get_duration_minutes()
        total_minutes += minutes
        table.add_row(
            entry.date,
            entry.get_start_datetime().strftime('%H:%M'),
            format_duration(minutes),
            entry.comment or ""
        )

    console.print(table)
    console.print(f"[bold]Total:[/bold] {format_duration(total_minutes)} in {len(entries)} sessions")
