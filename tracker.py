#!/usr/bin/env python3
"""Time Tracker - Main CLI Entry Point"""

import argparse
import logging
import re
import shlex
import sys
import time

from rich.live import Live
from rich.logging import RichHandler
from rich.prompt import Confirm, Prompt

from timetracker import ui
from timetracker.activity import ActivityMonitor, ActivitySource
from timetracker.config import Config
from timetracker.database import CURRENT_SESSION_KEY, Database
from timetracker.environment import HostContext
from timetracker.errors import TrackerError
from timetracker.exporter import (
    default_filename,
    export_csv,
    export_json,
    session_editor_document,
    write_export,
)
from timetracker.file_tracker import FileTracker, WorkspaceActivity
from timetracker.models import TimeEntry, now_ms
from timetracker.reporter import Reporter
from timetracker.scheduler import PeriodicTask
from timetracker.session import RecoveryOutcome, TrackerEngine


console = ui.console

MONTH_PATTERN = re.compile(r'^\d{4}-(0[1-9]|1[0-2])$')


def year_month(value: str) -> str:
    """argparse type for a YYYY-MM month"""
    if not MONTH_PATTERN.match(value):
        raise argparse.ArgumentTypeError(f"invalid month {value!r}, expected YYYY-MM")
    return value


def setup_logging(config: Config):
    """Route log records through rich"""
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)]
    )


class TrackerCLI:
    """Main CLI application"""

    def __init__(self, config: Config):
        self.config = config
        self.running = True
        self.engine = None
        self.db = None

    def get_db(self) -> Database:
        if self.db is None:
            self.db = Database(self.config.db_path)
        return self.db

    def get_reporter(self) -> Reporter:
        if self.engine:
            return self.engine.reporter
        return Reporter(self.get_db(), now_ms)

    def run(self, args):
        """Main entry point"""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        if not hasattr(parsed_args, 'func'):
            # No command specified, run interactive mode
            self.interactive_mode(parsed_args)
        else:
            # Run the specified command
            parsed_args.func(parsed_args)

    def create_parser(self, interactive: bool = False):
        """Create argument parser"""
        parser = argparse.ArgumentParser(
            description='Time Tracker - per-project working time with idle detection',
            prog='tracker'
        )
        parser.add_argument('--workspace', help='Workspace directory to track (default: current directory)')

        subparsers = parser.add_subparsers(title='commands', dest='command')

        if interactive:
            # Session commands need the long-lived engine
            start_parser = subparsers.add_parser('start', help='Start tracking')
            start_parser.set_defaults(func=self.cmd_start)

            stop_parser = subparsers.add_parser('stop', help='Stop tracking and log the session')
            stop_parser.set_defaults(func=self.cmd_stop)

            comment_parser = subparsers.add_parser('comment', help='Comment on the running session')
            comment_parser.add_argument('text', nargs='+', help='Comment text')
            comment_parser.set_defaults(func=self.cmd_comment)

            reset_parser = subparsers.add_parser('reset', help='Discard the running session')
            reset_parser.set_defaults(func=self.cmd_reset)

            watch_parser = subparsers.add_parser('watch', help='Live session display')
            watch_parser.set_defaults(func=self.cmd_watch)

        status_parser = subparsers.add_parser('status', help='Show current session')
        status_parser.set_defaults(func=self.cmd_status)

        report_parser = subparsers.add_parser('report', help='Monthly report')
        report_parser.add_argument('month', nargs='?', type=year_month, help='Month as YYYY-MM (default: current)')
        report_parser.set_defaults(func=self.cmd_report)

        stats_parser = subparsers.add_parser('stats', help='Overall statistics')
        stats_parser.set_defaults(func=self.cmd_stats)

        projects_parser = subparsers.add_parser('projects', help='List tracked projects')
        projects_parser.add_argument('name', nargs='?', help='Show the sessions of one project')
        projects_parser.set_defaults(func=self.cmd_projects)

        export_parser = subparsers.add_parser('export', help='Export tracked time')
        export_parser.set_defaults(func=lambda a: export_parser.print_help())
        export_subparsers = export_parser.add_subparsers(title='export formats', dest='export_format')

        export_csv_parser = export_subparsers.add_parser('csv', help='Monthly CSV')
        export_csv_parser.add_argument('month', nargs='?', type=year_month, help='Month as YYYY-MM (default: current)')
        export_csv_parser.set_defaults(func=self.cmd_export_csv)

        export_json_parser = export_subparsers.add_parser('json', help='Raw stored data as JSON')
        export_json_parser.set_defaults(func=self.cmd_export_json)

        edit_parser = subparsers.add_parser('edit', help='Open logged sessions as JSON')
        edit_parser.set_defaults(func=self.cmd_edit)

        amend_parser = subparsers.add_parser('amend', help='Change the comment or project of a logged session')
        amend_parser.add_argument('entry_id', help='Session id (see "edit")')
        amend_parser.add_argument('--comment', help='New comment')
        amend_parser.add_argument('--project', help='New project name')
        amend_parser.set_defaults(func=self.cmd_amend)

        clear_parser = subparsers.add_parser('clear', help='Delete ALL tracking data')
        clear_parser.set_defaults(func=self.cmd_clear)

        config_parser = subparsers.add_parser('config', help='Show configuration')
        config_parser.set_defaults(func=self.cmd_config)

        return parser

    # Command implementations

    def cmd_start(self, args):
        """Start tracking"""
        self.engine.start_tracking()

    def cmd_stop(self, args):
        """Stop tracking"""
        self.engine.stop_tracking()

    def cmd_comment(self, args):
        """Comment on the running session"""
        self.engine.add_comment(" ".join(args.text))

    def cmd_reset(self, args):
        """Discard the running session"""
        if not Confirm.ask("Discard the current session without logging it?", default=False):
            return
        self.engine.reset_today()

    def cmd_status(self, args):
        """Show current session status"""
        if self.engine:
            console.print(ui.create_status_display(self.engine.get_status()))
            return

        # Outside interactive mode only the stored slot is known
        data = self.get_db().get(CURRENT_SESSION_KEY)
        if not data:
            ui.print_info("No active session")
            return

        session = TimeEntry.from_dict(data)
        started = session.get_start_datetime().strftime('%Y-%m-%d %H:%M')
        ui.print_info(f"Stored session for {session.project} started {started}")
        if session.duration:
            console.print(f"   Last checkpoint: {ui.format_duration(session.duration // 60000)}")

    def cmd_watch(self, args):
        """Display live session timer until Ctrl+C"""
        try:
            with Live(console=console, refresh_per_second=1, transient=False) as live:
                while True:
                    live.update(ui.create_status_display(self.engine.get_status()))
                    time.sleep(1)
        except KeyboardInterrupt:
            console.print("\n[dim]Back to prompt[/dim]")

    def cmd_report(self, args):
        """Show monthly report"""
        report = self.get_reporter().get_monthly_report(args.month)
        ui.display_monthly_report(report)

    def cmd_stats(self, args):
        """Show statistics"""
        ui.display_statistics(self.get_reporter().get_statistics())

    def cmd_projects(self, args):
        """List projects, or the sessions of one project"""
        reporter = self.get_reporter()
        if args.name:
            ui.display_project_sessions(args.name, reporter.get_entries_for_project(args.name))
            return

        projects = reporter.get_all_projects()
        if not projects:
            ui.print_info("No tracked projects yet")
            return
        for name in projects:
            console.print(f"  {name}")

    def cmd_export_csv(self, args):
        """Export a month as CSV"""
        content = export_csv(self.get_reporter(), args.month)
        path = write_export(content, self.config.reports_dir, default_filename('report', 'csv'))
        ui.print_success(f"Report saved: {path}")

    def cmd_export_json(self, args):
        """Export raw data as JSON"""
        content = export_json(self.get_reporter())
        path = write_export(content, self.config.reports_dir, default_filename('data', 'json'))
        ui.print_success(f"Data saved: {path}")

    def cmd_edit(self, args):
        """Open logged sessions in the default editor"""
        content = session_editor_document(self.get_reporter())
        path = write_export(content, self.config.reports_dir, default_filename('sessions', 'json'))
        ui.open_path(path)

    def cmd_amend(self, args):
        """Edit a logged session"""
        changes = {}
        if args.comment is not None:
            changes['comment'] = args.comment.strip() or None
        if args.project:
            changes['project'] = args.project

        if not changes:
            ui.print_error("Nothing to change, use --comment or --project")
            return

        if self.engine:
            entry = self.engine.amend_entry(args.entry_id, **changes)
        else:
            entry = self.get_reporter().update_entry(args.entry_id, **changes)
        if entry is None:
            ui.print_error(f"No logged session with id {args.entry_id}")
            return
        ui.print_success(f"Session {entry.id} updated")

    def cmd_clear(self, args):
        """Delete all tracking data"""
        if self.engine and self.engine.is_tracking:
            ui.print_error("Stop or reset the running session first")
            return

        if not Confirm.ask("Delete ALL tracking data? This cannot be undone", default=False):
            return

        if not self.get_reporter().clear_all_data():
            ui.print_error("A session is stored by a running tracker, stop it first")
            return
        ui.print_success("All tracking data deleted")

    def cmd_config(self, args):
        """Show configuration"""
        console.print("[bold]Configuration:[/bold]")
        console.print(f"Database: {self.config.db_path}")
        console.print(f"Reports: {self.config.reports_dir}")
        if self.config.idle_detection_enabled:
            console.print(f"Idle threshold: {self.config.idle_threshold_seconds}s "
                          f"(checked every {self.config.idle_check_interval_seconds}s)")
        else:
            console.print("Idle threshold: disabled")
        if self.config.auto_save_interval_seconds:
            console.print(f"Auto-save: every {self.config.auto_save_interval_seconds}s")
        else:
            console.print("Auto-save: disabled")
        console.print(f"Auto start/stop: {self.config.auto_start}/{self.config.auto_stop}")

    # Interactive mode

    def interactive_mode(self, args):
        """Run the long-lived tracker with a command prompt"""
        context = HostContext.from_directory(args.workspace)
        activity = ActivityMonitor()

        self.engine = TrackerEngine(
            self.config,
            self.get_db(),
            context,
            activity=activity,
            notify=ui.print_info
        )

        poller = None
        if self.config.file_activity_poll_seconds and context.workspace:
            workspace = WorkspaceActivity(FileTracker(context.workspace), activity)
            poller = PeriodicTask(self.config.file_activity_poll_seconds, workspace.poll, name='workspace-poll')
            poller.start()

        console.print("[bold cyan]Time Tracker[/bold cyan]")
        console.print(f"Workspace: {context.workspace} ({context.project_name()})")
        console.print("Type 'help' for commands, 'quit' to exit\n")

        try:
            outcome = self.engine.open()
            if outcome is RecoveryOutcome.AUTO_STOPPED:
                ui.print_warning("A stale session from a previous run was logged")

            parser = self.create_parser(interactive=True)

            while self.running:
                try:
                    command = Prompt.ask("\n[bold]tracker[/bold]").strip()
                    activity.signal(ActivitySource.COMMAND)

                    if command.lower() in ['quit', 'exit', 'q']:
                        self.running = False
                        break

                    if command.lower() in ['help', 'h', '?']:
                        self.show_help()
                        continue

                    if not command:
                        continue

                    parsed = parser.parse_args(shlex.split(command))
                    if hasattr(parsed, 'func'):
                        parsed.func(parsed)

                except KeyboardInterrupt:
                    console.print("\n")
                    if Confirm.ask("Exit?", default=False):
                        self.running = False
                except SystemExit:
                    # argparse already printed usage
                    continue
                except TrackerError as e:
                    ui.print_error(f"Storage error: {e}")
        finally:
            if poller:
                poller.cancel()
            self.engine.close()

    def show_help(self):
        """Show help message"""
        console.print("""
[bold]Session:[/bold]
  start              Start tracking
  stop               Stop tracking and log the session
  comment <text>     Comment on the running session
  reset              Discard the running session (not logged)
  status             Show current session
  watch              Live session display (Ctrl+C to return)

[bold]Reporting:[/bold]
  report [YYYY-MM]   Monthly summary by project
  stats              Overall statistics
  projects [NAME]    List projects, or one project's sessions
  export csv [YYYY-MM]  Export a month as CSV
  export json        Export raw data
  edit               Open logged sessions as JSON
  amend ID [--comment TEXT] [--project NAME]
                     Edit a logged session

[bold]Other:[/bold]
  config             Show current configuration
  clear              Delete ALL tracking data
  help               Show this help
  quit               Exit
        """)


def main():
    """Main entry point"""
    config = Config()
    setup_logging(config)

    try:
        cli = TrackerCLI(config)
        cli.run(sys.argv[1:])
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        sys.exit(0)
    except TrackerError as e:
        ui.print_error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
