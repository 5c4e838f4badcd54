"""Render cluster summaries and raw task descriptions to the terminal.

Reporters only format and write. Deciding when to emit is the watch loop's job.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ecs_watch.core.errors import OutputWriteError
from ecs_watch.core.models import ClusterSummary, DetailPayload, TaskFingerprint

DATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rows followed by a gap at least this long are underlined
TIME_BREAK = timedelta(hours=1)

# Width used when stdout is a pipe or file, so rows stay on one line
PIPE_WIDTH = 240


class ReportConsole(Console):
    """Console for report output.

    Rich handles a broken pipe by pointing stdout at /dev/null and exiting.
    Here it raises OutputWriteError so the CLI can report it and exit
    non-zero. When the output is not a terminal and no width is given, a
    wide fixed width replaces rich's 80-column fallback.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        if kwargs.get("width") is None and "COLUMNS" not in os.environ and not self.is_terminal:
            self.width = PIPE_WIDTH

    def on_broken_pipe(self) -> None:
        raise OutputWriteError("Failed to write output: Broken pipe")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone(timezone.utc).strftime(DATE_TIME_FORMAT)


class SummaryReporter:
    """Renders a ClusterSummary as a per-task status table.

    Rows are shown oldest activity first. A row whose successor started at
    least an hour later is underlined to mark the time break.
    """

    STATUS_COLORS = {
        "PROVISIONING": "dim",
        "PENDING": "yellow",
        "ACTIVATING": "yellow",
        "RUNNING": "green",
        "DEACTIVATING": "magenta",
        "STOPPING": "magenta",
        "DEPROVISIONING": "dim",
        "STOPPED": "red",
        "DELETED": "dim strikethrough",
    }

    def __init__(
        self,
        console: Console | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.console = console or ReportConsole()
        self._clock = clock

    def render(self, payload: ClusterSummary | DetailPayload) -> None:
        if not isinstance(payload, ClusterSummary):
            raise TypeError(f"SummaryReporter cannot render {type(payload).__name__}")
        _write(self.console, lambda: self._print_summary(payload))

    @staticmethod
    def display_order(summary: ClusterSummary) -> list[TaskFingerprint]:
        """Tasks ordered by last activity, tasks with no timestamp first."""
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(summary.tasks, key=lambda t: (t.last_activity or epoch, t.task_id))

    def build_table(self, summary: ClusterSummary) -> Table:
        table = Table(box=None, pad_edge=False, show_edge=False)
        table.add_column("Last activity", style="dim", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Desired", style="dim", no_wrap=True)
        table.add_column("Health", no_wrap=True)
        table.add_column("Version", style="cyan", no_wrap=True)
        table.add_column("Task", style="dim", no_wrap=True)
        table.add_column("Images")

        rows = self.display_order(summary)
        for index, task in enumerate(rows):
            color = self.STATUS_COLORS.get(task.last_status, "white")
            # SECURITY: escape API strings to prevent Rich markup injection
            table.add_row(
                _format_time(task.last_activity),
                f"[{color}]{escape(task.last_status or '-')}[/]",
                escape(task.desired_status or "-"),
                escape(task.health_status or "-"),
                escape(task.task_version or "-"),
                escape(task.task_id),
                escape(", ".join(task.images)),
                style="underline" if self._is_time_break(rows, index) else None,
            )
        return table

    @staticmethod
    def _is_time_break(rows: list[TaskFingerprint], index: int) -> bool:
        if index + 1 >= len(rows):
            return False
        current, following = rows[index].last_activity, rows[index + 1].last_activity
        if current is None or following is None:
            return False
        return following - current >= TIME_BREAK

    def _print_summary(self, summary: ClusterSummary) -> None:
        self.console.print(f"[bold]{self._clock().strftime(DATE_TIME_FORMAT)}[/]")

        if summary.is_empty:
            self.console.print("[dim]No tasks in cluster[/]")
        else:
            self.console.print(self.build_table(summary))
            counts = ", ".join(f"{status or '-'}: {n}" for status, n in summary.status_counts().items())
            self.console.print(f"[dim]{summary.task_count} tasks ({escape(counts)})[/]")

        if summary.partial:
            self.console.print(
                f"[yellow]Partial: {len(summary.failed_task_ids)} tasks could not be described[/]"
            )


class DetailReporter:
    """Writes the raw describe_tasks response as JSON."""

    def __init__(self, console: Console | None = None):
        self.console = console or ReportConsole()

    def render(self, payload: ClusterSummary | DetailPayload) -> None:
        if not isinstance(payload, DetailPayload):
            raise TypeError(f"DetailReporter cannot render {type(payload).__name__}")
        _write(self.console, lambda: self.console.print_json(data=payload.raw, default=str))


def get_reporter(detail: bool, console: Console | None = None) -> SummaryReporter | DetailReporter:
    """Reporter for the requested output mode."""
    if detail:
        return DetailReporter(console)
    return SummaryReporter(console)


def _write(console: Console, print_fn: Callable[[], None]) -> None:
    """Run ``print_fn`` and flush, turning stream failures into OutputWriteError."""
    try:
        print_fn()
        console.file.flush()
    except OSError as e:
        raise OutputWriteError(f"Failed to write output: {e}") from e
