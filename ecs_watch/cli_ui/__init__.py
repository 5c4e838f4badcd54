"""Terminal output for ecs-watch.

- ReportConsole: stdout console that reports broken pipes as OutputWriteError
- SummaryReporter: per-task status table
- DetailReporter: raw describe_tasks response as JSON
"""

from ecs_watch.cli_ui.reporter import DetailReporter, ReportConsole, SummaryReporter, get_reporter

__all__ = [
    "DetailReporter",
    "ReportConsole",
    "SummaryReporter",
    "get_reporter",
]
