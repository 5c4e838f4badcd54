"""CLI entry point for ecs-watch.

Commands:
- ecs-watch watch: Watch a cluster and print a summary whenever it changes
- ecs-watch init: Write a default .ecs-watch.yaml
- ecs-watch version: Show version information
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from ecs_watch import __version__
from ecs_watch.cli_ui.reporter import ReportConsole, get_reporter
from ecs_watch.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_YAML,
    ConfigError,
    WatchConfig,
    build_config,
    load_config_file,
)
from ecs_watch.core.client import ClusterQueryClient, EcsQueryClient
from ecs_watch.core.errors import WatchError
from ecs_watch.core.watch import BackoffPolicy, WatchLoop

console = ReportConsole()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def setup_logging(verbose: int, log_level: str | None) -> None:
    """Configure logging to stderr. stdout carries task summaries only."""
    if log_level:
        level = getattr(logging, log_level.upper())
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))


@click.group()
@click.version_option(version=__version__, message="ecs-watch v%(version)s")
@click.option("--verbose", "-v", count=True, help="Log more to stderr (-v info, -vv debug)")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Explicit log level (overrides -v)",
)
def main(verbose: int, log_level: str | None) -> None:
    """ecs-watch - Watch AWS Elastic Container Service (ECS) cluster changes.

    Polls a cluster's tasks and prints a summary each time something
    in the summary changes.
    """
    setup_logging(verbose, log_level)


@main.command()
@click.option("--cluster", "-c", envvar="AWS_ECS_CLUSTER", help="Cluster name to watch")
@click.option(
    "--profile",
    "-p",
    "aws_profile",
    envvar="AWS_PROFILE",
    help="AWS profile from ~/.aws/credentials",
)
@click.option("--region", "-r", "aws_region", envvar="AWS_DEFAULT_REGION", help="AWS region")
@click.option(
    "--interval",
    "-i",
    "poll_interval",
    type=int,
    envvar="ECS_WATCH_INTERVAL",
    help="Seconds between polls (default: 2)",
)
@click.option("--detail", "-d", is_flag=True, help="Output the full task description response")
@click.option(
    "--one-shot",
    "-o",
    is_flag=True,
    help="Output the summary once and exit instead of watching for changes",
)
@click.option(
    "--max-failures",
    "max_consecutive_failures",
    type=int,
    default=None,
    help="Give up after this many consecutive failed polls (default: never)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Config file (default: ./{CONFIG_FILENAME} if present)",
)
def watch(
    cluster: str | None,
    aws_profile: str | None,
    aws_region: str | None,
    poll_interval: int | None,
    detail: bool,
    one_shot: bool,
    max_consecutive_failures: int | None,
    config_path: Path | None,
) -> None:
    """Watch a cluster and print its task summary whenever it changes.

    Example:
        ecs-watch watch --cluster my-cluster --profile dev
        ecs-watch watch -c my-cluster --one-shot --detail
    """
    try:
        config = build_config(
            load_config_file(config_path),
            {
                "cluster": cluster,
                "aws_profile": aws_profile,
                "aws_region": aws_region,
                "poll_interval": poll_interval,
                # Unset flags must not override the config file
                "detail": True if detail else None,
                "one_shot": True if one_shot else None,
                "max_consecutive_failures": max_consecutive_failures,
            },
        )
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(2)

    try:
        client = EcsQueryClient.from_profile(config.aws_profile, config.aws_region)
        watch_loop = create_watch_loop(config, client)
        asyncio.run(run_until_signalled(watch_loop))
    except WatchError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


def create_watch_loop(config: WatchConfig, client: ClusterQueryClient) -> WatchLoop:
    """Build the watch loop for a validated config."""
    return WatchLoop(
        cluster=config.cluster,
        client=client,
        reporter=get_reporter(config.detail, console),
        poll_interval=config.poll_interval,
        one_shot=config.one_shot,
        detail=config.detail,
        backoff=BackoffPolicy(
            multiplier=config.backoff_multiplier,
            max_delay=config.max_backoff,
        ),
        max_consecutive_failures=config.max_consecutive_failures,
        align_to_second=config.align_to_second,
    )


async def run_until_signalled(watch_loop: WatchLoop) -> None:
    """Run the loop, stopping it cleanly on SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, watch_loop.stop)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows, or not running in the main thread
            pass
    try:
        await watch_loop.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def init(force: bool) -> None:
    """Write a default .ecs-watch.yaml in the current directory."""
    config_path = Path.cwd() / CONFIG_FILENAME

    if config_path.exists() and not force:
        console.print(f"[yellow]{CONFIG_FILENAME} already exists[/yellow]")
        return

    config_path.write_text(DEFAULT_CONFIG_YAML)
    console.print(
        Panel(
            f"[green]Config written![/green]\n\nCreated: {config_path}\n"
            "Set 'cluster' there or pass --cluster to 'ecs-watch watch'.",
            title="ecs-watch",
        )
    )


@main.command()
def version() -> None:
    """Show version information."""
    console.print(f"ecs-watch v{__version__}")
    console.print("Watch AWS ECS cluster changes")


if __name__ == "__main__":
    main()
