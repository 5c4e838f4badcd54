"""Watch loop: poll the cluster, detect changes, emit summaries.

State machine:

    IDLE -> POLLING -> COMPARING -> EMITTING -> SLEEPING -> POLLING ...
    COMPARING -> SLEEPING (no change)
    POLLING -> SLEEPING (transient failure)
    any -> STOPPED (one-shot done, fatal error, stop())

The loop is sequential. The only suspension point besides the API call is the
sleep between cycles, which stop() interrupts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Protocol

from ecs_watch.core.client import ClusterQueryClient
from ecs_watch.core.errors import PartialBatchError, RetryLimitExceeded, WatchError
from ecs_watch.core.models import ClusterSummary, DescribeResult, DetailPayload
from ecs_watch.core.summarizer import summarize

logger = logging.getLogger(__name__)


class WatchPhase(str, Enum):
    """Where the watch loop is in its cycle."""

    IDLE = "idle"
    POLLING = "polling"
    COMPARING = "comparing"
    EMITTING = "emitting"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class Reporter(Protocol):
    def render(self, payload: ClusterSummary | DetailPayload) -> None: ...


@dataclass
class WatchState:
    """Process-lifetime state owned by one WatchLoop.

    ``last_summary`` is the summary last shown to the operator, not the last
    one fetched. None means nothing has been emitted yet.
    """

    last_summary: ClusterSummary | None = None
    phase: WatchPhase = WatchPhase.IDLE
    cycles: int = 0
    emissions: int = 0
    consecutive_failures: int = 0


@dataclass
class BackoffPolicy:
    """Delay schedule after transient failures.

    The first retry waits one poll interval; later ones grow by
    ``multiplier`` up to ``max_delay``. A multiplier of 1.0 keeps the fixed
    interval.
    """

    multiplier: float = 2.0
    max_delay: float = 60.0

    def get_delay(self, interval: float, failures: int) -> float:
        """Delay before the next poll after ``failures`` consecutive failures."""
        if failures <= 1:
            return interval
        delay = interval * (self.multiplier ** (failures - 1))
        return min(delay, max(self.max_delay, interval))


def sleep_duration(seconds: float, now: datetime) -> float:
    """Seconds to sleep so the next poll lands on a whole-second boundary."""
    return max(seconds - now.microsecond / 1_000_000, 0.0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WatchLoop:
    """Poll a cluster and emit its summary whenever it changes.

    USAGE:
        loop = WatchLoop("my-cluster", EcsQueryClient.from_profile(), SummaryReporter())
        asyncio.run(loop.run())

    Tests inject ``sleep`` (and ``clock``) so cycles run without real time
    passing; calling stop() from the injected sleep ends the loop.
    """

    def __init__(
        self,
        cluster: str,
        client: ClusterQueryClient,
        reporter: Reporter,
        poll_interval: float = 2.0,
        one_shot: bool = False,
        detail: bool = False,
        backoff: BackoffPolicy | None = None,
        max_consecutive_failures: int | None = None,
        align_to_second: bool = False,
        state: WatchState | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not cluster:
            raise ValueError("cluster must be a non-empty string")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        self.cluster = cluster
        self.client = client
        self.reporter = reporter
        self.poll_interval = poll_interval
        self.one_shot = one_shot
        self.detail = detail
        self.backoff = backoff or BackoffPolicy()
        self.max_consecutive_failures = max_consecutive_failures
        self.align_to_second = align_to_second
        self.state = state if state is not None else WatchState()
        self._sleep = sleep
        self._clock = clock
        self._stop_event = asyncio.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the loop to stop. Interrupts a sleep in progress."""
        self._stop_event.set()

    async def run(self) -> WatchState:
        """Run cycles until one-shot completes, stop() is called, or a fatal error.

        Raises:
            WatchError: fatal errors (auth, missing cluster, output, retry limit)
        """
        try:
            while not self.stopped:
                delay = await self.run_cycle()
                if self.stopped:
                    break
                self._transition(WatchPhase.SLEEPING)
                await self._wait(delay)
        finally:
            self._transition(WatchPhase.STOPPED)
        return self.state

    async def run_cycle(self) -> float:
        """Run one poll/compare/emit cycle.

        Returns:
            Seconds to wait before the next cycle
        """
        self._transition(WatchPhase.POLLING)
        self.state.cycles += 1
        try:
            result = await asyncio.to_thread(self.fetch)
        except WatchError as e:
            if e.is_fatal:
                raise
            return self._record_failure(e)

        if self.stopped:
            # stop() arrived during the API call; nothing more is shown
            return self.poll_interval

        self.state.consecutive_failures = 0
        summary = summarize(result.records, result.failed_task_ids)

        self._transition(WatchPhase.COMPARING)
        if self.has_changed(summary):
            self._transition(WatchPhase.EMITTING)
            self.emit(summary, result)
            if self.one_shot:
                self.stop()
        else:
            logger.debug("Cycle %d: no change (%d tasks)", self.state.cycles, summary.task_count)

        return self.poll_interval

    def fetch(self) -> DescribeResult:
        """List and describe the cluster's tasks.

        A partially described batch is accepted; the summary reflects only
        the tasks actually received.
        """
        task_ids = self.client.list_task_identifiers(self.cluster)
        try:
            return self.client.describe_tasks(self.cluster, task_ids)
        except PartialBatchError as e:
            logger.warning("%s (continuing with %d tasks)", e, len(e.result.records))
            return e.result

    def has_changed(self, summary: ClusterSummary) -> bool:
        """True when ``summary`` differs from the last emitted one, or nothing was emitted yet."""
        return self.state.last_summary is None or summary != self.state.last_summary

    def emit(self, summary: ClusterSummary, result: DescribeResult) -> None:
        """Render the summary (or raw payload in detail mode), then record it as shown."""
        if self.detail:
            self.reporter.render(DetailPayload(cluster=self.cluster, raw=result.raw))
        else:
            self.reporter.render(summary)
        self.state.last_summary = summary
        self.state.emissions += 1
        logger.info(
            "Emitted summary %d for cluster %s (%d tasks)",
            self.state.emissions,
            self.cluster,
            summary.task_count,
        )

    def _record_failure(self, error: WatchError) -> float:
        self.state.consecutive_failures += 1
        failures = self.state.consecutive_failures
        delay = self.backoff.get_delay(self.poll_interval, failures)
        logger.warning("Poll failed (attempt %d), retrying in %.1fs: %s", failures, delay, error)

        if self.max_consecutive_failures and failures >= self.max_consecutive_failures:
            raise RetryLimitExceeded(
                f"Giving up on cluster \"{self.cluster}\" after {failures} "
                f"consecutive failures: {error}"
            ) from error
        return delay

    async def _wait(self, delay: float) -> None:
        if self.align_to_second:
            delay = sleep_duration(delay, self._clock())
        if self._sleep is not None:
            await self._sleep(delay)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _transition(self, phase: WatchPhase) -> None:
        logger.debug("Watch %s: %s -> %s", self.cluster, self.state.phase.value, phase.value)
        self.state.phase = phase
