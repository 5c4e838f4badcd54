# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the ecs-watch test suite.

Provides:
- Raw ECS task dicts shaped like a describe_tasks response
- An in-memory ClusterQueryClient that replays scripted poll results
- A recording reporter and a fake sleeper so watch loops run without real time
- A Rich console writing to a string buffer
"""

from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import pytest
from rich.console import Console

from ecs_watch.core.errors import PartialBatchError
from ecs_watch.core.models import ClusterSummary, DescribeResult, DetailPayload, TaskRecord
from ecs_watch.core.watch import WatchLoop

CLUSTER = "test-cluster"
ACCOUNT_PREFIX = "arn:aws:ecs:us-east-1:123456789012"
BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Raw Task Fixtures
# =============================================================================


def _raw_task(
    task_id: str,
    last_status: str = "RUNNING",
    desired_status: str = "RUNNING",
    family: str = "web",
    revision: int = 1,
    image: str = "123456789012.dkr.ecr.us-east-1.amazonaws.com/team/web:1.0",
    minutes: int = 0,
    group: str = "service:web",
    health_status: str = "HEALTHY",
) -> dict[str, Any]:
    created = BASE_TIME + timedelta(minutes=minutes)
    return {
        "taskArn": f"{ACCOUNT_PREFIX}:task/{CLUSTER}/{task_id}",
        "clusterArn": f"{ACCOUNT_PREFIX}:cluster/{CLUSTER}",
        "taskDefinitionArn": f"{ACCOUNT_PREFIX}:task-definition/{family}:{revision}",
        "lastStatus": last_status,
        "desiredStatus": desired_status,
        "healthStatus": health_status,
        "group": group,
        "createdAt": created,
        "startedAt": created + timedelta(seconds=30),
        "containers": [
            {
                "name": family,
                "image": image,
                "lastStatus": last_status,
                "healthStatus": health_status,
            }
        ],
    }


@pytest.fixture
def raw_task() -> Callable[..., dict[str, Any]]:
    """Factory for a raw describe_tasks task entry.

    Example:
        def test_something(raw_task):
            task = raw_task("abc123", last_status="PENDING")
    """
    return _raw_task


@pytest.fixture
def make_records() -> Callable[..., tuple[TaskRecord, ...]]:
    """Factory turning raw tasks into TaskRecords."""

    def _make(*tasks: dict[str, Any]) -> tuple[TaskRecord, ...]:
        return tuple(TaskRecord.model_validate(t) for t in tasks)

    return _make


# =============================================================================
# Fake Cluster Client
# =============================================================================


class FakeQueryClient:
    """ClusterQueryClient that replays a script of poll results.

    Each script entry is one cycle: a list of raw task dicts, or an exception
    instance to raise from list_task_identifiers. The last entry repeats
    once the script runs out.
    """

    def __init__(self, script: Sequence[list[dict[str, Any]] | Exception]):
        self.script = list(script)
        self.list_calls = 0
        self.describe_calls = 0
        self._current: list[dict[str, Any]] = []

    def _next(self) -> list[dict[str, Any]] | Exception:
        index = min(self.list_calls, len(self.script) - 1)
        return self.script[index]

    def list_task_identifiers(self, cluster: str) -> list[str]:
        step = self._next()
        self.list_calls += 1
        if isinstance(step, Exception):
            raise step
        self._current = step
        return [t["taskArn"] for t in step]

    def describe_tasks(self, cluster: str, task_ids: Sequence[str]) -> DescribeResult:
        self.describe_calls += 1
        tasks = [t for t in self._current if t["taskArn"] in set(task_ids)]
        return DescribeResult(
            records=tuple(TaskRecord.model_validate(t) for t in tasks),
            raw={"tasks": tasks, "failures": []},
        )


class PartialQueryClient(FakeQueryClient):
    """Describes every task except those listed in ``failing``."""

    def __init__(self, script, failing: set[str]):
        super().__init__(script)
        self.failing = failing

    def describe_tasks(self, cluster: str, task_ids: Sequence[str]) -> DescribeResult:
        self.describe_calls += 1
        described = [t for t in self._current if t["taskArn"].rsplit("/", 1)[-1] not in self.failing]
        failures = [
            {"arn": t["taskArn"], "reason": "ACCESS_DENIED"}
            for t in self._current
            if t["taskArn"].rsplit("/", 1)[-1] in self.failing
        ]
        result = DescribeResult(
            records=tuple(TaskRecord.model_validate(t) for t in described),
            raw={"tasks": described, "failures": failures},
            failed_task_ids=tuple(sorted(self.failing)),
        )
        raise PartialBatchError(f"Failed to describe {len(failures)} tasks", result)


@pytest.fixture
def fake_client_factory() -> Callable[..., FakeQueryClient]:
    return FakeQueryClient


@pytest.fixture
def partial_client_factory() -> Callable[..., PartialQueryClient]:
    return PartialQueryClient


# =============================================================================
# Reporter / Sleep / Console Fixtures
# =============================================================================


class RecordingReporter:
    """Reporter that keeps every payload it was asked to render."""

    def __init__(self):
        self.rendered: list[ClusterSummary | DetailPayload] = []

    def render(self, payload: ClusterSummary | DetailPayload) -> None:
        self.rendered.append(payload)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


class FakeSleeper:
    """Records requested delays and stops the loop after ``max_sleeps`` sleeps."""

    def __init__(self, max_sleeps: int):
        self.max_sleeps = max_sleeps
        self.delays: list[float] = []
        self.loop: WatchLoop | None = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) >= self.max_sleeps and self.loop is not None:
            self.loop.stop()


@pytest.fixture
def sleeper_factory() -> Callable[[int], FakeSleeper]:
    """Factory for a fake sleep; attach the loop via ``sleeper.loop = loop``."""
    return FakeSleeper


@pytest.fixture
def string_console() -> Console:
    """Wide, colourless console writing to an in-memory buffer."""
    return Console(file=io.StringIO(), width=200, color_system=None, force_terminal=False)

