"""Data models for ecs-watch.

TaskRecord and friends use Pydantic to parse the ECS describe_tasks response.
The summary types are frozen dataclasses so equality is plain value equality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ContainerRecord(BaseModel):
    """One container inside a task."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = ""
    image: str | None = None
    last_status: str | None = Field(default=None, alias="lastStatus")
    health_status: str | None = Field(default=None, alias="healthStatus")
    exit_code: int | None = Field(default=None, alias="exitCode")


class TaskRecord(BaseModel):
    """A task's observable attributes at one point in time.

    Field aliases match the ECS API (camelCase) so records can be built
    straight from a describe_tasks response with model_validate().
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    task_arn: str = Field(alias="taskArn")
    task_definition_arn: str | None = Field(default=None, alias="taskDefinitionArn")
    desired_status: str | None = Field(default=None, alias="desiredStatus")
    last_status: str | None = Field(default=None, alias="lastStatus")
    health_status: str | None = Field(default=None, alias="healthStatus")
    group: str | None = None
    containers: tuple[ContainerRecord, ...] = ()

    # Lifecycle timestamps
    connectivity_at: datetime | None = Field(default=None, alias="connectivityAt")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    execution_stopped_at: datetime | None = Field(default=None, alias="executionStoppedAt")
    pull_started_at: datetime | None = Field(default=None, alias="pullStartedAt")
    pull_stopped_at: datetime | None = Field(default=None, alias="pullStoppedAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    stopped_at: datetime | None = Field(default=None, alias="stoppedAt")

    @property
    def task_id(self) -> str:
        """Short task identifier (last segment of the task ARN)."""
        return self.task_arn.rsplit("/", 1)[-1]

    def lifecycle_times(self) -> list[datetime | None]:
        return [
            self.connectivity_at,
            self.created_at,
            self.execution_stopped_at,
            self.pull_started_at,
            self.pull_stopped_at,
            self.started_at,
            self.stopped_at,
        ]


class DescribeResult(BaseModel):
    """Records from one describe_tasks round plus the raw response."""

    records: tuple[TaskRecord, ...] = ()
    raw: dict[str, Any] = Field(default_factory=dict)
    failed_task_ids: tuple[str, ...] = ()

    @property
    def partial(self) -> bool:
        return bool(self.failed_task_ids)


class DetailPayload(BaseModel):
    """Unreduced describe_tasks response, rendered as-is in detail mode."""

    cluster: str
    raw: dict[str, Any] = Field(default_factory=dict)


# --- Change detection ---


@dataclass(frozen=True)
class TaskFingerprint:
    """The fields of one task that take part in change detection."""

    task_id: str
    task_version: str
    desired_status: str
    last_status: str
    health_status: str
    group: str
    images: tuple[str, ...] = ()
    container_statuses: tuple[tuple[str, str, str], ...] = ()
    last_activity: datetime | None = None


@dataclass(frozen=True)
class ClusterSummary:
    """Order-independent reduction of one poll cycle.

    Equality compares only ``tasks`` and ``task_count``. ``partial`` and
    ``failed_task_ids`` describe how the cycle went and are excluded.
    """

    tasks: tuple[TaskFingerprint, ...] = ()
    task_count: int = 0
    partial: bool = field(default=False, compare=False)
    failed_task_ids: tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_empty(self) -> bool:
        return self.task_count == 0

    def status_counts(self) -> dict[str, int]:
        """Count of tasks per last status, sorted by status name."""
        counts: dict[str, int] = {}
        for task in self.tasks:
            counts[task.last_status] = counts.get(task.last_status, 0) + 1
        return dict(sorted(counts.items()))
