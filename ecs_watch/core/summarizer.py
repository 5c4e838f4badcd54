"""Reduce a batch of task records to a comparable ClusterSummary.

summarize() is pure: the same set of records gives an equal summary no
matter what order they arrive in.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence

from ecs_watch.core.models import ClusterSummary, ContainerRecord, TaskFingerprint, TaskRecord


def task_version(task_definition_arn: str | None) -> str:
    """Short task definition name, e.g. ``web:42``."""
    if not task_definition_arn:
        return ""
    return task_definition_arn.rsplit("/", 1)[-1]


def short_image(image: str | None) -> str:
    """Image name with the registry host dropped.

    ``123.dkr.ecr.us-east-1.amazonaws.com/team/app:1`` -> ``team/app:1``
    """
    if not image:
        return ""
    parts = image.split("/")
    if len(parts) > 1:
        return "/".join(parts[1:])
    return image


def newest_time(times: Iterable[datetime | None]) -> datetime | None:
    """Newest of the given timestamps, or None when none are set."""
    present = [_as_utc(t) for t in times if t is not None]
    return max(present) if present else None


def _as_utc(value: datetime) -> datetime:
    # The ECS API returns aware datetimes; naive ones are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _container_status(container: ContainerRecord) -> tuple[str, str, str]:
    return (
        container.name,
        container.last_status or "",
        container.health_status or "",
    )


def fingerprint(record: TaskRecord) -> TaskFingerprint:
    """Project one task onto the fields that take part in change detection."""
    return TaskFingerprint(
        task_id=record.task_id,
        task_version=task_version(record.task_definition_arn),
        desired_status=record.desired_status or "",
        last_status=record.last_status or "",
        health_status=record.health_status or "",
        group=record.group or "",
        images=tuple(short_image(c.image) for c in record.containers),
        container_statuses=tuple(sorted(_container_status(c) for c in record.containers)),
        last_activity=newest_time(record.lifecycle_times()),
    )


def summarize(
    records: Sequence[TaskRecord],
    failed_task_ids: Sequence[str] = (),
) -> ClusterSummary:
    """Build the canonical summary for one poll cycle.

    Args:
        records: Tasks described in this cycle, in any order
        failed_task_ids: Tasks that could not be described (diagnostic only)

    Returns:
        ClusterSummary with fingerprints sorted by task id. An empty
        ``records`` gives the empty-cluster summary.
    """
    # Sort on the full fingerprint so duplicate ids still order deterministically
    tasks = tuple(sorted((fingerprint(r) for r in records), key=_sort_key))
    return ClusterSummary(
        tasks=tasks,
        task_count=len(tasks),
        partial=bool(failed_task_ids),
        failed_task_ids=tuple(sorted(failed_task_ids)),
    )


def _sort_key(task: TaskFingerprint) -> tuple:
    return (
        task.task_id,
        task.task_version,
        task.desired_status,
        task.last_status,
        task.health_status,
        task.group,
        task.images,
        task.container_statuses,
        task.last_activity.timestamp() if task.last_activity else 0.0,
    )
