"""Cluster query client.

The watch loop only depends on the ClusterQueryClient protocol. EcsQueryClient
is the boto3 implementation used by the CLI.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ecs_watch.core.errors import ErrorClassifier, PartialBatchError, TransientNetworkError
from ecs_watch.core.models import DescribeResult, TaskRecord

logger = logging.getLogger(__name__)

# describe_tasks accepts at most 100 task ARNs per call
DESCRIBE_BATCH_SIZE = 100

# Reason ECS reports for tasks that stopped and expired after list_tasks
MISSING_REASON = "MISSING"


class ClusterQueryClient(Protocol):
    """What the watch loop needs from the remote cluster API."""

    def list_task_identifiers(self, cluster: str) -> list[str]:
        """Return the identifiers (ARNs) of the cluster's current tasks."""
        ...

    def describe_tasks(self, cluster: str, task_ids: Sequence[str]) -> DescribeResult:
        """Describe the given tasks.

        Raises PartialBatchError when only some of them could be described.
        """
        ...


class EcsQueryClient:
    """ClusterQueryClient backed by the boto3 ECS client.

    USAGE:
        client = EcsQueryClient.from_profile(profile="dev", region="us-east-1")
        arns = client.list_task_identifiers("my-cluster")
        result = client.describe_tasks("my-cluster", arns)
    """

    def __init__(self, ecs_client: Any, classifier: ErrorClassifier | None = None):
        self.ecs = ecs_client
        self.classifier = classifier or ErrorClassifier()

    @classmethod
    def from_profile(cls, profile: str | None = None, region: str | None = None) -> EcsQueryClient:
        """Build a client from an AWS profile and region."""
        try:
            session = boto3.Session(profile_name=profile, region_name=region)
            return cls(session.client("ecs"))
        except (BotoCoreError, ClientError) as e:
            raise ErrorClassifier().classify(e, cluster="", action="create ECS client") from e

    def list_task_identifiers(self, cluster: str) -> list[str]:
        task_arns: list[str] = []
        try:
            paginator = self.ecs.get_paginator("list_tasks")
            for page in paginator.paginate(cluster=cluster):
                task_arns.extend(page.get("taskArns", []))
        except (BotoCoreError, ClientError) as e:
            raise self.classifier.classify(e, cluster, "lookup tasks") from e
        logger.debug("Listed %d tasks in cluster %s", len(task_arns), cluster)
        return task_arns

    def describe_tasks(self, cluster: str, task_ids: Sequence[str]) -> DescribeResult:
        raw_tasks: list[dict[str, Any]] = []
        failures: list[dict[str, Any]] = []

        for start in range(0, len(task_ids), DESCRIBE_BATCH_SIZE):
            batch = list(task_ids[start : start + DESCRIBE_BATCH_SIZE])
            try:
                response = self.ecs.describe_tasks(cluster=cluster, tasks=batch)
            except (BotoCoreError, ClientError) as e:
                raise self.classifier.classify(e, cluster, "lookup task definitions") from e
            raw_tasks.extend(response.get("tasks", []))
            failures.extend(response.get("failures", []))

        # Tasks that vanished between list and describe are not failures
        real_failures = [f for f in failures if f.get("reason") != MISSING_REASON]
        result = DescribeResult(
            records=tuple(TaskRecord.model_validate(task) for task in raw_tasks),
            raw={"tasks": raw_tasks, "failures": failures},
            failed_task_ids=tuple(
                str(f.get("arn", "")).rsplit("/", 1)[-1] for f in real_failures
            ),
        )

        if real_failures:
            reasons = sorted({str(f.get("reason", "unknown")) for f in real_failures})
            message = (
                f"Failed to describe {len(real_failures)} of {len(task_ids)} tasks "
                f"in cluster \"{cluster}\": {', '.join(reasons)}"
            )
            if not result.records:
                raise TransientNetworkError(message)
            raise PartialBatchError(message, result)

        return result
