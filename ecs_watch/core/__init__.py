"""Core modules for ecs-watch."""

from ecs_watch.core.errors import (
    AuthError,
    ClusterNotFound,
    OutputWriteError,
    PartialBatchError,
    RetryLimitExceeded,
    TransientNetworkError,
    WatchError,
)
from ecs_watch.core.models import ClusterSummary, DetailPayload, TaskFingerprint, TaskRecord
from ecs_watch.core.summarizer import summarize
from ecs_watch.core.watch import BackoffPolicy, WatchLoop, WatchPhase, WatchState

__all__ = [
    "AuthError",
    "BackoffPolicy",
    "ClusterNotFound",
    "ClusterSummary",
    "DetailPayload",
    "OutputWriteError",
    "PartialBatchError",
    "RetryLimitExceeded",
    "TaskFingerprint",
    "TaskRecord",
    "TransientNetworkError",
    "WatchError",
    "WatchLoop",
    "WatchPhase",
    "WatchState",
    "summarize",
]
