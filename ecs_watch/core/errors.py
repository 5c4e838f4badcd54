"""Error taxonomy for the watch loop.

Transient errors are retried on the next cycle; fatal errors stop the loop
and surface to the operator with a non-zero exit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    PartialCredentialsError,
    ProfileNotFound,
)

if TYPE_CHECKING:
    from ecs_watch.core.models import DescribeResult


class WatchError(Exception):
    """Base error for ecs-watch. Fatal unless a subclass says otherwise."""

    is_fatal = True


class TransientNetworkError(WatchError):
    """Recoverable transport failure. Retried on the next cycle."""

    is_fatal = False


class AuthError(WatchError):
    """Credentials missing, expired, or not allowed to call ECS."""

    pass


class ClusterNotFound(WatchError):
    """The named cluster does not exist in the selected account/region."""

    def __init__(self, cluster: str):
        self.cluster = cluster
        super().__init__(f'Failed to find ECS cluster "{cluster}"')


class PartialBatchError(WatchError):
    """Some tasks were described, others failed.

    Carries the described subset so the cycle can still be summarized.
    """

    is_fatal = False

    def __init__(self, message: str, result: DescribeResult):
        self.result = result
        super().__init__(message)


class OutputWriteError(WatchError):
    """The output stream cannot be written (closed pipe, full disk)."""

    pass


class RetryLimitExceeded(WatchError):
    """Too many consecutive transient failures."""

    pass


class ErrorClassifier:
    """Classify botocore errors into the watch error taxonomy."""

    AUTH_CODES = frozenset(
        {
            "AccessDeniedException",
            "AccessDenied",
            "UnrecognizedClientException",
            "ExpiredTokenException",
            "ExpiredToken",
            "InvalidClientTokenId",
            "InvalidSignatureException",
            "UnauthorizedOperation",
        }
    )

    TRANSIENT_CODES = frozenset(
        {
            "ThrottlingException",
            "Throttling",
            "RequestLimitExceeded",
            "TooManyRequestsException",
            "ServerException",
            "ServiceUnavailable",
            "ServiceUnavailableException",
            "InternalFailure",
            "RequestTimeout",
            "RequestTimeoutException",
        }
    )

    def classify(self, exc: Exception, cluster: str, action: str) -> Exception:
        """Return the taxonomy error for ``exc``.

        Errors that are already WatchError, and non-botocore errors, are
        returned unchanged.
        """
        if isinstance(exc, WatchError):
            return exc

        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "")
            message = exc.response.get("Error", {}).get("Message", str(exc))
            if code == "ClusterNotFoundException":
                return ClusterNotFound(cluster)
            if code in self.AUTH_CODES:
                return AuthError(f"Not authorized to {action} for cluster \"{cluster}\": {message}")
            if code in self.TRANSIENT_CODES:
                return TransientNetworkError(
                    f"Failed to {action} for cluster \"{cluster}\": {code}: {message}"
                )
            return WatchError(f"Failed to {action} for cluster \"{cluster}\": {code}: {message}")

        if isinstance(exc, (NoCredentialsError, PartialCredentialsError, ProfileNotFound)):
            return AuthError(str(exc))

        if isinstance(exc, (BotoConnectionError, HTTPClientError)):
            # EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ...
            return TransientNetworkError(f"Failed to {action} for cluster \"{cluster}\": {exc}")

        if isinstance(exc, BotoCoreError):
            return WatchError(f"Failed to {action} for cluster \"{cluster}\": {exc}")

        return exc
