"""Custom exception hierarchy for cloudkeeper.

All cloudkeeper exceptions inherit from CloudkeeperError, so a workflow
step can catch every controller failure with a single except clause and
translate the specific kind into an operator-facing message.
"""

from __future__ import annotations

import builtins

RETRYABLE_ERROR_CODES = frozenset({
    "RequestLimitExceeded",
    "Throttling",
    "ThrottlingException",
    "InternalError",
    "ServiceUnavailable",
    "Unavailable",
})


class CloudkeeperError(Exception):
    """Base exception for all cloudkeeper errors."""


class ConfigurationError(CloudkeeperError):
    """Raised for invalid configuration or missing required settings."""


class ProviderError(CloudkeeperError):
    """Raised when a provider API call fails."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.code = code
        self.operation = operation
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """True for throttling and transient server-side failures."""
        return self.code in RETRYABLE_ERROR_CODES


class ResourceNotFound(ProviderError):
    """Raised by providers when an id no longer exists. Not a failure for discovery."""


class ResourceIdentityUnavailable(CloudkeeperError):
    """Raised when an operation needs a provider id or identity that is not known."""

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"Resource identity unavailable: {what}")


class OrphanResourceRisk(CloudkeeperError):
    """Raised when a resource was created but could not be tagged.

    The resource exists on the provider but is invisible to discovery
    and will leak unless reconciled by hand.
    """

    def __init__(self, resource_id: str, identity: str) -> None:
        self.resource_id = resource_id
        self.identity = identity
        super().__init__(
            f"Resource {resource_id} was created but not tagged as {identity!r}; "
            f"it is undiscoverable and must be reconciled manually"
        )


class StaleSnapshotRisk(CloudkeeperError):
    """Raised when a resize aborts and leaves its snapshot behind."""

    def __init__(self, snapshot_id: str, identity: str, stage: str) -> None:
        self.snapshot_id = snapshot_id
        self.identity = identity
        self.stage = stage
        super().__init__(
            f"Resize of {identity!r} aborted at {stage}; snapshot {snapshot_id} retained"
        )

    @property
    def original_deleted(self) -> bool:
        """True when the snapshot is the only remaining copy of the data."""
        return self.stage == "aborted-after-delete"


class CleanupFailure(CloudkeeperError):
    """Non-critical cleanup after a successful operation failed. Reported, never raised."""

    def __init__(self, snapshot_id: str, reason: str) -> None:
        self.snapshot_id = snapshot_id
        self.reason = reason
        super().__init__(f"Failed to delete snapshot {snapshot_id}: {reason}")


class WaitTimeoutError(CloudkeeperError, builtins.TimeoutError):
    """Raised when a resource does not reach the awaited state in time."""


class OperationCancelled(CloudkeeperError):
    """Raised when the operation context is cancelled or its deadline passes."""
