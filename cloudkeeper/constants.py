"""Centralized constants and enums for cloudkeeper.

Tag keys, provider state names and default timings live here so the
controller, the providers and the tests agree on the same values.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Resource Tags
# =============================================================================


class Tag(StrEnum):
    """Provider tag keys used by cloudkeeper."""

    NAME = "Name"


# =============================================================================
# Resource States
# =============================================================================


class ResourceState(StrEnum):
    """Provider-reported states of a managed resource.

    Values are the EC2 volume status names; other providers map onto them.
    """

    CREATING = "creating"
    AVAILABLE = "available"
    IN_USE = "in-use"
    DELETING = "deleting"
    ABSENT = "deleted"
    ERROR = "error"


NON_TERMINAL_STATES: Final[frozenset[ResourceState]] = frozenset({
    ResourceState.CREATING,
    ResourceState.AVAILABLE,
    ResourceState.IN_USE,
})
"""States a live resource can be in. Discovery ignores everything else."""


class SnapshotState(StrEnum):
    """Provider-reported states of a snapshot."""

    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


# =============================================================================
# Timings (in seconds)
# =============================================================================

DEFAULT_WAIT_TIMEOUT: Final = 300.0
DEFAULT_WAIT_INTERVAL: Final = 5.0
DEFAULT_SNAPSHOT_TIMEOUT: Final = 1800.0
DEFAULT_REQUEST_TIMEOUT: Final = 30

# =============================================================================
# Formats
# =============================================================================

RELEASE_TIMESTAMP_FORMAT: Final = "%Y%m%dT%H%M%SZ"
